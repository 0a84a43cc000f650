"""FastAPI dependencies."""

from peddler.worker.tasks import TaskRunner, task_runner


async def get_task_runner() -> TaskRunner:
    """Dependency for the process-wide task runner."""
    return task_runner
