"""Watch execution: runner, batch scheduler and periodic jobs."""
