"""Watcher API endpoints."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict

from peddler.api.deps import get_task_runner
from peddler.errors import ConfigurationError
from peddler.worker.tasks import TaskRunner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/watchers", tags=["watchers"])


# Response models
class WatcherResponse(BaseModel):
    """Response model for a watcher definition."""
    id: str
    name: str
    enabled: bool
    marketplace: str
    query: str
    location: str
    channels: List[str]


class RunResultResponse(BaseModel):
    """Response model for a single watcher run."""
    watcher_id: str
    success: bool
    disabled: bool
    error: Optional[str]
    items_observed: int
    new_items: int
    price_drops: int
    items_failed: int
    execution_ms: float


class ItemResponse(BaseModel):
    """Response model for a stored item."""
    item_id: str
    title: str
    price: Decimal
    previous_price: Optional[Decimal]
    location: str
    url: str
    image_url: Optional[str]
    first_seen: Optional[datetime]
    last_seen: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class WatcherStatsResponse(BaseModel):
    """Response model for a watcher's recent items."""
    watcher_id: str
    name: str
    enabled: bool
    item_count: int
    price_drops: int
    items: List[ItemResponse]


@router.get("", response_model=List[WatcherResponse])
async def list_watchers(runner: TaskRunner = Depends(get_task_runner)):
    """List configured watchers."""
    try:
        watchers = await runner.list_watchers()
    except ConfigurationError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return [
        WatcherResponse(
            id=w.id,
            name=w.display_name,
            enabled=w.enabled,
            marketplace=w.marketplace.value,
            query=w.query,
            location=w.location,
            channels=sorted(w.enabled_channels()),
        )
        for w in watchers
    ]


@router.post("/{watcher_id}/run", response_model=RunResultResponse)
async def run_watcher(watcher_id: str, runner: TaskRunner = Depends(get_task_runner)):
    """Run one watcher now and return its result."""
    try:
        result = await runner.run_watcher(watcher_id)
    except ConfigurationError as e:
        raise HTTPException(status_code=500, detail=str(e))

    if result is None:
        raise HTTPException(status_code=404, detail=f"Watcher {watcher_id} not found")

    logger.info(f"Manual run of watcher {watcher_id} finished (success={result.success})")
    return RunResultResponse(
        watcher_id=result.watcher_id,
        success=result.success,
        disabled=result.disabled,
        error=result.error,
        items_observed=result.items_observed,
        new_items=len(result.new_items),
        price_drops=len(result.price_drops),
        items_failed=result.items_failed,
        execution_ms=result.execution_ms,
    )


@router.get("/{watcher_id}/items", response_model=WatcherStatsResponse)
async def watcher_items(
    watcher_id: str,
    limit: int = 50,
    runner: TaskRunner = Depends(get_task_runner),
):
    """Most recently seen items for a watcher."""
    try:
        stats = await runner.watcher_stats(watcher_id, limit=limit)
    except ConfigurationError as e:
        raise HTTPException(status_code=500, detail=str(e))

    if stats is None:
        raise HTTPException(status_code=404, detail=f"Watcher {watcher_id} not found")
    return WatcherStatsResponse(
        **{**stats, "items": [ItemResponse.model_validate(i) for i in stats["items"]]}
    )
