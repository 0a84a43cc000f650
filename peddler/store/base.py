"""Item record and the Item Store interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from peddler.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Item:
    """A persisted observation of a marketplace item, keyed by (watcher_id, item_id)."""

    watcher_id: str
    item_id: str
    title: str
    price: Decimal
    location: str = ""
    url: str = ""
    image_url: Optional[str] = None
    previous_price: Optional[Decimal] = None
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.watcher_id, self.item_id)

    def copy(self, **changes) -> "Item":
        return replace(self, **changes)


class ItemStore(ABC):
    """
    Durable storage of Item records.

    Every write recomputes ``expires_at`` as now + the retention window.
    Implementations raise PersistenceError for storage failures.
    """

    def __init__(self, retention_days: int | None = None):
        self.retention_days = (
            retention_days if retention_days is not None else settings.item_retention_days
        )

    def expiry_from(self, now: datetime) -> datetime:
        return now + timedelta(days=self.retention_days)

    @abstractmethod
    async def get(self, watcher_id: str, item_id: str) -> Optional[Item]:
        """Return the stored item, or None if there is none."""

    @abstractmethod
    async def put(self, item: Item) -> None:
        """Create or replace an item record."""

    @abstractmethod
    async def update_price(
        self,
        watcher_id: str,
        item_id: str,
        new_price: Decimal,
        last_seen: datetime,
    ) -> Optional[Item]:
        """
        Record a new observation of an existing item.

        When ``new_price`` differs from the stored price the stored price
        moves to ``previous_price``. ``last_seen`` and ``expires_at`` are
        refreshed either way.

        Returns:
            The updated item, or None if no record exists for the key
        """

    @abstractmethod
    async def list_for_watcher(self, watcher_id: str, limit: int = 100) -> list[Item]:
        """Return a watcher's items, most recently seen first."""

    @abstractmethod
    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete records whose expiry has passed. Returns the number removed."""

    async def close(self) -> None:
        """Release any held resources."""
