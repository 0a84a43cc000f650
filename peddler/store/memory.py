"""In-process Item Store."""

import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Optional

from peddler.store.base import Item, ItemStore, utcnow


class MemoryItemStore(ItemStore):
    """Dict-backed store. Used for dry runs and tests."""

    def __init__(self, retention_days: int | None = None):
        super().__init__(retention_days)
        self._items: dict[tuple[str, str], Item] = {}
        self._lock = asyncio.Lock()

    async def get(self, watcher_id: str, item_id: str) -> Optional[Item]:
        item = self._items.get((watcher_id, item_id))
        return item.copy() if item else None

    async def put(self, item: Item) -> None:
        now = utcnow()
        async with self._lock:
            self._items[item.key] = item.copy(
                first_seen=item.first_seen or now,
                last_seen=item.last_seen or now,
                expires_at=self.expiry_from(now),
            )

    async def update_price(
        self,
        watcher_id: str,
        item_id: str,
        new_price: Decimal,
        last_seen: datetime,
    ) -> Optional[Item]:
        async with self._lock:
            current = self._items.get((watcher_id, item_id))
            if current is None:
                return None

            changes = {
                "last_seen": last_seen,
                "expires_at": self.expiry_from(utcnow()),
            }
            if new_price != current.price:
                changes["price"] = new_price
                changes["previous_price"] = current.price

            updated = current.copy(**changes)
            self._items[updated.key] = updated
            return updated.copy()

    async def list_for_watcher(self, watcher_id: str, limit: int = 100) -> list[Item]:
        items = [item for key, item in self._items.items() if key[0] == watcher_id]
        items.sort(key=lambda i: i.last_seen.timestamp() if i.last_seen else 0.0, reverse=True)
        return [item.copy() for item in items[:limit]]

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        async with self._lock:
            expired = [
                key for key, item in self._items.items()
                if item.expires_at is not None and item.expires_at <= now
            ]
            for key in expired:
                del self._items[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._items)
