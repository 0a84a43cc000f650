"""SQLAlchemy-backed Item Store."""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from peddler.db.models import ItemRecord
from peddler.db.session import create_engine, create_session_factory, init_db
from peddler.errors import PersistenceError
from peddler.store.base import Item, ItemStore, utcnow

logger = logging.getLogger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_item(record: ItemRecord) -> Item:
    return Item(
        watcher_id=record.watcher_id,
        item_id=record.item_id,
        title=record.title,
        price=Decimal(record.price),
        previous_price=Decimal(record.previous_price) if record.previous_price is not None else None,
        location=record.location,
        url=record.url,
        image_url=record.image_url,
        first_seen=_aware(record.first_seen),
        last_seen=_aware(record.last_seen),
        expires_at=_aware(record.expires_at),
    )


class SqlItemStore(ItemStore):
    """Item Store over an async SQLAlchemy engine."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: AsyncEngine | None = None,
        retention_days: int | None = None,
    ):
        super().__init__(retention_days)
        self._session_factory = session_factory
        self._engine = engine

    @classmethod
    async def from_url(cls, database_url: str | None = None, retention_days: int | None = None) -> "SqlItemStore":
        """Create the engine, ensure tables exist and return a store that owns the engine."""
        engine = create_engine(database_url)
        await init_db(engine)
        return cls(create_session_factory(engine), engine=engine, retention_days=retention_days)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None

    async def get(self, watcher_id: str, item_id: str) -> Optional[Item]:
        try:
            async with self._session_factory() as db:
                record = await db.get(ItemRecord, (watcher_id, item_id))
                return _to_item(record) if record else None
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to get item {item_id} for watcher {watcher_id}: {e}",
                watcher_id=watcher_id,
                item_id=item_id,
            ) from e

    async def put(self, item: Item) -> None:
        now = utcnow()
        try:
            async with self._session_factory() as db:
                record = ItemRecord(
                    watcher_id=item.watcher_id,
                    item_id=item.item_id,
                    title=item.title,
                    price=item.price,
                    previous_price=item.previous_price,
                    location=item.location or "",
                    url=item.url or "",
                    image_url=item.image_url,
                    first_seen=item.first_seen or now,
                    last_seen=item.last_seen or now,
                    expires_at=self.expiry_from(now),
                )
                await db.merge(record)
                await db.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to save item {item.item_id} for watcher {item.watcher_id}: {e}",
                watcher_id=item.watcher_id,
                item_id=item.item_id,
            ) from e

    async def update_price(
        self,
        watcher_id: str,
        item_id: str,
        new_price: Decimal,
        last_seen: datetime,
    ) -> Optional[Item]:
        try:
            async with self._session_factory() as db:
                query = (
                    select(ItemRecord)
                    .where(ItemRecord.watcher_id == watcher_id, ItemRecord.item_id == item_id)
                    .with_for_update()
                )
                result = await db.execute(query)
                record = result.scalar_one_or_none()
                if record is None:
                    return None

                if Decimal(record.price) != new_price:
                    record.previous_price = record.price
                    record.price = new_price
                record.last_seen = last_seen
                record.expires_at = self.expiry_from(utcnow())

                await db.commit()
                return _to_item(record)
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to update price of item {item_id} for watcher {watcher_id}: {e}",
                watcher_id=watcher_id,
                item_id=item_id,
            ) from e

    async def list_for_watcher(self, watcher_id: str, limit: int = 100) -> list[Item]:
        try:
            async with self._session_factory() as db:
                query = (
                    select(ItemRecord)
                    .where(ItemRecord.watcher_id == watcher_id)
                    .order_by(ItemRecord.last_seen.desc())
                    .limit(limit)
                )
                result = await db.execute(query)
                return [_to_item(r) for r in result.scalars().all()]
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to list items for watcher {watcher_id}: {e}",
                watcher_id=watcher_id,
            ) from e

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        try:
            async with self._session_factory() as db:
                result = await db.execute(delete(ItemRecord).where(ItemRecord.expires_at <= now))
                await db.commit()
                removed = result.rowcount or 0
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to purge expired items: {e}") from e

        if removed:
            logger.info("Purged %d expired items", removed)
        return removed
