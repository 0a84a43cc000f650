"""Classify an observed item against its stored counterpart."""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from peddler.ingest.base import RawItem
from peddler.store.base import Item

Number = Union[Decimal, float, int, str]


class EventKind(str, Enum):
    """Outcome of comparing an observation to stored state."""

    NEW_ITEM = "new_item"
    PRICE_DROP = "price_drop"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class Classification:
    """Result of classify().

    ``price_changed`` is set for UNCHANGED results whose price moved without
    crossing the drop threshold (including increases), so the caller still
    persists the new price.
    """

    kind: EventKind
    percentage: Optional[float] = None
    price_changed: bool = False


def drop_fraction(previous_price: Decimal, current_price: Decimal) -> Optional[Decimal]:
    """Return (previous - current) / previous, or None when previous is not positive."""
    if previous_price is None or previous_price <= 0:
        return None
    return (previous_price - current_price) / previous_price


def classify(observed: RawItem, stored: Optional[Item], threshold: Number) -> Classification:
    """
    Decide whether an observation is new, a price drop, or unchanged.

    Args:
        observed: Freshly collected item
        stored: Previously persisted item for the same (watcher, item) key
        threshold: Minimum drop as a fraction of the stored price (0.1 = 10%)

    Returns:
        Classification
    """
    if stored is None:
        return Classification(EventKind.NEW_ITEM)

    observed_price = Decimal(str(observed.price))
    stored_price = Decimal(str(stored.price))

    if observed_price == stored_price:
        return Classification(EventKind.UNCHANGED)

    if observed_price < stored_price:
        fraction = drop_fraction(stored_price, observed_price)
        if fraction is not None and fraction >= Decimal(str(threshold)):
            return Classification(
                EventKind.PRICE_DROP,
                percentage=float(fraction * 100),
                price_changed=True,
            )

    # Increase, or a drop smaller than the threshold
    return Classification(EventKind.UNCHANGED, price_changed=True)


@dataclass(frozen=True)
class ClassifiedEvent:
    """A reconciled item together with its classification."""

    kind: EventKind
    item: Item
    percentage: Optional[float] = None

    @property
    def event_id(self) -> str:
        return f"{self.item.watcher_id}:{self.item.item_id}:{self.kind.value}"
