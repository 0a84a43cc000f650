"""Post-collection filtering of raw items against a watcher's criteria."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from peddler.ingest.base import RawItem
from peddler.watchers import Watcher


@dataclass
class FilterConfig:
    """Keyword and price-bound criteria."""

    keywords: List[str] = field(default_factory=list)  # Include if matches any
    exclude_keywords: List[str] = field(default_factory=list)  # Exclude if matches any
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None

    @classmethod
    def from_watcher(cls, watcher: Watcher) -> "FilterConfig":
        return cls(
            keywords=[k.lower() for k in watcher.include_keywords if k.strip()],
            exclude_keywords=[k.lower() for k in watcher.exclude_keywords if k.strip()],
            min_price=watcher.price_min,
            max_price=watcher.price_max,
        )

    def matches(self, item: RawItem) -> bool:
        """Check whether an item passes every criterion."""
        if self.min_price is not None and item.price < self.min_price:
            return False
        if self.max_price is not None and item.price > self.max_price:
            return False

        title = item.title.lower()
        if self.keywords and not any(k in title for k in self.keywords):
            return False
        if self.exclude_keywords and any(k in title for k in self.exclude_keywords):
            return False

        return True

