"""Base collector interface for marketplace sources."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional

from peddler.errors import UnsupportedMarketplaceError
from peddler.settings_provider import Credentials
from peddler.watchers import Marketplace, Watcher

logger = logging.getLogger(__name__)


@dataclass
class RawItem:
    """An item as extracted from a marketplace search page."""

    item_id: str
    title: str
    price: Decimal
    location: str = ""
    url: str = ""
    image_url: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.price, Decimal):
            self.price = Decimal(str(self.price))
        if self.price < 0:
            raise ValueError(f"Negative price for item {self.item_id}: {self.price}")


class SourceCollector(ABC):
    """
    Abstract base class for marketplace collectors.

    A collector may hold an expensive session (a browser, an HTTP client).
    Use it as an async context manager so the session is released on every
    exit path::

        async with collector:
            items = await collector.collect(watcher, credentials)
    """

    marketplace: str = ""

    async def open(self) -> None:
        """Acquire session resources."""

    async def close(self) -> None:
        """Release session resources. Must be safe to call more than once."""

    async def __aenter__(self) -> "SourceCollector":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @abstractmethod
    async def collect(self, watcher: Watcher, credentials: Credentials) -> list[RawItem]:
        """
        Run the watcher's search and return the raw items found.

        Args:
            watcher: Watcher whose search parameters to use
            credentials: Credential bundle (cookies etc.)

        Returns:
            List of RawItem

        Raises:
            CollectorAuthError: Session rejected by the marketplace
            CollectorLayoutError: Page structure not recognised
            CollectorNetworkError: Network failure or timeout
        """


CollectorFactory = Callable[[], SourceCollector]


class CollectorRegistry:
    """Maps marketplace types to collector factories."""

    def __init__(self):
        self._factories: dict[str, CollectorFactory] = {}

    def register(self, marketplace: Marketplace | str, factory: CollectorFactory) -> None:
        key = marketplace.value if isinstance(marketplace, Marketplace) else str(marketplace)
        self._factories[key] = factory
        logger.debug("Registered collector for %s", key)

    def create(self, marketplace: Marketplace | str) -> SourceCollector:
        """
        Build a fresh collector for a marketplace.

        Raises:
            UnsupportedMarketplaceError: If nothing is registered for it
        """
        key = marketplace.value if isinstance(marketplace, Marketplace) else str(marketplace)
        factory = self._factories.get(key)
        if factory is None:
            raise UnsupportedMarketplaceError(f"Unsupported marketplace: {key}", marketplace=key)
        return factory()


def default_registry() -> CollectorRegistry:
    """Registry with every built-in collector."""
    from peddler.ingest.facebook import FacebookMarketplaceCollector

    registry = CollectorRegistry()
    registry.register(Marketplace.FACEBOOK, FacebookMarketplaceCollector)
    return registry
