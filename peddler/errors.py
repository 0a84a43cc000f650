"""Exception types shared across the watch pipeline."""


class PeddlerError(Exception):
    """Base class for all Peddler errors."""


class ConfigurationError(PeddlerError):
    """Missing or invalid watcher configuration. Aborts the whole run."""


class CollectionError(PeddlerError):
    """A Source Collector could not produce items for a watcher."""

    def __init__(self, message: str, marketplace: str | None = None):
        self.marketplace = marketplace
        super().__init__(message)


class CollectorAuthError(CollectionError):
    """Marketplace rejected the session (login wall, expired cookies)."""


class CollectorLayoutError(CollectionError):
    """Marketplace page did not have the expected structure."""


class CollectorNetworkError(CollectionError):
    """Network failure or timeout talking to the marketplace. Retryable."""


class UnsupportedMarketplaceError(CollectionError):
    """No collector is registered for the watcher's marketplace."""


class PersistenceError(PeddlerError):
    """Item Store failure for a single item."""

    def __init__(self, message: str, watcher_id: str | None = None, item_id: str | None = None):
        self.watcher_id = watcher_id
        self.item_id = item_id
        super().__init__(message)


class NotificationError(PeddlerError):
    """
    A Channel Sender failed to deliver a message.

    ``transient`` is False for failures a retry cannot fix, such as a missing
    channel parameter or a 4xx rejection.
    """

    def __init__(
        self,
        message: str,
        channel: str | None = None,
        status_code: int | None = None,
        transient: bool = True,
    ):
        self.channel = channel
        self.status_code = status_code
        self.transient = transient
        super().__init__(message)
