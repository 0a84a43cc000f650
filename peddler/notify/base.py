"""Notification message and the Channel Sender interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Optional

import httpx

from peddler.detect.classifier import ClassifiedEvent, EventKind
from peddler.settings_provider import Credentials
from peddler.watchers import Watcher


@dataclass(frozen=True)
class NotificationMessage:
    """The fixed set of fields every channel renders for one event."""

    kind: EventKind
    event_id: str
    watcher_id: str
    watcher_name: str
    item_id: str
    title: str
    price: Decimal
    location: str
    url: str
    image_url: Optional[str] = None
    previous_price: Optional[Decimal] = None
    drop_percentage: Optional[float] = None

    @property
    def is_price_drop(self) -> bool:
        return self.kind == EventKind.PRICE_DROP

    @classmethod
    def from_event(cls, event: ClassifiedEvent, watcher: Watcher) -> "NotificationMessage":
        item = event.item
        return cls(
            kind=event.kind,
            event_id=event.event_id,
            watcher_id=watcher.id,
            watcher_name=watcher.display_name,
            item_id=item.item_id,
            title=item.title,
            price=item.price,
            location=item.location,
            url=item.url,
            image_url=item.image_url,
            previous_price=item.previous_price,
            drop_percentage=event.percentage,
        )


class ChannelSender(ABC):
    """Delivers a message over one channel. Any exception means failure."""

    channel: str = ""

    @abstractmethod
    async def send(self, message: NotificationMessage) -> None:
        """
        Deliver a message.

        Raises:
            NotificationError: If the channel rejects or fails the delivery
        """


# (http client, channel parameters, credentials) -> sender
SenderFactory = Callable[[httpx.AsyncClient, dict[str, Any], Credentials], ChannelSender]
