"""Notification Fan-out: deliver one event to every enabled channel of a watcher."""

import asyncio
import logging
from typing import Mapping, Optional

import httpx

from peddler import metrics
from peddler.config import settings
from peddler.detect.classifier import ClassifiedEvent
from peddler.errors import NotificationError
from peddler.notify.base import NotificationMessage, SenderFactory
from peddler.notify.senders import DEFAULT_SENDERS
from peddler.retry import retry_async
from peddler.settings_provider import Credentials
from peddler.watchers import ChannelConfig, Watcher

logger = logging.getLogger(__name__)


class NotificationFanout:
    """
    Sends notifications concurrently over every enabled channel.

    Channels are isolated from each other: a failing channel is logged and
    reported as False in the result, the others still deliver.
    """

    def __init__(
        self,
        credentials: Optional[Credentials] = None,
        senders: Optional[Mapping[str, SenderFactory]] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
        sleep=asyncio.sleep,
    ):
        self.credentials = credentials or Credentials()
        self.senders = dict(senders if senders is not None else DEFAULT_SENDERS)
        self.timeout = timeout if timeout is not None else settings.notification_timeout_seconds
        self.max_attempts = max_attempts if max_attempts is not None else settings.notification_max_attempts
        self.backoff = backoff if backoff is not None else settings.notification_backoff_seconds
        self._http_client = client
        self._owns_client = client is None
        self._sleep = sleep

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self):
        """Close HTTP client."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def dispatch(self, event: ClassifiedEvent, watcher: Watcher) -> dict[str, bool]:
        """
        Deliver an event to the watcher's enabled channels.

        Args:
            event: NEW_ITEM or PRICE_DROP event
            watcher: Watcher that produced it

        Returns:
            Mapping of channel name to delivery success
        """
        channels = watcher.enabled_channels()
        if not channels:
            logger.debug("No channels enabled for watcher %s", watcher.id)
            return {}

        message = NotificationMessage.from_event(event, watcher)
        names = list(channels)
        results = await asyncio.gather(
            *(self._deliver(name, channels[name], message) for name in names),
            return_exceptions=True,
        )

        outcome: dict[str, bool] = {}
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Notification failed for event %s on channel %s: %s",
                    message.event_id,
                    name,
                    result,
                    extra={"event_id": message.event_id, "channel": name},
                )
                metrics.notifications_total.labels(channel=name, status="failed").inc()
                outcome[name] = False
            else:
                metrics.notifications_total.labels(channel=name, status="sent").inc()
                outcome[name] = True
        return outcome

    async def _deliver(self, name: str, channel: ChannelConfig, message: NotificationMessage) -> None:
        factory = self.senders.get(name)
        if factory is None:
            raise NotificationError(f"Unknown notification channel: {name}", channel=name)

        client = await self._get_client()
        sender = factory(client, channel.params, self.credentials)

        async def attempt():
            await asyncio.wait_for(sender.send(message), timeout=self.timeout)

        await retry_async(
            attempt,
            attempts=self.max_attempts,
            base_delay=self.backoff,
            retry_on=(NotificationError, asyncio.TimeoutError),
            retry_if=_is_retryable,
            description=f"{name} notification for {message.event_id}",
            sleep=self._sleep,
        )


def _is_retryable(error: BaseException) -> bool:
    if isinstance(error, NotificationError):
        return error.transient
    return True
