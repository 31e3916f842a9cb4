"""Fire-and-forget notifications."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Protocol

from pixel_paywall.domain.events import NotificationEvent

_logger = logging.getLogger(__name__)


class NotificationSender(Protocol):
    """Delivers notification events to people."""

    async def send(self, event: NotificationEvent) -> None:
        """Send an event."""


@dataclass
class NotificationService:
    """Publishes events in the background so the payment flow never waits.

    Each send runs as its own task with a timeout; failures are logged and
    dropped.
    """

    sender: NotificationSender | None = None
    timeout_seconds: float = 10.0
    _pending: set[asyncio.Task[None]] = field(
        default_factory=set, init=False, repr=False
    )

    async def publish(self, event: NotificationEvent) -> None:
        """Schedule an event for sending and return immediately."""
        _logger.info("Notification: %s", type(event).__name__)
        if self.sender is None:
            return
        task = asyncio.create_task(self._send(self.sender, event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for every scheduled send to finish."""
        while self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def _send(self, sender: NotificationSender, event: NotificationEvent) -> None:
        try:
            async with asyncio.timeout(self.timeout_seconds):
                await sender.send(event)
        except Exception:
            _logger.exception("Failed to send %s notification", type(event).__name__)
