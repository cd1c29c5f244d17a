"""
Realtime sync bridge shared contract.

A bridge relays booking events between bot processes and the dashboard.
Emission is fire-and-forget: ``emit`` schedules delivery and returns at
once, and an event that cannot be delivered is dropped and logged, never
queued. The booking path therefore never waits on, or fails because of,
the sync channel.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

from clinicbot.schemas.appointment_schema import ConfirmationResult
from clinicbot.schemas.event_schema import SyncEvent

logger = logging.getLogger(__name__)

ConfirmationHandler = Callable[[Any], Awaitable[ConfirmationResult]]

NO_HANDLER_MESSAGE = "Confirmación no disponible en este proceso"


class SyncBridge(ABC):
    """Base class for the Hub and Relay roles."""

    role: str = "none"

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()
        self._confirmation_handler: Optional[ConfirmationHandler] = None
        self.emitted = 0
        self.delivered = 0
        self.dropped = 0

    @property
    @abstractmethod
    def connected(self) -> bool:
        """Whether an event emitted now has somewhere to go."""

    @abstractmethod
    async def _deliver(self, event: SyncEvent) -> None:
        """Send one event. Implementations record the outcome and never raise."""

    async def start(self) -> None:
        return None

    async def close(self) -> None:
        """Let in-flight deliveries finish, then release the transport."""
        await self.drain()

    def bind_confirmation_handler(self, handler: ConfirmationHandler) -> None:
        self._confirmation_handler = handler

    def emit(self, event: SyncEvent) -> None:
        """Schedule delivery of ``event`` without waiting for it."""
        self.emitted += 1
        if not self.connected:
            self._drop(event, "not connected")
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._drop(event, "no running event loop")
            return
        task = loop.create_task(self._deliver(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for scheduled deliveries. Used on shutdown and by tests."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _drop(self, event: SyncEvent, reason: str) -> None:
        self.dropped += 1
        logger.warning("Sync event '%s' dropped (%s)", event.event.value, reason)

    def _record_delivered(self, event: SyncEvent) -> None:
        self.delivered += 1
        logger.debug("Sync event '%s' delivered via %s", event.event.value, self.role)

    async def _answer_confirmation(self, request: SyncEvent) -> SyncEvent:
        """Run a confirmation request through the bound handler."""
        appointment_id = request.requested_id()
        logger.info("Confirmation requested for appointment %s", appointment_id)
        if self._confirmation_handler is None:
            result = ConfirmationResult(
                appointment_id=appointment_id, success=False, message=NO_HANDLER_MESSAGE
            )
        else:
            result = await self._confirmation_handler(appointment_id)
        return SyncEvent.confirmation_result(result)

    def stats(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "connected": self.connected,
            "emitted": self.emitted,
            "delivered": self.delivered,
            "dropped": self.dropped,
        }


class NullBridge(SyncBridge):
    """Bridge for processes without a sync channel (offline console demo)."""

    role = "none"

    @property
    def connected(self) -> bool:
        return False

    def emit(self, event: SyncEvent) -> None:
        self.emitted += 1
        self.dropped += 1
        logger.debug("Sync disabled, event '%s' discarded", event.event.value)

    async def _deliver(self, event: SyncEvent) -> None:
        return None
