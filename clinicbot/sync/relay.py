"""
Relay role: a single outbound connection from a bot process to a remote hub.

Local booking events are forwarded while connected and dropped otherwise.
The connection is re-established in the background with exponential
backoff, bounded or unbounded depending on the ``ReconnectPolicy``.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from clinicbot.schemas.event_schema import EventName, InvalidEventError, SyncEvent
from clinicbot.sync.bridge import SyncBridge

logger = logging.getLogger(__name__)

OPEN_TIMEOUT_SEC = 10.0


@dataclass(frozen=True)
class ReconnectPolicy:
    """Backoff bounds. ``max_attempts=None`` retries forever."""

    max_attempts: Optional[int] = None
    initial_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 1.5

    def delay_for(self, attempt: int) -> float:
        """Delay before reconnect attempt ``attempt`` (1-based)."""
        return min(self.initial_delay * self.multiplier ** (attempt - 1), self.max_delay)

    def exhausted(self, attempt: int) -> bool:
        """Whether ``attempt`` reconnects used up the budget."""
        return self.max_attempts is not None and attempt >= self.max_attempts


class RelayBridge(SyncBridge):
    """Forwards this process's booking events to a remote hub."""

    role = "relay"

    def __init__(self, hub_url: str, policy: Optional[ReconnectPolicy] = None) -> None:
        super().__init__()
        self._hub_url = hub_url
        self._policy = policy or ReconnectPolicy()
        self._ws: Optional[ClientConnection] = None
        self._runner: Optional[asyncio.Task] = None
        self._closing = False
        self.reconnect_attempts = 0

    @property
    def connected(self) -> bool:
        return self._ws is not None

    @property
    def gave_up(self) -> bool:
        return self._runner is not None and self._runner.done() and not self._closing

    async def start(self) -> None:
        self._closing = False
        self._runner = asyncio.create_task(self._run(), name="sync-relay")

    async def close(self) -> None:
        self._closing = True
        await super().close()
        if self._ws is not None:
            await self._ws.close()
        if self._runner is not None:
            self._runner.cancel()
            try:
                await self._runner
            except asyncio.CancelledError:
                pass
            self._runner = None
        logger.info("Sync relay closed")

    async def _run(self) -> None:
        while not self._closing:
            try:
                async with connect(self._hub_url, open_timeout=OPEN_TIMEOUT_SEC) as websocket:
                    self._ws = websocket
                    self.reconnect_attempts = 0
                    logger.info("Connected to sync hub at %s", self._hub_url)
                    async for raw in websocket:
                        await self._on_message(websocket, raw)
                logger.warning("Sync hub closed the connection")
            except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
                logger.warning("Sync hub connection failed: %s", exc)
            finally:
                self._ws = None

            if self._closing:
                break
            if self._policy.exhausted(self.reconnect_attempts):
                logger.error(
                    "Giving up on sync hub after %d reconnect attempt(s); events will be dropped",
                    self._policy.max_attempts,
                )
                return
            self.reconnect_attempts += 1
            delay = self._policy.delay_for(self.reconnect_attempts)
            logger.info(
                "Reconnecting to sync hub in %.1fs (attempt %d)", delay, self.reconnect_attempts
            )
            await asyncio.sleep(delay)

    async def _deliver(self, event: SyncEvent) -> None:
        websocket = self._ws
        if websocket is None:
            self._drop(event, "connection lost before send")
            return
        try:
            await websocket.send(event.to_json())
        except ConnectionClosed as exc:
            self._drop(event, f"connection closed: {exc}")
            return
        self._record_delivered(event)

    async def _on_message(self, websocket: ClientConnection, raw: str | bytes) -> None:
        try:
            event = SyncEvent.from_json(raw)
        except InvalidEventError as exc:
            logger.warning("Ignoring frame from hub: %s", exc)
            return

        if event.event == EventName.CONFIRMATION_REQUEST:
            reply = await self._answer_confirmation(event)
            await websocket.send(reply.to_json())
        else:
            logger.debug("Ignoring '%s' from hub", event.event.value)
