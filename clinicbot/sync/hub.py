"""
Hub role: the websocket server dashboards (and relays) connect to.

Every new client gets the current appointment snapshot. Booking events,
whether produced locally or forwarded by a relay, are broadcast to every
client. Confirmation requests are answered to the requesting client only.
"""

import logging
from typing import Awaitable, Callable, Optional, Sequence

from websockets.asyncio.server import Server, ServerConnection, broadcast, serve
from websockets.exceptions import ConnectionClosed

from clinicbot.schemas.appointment_schema import Appointment
from clinicbot.schemas.event_schema import EventName, InvalidEventError, SyncEvent
from clinicbot.sync.bridge import SyncBridge

logger = logging.getLogger(__name__)

SnapshotProvider = Callable[[int], Awaitable[list[Appointment]]]

POLICY_VIOLATION = 1008


class HubBridge(SyncBridge):
    """Accepts dashboard connections and fans booking events out to them."""

    role = "hub"

    def __init__(
        self,
        snapshot_provider: SnapshotProvider,
        host: str = "0.0.0.0",
        port: int = 3002,
        path: str = "/",
        history_limit: int = 100,
        allowed_origins: Sequence[str] = (),
    ) -> None:
        super().__init__()
        self._snapshot_provider = snapshot_provider
        self._host = host
        self._port = port
        self._path = path
        self._history_limit = history_limit
        self._allowed_origins = tuple(allowed_origins)
        self._server: Optional[Server] = None
        self._clients: set[ServerConnection] = set()

    @property
    def connected(self) -> bool:
        return self._server is not None

    @property
    def port(self) -> int:
        """Bound port; differs from the configured one when that was 0."""
        if self._server is None:
            return self._port
        return self._server.sockets[0].getsockname()[1]

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def start(self) -> None:
        self._server = await serve(
            self._handle_client, self._host, self._port, origins=self._origins()
        )
        logger.info("Sync hub listening on %s:%d%s", self._host, self.port, self._path)

    def _origins(self) -> Optional[list[Optional[str]]]:
        """Origin allow-list for the handshake; None disables the check.

        Relays send no Origin header, so they stay admitted once browsers
        are restricted.
        """
        if not self._allowed_origins:
            return None
        return [*self._allowed_origins, None]

    async def close(self) -> None:
        await super().close()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
            logger.info("Sync hub closed")

    async def _deliver(self, event: SyncEvent) -> None:
        broadcast(self._clients, event.to_json())
        self._record_delivered(event)

    async def _handle_client(self, websocket: ServerConnection) -> None:
        path = websocket.request.path.split("?", 1)[0]
        if path != self._path:
            logger.warning("Rejected sync client on unknown path %s", path)
            await websocket.close(POLICY_VIOLATION, "unknown path")
            return

        self._clients.add(websocket)
        logger.info("Dashboard client connected (%d total)", len(self._clients))
        try:
            await self._send_snapshot(websocket)
            async for raw in websocket:
                await self._on_message(websocket, raw)
        except ConnectionClosed:
            pass
        finally:
            self._clients.discard(websocket)
            logger.info("Dashboard client disconnected (%d left)", len(self._clients))

    async def _send_snapshot(self, websocket: ServerConnection) -> None:
        appointments = await self._snapshot_provider(self._history_limit)
        await websocket.send(SyncEvent.snapshot(appointments).to_json())
        logger.info("Sent %d existing appointment(s) to dashboard", len(appointments))

    async def _on_message(self, websocket: ServerConnection, raw: str | bytes) -> None:
        try:
            event = SyncEvent.from_json(raw)
        except InvalidEventError as exc:
            logger.warning("Ignoring sync frame: %s", exc)
            return

        if event.event == EventName.CONFIRMATION_REQUEST:
            reply = await self._answer_confirmation(event)
            await websocket.send(reply.to_json())
        elif event.is_broadcast:
            # Forwarded by a relay: fan out to everyone else.
            broadcast(self._clients - {websocket}, event.to_json())
            logger.debug("Relayed '%s' from remote bot", event.event.value)
        else:
            logger.debug("Ignoring '%s' from client", event.event.value)
