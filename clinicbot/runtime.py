"""
Process wiring: one conversation core, parameterized by the sync role.

``BotRuntime.create`` validates the database URL, opens storage, starts the
configured bridge (hub or relay) and registers every resource on an
``AsyncExitStack`` so shutdown releases them in reverse order.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import Any, Optional

import psycopg
from psycopg.conninfo import conninfo_to_dict

from clinicbot.config import AppConfig, DatabaseConfig, SyncConfig, settings
from clinicbot.confirmation import ConfirmationOrchestrator
from clinicbot.conversation.session_store import SessionStore
from clinicbot.conversation.state_machine import ConversationEngine, Reply
from clinicbot.storage.repository import AppointmentRepository, PostgresAppointmentRepository
from clinicbot.sync.bridge import SyncBridge
from clinicbot.sync.hub import HubBridge, SnapshotProvider
from clinicbot.sync.relay import ReconnectPolicy, RelayBridge
from clinicbot.transport import MessageTransport
from clinicbot.utils import to_address

logger = logging.getLogger(__name__)


class StartupError(Exception):
    """Configuration problem that must stop the process."""


def resolve_database_url(config: DatabaseConfig) -> str:
    """Return the URL to connect with, or raise StartupError."""
    url = config.effective_url
    if not url:
        raise StartupError("No database URL configured (set DATABASE_URL)")
    try:
        params = conninfo_to_dict(url)
    except psycopg.ProgrammingError as exc:
        raise StartupError(f"Could not parse the database URL: {exc}") from exc
    logger.info(
        "Database configuration parsed (host=%s, database=%s%s)",
        params.get("host"), params.get("dbname"),
        ", dev override" if config.dev_url else "",
    )
    return url


def create_bridge(
    config: SyncConfig, snapshot_provider: SnapshotProvider, history_limit: int
) -> SyncBridge:
    """Build the bridge for the configured role."""
    if config.role == "hub":
        return HubBridge(
            snapshot_provider,
            host=config.listen_host,
            port=config.listen_port,
            path=config.path,
            allowed_origins=config.allowed_origins,
            history_limit=history_limit,
        )
    policy = ReconnectPolicy(
        max_attempts=config.max_reconnect_attempts,
        initial_delay=config.reconnect_initial_delay,
        max_delay=config.reconnect_max_delay,
    )
    return RelayBridge(config.hub_url, policy)


class BotRuntime:
    """Conversation engine, confirmation use case and bridge wired together."""

    def __init__(
        self,
        repository: AppointmentRepository,
        bridge: SyncBridge,
        transport: Optional[MessageTransport],
        config: AppConfig = settings,
    ) -> None:
        self.config = config
        self.repository = repository
        self.bridge = bridge
        self.transport = transport
        self.store = SessionStore(config.session.idle_timeout_sec)
        self.confirmations = ConfirmationOrchestrator(
            repository, bridge, transport, config.clinic.address_suffix
        )
        bridge.bind_confirmation_handler(self.confirmations.confirm_appointment)
        self.engine = ConversationEngine(
            self.store,
            repository,
            bridge,
            confirmations=self.confirmations,
            history_limit=config.clinic.history_limit,
        )
        self._sweeper: Optional[asyncio.Task] = None

    @classmethod
    async def create(
        cls,
        stack: AsyncExitStack,
        transport: Optional[MessageTransport],
        config: AppConfig = settings,
    ) -> BotRuntime:
        url = resolve_database_url(config.database)

        repository = await PostgresAppointmentRepository.connect(url, config.database.ssl_mode)
        stack.push_async_callback(repository.close)
        await repository.ensure_schema()

        bridge = create_bridge(config.sync, repository.list_recent, config.clinic.history_limit)
        await bridge.start()
        stack.push_async_callback(bridge.close)

        runtime = cls(repository, bridge, transport, config)
        runtime.start_sweeper()
        stack.push_async_callback(runtime.stop_sweeper)
        logger.info("Bot runtime started (sync role: %s)", bridge.role)
        return runtime

    async def handle_inbound(self, customer_id: str, body: str) -> Reply:
        """Entry point for the transport: run the step and send the replies back."""
        reply = await self.engine.handle(customer_id, body)
        for message in reply.messages:
            await self._send(customer_id, message)
        return reply

    async def _send(self, customer_id: str, body: str) -> None:
        if self.transport is None:
            return
        address = to_address(customer_id, self.config.clinic.address_suffix)
        try:
            await self.transport.send_text(address, body)
        except Exception as exc:
            logger.error("Failed to send reply to %s: %s", address, exc)

    def start_sweeper(self) -> None:
        if self.config.session.idle_timeout_sec <= 0 or self._sweeper is not None:
            return
        self._sweeper = asyncio.create_task(self._sweep_loop(), name="session-sweeper")

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.session.sweep_interval_sec)
            self.store.evict_idle()

    def health(self) -> dict[str, Any]:
        return {
            "database": self.repository.available,
            "failed_writes": getattr(self.repository, "failed_writes", 0),
            "active_sessions": len(self.store),
            "sync": self.bridge.stats(),
        }
