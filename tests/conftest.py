"""Shared test fixtures and helpers."""

import asyncio
import socket
import time
from datetime import datetime, timezone
from typing import Callable, Optional

import pytest

from clinicbot.confirmation import ConfirmationOrchestrator
from clinicbot.conversation.session_store import SessionStore
from clinicbot.conversation.state_machine import ConversationEngine
from clinicbot.schemas.appointment_schema import Appointment, AppointmentStatus
from clinicbot.schemas.event_schema import SyncEvent
from clinicbot.storage.repository import InMemoryAppointmentRepository
from clinicbot.sync.bridge import SyncBridge

CUSTOMER = "5491122334455"
OTHER_CUSTOMER = "5491166778899"


class RecordingBridge(SyncBridge):
    """Bridge that keeps every delivered event in memory."""

    role = "recording"

    def __init__(self, connected: bool = True) -> None:
        super().__init__()
        self._connected = connected
        self.events: list[SyncEvent] = []

    @property
    def connected(self) -> bool:
        return self._connected

    async def _deliver(self, event: SyncEvent) -> None:
        self.events.append(event)
        self._record_delivered(event)


class RecordingTransport:
    """Message transport that records what would have been sent."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, str]] = []

    async def send_text(self, address: str, body: str) -> None:
        if self.fail:
            raise ConnectionError("messaging session is down")
        self.sent.append((address, body))


@pytest.fixture
def session_store():
    return SessionStore()


@pytest.fixture
def memory_repository():
    repository = InMemoryAppointmentRepository()
    yield repository
    repository.reset()


@pytest.fixture
def bridge():
    return RecordingBridge()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def orchestrator(memory_repository, bridge, transport):
    return ConfirmationOrchestrator(memory_repository, bridge, transport, "s.whatsapp.net")


@pytest.fixture
def engine(session_store, memory_repository, bridge, orchestrator):
    return ConversationEngine(
        session_store, memory_repository, bridge, confirmations=orchestrator
    )


def make_appointment(
    appointment_id: Optional[int] = 1,
    name: str = "Ana Lopez",
    phone: str = CUSTOMER,
    status: AppointmentStatus = AppointmentStatus.PENDING,
) -> Appointment:
    """Helper to create an Appointment with sensible defaults."""
    return Appointment(
        id=appointment_id,
        patient_name=name,
        patient_phone=phone,
        service_type="Urgencia Médica",
        service_price="$60",
        appointment_date="15/12/2024 14:30",
        created_at=datetime(2024, 12, 1, 10, 0, tzinfo=timezone.utc),
        status=status,
    )


async def book(engine: ConversationEngine, customer_id: str, steps: list[str]):
    """Feed a sequence of messages and return the last reply."""
    reply = None
    for step in steps:
        reply = await engine.handle(customer_id, step)
    return reply


async def wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    """Poll ``predicate`` until it holds or fail after ``timeout`` seconds."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met within timeout")
        await asyncio.sleep(0.02)


def free_port() -> int:
    """Return a TCP port that nothing is listening on right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]
