"""Tests for the appointment repositories."""

from contextlib import asynccontextmanager
from datetime import datetime

import psycopg
import pytest

from clinicbot.schemas.appointment_schema import AppointmentStatus
from clinicbot.storage.repository import (
    CONFIRM_SQL,
    COUNT_SQL,
    CREATE_TABLE_SQL,
    INSERT_SQL,
    LIST_RECENT_SQL,
    SELECT_FOR_UPDATE_SQL,
    InMemoryAppointmentRepository,
    PostgresAppointmentRepository,
)

from tests.conftest import CUSTOMER


def make_row(appointment_id=7, status="pending", name="Ana Lopez"):
    return {
        "id": appointment_id,
        "patient_name": name,
        "patient_phone": CUSTOMER,
        "service_type": "Urgencia Médica",
        "service_price": "$60",
        "appointment_date": "15/12/2024 14:30",
        "created_at": datetime(2024, 12, 1, 10, 0),
        "status": status,
    }


class FakeCursor:
    def __init__(self, conn):
        self._conn = conn

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, sql, params=None):
        if self._conn.error is not None:
            raise self._conn.error
        self._conn.executed.append((sql, params))

    async def fetchone(self):
        return self._conn.rows.pop(0) if self._conn.rows else None

    async def fetchall(self):
        return list(self._conn.rows)


class FakeConnection:
    """Just enough of ``psycopg.AsyncConnection`` for the repository."""

    def __init__(self, rows=None, error=None):
        self.rows = list(rows or [])
        self.error = error
        self.executed: list[tuple] = []
        self.closed = False
        self.broken = False
        self.transactions = 0

    def cursor(self, row_factory=None):
        return FakeCursor(self)

    @asynccontextmanager
    async def transaction(self):
        self.transactions += 1
        yield

    async def close(self):
        self.closed = True


async def insert_sample(repository, name="Ana Lopez"):
    return await repository.insert(
        name, CUSTOMER, "urgencia", "Urgencia Médica", "$60", "15/12/2024 14:30"
    )


class TestInMemoryRepository:
    @pytest.mark.asyncio
    async def test_insert_assigns_increasing_ids(self, memory_repository):
        first = await insert_sample(memory_repository)
        second = await insert_sample(memory_repository, "Luis Gomez")
        assert (first.id, second.id) == (1, 2)
        assert first.status == AppointmentStatus.PENDING
        assert first.service_type == "Urgencia Médica"

    @pytest.mark.asyncio
    async def test_confirm_is_idempotent(self, memory_repository):
        await insert_sample(memory_repository)
        first = await memory_repository.confirm(1)
        second = await memory_repository.confirm(1)
        assert first.is_confirmed and second.is_confirmed
        assert first == second

    @pytest.mark.asyncio
    async def test_confirm_missing(self, memory_repository):
        assert await memory_repository.confirm(42) is None

    @pytest.mark.asyncio
    async def test_list_recent_newest_first_with_limit(self, memory_repository):
        for name in ("Ana Lopez", "Luis Gomez", "Marta Diaz"):
            await insert_sample(memory_repository, name)
        recent = await memory_repository.list_recent(2)
        assert [a.id for a in recent] == [3, 2]

    @pytest.mark.asyncio
    async def test_reset(self, memory_repository):
        await insert_sample(memory_repository)
        memory_repository.reset()
        assert await memory_repository.count() == 0
        assert (await insert_sample(memory_repository)).id == 1


class TestPostgresRepository:
    @pytest.mark.asyncio
    async def test_insert_uses_parameters(self):
        conn = FakeConnection(rows=[make_row()])
        repository = PostgresAppointmentRepository(conn)

        appointment = await insert_sample(repository)

        sql, params = conn.executed[0]
        assert sql == INSERT_SQL
        assert params == (
            "Ana Lopez", CUSTOMER, "Urgencia Médica", "$60", "15/12/2024 14:30"
        )
        assert appointment.id == 7
        assert appointment.status == AppointmentStatus.PENDING

    @pytest.mark.asyncio
    async def test_hostile_input_is_not_interpolated(self):
        conn = FakeConnection(rows=[make_row(name="x'); DROP TABLE appointments;--")])
        repository = PostgresAppointmentRepository(conn)
        await insert_sample(repository, "x'); DROP TABLE appointments;--")
        sql, params = conn.executed[0]
        assert "DROP" not in sql
        assert params[0] == "x'); DROP TABLE appointments;--"

    @pytest.mark.asyncio
    async def test_confirm_pending(self):
        conn = FakeConnection(rows=[make_row(), make_row(status="confirmed")])
        repository = PostgresAppointmentRepository(conn)

        appointment = await repository.confirm(7)

        assert appointment.is_confirmed
        assert conn.transactions == 1
        assert conn.executed == [
            (SELECT_FOR_UPDATE_SQL, (7,)),
            (CONFIRM_SQL, ("confirmed", 7)),
        ]

    @pytest.mark.asyncio
    async def test_confirm_already_confirmed_skips_update(self):
        conn = FakeConnection(rows=[make_row(status="confirmed")])
        repository = PostgresAppointmentRepository(conn)
        appointment = await repository.confirm(7)
        assert appointment.is_confirmed
        assert [sql for sql, _ in conn.executed] == [SELECT_FOR_UPDATE_SQL]

    @pytest.mark.asyncio
    async def test_confirm_missing(self):
        repository = PostgresAppointmentRepository(FakeConnection())
        assert await repository.confirm(99) is None

    @pytest.mark.asyncio
    async def test_list_recent(self):
        conn = FakeConnection(rows=[make_row(8), make_row(7)])
        repository = PostgresAppointmentRepository(conn)
        recent = await repository.list_recent(5)
        assert [a.id for a in recent] == [8, 7]
        assert conn.executed == [(LIST_RECENT_SQL, (5,))]

    @pytest.mark.asyncio
    async def test_ensure_schema_creates_table(self):
        conn = FakeConnection(rows=[{"count": 3}])
        repository = PostgresAppointmentRepository(conn)
        await repository.ensure_schema()
        assert [sql for sql, _ in conn.executed] == [CREATE_TABLE_SQL, COUNT_SQL]

    @pytest.mark.asyncio
    async def test_close(self):
        conn = FakeConnection()
        repository = PostgresAppointmentRepository(conn)
        await repository.close()
        assert conn.closed
        assert not repository.available


class TestPostgresFailures:
    @pytest.mark.asyncio
    async def test_write_error_returns_synthetic_record(self):
        conn = FakeConnection(error=psycopg.DataError("value too long"))
        repository = PostgresAppointmentRepository(conn)

        appointment = await insert_sample(repository)

        assert appointment.id is None
        assert appointment.patient_name == "Ana Lopez"
        assert repository.failed_writes == 1
        assert repository.available

    @pytest.mark.asyncio
    async def test_lost_connection_switches_to_degraded(self):
        conn = FakeConnection(error=psycopg.OperationalError("server closed the connection"))
        conn.broken = True
        repository = PostgresAppointmentRepository(conn)

        await insert_sample(repository)

        assert not repository.available
        assert await repository.list_recent() == []

    @pytest.mark.asyncio
    async def test_read_error_returns_empty(self):
        repository = PostgresAppointmentRepository(
            FakeConnection(error=psycopg.OperationalError("timeout"))
        )
        assert await repository.list_recent() == []
        assert await repository.count() == 0
        assert await repository.confirm(1) is None


class TestDegradedMode:
    @pytest.mark.asyncio
    async def test_every_operation_succeeds_without_connection(self):
        repository = PostgresAppointmentRepository(None)
        assert not repository.available
        await repository.ensure_schema()
        appointment = await insert_sample(repository)
        assert appointment.id is None
        assert not appointment.persisted
        assert await repository.confirm(1) is None
        assert await repository.list_recent() == []
        assert await repository.count() == 0
        await repository.close()

    @pytest.mark.asyncio
    async def test_connect_failure_degrades(self, monkeypatch):
        async def refuse(conninfo, **kwargs):
            raise psycopg.OperationalError("connection refused")

        monkeypatch.setattr(psycopg.AsyncConnection, "connect", refuse)
        repository = await PostgresAppointmentRepository.connect("postgresql://db/clinic")
        assert not repository.available

    @pytest.mark.asyncio
    async def test_connect_passes_ssl_mode(self, monkeypatch):
        captured = {}

        async def accept(conninfo, **kwargs):
            captured.update(kwargs, conninfo=conninfo)
            return FakeConnection()

        monkeypatch.setattr(psycopg.AsyncConnection, "connect", accept)
        repository = await PostgresAppointmentRepository.connect(
            "postgresql://db/clinic", ssl_mode="require"
        )
        assert repository.available
        assert captured["sslmode"] == "require"
        assert captured["autocommit"] is True
