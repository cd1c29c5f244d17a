"""
Appointment persistence.

``PostgresAppointmentRepository`` talks to the ``appointments`` table through
a psycopg async connection. When no connection can be made, or the one it
had breaks, it keeps serving the booking flow in degraded mode: writes are
logged and reported as done, reads come back empty.

``InMemoryAppointmentRepository`` implements the same contract for the
offline console demo and the test suite.
"""

from __future__ import annotations

import itertools
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

import psycopg
from psycopg.rows import dict_row

from clinicbot.schemas.appointment_schema import Appointment, AppointmentStatus

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100

CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS appointments (
    id SERIAL PRIMARY KEY,
    patient_name VARCHAR(100) NOT NULL,
    patient_phone VARCHAR(20) NOT NULL,
    service_type VARCHAR(50) NOT NULL,
    service_price VARCHAR(20) NOT NULL,
    appointment_date VARCHAR(50) NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    status VARCHAR(20) DEFAULT 'pending'
)
"""

COUNT_SQL = "SELECT COUNT(*) AS count FROM appointments"

INSERT_SQL = """
INSERT INTO appointments (patient_name, patient_phone, service_type, service_price, appointment_date)
VALUES (%s, %s, %s, %s, %s)
RETURNING *
"""

SELECT_FOR_UPDATE_SQL = "SELECT * FROM appointments WHERE id = %s FOR UPDATE"

CONFIRM_SQL = "UPDATE appointments SET status = %s WHERE id = %s RETURNING *"

LIST_RECENT_SQL = """
SELECT * FROM appointments
ORDER BY created_at DESC, id DESC
LIMIT %s
"""


class AppointmentRepository(Protocol):
    """Abstraction for persisting and reading bookings."""

    @property
    def available(self) -> bool: ...

    async def ensure_schema(self) -> None: ...

    async def insert(
        self,
        name: str,
        phone: str,
        service_type: str,
        service_description: str,
        price: str,
        date_time: str,
    ) -> Appointment: ...

    async def confirm(self, appointment_id: int) -> Optional[Appointment]: ...

    async def list_recent(self, limit: int = DEFAULT_LIMIT) -> list[Appointment]: ...

    async def count(self) -> int: ...

    async def close(self) -> None: ...


def _synthetic_record(
    name: str, phone: str, column_service: str, price: str, date_time: str
) -> Appointment:
    """Stand-in returned when a write could not reach storage."""
    return Appointment(
        id=None,
        patient_name=name,
        patient_phone=phone,
        service_type=column_service,
        service_price=price,
        appointment_date=date_time,
        created_at=datetime.now(timezone.utc),
    )


class PostgresAppointmentRepository:
    """PostgreSQL implementation of :class:`AppointmentRepository`."""

    def __init__(self, conn: Optional[psycopg.AsyncConnection]) -> None:
        self._conn = conn
        self.failed_writes = 0
        if conn is None:
            logger.warning("No database connection - running in degraded (log-only) mode")

    @classmethod
    async def connect(
        cls, conninfo: str, ssl_mode: Optional[str] = None
    ) -> PostgresAppointmentRepository:
        """Open a connection, falling back to degraded mode if it fails."""
        kwargs: dict[str, Any] = {"autocommit": True, "row_factory": dict_row}
        if ssl_mode:
            kwargs["sslmode"] = ssl_mode
        logger.info("Connecting to the database...")
        try:
            conn = await psycopg.AsyncConnection.connect(conninfo, **kwargs)
        except psycopg.Error as exc:
            logger.error("Could not connect to the database: %s", exc)
            return cls(None)
        logger.info("PostgreSQL connection established")
        return cls(conn)

    @property
    def available(self) -> bool:
        return self._conn is not None and not self._conn.closed

    def _cursor(self):
        return self._conn.cursor(row_factory=dict_row)

    def _handle_error(self, action: str, exc: psycopg.Error) -> None:
        logger.error("Database error while %s: %s", action, exc)
        if self._conn is not None and (self._conn.broken or self._conn.closed):
            logger.warning("Database connection lost - switching to degraded (log-only) mode")
            self._conn = None

    async def ensure_schema(self) -> None:
        if not self.available:
            logger.warning("Skipping schema bootstrap: database unavailable")
            return
        try:
            async with self._cursor() as cur:
                await cur.execute(CREATE_TABLE_SQL)
            logger.info("Table 'appointments' created/verified")
            logger.info("Table ready with %d existing appointment(s)", await self.count())
        except psycopg.Error as exc:
            self._handle_error("creating the appointments table", exc)

    async def insert(
        self,
        name: str,
        phone: str,
        service_type: str,
        service_description: str,
        price: str,
        date_time: str,
    ) -> Appointment:
        """Store a new pending booking.

        The ``service_type`` column holds the human-readable description, which
        is what the dashboard and history report show. Never raises: storage
        failures are logged and a synthetic record with ``id=None`` is returned.
        """
        column_service = service_description or service_type
        if not self.available:
            logger.warning(
                "Database unavailable, appointment kept in log only: name=%s phone=%s "
                "service=%s price=%s date=%s",
                name, phone, column_service, price, date_time,
            )
            return _synthetic_record(name, phone, column_service, price, date_time)

        try:
            async with self._cursor() as cur:
                await cur.execute(INSERT_SQL, (name, phone, column_service, price, date_time))
                row = await cur.fetchone()
        except psycopg.Error as exc:
            self.failed_writes += 1
            self._handle_error("saving an appointment", exc)
            return _synthetic_record(name, phone, column_service, price, date_time)

        appointment = Appointment(**row)
        logger.info("Appointment saved with ID %s", appointment.id)
        return appointment

    async def confirm(self, appointment_id: int) -> Optional[Appointment]:
        """Mark a booking as confirmed in a single read-then-write transaction.

        Returns None when the booking does not exist or storage is unavailable.
        An already confirmed booking is returned unchanged.
        """
        if not self.available:
            logger.error("Cannot confirm appointment %s: database unavailable", appointment_id)
            return None
        try:
            async with self._conn.transaction():
                async with self._cursor() as cur:
                    await cur.execute(SELECT_FOR_UPDATE_SQL, (appointment_id,))
                    row = await cur.fetchone()
                    if row is None:
                        logger.error("Appointment %s not found", appointment_id)
                        return None
                    current = Appointment(**row)
                    if current.is_confirmed:
                        logger.info("Appointment %s already confirmed", appointment_id)
                        return current
                    await cur.execute(
                        CONFIRM_SQL, (AppointmentStatus.CONFIRMED.value, appointment_id)
                    )
                    updated = await cur.fetchone()
        except psycopg.Error as exc:
            self._handle_error(f"confirming appointment {appointment_id}", exc)
            return None

        logger.info("Appointment %s confirmed for %s", appointment_id, current.patient_name)
        return Appointment(**updated)

    async def list_recent(self, limit: int = DEFAULT_LIMIT) -> list[Appointment]:
        if not self.available:
            logger.warning("Database unavailable, returning empty history")
            return []
        try:
            async with self._cursor() as cur:
                await cur.execute(LIST_RECENT_SQL, (limit,))
                rows = await cur.fetchall()
        except psycopg.Error as exc:
            self._handle_error("reading appointment history", exc)
            return []
        logger.debug("%d appointment(s) found", len(rows))
        return [Appointment(**row) for row in rows]

    async def count(self) -> int:
        if not self.available:
            return 0
        try:
            async with self._cursor() as cur:
                await cur.execute(COUNT_SQL)
                row = await cur.fetchone()
        except psycopg.Error as exc:
            self._handle_error("counting appointments", exc)
            return 0
        return int(row["count"])

    async def close(self) -> None:
        if self._conn is not None and not self._conn.closed:
            await self._conn.close()
            logger.info("Database connection closed")
        self._conn = None


class InMemoryAppointmentRepository:
    """Dict-backed repository with the same contract as the PostgreSQL one."""

    def __init__(self) -> None:
        self._appointments: dict[int, Appointment] = {}
        self._ids = itertools.count(1)

    @property
    def available(self) -> bool:
        return True

    async def ensure_schema(self) -> None:
        return None

    async def insert(
        self,
        name: str,
        phone: str,
        service_type: str,
        service_description: str,
        price: str,
        date_time: str,
    ) -> Appointment:
        appointment = Appointment(
            id=next(self._ids),
            patient_name=name,
            patient_phone=phone,
            service_type=service_description or service_type,
            service_price=price,
            appointment_date=date_time,
            created_at=datetime.now(timezone.utc),
        )
        self._appointments[appointment.id] = appointment
        logger.info("Appointment saved with ID %s", appointment.id)
        return appointment

    async def confirm(self, appointment_id: int) -> Optional[Appointment]:
        current = self._appointments.get(appointment_id)
        if current is None:
            logger.error("Appointment %s not found", appointment_id)
            return None
        if not current.is_confirmed:
            current = current.model_copy(update={"status": AppointmentStatus.CONFIRMED})
            self._appointments[appointment_id] = current
        return current

    async def list_recent(self, limit: int = DEFAULT_LIMIT) -> list[Appointment]:
        ordered = sorted(
            self._appointments.values(),
            key=lambda a: (a.created_at, a.id),
            reverse=True,
        )
        return ordered[:limit]

    async def count(self) -> int:
        return len(self._appointments)

    async def close(self) -> None:
        return None

    def reset(self) -> None:
        """Clear all appointments. Used by test fixtures for isolation."""
        self._appointments.clear()
        self._ids = itertools.count(1)
