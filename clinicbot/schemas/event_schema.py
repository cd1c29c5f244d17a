"""Realtime sync event vocabulary shared by the hub, relays and dashboards."""

import json
from enum import Enum
from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from clinicbot.schemas.appointment_schema import Appointment, ConfirmationResult


class EventName(str, Enum):
    APPOINTMENT_CREATED = "newAppointment"
    APPOINTMENT_CONFIRMED = "appointmentConfirmed"
    APPOINTMENT_SNAPSHOT = "allAppointments"
    CONFIRMATION_REQUEST = "confirmAppointment"
    CONFIRMATION_RESULT = "confirmationResult"


# Events a bot process produces and every connected dashboard should see.
BROADCAST_EVENTS = frozenset({EventName.APPOINTMENT_CREATED, EventName.APPOINTMENT_CONFIRMED})


class InvalidEventError(ValueError):
    """Raised when an inbound frame is not a well-formed sync event."""


class SyncEvent(BaseModel):
    """One frame on the sync channel: ``{"event": <name>, "data": <payload>}``."""

    model_config = ConfigDict(frozen=True)

    event: EventName
    data: Any = None

    @classmethod
    def appointment_created(cls, appointment: Appointment) -> "SyncEvent":
        return cls(event=EventName.APPOINTMENT_CREATED, data=appointment.to_payload())

    @classmethod
    def appointment_confirmed(cls, appointment: Appointment) -> "SyncEvent":
        return cls(event=EventName.APPOINTMENT_CONFIRMED, data=appointment.to_payload())

    @classmethod
    def snapshot(cls, appointments: Iterable[Appointment]) -> "SyncEvent":
        return cls(
            event=EventName.APPOINTMENT_SNAPSHOT,
            data=[a.to_payload() for a in appointments],
        )

    @classmethod
    def confirmation_request(cls, appointment_id: Any) -> "SyncEvent":
        return cls(event=EventName.CONFIRMATION_REQUEST, data={"appointmentId": appointment_id})

    @classmethod
    def confirmation_result(cls, result: ConfirmationResult) -> "SyncEvent":
        return cls(event=EventName.CONFIRMATION_RESULT, data=result.to_payload())

    @property
    def is_broadcast(self) -> bool:
        return self.event in BROADCAST_EVENTS

    def requested_id(self) -> Optional[Any]:
        """Appointment id carried by a confirmation request.

        Dashboards send either the bare id or ``{"appointmentId": id}``.
        """
        if isinstance(self.data, dict):
            return self.data.get("appointmentId", self.data.get("id"))
        return self.data

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode="json"), ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "SyncEvent":
        try:
            return cls.model_validate_json(raw)
        except ValidationError as exc:
            raise InvalidEventError(f"Malformed sync event: {exc.error_count()} error(s)") from exc
