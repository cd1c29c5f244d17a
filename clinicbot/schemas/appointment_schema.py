"""Appointment and confirmation data models."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class AppointmentStatus(str, Enum):
    """Lifecycle of a booking. Only ever moves pending -> confirmed."""
    PENDING = "pending"
    CONFIRMED = "confirmed"


class Appointment(BaseModel):
    """Booking record as stored in the ``appointments`` table."""

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    patient_name: str
    patient_phone: str
    service_type: str
    service_price: str
    appointment_date: str
    created_at: datetime
    status: AppointmentStatus = AppointmentStatus.PENDING

    @property
    def persisted(self) -> bool:
        return self.id is not None

    @property
    def is_confirmed(self) -> bool:
        return self.status == AppointmentStatus.CONFIRMED

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready dict using the storage column names."""
        return self.model_dump(mode="json")


class ConfirmationResult(BaseModel):
    """Outcome of a confirmation request, sent back to the requesting client."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    appointment_id: Optional[Any] = Field(default=None, alias="appointmentId")
    success: bool
    message: str

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
