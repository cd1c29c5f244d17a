"""
Confirm-booking use case.

Reached from the dashboard (through the sync bridge) and from the
``confirmar <id>`` chat command. The database update decides the outcome;
notifying the customer and broadcasting the change are best-effort.
"""

from typing import Any, Optional

from clinicbot.logging_context import get_customer_logger
from clinicbot.prompts.messages import (
    CONFIRM_FAILURE,
    CONFIRM_SUCCESS,
    build_confirmation_notice,
)
from clinicbot.schemas.appointment_schema import Appointment, ConfirmationResult
from clinicbot.schemas.event_schema import SyncEvent
from clinicbot.storage.repository import AppointmentRepository
from clinicbot.sync.bridge import SyncBridge
from clinicbot.transport import MessageTransport
from clinicbot.utils import to_address

logger = get_customer_logger(__name__)


def parse_appointment_id(raw: Any) -> Optional[int]:
    """Accept ints and numeric strings; anything else is not an id."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        text = raw.strip()
        # isdigit() alone admits characters like "²" that int() refuses.
        if text.isascii() and text.isdigit():
            return int(text)
    return None


class ConfirmationOrchestrator:
    """Ties storage, the chat transport and the sync bridge together."""

    def __init__(
        self,
        repository: AppointmentRepository,
        bridge: SyncBridge,
        transport: Optional[MessageTransport],
        address_suffix: str,
    ) -> None:
        self._repository = repository
        self._bridge = bridge
        self._transport = transport
        self._address_suffix = address_suffix

    async def confirm_appointment(self, raw_id: Any) -> ConfirmationResult:
        appointment_id = parse_appointment_id(raw_id)
        if appointment_id is None:
            logger.error("Invalid appointment id for confirmation: %r", raw_id)
            return ConfirmationResult(appointment_id=raw_id, success=False, message=CONFIRM_FAILURE)

        logger.info("Confirming appointment ID %s", appointment_id)
        appointment = await self._repository.confirm(appointment_id)
        if appointment is None:
            return ConfirmationResult(
                appointment_id=appointment_id, success=False, message=CONFIRM_FAILURE
            )

        await self._notify_customer(appointment)
        self._bridge.emit(SyncEvent.appointment_confirmed(appointment))
        return ConfirmationResult(
            appointment_id=appointment_id, success=True, message=CONFIRM_SUCCESS
        )

    async def _notify_customer(self, appointment: Appointment) -> None:
        if self._transport is None:
            logger.error("No message transport available to notify %s", appointment.patient_phone)
            return
        address = to_address(appointment.patient_phone, self._address_suffix)
        try:
            await self._transport.send_text(address, build_confirmation_notice(appointment))
        except Exception as exc:
            logger.error("Failed to send confirmation message to %s: %s", address, exc)
            return
        logger.info("Confirmation message sent to %s", appointment.patient_phone)
