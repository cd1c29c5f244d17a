"""
Chat texts sent to customers.

Everything the customer reads lives here so the conversation logic only
decides *which* message to send. Clinic-specific values are injected from
configuration, not hardcoded.
"""

from typing import Iterable

from clinicbot.config import settings
from clinicbot.schemas.appointment_schema import Appointment
from clinicbot.tools.services import get_menu

WELCOME = f"Hola, bienvenido al *Chatbot* de {settings.clinic.name} 👋"

INVALID_OPTION = "❌ Opción no válida. Por favor, selecciona un número del 1 al 4."
INVALID_CONFIRMATION = (
    "❌ Respuesta no válida. Por favor, escribe *sí* para confirmar o *no* para elegir otro servicio."
)
INVALID_NAME = "❌ Por favor, ingresa un nombre válido (mínimo 3 letras)."
INVALID_DATE_TIME = (
    "❌ Formato incorrecto. Por favor, usa el formato: *dd/mm/aaaa hh:mm*\n"
    "Ejemplo: *15/12/2024 14:30*"
)
RESTART = "❌ Ocurrió un error. Por favor, inicia el proceso nuevamente escribiendo *hola*."

ASK_NAME = "Por favor, indícanos tu nombre y apellido"
ASK_DATE_TIME = (
    "📅 Por favor, indica la fecha y hora en la que prefieres asistir.\n\n"
    "Formato: *dd/mm/aaaa hh:mm*\n"
    "Ejemplo: *15/12/2024 14:30*"
)

THANKS = "De nada, ¡es un placer atenderte!"
FALLBACK = "Lo siento, no entendí. Escribe *hola* para comenzar."
HISTORY_LOADING = "🔍 Obteniendo historial de citas..."
HISTORY_EMPTY = "No hay citas registradas aún."

CONFIRM_SUCCESS = "Cita confirmada exitosamente"
CONFIRM_FAILURE = "Error al confirmar la cita"
CONFIRM_USAGE = "Para confirmar una cita escribe *confirmar <número de cita>*."


def build_menu() -> str:
    """Build the numbered service menu."""
    lines = [
        "Te damos la bienvenida a nuestra clínica odontológica.",
        "Por favor, indícanos el motivo de tu contacto:",
    ]
    for option, info in get_menu():
        lines.append(f"*{option}* {info['menu_label']} - {info['price']}")
    return "\n".join(lines)


def build_price_prompt(description: str, price: str) -> str:
    """Build the price read-back that asks the customer to confirm the service."""
    return (
        f"💵 *Precio del servicio:* {price}\n\n"
        f"¿Deseas confirmar tu cita para {description}? "
        "Responde con *sí* para confirmar o *no* para elegir otro servicio."
    )


def build_summary(name: str, description: str, price: str, date_time: str) -> str:
    """Build the closing summary shown once the booking is registered."""
    return (
        "✅ ¡Perfecto! Hemos registrado tu información:\n\n"
        f"• Nombre: {name}\n"
        f"• Servicio: {description}\n"
        f"• Precio: {price}\n"
        f"• Fecha y hora: {date_time}\n\n"
        "Un asesor se pondrá en contacto contigo para confirmar tu cita. ¡Gracias!"
    )


def build_history(appointments: Iterable[Appointment]) -> str:
    """Build the history report; empty input yields the 'no bookings' text."""
    appointments = list(appointments)
    if not appointments:
        return HISTORY_EMPTY
    parts = ["📊 Historial de Citas:\n"]
    for index, appt in enumerate(appointments, start=1):
        parts.append(
            f"📍 Cita {index}:\n"
            f"   👤 Nombre: {appt.patient_name}\n"
            f"   📞 Teléfono: {appt.patient_phone}\n"
            f"   🏥 Servicio: {appt.service_type}\n"
            f"   💵 Precio: {appt.service_price}\n"
            f"   📅 Fecha: {appt.appointment_date}\n"
            f"   ⏰ Registrado: {appt.created_at:%d/%m/%Y %H:%M}\n"
        )
    return "\n".join(parts)


def build_confirmation_notice(appointment: Appointment) -> str:
    """Build the message sent to the customer once staff confirm the booking."""
    return (
        "✅ *Confirmación de Cita*\n\n"
        "Tu cita ha sido confirmada:\n\n"
        f"• Servicio: {appointment.service_type}\n"
        f"• Fecha y hora: {appointment.appointment_date}\n"
        f"• Precio: {appointment.service_price}\n\n"
        "¡Te esperamos! 🦷"
    )
