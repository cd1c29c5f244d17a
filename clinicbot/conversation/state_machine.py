"""
Finite state machine for the scripted booking dialogue.

One machine instance serves every customer: the per-customer state lives in
the SessionStore and every step goes through the explicit transition table,
so an out-of-order step is rejected instead of silently corrupting a session.

The dialogue is linear: choose a service, confirm its price, give a name,
give a date and time. The only way back is answering "no" at the price
confirmation. Invalid input at the menu or the price confirmation re-prompts;
an invalid name or date ends the conversation and the customer starts over
with the greeting.

Usage:
    engine = ConversationEngine(SessionStore(), repository, bridge)
    reply = await engine.handle("5491122334455", "hola")
    print(reply.text)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from clinicbot.confirmation import ConfirmationOrchestrator
from clinicbot.conversation.session_store import SessionStore
from clinicbot.conversation.validation import is_valid_date_time, is_valid_name
from clinicbot.logging_context import get_customer_logger, set_customer_id
from clinicbot.prompts import messages
from clinicbot.schemas.appointment_schema import Appointment
from clinicbot.schemas.event_schema import SyncEvent
from clinicbot.schemas.session_schema import ConversationStage, Session
from clinicbot.storage.repository import DEFAULT_LIMIT, AppointmentRepository
from clinicbot.sync.bridge import SyncBridge
from clinicbot.tools.services import get_service_details, get_service_keywords, match_service
from clinicbot.utils import phone_from_address

logger = get_customer_logger(__name__)

YES_ANSWERS = frozenset({"sí", "si", "s"})
NO_ANSWERS = frozenset({"no", "n"})


class TransitionTrigger(str, Enum):
    """Events that cause stage transitions."""
    GREETING = "greeting"
    SERVICE_KEYWORD = "service_keyword"
    SERVICE_CHOSEN = "service_chosen"
    INVALID_CHOICE = "invalid_choice"
    SERVICE_ACCEPTED = "service_accepted"
    SERVICE_DECLINED = "service_declined"
    INVALID_ANSWER = "invalid_answer"
    NAME_CAPTURED = "name_captured"
    NAME_REJECTED = "name_rejected"
    BOOKING_COMPLETED = "booking_completed"
    DATE_TIME_REJECTED = "date_time_rejected"


class EntryPoint(str, Enum):
    """Where an inbound message enters the bot when no capture step is pending."""
    GREETING = "greeting"
    SERVICE = "service"
    HISTORY = "history"
    THANKS = "thanks"
    CONFIRM = "confirm"


# Stable keyword -> entry mapping for external dispatchers.
TRIGGER_KEYWORDS: dict[str, EntryPoint] = {
    "hola": EntryPoint.GREETING,
    "buenas": EntryPoint.GREETING,
    "menu": EntryPoint.GREETING,
    "historial": EntryPoint.HISTORY,
    "reportes": EntryPoint.HISTORY,
    "gracias": EntryPoint.THANKS,
    "confirmar": EntryPoint.CONFIRM,
    **{keyword: EntryPoint.SERVICE for keyword in get_service_keywords()},
}

_PUNCTUATION = "¡!¿?.,;:"


@dataclass(frozen=True)
class Transition:
    """A single valid stage transition."""
    from_stage: ConversationStage
    to_stage: ConversationStage
    trigger: TransitionTrigger


@dataclass
class Reply:
    """What the bot answers to one inbound message."""
    messages: list[str]
    stage: ConversationStage
    appointment: Optional[Appointment] = None
    metadata: dict = field(default_factory=dict)

    @property
    def text(self) -> str:
        return "\n\n".join(self.messages)


class InvalidTransitionError(Exception):
    """Raised when a step is not valid from the session's current stage."""


def match_entry(text: str) -> Optional[tuple[EntryPoint, str, str]]:
    """Match the first word of a message against the trigger keywords.

    Returns ``(entry, keyword, rest of message)`` or None.
    """
    words = text.strip().lower().split(maxsplit=1)
    if not words:
        return None
    keyword = words[0].strip(_PUNCTUATION)
    entry = TRIGGER_KEYWORDS.get(keyword)
    if entry is None:
        return None
    rest = words[1].strip() if len(words) > 1 else ""
    return entry, keyword, rest


class ConversationEngine:
    """
    Drives every customer's booking dialogue.

    ``handle`` is the in-process dispatcher: it routes a message to the
    pending capture step, or to an entry point by keyword. The step methods
    are public too so an external keyword dispatcher can call them directly.
    """

    TRANSITIONS: list[Transition] = [
        # --- Entry ---
        Transition(ConversationStage.IDLE, ConversationStage.AWAITING_SERVICE_CHOICE,
                   TransitionTrigger.GREETING),
        Transition(ConversationStage.IDLE, ConversationStage.AWAITING_CONFIRMATION,
                   TransitionTrigger.SERVICE_KEYWORD),

        # --- Service menu ---
        Transition(ConversationStage.AWAITING_SERVICE_CHOICE, ConversationStage.AWAITING_CONFIRMATION,
                   TransitionTrigger.SERVICE_CHOSEN),
        Transition(ConversationStage.AWAITING_SERVICE_CHOICE, ConversationStage.AWAITING_SERVICE_CHOICE,
                   TransitionTrigger.INVALID_CHOICE),

        # --- Price confirmation gate ---
        Transition(ConversationStage.AWAITING_CONFIRMATION, ConversationStage.AWAITING_NAME,
                   TransitionTrigger.SERVICE_ACCEPTED),
        Transition(ConversationStage.AWAITING_CONFIRMATION, ConversationStage.AWAITING_SERVICE_CHOICE,
                   TransitionTrigger.SERVICE_DECLINED),
        Transition(ConversationStage.AWAITING_CONFIRMATION, ConversationStage.AWAITING_CONFIRMATION,
                   TransitionTrigger.INVALID_ANSWER),

        # --- Capture steps ---
        Transition(ConversationStage.AWAITING_NAME, ConversationStage.AWAITING_DATE_TIME,
                   TransitionTrigger.NAME_CAPTURED),
        Transition(ConversationStage.AWAITING_NAME, ConversationStage.IDLE,
                   TransitionTrigger.NAME_REJECTED),
        Transition(ConversationStage.AWAITING_DATE_TIME, ConversationStage.IDLE,
                   TransitionTrigger.BOOKING_COMPLETED),
        Transition(ConversationStage.AWAITING_DATE_TIME, ConversationStage.IDLE,
                   TransitionTrigger.DATE_TIME_REJECTED),
    ]

    def __init__(
        self,
        store: SessionStore,
        repository: AppointmentRepository,
        bridge: SyncBridge,
        confirmations: Optional[ConfirmationOrchestrator] = None,
        history_limit: int = DEFAULT_LIMIT,
    ) -> None:
        self._store = store
        self._repository = repository
        self._bridge = bridge
        self._confirmations = confirmations
        self._history_limit = history_limit

    @property
    def store(self) -> SessionStore:
        return self._store

    # ------------------------------------------------------------------ #
    # Transition table
    # ------------------------------------------------------------------ #

    @classmethod
    def valid_triggers(cls, stage: ConversationStage) -> list[TransitionTrigger]:
        """Return all triggers valid from ``stage``."""
        return [t.trigger for t in cls.TRANSITIONS if t.from_stage == stage]

    def _advance(self, session: Session, trigger: TransitionTrigger) -> ConversationStage:
        for t in self.TRANSITIONS:
            if t.from_stage == session.stage and t.trigger == trigger:
                old_stage = session.stage
                session.stage = t.to_stage
                logger.debug(
                    "Stage transition: %s -> %s (trigger: %s)",
                    old_stage.value, session.stage.value, trigger.value,
                )
                return session.stage

        valid = [t.value for t in self.valid_triggers(session.stage)]
        raise InvalidTransitionError(
            f"No valid transition from '{session.stage.value}' "
            f"with trigger '{trigger.value}'. Valid triggers: {valid}"
        )

    # ------------------------------------------------------------------ #
    # In-process dispatcher
    # ------------------------------------------------------------------ #

    async def handle(self, customer_id: str, body: str) -> Reply:
        """Process one inbound message from ``customer_id``."""
        customer_id = self._begin(customer_id)
        text = body or ""
        async with self._store.lock(customer_id):
            session = self._store.get(customer_id)
            if session is not None and session.stage != ConversationStage.IDLE:
                return await self._continue(session, text)

            matched = match_entry(text)
            if matched is None:
                return Reply([messages.FALLBACK], ConversationStage.IDLE)

            entry, keyword, rest = matched
            if entry == EntryPoint.GREETING:
                return self._greet(customer_id)
            if entry == EntryPoint.SERVICE:
                return self._start_with_service(customer_id, keyword)
            if entry == EntryPoint.HISTORY:
                return await self._history()
            if entry == EntryPoint.CONFIRM:
                return await self._confirm_command(rest)
            return self._thanks()

    async def _continue(self, session: Session, text: str) -> Reply:
        stage = session.stage
        if stage == ConversationStage.AWAITING_SERVICE_CHOICE:
            return self._choose_service(session.customer_id, text)
        if stage == ConversationStage.AWAITING_CONFIRMATION:
            return self._confirm_service(session.customer_id, text)
        if stage == ConversationStage.AWAITING_NAME:
            return self._capture_name(session.customer_id, text)
        return await self._capture_date_time(session.customer_id, text)

    # ------------------------------------------------------------------ #
    # Public steps for external dispatchers
    # ------------------------------------------------------------------ #

    async def greet(self, customer_id: str) -> Reply:
        customer_id = self._begin(customer_id)
        async with self._store.lock(customer_id):
            return self._greet(customer_id)

    async def choose_service(self, customer_id: str, choice: str) -> Reply:
        customer_id = self._begin(customer_id)
        async with self._store.lock(customer_id):
            return self._choose_service(customer_id, choice)

    async def start_with_service(self, customer_id: str, service_id: str) -> Reply:
        customer_id = self._begin(customer_id)
        async with self._store.lock(customer_id):
            return self._start_with_service(customer_id, service_id)

    async def confirm_service(self, customer_id: str, answer: str) -> Reply:
        customer_id = self._begin(customer_id)
        async with self._store.lock(customer_id):
            return self._confirm_service(customer_id, answer)

    async def capture_name(self, customer_id: str, name: str) -> Reply:
        customer_id = self._begin(customer_id)
        async with self._store.lock(customer_id):
            return self._capture_name(customer_id, name)

    async def capture_date_time(self, customer_id: str, value: str) -> Reply:
        customer_id = self._begin(customer_id)
        async with self._store.lock(customer_id):
            return await self._capture_date_time(customer_id, value)

    async def history(self) -> Reply:
        return await self._history()

    async def thanks(self) -> Reply:
        return self._thanks()

    async def confirm_command(self, argument: str) -> Reply:
        return await self._confirm_command(argument)

    # ------------------------------------------------------------------ #
    # Steps
    # ------------------------------------------------------------------ #

    def _begin(self, customer_id: str) -> str:
        customer_id = phone_from_address(customer_id)
        set_customer_id(customer_id)
        return customer_id

    def _greet(self, customer_id: str) -> Reply:
        session = Session(customer_id=customer_id)
        self._advance(session, TransitionTrigger.GREETING)
        self._store.set(customer_id, session)
        return Reply([messages.WELCOME, messages.build_menu()], session.stage)

    def _select_service(self, session: Session, service_id: str) -> None:
        details = get_service_details(service_id)
        session.service_type = service_id
        session.service_description = details["name"]
        session.price = details["price"]

    def _price_prompt(self, session: Session) -> Reply:
        return Reply(
            [messages.build_price_prompt(session.service_description, session.price)],
            session.stage,
        )

    def _start_with_service(self, customer_id: str, service_id: str) -> Reply:
        session = Session(customer_id=customer_id)
        self._select_service(session, service_id)
        self._advance(session, TransitionTrigger.SERVICE_KEYWORD)
        self._store.set(customer_id, session)
        logger.info("Service '%s' requested by keyword", service_id)
        return self._price_prompt(session)

    def _choose_service(self, customer_id: str, choice: str) -> Reply:
        session = self._store.get(customer_id)
        if session is None:
            # The menu was shown by an external dispatcher without a session.
            session = Session(
                customer_id=customer_id, stage=ConversationStage.AWAITING_SERVICE_CHOICE
            )

        service_id = match_service(choice)
        if service_id is None:
            self._advance(session, TransitionTrigger.INVALID_CHOICE)
            self._store.set(customer_id, session)
            return Reply([messages.INVALID_OPTION], session.stage)

        self._advance(session, TransitionTrigger.SERVICE_CHOSEN)
        self._select_service(session, service_id)
        self._store.set(customer_id, session)
        logger.info("Service '%s' chosen from menu", service_id)
        return self._price_prompt(session)

    def _confirm_service(self, customer_id: str, answer: str) -> Reply:
        session = self._store.get(customer_id)
        if session is None:
            return Reply([messages.RESTART], ConversationStage.IDLE)

        normalized = answer.lower().strip()
        if normalized in YES_ANSWERS:
            self._advance(session, TransitionTrigger.SERVICE_ACCEPTED)
            # Only the chosen service survives into the capture steps.
            fresh = Session(
                customer_id=customer_id, stage=session.stage, service_type=session.service_type
            )
            self._store.set(customer_id, fresh)
            return Reply([messages.ASK_NAME], fresh.stage)

        if normalized in NO_ANSWERS:
            self._advance(session, TransitionTrigger.SERVICE_DECLINED)
            self._store.clear(customer_id)
            fresh = Session(customer_id=customer_id, stage=session.stage)
            self._store.set(customer_id, fresh)
            logger.info("Service declined, back to menu")
            return Reply([messages.WELCOME, messages.build_menu()], fresh.stage)

        self._advance(session, TransitionTrigger.INVALID_ANSWER)
        self._store.set(customer_id, session)
        return Reply([messages.INVALID_CONFIRMATION], session.stage)

    def _capture_name(self, customer_id: str, name: str) -> Reply:
        session = self._store.get(customer_id)
        if session is None:
            return Reply([messages.RESTART], ConversationStage.IDLE)

        if not is_valid_name(name):
            self._advance(session, TransitionTrigger.NAME_REJECTED)
            self._store.clear(customer_id)
            logger.info("Invalid name received, conversation ended")
            return Reply([messages.INVALID_NAME], session.stage)

        self._advance(session, TransitionTrigger.NAME_CAPTURED)
        self._select_service(session, session.service_type)
        session.name = name.strip()
        session.expecting_date_time = True
        self._store.set(customer_id, session)
        return Reply([messages.ASK_DATE_TIME], session.stage)

    async def _capture_date_time(self, customer_id: str, value: str) -> Reply:
        session = self._store.get(customer_id)
        if (
            session is None
            or not session.expecting_date_time
            or session.stage != ConversationStage.AWAITING_DATE_TIME
        ):
            self._store.clear(customer_id)
            logger.warning("Date/time received without an active booking session")
            return Reply([messages.RESTART], ConversationStage.IDLE)

        date_time = value.strip()
        if not is_valid_date_time(date_time):
            self._advance(session, TransitionTrigger.DATE_TIME_REJECTED)
            self._store.clear(customer_id)
            logger.info("Invalid date/time %r, conversation ended", date_time)
            return Reply([messages.INVALID_DATE_TIME], session.stage)

        session.expecting_date_time = False
        try:
            appointment = await self._repository.insert(
                session.name,
                customer_id,
                session.service_type,
                session.service_description,
                session.price,
                date_time,
            )
        finally:
            self._store.clear(customer_id)
        self._advance(session, TransitionTrigger.BOOKING_COMPLETED)

        if appointment.persisted:
            self._bridge.emit(SyncEvent.appointment_created(appointment))
        logger.info("Booking completed for %s on %s", session.name, date_time)

        summary = messages.build_summary(
            session.name, session.service_description, session.price, date_time
        )
        return Reply([summary], session.stage, appointment=appointment)

    async def _history(self) -> Reply:
        appointments = await self._repository.list_recent(self._history_limit)
        return Reply(
            [messages.HISTORY_LOADING, messages.build_history(appointments)],
            ConversationStage.IDLE,
            metadata={"count": len(appointments)},
        )

    def _thanks(self) -> Reply:
        return Reply([messages.THANKS], ConversationStage.IDLE)

    async def _confirm_command(self, argument: str) -> Reply:
        if not argument:
            return Reply([messages.CONFIRM_USAGE], ConversationStage.IDLE)
        if self._confirmations is None:
            logger.error("Confirmation command received but no orchestrator is configured")
            return Reply([messages.CONFIRM_FAILURE], ConversationStage.IDLE)
        result = await self._confirmations.confirm_appointment(argument)
        return Reply(
            [result.message],
            ConversationStage.IDLE,
            metadata={"success": result.success, "appointment_id": result.appointment_id},
        )
