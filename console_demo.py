"""
Offline console demo of the clinic booking bot.

Chats with the real conversation engine, session store and confirmation
use case on top of the in-memory repository; no database, messaging session
or dashboard is needed. Staff notifications sent on confirmation are printed
inline.

Usage:
    python console_demo.py                      # type as the customer
    python console_demo.py --scenario booking   # replay a scripted chat
    python console_demo.py --customer 5491199990000
"""

import argparse
import asyncio

from clinicbot.config import settings
from clinicbot.confirmation import ConfirmationOrchestrator
from clinicbot.conversation.session_store import SessionStore
from clinicbot.conversation.state_machine import ConversationEngine, Reply
from clinicbot.storage.repository import InMemoryAppointmentRepository
from clinicbot.sync.bridge import NullBridge
from clinicbot.transport import ConsoleTransport

CUSTOMER_COLOR = "\033[94m"
BOT_COLOR = "\033[92m"
NOTICE_COLOR = "\033[93m"
ERROR_COLOR = "\033[91m"
FAINT = "\033[2m"
STRONG = "\033[1m"
PLAIN = "\033[0m"

DEMO_CUSTOMER = "5491100000000"
EXIT_WORDS = frozenset({"salir", "quit", "exit"})
RULE = "-" * 56

SCENARIOS: dict[str, list[str]] = {
    # Happy path, then the side commands.
    "booking": [
        "hola", "1", "si", "Ana Lopez", "15/12/2024 14:30",
        "historial", "confirmar 1", "gracias",
    ],
    # Customer turns down the first price and books by keyword instead.
    "declined": [
        "hola", "4", "no", "limpieza", "sí", "Juan Perez", "3/1/2025 9:15",
    ],
    # Every re-prompt and every dead end.
    "invalid": [
        "hola", "7", "2", "quizás", "s", "Al",
        "hola", "3", "si", "Marta Diaz", "31/13/2025 10:00",
    ],
}


class ConsoleSession:
    """One customer chatting with an in-memory bot in the terminal."""

    def __init__(self, customer_id: str = DEMO_CUSTOMER) -> None:
        self.customer_id = customer_id
        self.repository = InMemoryAppointmentRepository()
        bridge = NullBridge()
        confirmations = ConfirmationOrchestrator(
            self.repository,
            bridge,
            ConsoleTransport(prefix=f"{NOTICE_COLOR}[aviso al paciente]{PLAIN}"),
            settings.clinic.address_suffix,
        )
        self.engine = ConversationEngine(
            SessionStore(),
            self.repository,
            bridge,
            confirmations=confirmations,
            history_limit=settings.clinic.history_limit,
        )
        self.stages: list[str] = []

    async def send(self, text: str) -> Reply:
        reply = await self.engine.handle(self.customer_id, text)
        for message in reply.messages:
            print(f"{BOT_COLOR}{STRONG}bot>{PLAIN} {BOT_COLOR}{message}{PLAIN}")
        self.stages.append(reply.stage.value)
        note = f"stage={reply.stage.value}"
        if reply.appointment is not None:
            note += f" appointment={reply.appointment.id} ({reply.appointment.status.value})"
        print(f"{FAINT}   [{note}]{PLAIN}")
        return reply

    async def replay(self, name: str) -> None:
        banner(f"scenario '{name}'")
        for text in SCENARIOS[name]:
            print(f"\n{CUSTOMER_COLOR}{self.customer_id}>{PLAIN} {text}")
            await self.send(text)
        await self.summary()

    async def interact(self) -> None:
        banner("interactive chat")
        print(f"Escribe {STRONG}hola{PLAIN} para empezar y {STRONG}salir{PLAIN} para terminar.")
        while True:
            line = await asyncio.to_thread(input, f"\n{CUSTOMER_COLOR}{self.customer_id}>{PLAIN} ")
            text = line.strip()
            if text.lower() in EXIT_WORDS:
                break
            if text:
                await self.send(text)
        await self.summary()

    async def summary(self) -> None:
        print(f"\n{RULE}")
        print(f"{FAINT}stages: {' -> '.join(self.stages) or '(none)'}{PLAIN}")
        print(f"{FAINT}appointments stored: {await self.repository.count()}{PLAIN}")


def banner(title: str) -> None:
    print(f"\n{STRONG}{RULE}\n {settings.clinic.name} booking bot - {title}\n{RULE}{PLAIN}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Chat with the booking bot offline")
    parser.add_argument("--scenario", choices=sorted(SCENARIOS), help="replay a scripted chat")
    parser.add_argument("--customer", default=DEMO_CUSTOMER, help="phone number to chat as")
    args = parser.parse_args()

    session = ConsoleSession(args.customer)
    try:
        if args.scenario:
            asyncio.run(session.replay(args.scenario))
        else:
            asyncio.run(session.interact())
    except (KeyboardInterrupt, EOFError):
        print(f"\n{ERROR_COLOR}interrupted{PLAIN}")


if __name__ == "__main__":
    main()
