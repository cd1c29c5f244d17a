"""
Boundary to the chat transport (device pairing and the messaging network
itself live outside this package).
"""

from typing import Protocol


class MessageTransport(Protocol):
    """Outbound side of the messaging session."""

    async def send_text(self, address: str, body: str) -> None: ...


class ConsoleTransport:
    """Writes outbound messages to stdout. Used by ``main.py serve`` and the demo."""

    def __init__(self, prefix: str = "->") -> None:
        self._prefix = prefix
        self.sent: list[tuple[str, str]] = []

    async def send_text(self, address: str, body: str) -> None:
        self.sent.append((address, body))
        print(f"{self._prefix} [{address}] {body}")
