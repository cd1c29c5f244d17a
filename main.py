"""
Clinic booking bot entry point.

Starts the conversation core with the configured sync role (hub or relay).
The chat transport is an external collaborator; in ``serve`` mode inbound
messages are read from stdin as ``<from>: <message>`` lines and replies are
printed, which is enough to drive the bot by hand or from a pipe.

Usage:
    Serve:        python main.py serve
    Console mode: python main.py console
"""

import asyncio
import logging
import signal
import sys
from contextlib import AsyncExitStack

from clinicbot.config import settings
from clinicbot.runtime import BotRuntime, StartupError
from clinicbot.transport import ConsoleTransport

logger = logging.getLogger(__name__)


async def _read_inbound(runtime: BotRuntime) -> None:
    """Feed ``<from>: <message>`` lines from stdin into the bot."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    try:
        await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    except (ValueError, OSError, NotImplementedError) as exc:
        logger.info("Stdin inbound adapter disabled: %s", exc)
        return

    while line := await reader.readline():
        sender, sep, body = line.decode("utf-8", errors="replace").partition(":")
        if not sep or not sender.strip():
            logger.warning("Expected '<from>: <message>', got %r", line)
            continue
        await runtime.handle_inbound(sender.strip(), body.strip())
    logger.info("Stdin closed; still serving until a termination signal")


async def _serve() -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass

    async with AsyncExitStack() as stack:
        runtime = await BotRuntime.create(stack, ConsoleTransport())
        inbound = asyncio.create_task(_read_inbound(runtime), name="stdin-inbound")
        await stop.wait()
        logger.info("Shutdown requested, closing sync transport and database...")
        inbound.cancel()
        try:
            await inbound
        except asyncio.CancelledError:
            pass
    logger.info("Shutdown complete")


def _run_serve_mode() -> None:
    """Run until SIGINT/SIGTERM; configuration errors exit with status 1."""
    try:
        asyncio.run(_serve())
    except StartupError as exc:
        logger.error("Fatal startup error: %s", exc)
        sys.exit(1)
    sys.exit(0)


def _run_console_mode() -> None:
    """Start the offline console demo (no database or network required)."""
    from console_demo import ConsoleSession

    asyncio.run(ConsoleSession().interact())


if __name__ == "__main__":
    logger.info("Starting %s bot", settings.clinic.name)
    if len(sys.argv) > 1 and sys.argv[1] == "console":
        _run_console_mode()
    else:
        _run_serve_mode()
