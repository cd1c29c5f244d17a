"""Customer ID logging context for tracing conversations across modules.

Provides a customer-aware logger that attaches the current customer
identifier to every log record, making it easy to follow one customer's
booking through the conversation, storage and confirmation code.

Usage:
    from clinicbot.logging_context import get_customer_logger, set_customer_id

    set_customer_id("5491122334455")
    logger = get_customer_logger(__name__)
    logger.info("Processing message")  # record.customer_id == "5491122334455"
"""

import logging
from contextvars import ContextVar

_customer_id: ContextVar[str] = ContextVar("customer_id", default="-")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(customer_id)s]: %(message)s"


def set_customer_id(customer_id: str) -> None:
    """Set the customer identifier for the current async context."""
    _customer_id.set(customer_id)


def get_customer_id() -> str:
    """Retrieve the current customer identifier."""
    return _customer_id.get()


class CustomerIdFilter(logging.Filter):
    """Injects customer_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.customer_id = _customer_id.get()  # type: ignore[attr-defined]
        return True


def get_customer_logger(name: str) -> logging.Logger:
    """Return a logger with the CustomerIdFilter attached.

    The filter adds ``customer_id`` to each record so formatters can
    include ``%(customer_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, CustomerIdFilter) for f in logger.filters):
        logger.addFilter(CustomerIdFilter())
    return logger


def build_log_handler() -> logging.Handler:
    """Stream handler that prints the customer id on every record.

    The filter sits on the handler, so records from loggers that never went
    through ``get_customer_logger`` (storage, sync) are tagged as well.
    """
    handler = logging.StreamHandler()
    handler.addFilter(CustomerIdFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler
