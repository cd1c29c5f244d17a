"""Per-customer conversation session state."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ConversationStage(str, Enum):
    """Stages of the booking dialogue."""
    IDLE = "idle"
    AWAITING_SERVICE_CHOICE = "awaiting_service_choice"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    AWAITING_NAME = "awaiting_name"
    AWAITING_DATE_TIME = "awaiting_date_time"


@dataclass
class Session:
    """
    In-flight booking dialogue for one customer.

    Lives in the SessionStore from the first step that needs to remember
    something until the conversation ends, successfully or not.
    """
    customer_id: str
    stage: ConversationStage = ConversationStage.IDLE
    service_type: Optional[str] = None
    service_description: Optional[str] = None
    price: Optional[str] = None
    name: Optional[str] = None
    expecting_date_time: bool = False
    updated_at: float = field(default_factory=time.monotonic)

    def touch(self) -> None:
        self.updated_at = time.monotonic()
