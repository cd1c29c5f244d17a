from clinicbot.conversation.session_store import SessionStore
from clinicbot.conversation.state_machine import (
    TRIGGER_KEYWORDS,
    ConversationEngine,
    EntryPoint,
    InvalidTransitionError,
    Reply,
    TransitionTrigger,
    match_entry,
)
from clinicbot.conversation.validation import is_valid_date_time, is_valid_name

__all__ = [
    "ConversationEngine",
    "TransitionTrigger",
    "EntryPoint",
    "TRIGGER_KEYWORDS",
    "InvalidTransitionError",
    "Reply",
    "match_entry",
    "SessionStore",
    "is_valid_date_time",
    "is_valid_name",
]
