"""Realtime chat client core: session, channel and synchronized state."""

from .config import ChatConfig, load_config_from_env
from .connection import ConnectionManager
from .controller import SessionController
from .message_log import MessageLog
from .models import Message, PresenceEntry, Session, StatusRecord, TypingEntry
from .presence import PresenceTracker, StatusHistory
from .session_store import SessionStore
from .typing_state import TypingDebouncer, TypingTracker

__all__ = [
    "ChatConfig",
    "ConnectionManager",
    "Message",
    "MessageLog",
    "PresenceEntry",
    "PresenceTracker",
    "Session",
    "SessionController",
    "SessionStore",
    "StatusHistory",
    "StatusRecord",
    "TypingDebouncer",
    "TypingEntry",
    "TypingTracker",
    "load_config_from_env",
]
