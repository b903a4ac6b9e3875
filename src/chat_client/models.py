from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

ROLE_ADMIN = "admin"
ROLE_RECEIVER = "receiver"
ROLES = frozenset({ROLE_ADMIN, ROLE_RECEIVER})

STATE_DISCONNECTED = "disconnected"
STATE_CONNECTING = "connecting"
STATE_CONNECTED = "connected"

STATUS_ONLINE = "online"
STATUS_OFFLINE = "offline"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Session:
    """A signed-in identity that authorizes a chat channel until it expires."""

    username: str
    role: str
    expires_at_ms: int

    def is_valid(self, now_ms: int | None = None) -> bool:
        if now_ms is None:
            now_ms = _now_ms()
        return now_ms < self.expires_at_ms

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


@dataclass(frozen=True)
class Message:
    id: str
    username: str
    role: str
    content: str
    timestamp: Any = None

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["Message"]:
        """Build a message from a server payload.

        The server may name the id ``id`` or ``_id``. Payloads without an id
        or with blank content are rejected with ``None``.
        """

        if not isinstance(payload, dict):
            return None
        message_id = payload.get("id", payload.get("_id"))
        content = payload.get("content")
        if message_id is None or message_id == "" or not isinstance(content, str) or not content.strip():
            return None
        return cls(
            id=str(message_id),
            username=str(payload.get("username", "")),
            role=str(payload.get("role", "")),
            content=content,
            timestamp=payload.get("timestamp"),
        )


@dataclass(frozen=True)
class PresenceEntry:
    username: str
    role: str
    connected_at: Any = None

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["PresenceEntry"]:
        if not isinstance(payload, dict):
            return None
        username = payload.get("username")
        if not isinstance(username, str) or not username:
            return None
        return cls(
            username=username,
            role=str(payload.get("role", "")),
            connected_at=payload.get("connectedAt"),
        )


@dataclass(frozen=True)
class TypingEntry:
    username: str
    role: str


@dataclass(frozen=True)
class StatusRecord:
    username: str
    role: str
    status: str
    timestamp: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "username": self.username,
            "role": self.role,
            "status": self.status,
            "timestamp": self.timestamp,
        }
