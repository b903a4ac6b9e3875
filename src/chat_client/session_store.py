"""Persist the signed-in chat identity with a fixed two hour retention."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, Optional

from . import storage
from .config import SESSION_TTL_MS
from .models import ROLES, Session, _now_ms

logger = logging.getLogger(__name__)

USER_KEY = "chatUser"
EXPIRY_KEY = "chatSessionExpiry"


class SessionStore:
    def __init__(self, path: Path, *, now_func: Callable[[], int] = _now_ms) -> None:
        self.path = Path(path).expanduser()
        self._now = now_func

    def now_ms(self) -> int:
        return self._now()

    def save(self, session: Session) -> Session:
        """Persist ``session`` and return it with the store-assigned expiry.

        The caller's ``expires_at_ms`` is ignored: every save starts a fresh
        ``SESSION_TTL_MS`` window from now.
        """

        stored = Session(
            username=session.username,
            role=session.role,
            expires_at_ms=self._now() + SESSION_TTL_MS,
        )
        user_blob = json.dumps({"username": stored.username, "role": stored.role})
        storage.atomic_write_json(
            self.path,
            {USER_KEY: user_blob, EXPIRY_KEY: str(stored.expires_at_ms)},
        )
        return stored

    def load(self) -> Optional[Session]:
        data = storage.read_json(self.path)
        session = self._parse(data)
        if session is None:
            return None
        if not session.is_valid(self._now()):
            logger.info("persisted session for %s expired; purging", session.username)
            self.clear()
            return None
        return session

    def clear(self) -> None:
        storage.remove(self.path)

    @staticmethod
    def _parse(data: object) -> Optional[Session]:
        if not isinstance(data, dict):
            return None
        try:
            user = json.loads(data[USER_KEY])
            expires_at_ms = int(data[EXPIRY_KEY])
        except (KeyError, TypeError, ValueError):
            return None
        if not isinstance(user, dict):
            return None
        username = user.get("username")
        role = user.get("role")
        if not isinstance(username, str) or not username or role not in ROLES:
            return None
        return Session(username=username, role=role, expires_at_ms=expires_at_ms)
