from __future__ import annotations

import logging
from collections import deque
from pathlib import Path
from typing import Deque, Dict, Iterable, List

from . import storage
from .config import STATUS_HISTORY_LIMIT
from .models import STATUS_OFFLINE, STATUS_ONLINE, PresenceEntry, StatusRecord

logger = logging.getLogger(__name__)


class PresenceTracker:
    """Currently-online users as pushed by the server, one entry per username."""

    def __init__(self) -> None:
        self._entries: Dict[str, PresenceEntry] = {}

    def replace(self, entries: Iterable[PresenceEntry]) -> None:
        self._entries = {}
        for entry in entries:
            self._entries[entry.username] = entry

    def apply_status(self, username: str, role: str, status: str, timestamp=None) -> bool:
        if status == STATUS_ONLINE:
            self._entries[username] = PresenceEntry(username=username, role=role, connected_at=timestamp)
            return True
        if status == STATUS_OFFLINE:
            return self._entries.pop(username, None) is not None
        return False

    def clear(self) -> None:
        self._entries = {}

    def snapshot(self) -> tuple[PresenceEntry, ...]:
        return tuple(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, username: object) -> bool:
        return username in self._entries


class StatusHistory:
    """Bounded log of presence transitions kept for offline-status display.

    The oldest record is evicted once ``limit`` is reached. Every record is
    written through to ``path`` so the history survives restarts.
    """

    def __init__(self, path: Path | None = None, limit: int = STATUS_HISTORY_LIMIT) -> None:
        self.path = Path(path).expanduser() if path is not None else None
        self.limit = limit
        self._records: Deque[StatusRecord] = deque(maxlen=limit)
        if self.path is not None:
            self._records.extend(self._load(self.path))

    @staticmethod
    def _load(path: Path) -> List[StatusRecord]:
        data = storage.read_json(path)
        if not isinstance(data, list):
            return []
        records: List[StatusRecord] = []
        for item in data:
            if not isinstance(item, dict):
                continue
            username = item.get("username")
            status = item.get("status")
            if not isinstance(username, str) or not isinstance(status, str):
                continue
            records.append(
                StatusRecord(
                    username=username,
                    role=str(item.get("role", "")),
                    status=status,
                    timestamp=item.get("timestamp"),
                )
            )
        return records

    def record(self, record: StatusRecord) -> None:
        self._records.append(record)
        if self.path is None:
            return
        try:
            storage.atomic_write_json(self.path, [item.to_dict() for item in self._records])
        except OSError as exc:
            logger.warning("could not persist status history to %s: %s", self.path, exc)

    def snapshot(self) -> tuple[StatusRecord, ...]:
        return tuple(self._records)

    def __len__(self) -> int:
        return len(self._records)
