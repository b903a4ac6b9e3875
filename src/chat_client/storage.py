"""Durable client-side storage for small JSON records."""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from pathlib import Path
from typing import Any


def atomic_write_json(path: Path, payload: Any) -> None:
    """Replace ``path`` with ``payload`` so readers never see a partial record.

    The scratch file is private to the owner (``mkstemp`` uses mode 0600) and
    is removed again if the write or rename fails.
    """

    target = Path(path).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, scratch = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, separators=(",", ":"))
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(scratch, target)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(scratch)
        raise


def read_json(path: Path) -> Any | None:
    """Return the decoded JSON at ``path``, or ``None`` if missing or corrupt."""

    try:
        return json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError):
        return None


def remove(path: Path) -> None:
    try:
        Path(path).expanduser().unlink()
    except FileNotFoundError:
        pass
