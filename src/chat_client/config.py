from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

SESSION_TTL_MS = 2 * 60 * 60 * 1000
TYPING_IDLE_MS = 2000
STATUS_HISTORY_LIMIT = 50

DEFAULT_BACKEND_URL = "http://127.0.0.1:5000"
DEFAULT_STATE_DIR = Path.home() / ".relaychat"


@dataclass(frozen=True)
class ChatConfig:
    backend_url: str = DEFAULT_BACKEND_URL
    api_prefix: str = "/api"
    ws_path: str = "/ws"
    state_dir: Path = DEFAULT_STATE_DIR
    request_timeout_s: int = 10

    @property
    def session_path(self) -> Path:
        return Path(self.state_dir).expanduser() / "session.json"

    @property
    def status_history_path(self) -> Path:
        return Path(self.state_dir).expanduser() / "status_history.json"

    @property
    def ws_url(self) -> str:
        return _build_url(self.backend_url, self.ws_path)

    def api_url(self, path: str) -> str:
        return _build_url(self.backend_url, f"{self.api_prefix.rstrip('/')}{path}")


def _build_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}{path}"


def _parse_positive_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if parsed <= 0:
        raise ValueError(f"{name} must be positive")
    return parsed


def _parse_url(name: str, default: str) -> str:
    raw = os.environ.get(name)
    if raw is None:
        return default
    raw = raw.strip()
    if not raw:
        raise ValueError(f"{name} must not be empty")
    return raw


def load_config_from_env() -> ChatConfig:
    state_dir = os.environ.get("CHAT_STATE_DIR")
    return ChatConfig(
        backend_url=_parse_url("CHAT_BACKEND_URL", DEFAULT_BACKEND_URL),
        api_prefix=os.environ.get("CHAT_API_PREFIX", "/api"),
        ws_path=os.environ.get("CHAT_WS_PATH", "/ws") or "/ws",
        state_dir=Path(state_dir).expanduser() if state_dir else DEFAULT_STATE_DIR,
        request_timeout_s=_parse_positive_int("CHAT_REQUEST_TIMEOUT_S", 10),
    )
