"""Realtime channel to the chat server and the state it keeps in sync."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

import aiohttp
from aiohttp import WSMsgType

from .config import ChatConfig
from .message_log import MessageLog
from .models import (
    STATE_CONNECTED,
    STATE_CONNECTING,
    STATE_DISCONNECTED,
    Message,
    PresenceEntry,
    Session,
    StatusRecord,
)
from .presence import PresenceTracker, StatusHistory
from .typing_state import TypingTracker

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = 1

StateCallback = Callable[[str], None]
NoticeCallback = Callable[[str], None]


def _frame(event: str, body: Any = None) -> Dict[str, Any]:
    frame: Dict[str, Any] = {"v": PROTOCOL_VERSION, "t": event}
    if body is not None:
        frame["body"] = body
    return frame


class ConnectionManager:
    """Owns the websocket channel and the trackers it feeds.

    The trackers are mutated only by inbound frames. Outbound intents are
    queued and written in order by a single writer task; none of them touch
    local state.
    """

    def __init__(
        self,
        config: ChatConfig,
        *,
        http: aiohttp.ClientSession | None = None,
        status_history: StatusHistory | None = None,
        on_state_change: StateCallback | None = None,
        on_notice: NoticeCallback | None = None,
    ) -> None:
        self.config = config
        self._http = http
        self._owns_http = http is None
        self.message_log = MessageLog()
        self.presence = PresenceTracker()
        self.typing = TypingTracker()
        self.status_history = status_history or StatusHistory(config.status_history_path)
        self._on_state_change = on_state_change
        self._on_notice = on_notice

        self._state = STATE_DISCONNECTED
        self._session: Optional[Session] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._outbox: Optional[asyncio.Queue] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._writer_task: Optional[asyncio.Task] = None
        # Bumped on every open/close; frames tagged with an older value are dropped.
        self._generation = 0

        self._handlers: Dict[str, Callable[[Any], None]] = {
            "newMessage": self._on_new_message,
            "messageDeleted": self._on_message_deleted,
            "allMessagesCleared": self._on_all_messages_cleared,
            "onlineUsers": self._on_online_users,
            "userStatusUpdate": self._on_user_status_update,
            "userTyping": self._on_user_typing,
            "error": self._on_server_error,
        }

    @property
    def state(self) -> str:
        return self._state

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def http(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession()
            self._owns_http = True
        return self._http

    def _set_state(self, state: str) -> None:
        if state == self._state:
            return
        logger.info("connection %s -> %s", self._state, state)
        self._state = state
        if self._on_state_change is not None:
            self._on_state_change(state)

    def _notice(self, text: str) -> None:
        if self._on_notice is not None:
            self._on_notice(text)

    async def open(self, session: Session) -> bool:
        """Connect for ``session`` and announce it with the join handshake.

        Returns ``False`` when the channel could not be established, in
        which case the manager is left ``disconnected``.
        """

        if self._ws is not None or self._state != STATE_DISCONNECTED:
            await self.close()

        self._generation += 1
        generation = self._generation
        self._session = session
        self._set_state(STATE_CONNECTING)
        try:
            ws = await self.http.ws_connect(self.config.ws_url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("could not connect to %s: %s", self.config.ws_url, exc)
            if generation == self._generation:
                self._set_state(STATE_DISCONNECTED)
                self._notice("Unable to connect to chat server")
            return False

        if generation != self._generation:
            # Closed while the handshake was in flight.
            await ws.close()
            return False

        self._ws = ws
        self._outbox = asyncio.Queue()
        self._outbox.put_nowait(_frame("join", {"username": session.username, "role": session.role}))
        self._set_state(STATE_CONNECTED)
        self._writer_task = asyncio.create_task(self._writer(ws, self._outbox, generation))
        self._reader_task = asyncio.create_task(self._reader(ws, generation))
        return True

    async def close(self) -> None:
        self._generation += 1
        ws, reader, writer = self._ws, self._reader_task, self._writer_task
        self._ws = None
        self._outbox = None
        self._reader_task = None
        self._writer_task = None
        self._session = None

        current = asyncio.current_task()
        tasks = [task for task in (reader, writer) if task is not None and task is not current]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        if ws is not None:
            await ws.close()
        self._set_state(STATE_DISCONNECTED)

    async def aclose(self) -> None:
        await self.close()
        if self._owns_http and self._http is not None and not self._http.closed:
            await self._http.close()
        self._http = None

    def reset(self) -> None:
        self.message_log.clear()
        self.presence.clear()
        self.typing.clear()

    def load_history(self, messages: Iterable[Message]) -> int:
        return self.message_log.merge(messages)

    # Outbound intents

    def _send(self, event: str, body: Any = None) -> bool:
        if self._state != STATE_CONNECTED or self._outbox is None:
            logger.debug("dropping %s while %s", event, self._state)
            return False
        self._outbox.put_nowait(_frame(event, body))
        return True

    def send_message(self, content: str) -> bool:
        text = content.strip() if isinstance(content, str) else ""
        if not text:
            return False
        return self._send("sendMessage", {"content": text})

    def set_typing(self, is_typing: bool) -> bool:
        return self._send("typing", {"isTyping": bool(is_typing)})

    def _is_admin(self) -> bool:
        return self._session is not None and self._session.is_admin

    def delete_message(self, message_id: str) -> bool:
        if not self._is_admin():
            return False
        return self._send("deleteMessage", {"id": message_id})

    def clear_all_messages(self) -> bool:
        if not self._is_admin():
            return False
        return self._send("clearAllMessages")

    # Channel tasks

    async def _writer(self, ws: aiohttp.ClientWebSocketResponse, outbox: asyncio.Queue, generation: int) -> None:
        try:
            while True:
                frame = await outbox.get()
                await ws.send_json(frame)
        except asyncio.CancelledError:
            return
        except (ConnectionResetError, aiohttp.ClientError) as exc:
            logger.warning("send failed: %s", exc)
        if generation == self._generation:
            await self._on_transport_closed()

    async def _reader(self, ws: aiohttp.ClientWebSocketResponse, generation: int) -> None:
        try:
            async for msg in ws:
                if generation != self._generation:
                    return
                if msg.type == WSMsgType.TEXT:
                    self._handle_text(msg.data)
                elif msg.type == WSMsgType.ERROR:
                    logger.warning("channel error: %s", ws.exception())
                    break
        except asyncio.CancelledError:
            return
        if generation == self._generation:
            await self._on_transport_closed()

    async def _on_transport_closed(self) -> None:
        logger.info("channel closed by transport")
        reader, writer, ws = self._reader_task, self._writer_task, self._ws
        self._generation += 1
        self._ws = None
        self._outbox = None
        self._reader_task = None
        self._writer_task = None
        current = asyncio.current_task()
        for task in (reader, writer):
            if task is not None and task is not current:
                task.cancel()
        if ws is not None and not ws.closed:
            await ws.close()
        self._set_state(STATE_DISCONNECTED)

    # Inbound dispatch

    def _handle_text(self, data: str) -> None:
        try:
            frame = json.loads(data)
        except ValueError:
            logger.warning("dropping malformed frame: %r", data[:200])
            return
        self.dispatch(frame)

    def dispatch(self, frame: Any) -> None:
        if not isinstance(frame, dict) or frame.get("v") != PROTOCOL_VERSION:
            logger.warning("dropping frame with unsupported envelope: %r", frame)
            return
        event = frame.get("t")
        handler = self._handlers.get(event)
        if handler is None:
            logger.debug("ignoring unknown event %r", event)
            return
        logger.debug("dispatching %s", event)
        handler(frame.get("body"))

    def _on_new_message(self, body: Any) -> None:
        message = Message.from_payload(body)
        if message is None:
            logger.warning("dropping malformed newMessage: %r", body)
            return
        self.message_log.append(message)

    def _on_message_deleted(self, body: Any) -> None:
        if isinstance(body, dict):
            message_id = body.get("id", body.get("messageId"))
        else:
            message_id = body
        if message_id is None:
            return
        self.message_log.remove_by_id(str(message_id))

    def _on_all_messages_cleared(self, _: Any) -> None:
        self.message_log.clear()

    def _on_online_users(self, body: Any) -> None:
        users = body.get("users") if isinstance(body, dict) else body
        if not isinstance(users, list):
            logger.warning("dropping malformed onlineUsers: %r", body)
            return
        entries: List[PresenceEntry] = []
        for item in users:
            entry = PresenceEntry.from_payload(item)
            if entry is not None:
                entries.append(entry)
        self.presence.replace(entries)

    def _on_user_status_update(self, body: Any) -> None:
        if not isinstance(body, dict):
            return
        username = body.get("username")
        status = body.get("status")
        if not isinstance(username, str) or not isinstance(status, str):
            return
        role = str(body.get("role", ""))
        timestamp = body.get("timestamp")
        self.presence.apply_status(username, role, status, timestamp)
        self.status_history.record(StatusRecord(username=username, role=role, status=status, timestamp=timestamp))

    def _on_user_typing(self, body: Any) -> None:
        if not isinstance(body, dict):
            return
        username = body.get("username")
        if not isinstance(username, str):
            return
        self.typing.apply(username, str(body.get("role", "")), bool(body.get("isTyping")))

    def _on_server_error(self, body: Any) -> None:
        message = body.get("message") if isinstance(body, dict) else body
        text = str(message) if message else "Unknown error"
        logger.warning("server error: %s", text)
        self._notice(f"Error: {text}")
