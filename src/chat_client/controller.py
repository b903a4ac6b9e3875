"""Session orchestration and the API surface used by the presentation layer."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from . import api
from .config import ChatConfig
from .connection import ConnectionManager
from .models import (
    ROLE_ADMIN,
    ROLE_RECEIVER,
    STATE_DISCONNECTED,
    Message,
    PresenceEntry,
    Session,
    StatusRecord,
    TypingEntry,
)
from .session_store import SessionStore
from .timers import Timer
from .typing_state import TypingDebouncer

logger = logging.getLogger(__name__)

NoticeCallback = Callable[[str], None]


class SessionController:
    """Keeps the channel's lifetime tied to a valid session.

    A channel is opened only for a held, unexpired session and is closed on
    every path that leaves the controller sessionless.
    """

    def __init__(
        self,
        config: ChatConfig,
        *,
        store: SessionStore | None = None,
        connection: ConnectionManager | None = None,
        on_notice: NoticeCallback | None = None,
        on_state_change: Callable[[str], None] | None = None,
        timer_factory: Callable[[], Timer] = Timer,
    ) -> None:
        self.config = config
        self.store = store or SessionStore(config.session_path)
        self._on_notice = on_notice
        self.connection = connection or ConnectionManager(
            config,
            on_state_change=on_state_change,
            on_notice=self._notice,
        )
        self.typing = TypingDebouncer(self.connection.set_typing, timer_factory=timer_factory)
        self._session: Optional[Session] = None
        self.awaiting_password = False
        # Bumped whenever the login flow is restarted or abandoned.
        self._login_attempt = 0

    def _notice(self, text: str) -> None:
        if self._on_notice is not None:
            self._on_notice(text)

    # Read-only views

    @property
    def session(self) -> Optional[Session]:
        """The held session, or ``None`` once it has expired."""

        if self._session is None or not self._session.is_valid(self.store.now_ms()):
            return None
        return self._session

    @property
    def needs_login(self) -> bool:
        return self.session is None

    @property
    def connection_state(self) -> str:
        return self.connection.state

    @property
    def messages(self) -> tuple[Message, ...]:
        return self.connection.message_log.snapshot()

    @property
    def online_users(self) -> tuple[PresenceEntry, ...]:
        return self.connection.presence.snapshot()

    @property
    def typing_users(self) -> tuple[TypingEntry, ...]:
        return self.connection.typing.snapshot()

    @property
    def status_history(self) -> tuple[StatusRecord, ...]:
        return self.connection.status_history.snapshot()

    # Login flow

    async def choose_role(self, role: str) -> Optional[Session]:
        if role == ROLE_RECEIVER:
            self.awaiting_password = False
            session = Session(username=ROLE_RECEIVER, role=ROLE_RECEIVER, expires_at_ms=0)
            return await self._adopt(session, persist=True)
        if role == ROLE_ADMIN:
            self._login_attempt += 1
            self.awaiting_password = True
            return None
        raise ValueError(f"unknown role: {role!r}")

    def cancel_admin(self) -> None:
        self._login_attempt += 1
        self.awaiting_password = False

    async def authenticate(self, password: str) -> bool:
        if not self.awaiting_password:
            raise RuntimeError("choose the admin role before authenticating")
        if not password or not password.strip():
            return False
        attempt = self._login_attempt
        try:
            verified = await api.verify_admin(self.connection.http, self.config, password)
        except api.ChatApiError as exc:
            logger.warning("admin verification failed: %s", exc)
            self._notice("Connection error")
            return False
        if attempt != self._login_attempt or not self.awaiting_password:
            logger.info("admin login abandoned while verification was in flight")
            return False
        if not verified:
            self._notice("Invalid password")
            return False
        self.awaiting_password = False
        await self._adopt(Session(username=ROLE_ADMIN, role=ROLE_ADMIN, expires_at_ms=0), persist=True)
        return True

    async def restore_on_startup(self) -> Optional[Session]:
        session = self.store.load()
        if session is None:
            return None
        logger.info("restoring session for %s", session.username)
        return await self._adopt(session, persist=False)

    async def logout(self) -> None:
        logger.info("logging out %s", self._session.username if self._session else "<none>")
        self.typing.cancel()
        await self.connection.close()
        self.store.clear()
        self.connection.reset()
        self._session = None
        self._login_attempt += 1
        self.awaiting_password = False

    async def shutdown(self) -> None:
        """Tear down for unmount; the persisted session is kept for the next start."""

        self.typing.cancel()
        await self.connection.aclose()

    async def _adopt(self, session: Session, *, persist: bool) -> Session:
        if persist:
            session = self.store.save(session)
        if self._session is not None:
            self.typing.cancel()
            await self.connection.close()
            self.connection.reset()
        self._session = session
        await self._start_channel(session)
        return session

    async def _start_channel(self, session: Session) -> None:
        try:
            history = await api.fetch_messages(self.connection.http, self.config)
        except api.ChatApiError as exc:
            logger.warning("could not load message history: %s", exc)
            history = []
        if self._session is not session:
            # Logged out while the history request was in flight.
            return
        self.connection.load_history(history)
        await self.connection.open(session)

    async def reconnect(self) -> bool:
        """Re-open the channel after a transport drop."""

        if not await self._ensure_session():
            return False
        if self.connection.state != STATE_DISCONNECTED:
            return True
        return await self.connection.open(self._session)

    async def _ensure_session(self) -> bool:
        if self._session is None:
            return False
        if not self._session.is_valid(self.store.now_ms()):
            logger.info("session for %s expired", self._session.username)
            await self.logout()
            return False
        return True

    # Chat intents

    async def content_changed(self) -> None:
        if await self._ensure_session():
            self.typing.content_changed()

    async def stop_typing(self) -> None:
        self.typing.stop()

    async def send_message(self, content: str) -> bool:
        if not await self._ensure_session():
            return False
        sent = self.connection.send_message(content)
        if sent:
            self.typing.stop()
        return sent

    async def delete_message(self, message_id: str) -> bool:
        if not await self._ensure_session():
            return False
        return self.connection.delete_message(message_id)

    async def clear_all_messages(self) -> bool:
        if not await self._ensure_session():
            return False
        return self.connection.clear_all_messages()
