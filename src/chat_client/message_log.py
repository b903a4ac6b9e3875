from __future__ import annotations

from typing import Dict, Iterable, List

from .models import Message


class MessageLog:
    """Arrival-ordered chat messages with id-level idempotency.

    Order is the order in which messages reach the client; message
    timestamps are never consulted.
    """

    def __init__(self) -> None:
        self._messages: List[Message] = []
        self._by_id: Dict[str, Message] = {}

    def append(self, message: Message) -> bool:
        """Append ``message`` unless its id is already present.

        Returns ``True`` when the log changed.
        """

        if message.id in self._by_id:
            return False
        self._messages.append(message)
        self._by_id[message.id] = message
        return True

    def merge(self, messages: Iterable[Message]) -> int:
        added = 0
        for message in messages:
            if self.append(message):
                added += 1
        return added

    def remove_by_id(self, message_id: str) -> bool:
        if self._by_id.pop(message_id, None) is None:
            return False
        self._messages = [message for message in self._messages if message.id != message_id]
        return True

    def clear(self) -> None:
        self._messages = []
        self._by_id = {}

    def snapshot(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._by_id
