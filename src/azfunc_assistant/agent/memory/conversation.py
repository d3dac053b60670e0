"""
Conversation Store Implementation.

In-memory, ordered message history for a single session. The
orchestrator owns one instance per session; persistence adapters
load into it and save from it.
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, Optional

from ..domain.entities import Message, MessageRole

logger = logging.getLogger(__name__)


class ConversationStore:
    """Ordered message list for one session.

    Insertion order is semantically meaningful: messages are never
    reordered or deduplicated. Operations never raise.

    Usage:
        store = ConversationStore()
        store.append(Message(role=MessageRole.USER, content="Hi"))

        history = store.snapshot()   # read-only copy
        store.clear()                # keeps system messages only
    """

    def __init__(self, messages: Iterable[Message] = ()):
        self._messages: list[Message] = []
        self.replace(messages)

    def append(self, message: Message) -> bool:
        """Append a message.

        Returns:
            False if the message was rejected (empty role or content)
        """
        if not message.role or not message.content:
            logger.debug("Ignoring message with empty role or content")
            return False
        self._messages.append(message)
        return True

    def snapshot(self) -> tuple[Message, ...]:
        """Return a read-only copy of the history, in order."""
        return tuple(self._messages)

    def clear(self) -> None:
        """Remove all messages except system-role ones."""
        self._messages = [m for m in self._messages if m.role == MessageRole.SYSTEM]

    def replace(self, messages: Iterable[Message]) -> None:
        """Replace the whole history (used when restoring a session)."""
        self._messages = []
        for message in messages:
            self.append(message)

    @property
    def last(self) -> Optional[Message]:
        return self._messages[-1] if self._messages else None

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self.snapshot())
