"""
Conversation Manager.

Keeps the in-memory history of one session in step with the durable
session store. The in-memory history is authoritative: persistence
failures are logged and never interrupt a turn.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..domain.entities import Message, MessageRole, Session, utcnow
from ..domain.exceptions import PersistenceError
from ..domain.ports import ISessionRepository
from ..memory.conversation import ConversationStore

logger = logging.getLogger(__name__)


class ConversationManager:
    """Manages one session's history and its persistence.

    Usage:
        manager = ConversationManager(session_id, session_store)

        # Restore persisted history (False if there is none)
        restored = await manager.restore()

        # Append (written through to the store)
        await manager.append(Message(role=MessageRole.USER, content="Hi"))

        # Save the whole session
        await manager.persist()
    """

    def __init__(
        self,
        session_id: str,
        session_store: Optional[ISessionRepository] = None,
    ):
        """Initialize the conversation manager.

        Args:
            session_id: Identifier of the session being managed
            session_store: Durable store. If None, history is in-memory only.
        """
        self.session_id = session_id
        self.store = session_store
        self.history = ConversationStore()
        self._session = Session(session_id=session_id)

    @property
    def messages(self) -> tuple[Message, ...]:
        return self.history.snapshot()

    def to_session(self) -> Session:
        """Current history as a Session value."""
        self._session.messages = list(self.history.snapshot())
        return self._session

    async def restore(self) -> bool:
        """Load persisted history for this session, if any.

        Returns:
            True if a persisted session was found and loaded
        """
        if not self.store:
            return False

        try:
            session = await self.store.load(self.session_id)
        except PersistenceError as e:
            logger.warning(f"Could not load session {self.session_id}: {e}")
            return False

        if session is None:
            return False

        self._session = session
        self.history.replace(session.messages)
        logger.info(
            f"Restored session {self.session_id} with {len(self.history)} messages"
        )
        return True

    async def append(self, message: Message) -> bool:
        """Append a message and write it through to the store.

        Returns:
            False if the message was rejected by the history
        """
        message.session_id = self.session_id
        if not self.history.append(message):
            return False
        self._session.updated_at = utcnow()

        if self.store:
            try:
                await self.store.append_message(self.session_id, message)
            except PersistenceError as e:
                logger.warning(
                    f"Failed to persist {message.role.value} message "
                    f"for session {self.session_id}: {e}"
                )
        return True

    async def append_role(self, role: MessageRole, content: str) -> bool:
        return await self.append(Message(role=role, content=content))

    async def persist(self) -> bool:
        """Save the whole session.

        Returns:
            True if the session was saved
        """
        if not self.store:
            logger.debug("No session store configured - skipping persist")
            return False

        try:
            await self.store.save(self.to_session())
        except PersistenceError as e:
            logger.warning(f"Failed to save session {self.session_id}: {e}")
            return False
        return True

    async def clear(self) -> None:
        """Drop all but system messages and save the result."""
        self.history.clear()
        self._session.updated_at = utcnow()
        await self.persist()
        logger.info(f"Cleared history for session {self.session_id}")
