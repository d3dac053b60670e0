"""
Port interfaces (abstract base classes) for the agent module.

These define the contracts that adapters must implement.
Following the Ports & Adapters (Hexagonal) architecture pattern.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, AsyncIterator, Optional

if TYPE_CHECKING:
    from .entities import (
        ChatEvent,
        CompletionResult,
        Message,
        Session,
        ToolDescriptor,
        ToolResult,
    )


# ============================================
# LLM Provider Interface
# ============================================


class ILLMProvider(ABC):
    """Interface for completion providers (Azure OpenAI, OpenAI, Claude).

    Implementations handle the specifics of each API while providing
    a consistent interface to the orchestrator.
    """

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the model identifier (e.g., 'gpt-4o')."""
        pass

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDescriptor]] = None,
        system_prompt: Optional[str] = None,
        json_mode: bool = False,
    ) -> CompletionResult:
        """Request a single, non-streaming completion.

        Args:
            messages: Conversation transcript, in order
            tools: Tool descriptors the model may call
            system_prompt: Optional system prompt to prepend
            json_mode: Ask the model for a JSON object response

        Returns:
            CompletionResult with either text or tool calls

        Raises:
            CompletionError: On service failure or unparsable output
        """
        pass

    @abstractmethod
    def chat(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDescriptor]] = None,
        system_prompt: Optional[str] = None,
    ) -> AsyncIterator[ChatEvent]:
        """Stream a completion as ChatEvent objects.

        Yields TEXT_DELTA and TOOL_CALL_DELTA events followed by DONE,
        or an ERROR event on failure.
        """
        pass

    async def close(self) -> None:
        """Release the underlying client."""
        return None


# ============================================
# Session Repository Interface
# ============================================


class ISessionRepository(ABC):
    """Interface for durable session persistence keyed by session id."""

    @abstractmethod
    async def load(self, session_id: str) -> Optional[Session]:
        """Load a session, or None if it does not exist."""
        pass

    @abstractmethod
    async def save(self, session: Session) -> None:
        """Insert or replace a session (idempotent upsert)."""
        pass

    async def append_message(self, session_id: str, message: Message) -> Session:
        """Load-or-create a session, append one message and save it."""
        from .entities import Session

        session = await self.load(session_id)
        if session is None:
            session = Session(session_id=session_id)
        session.add_message(message)
        await self.save(session)
        return session


# ============================================
# Tool Server Client Interface
# ============================================


class IToolServerClient(ABC):
    """Interface for a client of one tool server."""

    @property
    @abstractmethod
    def server_url(self) -> str:
        """Base URL identifying the server."""
        pass

    @abstractmethod
    async def list_tools(self) -> list[ToolDescriptor]:
        """List tool descriptors published by the server.

        Raises:
            DiscoveryError: If the server cannot be reached
        """
        pass

    @abstractmethod
    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Invoke a tool. Never raises; failures are error-flagged results."""
        pass

    async def close(self) -> None:
        """Release network resources."""
        return None
