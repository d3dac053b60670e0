"""
Base LLM Provider Implementation.

Provides common functionality for all completion providers.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

from ..domain.entities import (
    ChatEvent,
    ChatEventType,
    CompletionResult,
    ErrorType,
    Message,
    ToolDescriptor,
)
from ..domain.exceptions import CompletionError
from ..domain.ports import ILLMProvider
from .stream import CompletionStream

logger = logging.getLogger(__name__)

JSON_MODE_INSTRUCTION = (
    "Respond with a single valid JSON object and nothing else. "
    "Do not wrap it in markdown code fences."
)


@dataclass
class LLMProviderConfig:
    """Configuration for completion providers.

    Attributes:
        api_key: API key for the provider
        model: Model name (or Azure deployment name)
        base_url: Optional custom base URL (Azure endpoint for Azure OpenAI)
        api_version: API version (Azure OpenAI only)
        timeout: Request timeout in seconds
        max_retries: Maximum retry attempts handled by the SDK
        temperature: Default temperature
        max_tokens: Default max tokens
    """

    api_key: str
    model: str
    base_url: Optional[str] = None
    api_version: Optional[str] = None
    timeout: float = 60.0
    max_retries: int = 3
    temperature: float = 0.7
    max_tokens: int = 4096
    extra: dict[str, Any] = field(default_factory=dict)


class BaseLLMProvider(ILLMProvider, ABC):
    """Base class for provider implementations.

    Subclasses implement ``chat`` (streaming). ``complete`` defaults to
    draining ``chat`` and may be overridden with a native non-streaming
    call; ``stream`` wraps ``chat`` in a pull-based CompletionStream.
    """

    def __init__(self, config: LLMProviderConfig):
        """Initialize the provider.

        Args:
            config: Provider configuration
        """
        self.config = config
        self._sequence_counter = 0

    @property
    def model_name(self) -> str:
        """Return the model name."""
        return self.config.model

    def _next_sequence(self) -> int:
        """Get the next sequence number for events."""
        self._sequence_counter += 1
        return self._sequence_counter

    def _reset_sequence(self) -> None:
        """Reset the sequence counter (call at start of new chat)."""
        self._sequence_counter = 0

    def _create_text_delta(self, text: str) -> ChatEvent:
        """Create a text delta event."""
        return ChatEvent(
            type=ChatEventType.TEXT_DELTA,
            sequence=self._next_sequence(),
            content=text,
        )

    def _create_tool_call_delta(
        self,
        index: int,
        tool_call_id: Optional[str] = None,
        name: Optional[str] = None,
        arguments: Optional[str] = None,
    ) -> ChatEvent:
        """Create a tool call fragment event."""
        return ChatEvent(
            type=ChatEventType.TOOL_CALL_DELTA,
            sequence=self._next_sequence(),
            tool_index=index,
            tool_call_id=tool_call_id,
            tool_name=name,
            tool_arguments=arguments,
        )

    def _create_error(self, message: str, error_type: ErrorType) -> ChatEvent:
        """Create an error event."""
        return ChatEvent(
            type=ChatEventType.ERROR,
            sequence=self._next_sequence(),
            content=message,
            error=message,
            error_type=error_type,
        )

    def _create_done(self) -> ChatEvent:
        """Create a done event."""
        return ChatEvent(
            type=ChatEventType.DONE,
            sequence=self._next_sequence(),
        )

    def _format_messages_for_api(
        self, messages: list[Message]
    ) -> list[dict[str, Any]]:
        """Convert domain messages to API format (roles map 1:1)."""
        return [
            {"role": msg.role.value, "content": msg.content}
            for msg in messages
        ]

    def _format_tools_for_api(
        self, tools: list[ToolDescriptor]
    ) -> list[dict[str, Any]]:
        """Convert tool descriptors to API format.

        Subclasses should override for provider-specific formatting.
        """
        raise NotImplementedError("Subclass must implement _format_tools_for_api")

    @abstractmethod
    def chat(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDescriptor]] = None,
        system_prompt: Optional[str] = None,
    ) -> AsyncIterator[ChatEvent]:
        """Generate a streaming response. Must be implemented by subclasses."""
        pass

    async def complete(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDescriptor]] = None,
        system_prompt: Optional[str] = None,
        json_mode: bool = False,
    ) -> CompletionResult:
        """Request a completion by draining the event stream.

        JSON mode is requested by instruction.

        Raises:
            CompletionError: If the stream reports an error
        """
        if json_mode:
            system_prompt = (
                f"{system_prompt}\n\n{JSON_MODE_INSTRUCTION}"
                if system_prompt
                else JSON_MODE_INSTRUCTION
            )

        stream = self.stream(messages, tools=tools, system_prompt=system_prompt)
        async for _ in stream:
            pass
        return stream.result or CompletionResult()

    def stream(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDescriptor]] = None,
        system_prompt: Optional[str] = None,
    ) -> CompletionStream:
        """Open a pull-based stream of text fragments.

        Returns:
            CompletionStream whose ``result`` is set once it is exhausted
        """
        return CompletionStream(
            self.chat(messages, tools=tools, system_prompt=system_prompt)
        )

    def _completion_error(
        self, message: str, error_type: ErrorType, cause: Exception
    ) -> CompletionError:
        logger.error(f"{self.__class__.__name__} completion failed: {message}")
        return CompletionError(message, error_type=error_type, cause=cause)

    async def close(self) -> None:
        """Release the underlying client."""
        return None

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
