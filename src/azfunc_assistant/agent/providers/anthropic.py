"""
Anthropic Claude Completion Provider.

Implements the ILLMProvider interface for Anthropic's Claude models.
Supports streaming and tool calling; JSON mode is requested by
instruction.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Optional

from ..domain.entities import (
    ChatEvent,
    ErrorType,
    Message,
    MessageRole,
    ToolDescriptor,
)
from .base import BaseLLMProvider, LLMProviderConfig

logger = logging.getLogger(__name__)

# Lazy import to avoid requiring anthropic if not used
try:
    import anthropic
    from anthropic import AsyncAnthropic

    ANTHROPIC_AVAILABLE = True
except ImportError:
    ANTHROPIC_AVAILABLE = False
    anthropic = None
    AsyncAnthropic = None


class AnthropicProvider(BaseLLMProvider):
    """Anthropic Claude provider implementation.

    Usage:
        config = LLMProviderConfig(
            api_key="sk-ant-...",
            model="claude-sonnet-4-5-20250929",
        )
        provider = AnthropicProvider(config)

        async for event in provider.chat(messages, tools):
            print(event)
    """

    DEFAULT_MODEL = "claude-sonnet-4-5-20250929"

    def __init__(self, config: LLMProviderConfig):
        """Initialize the Anthropic provider.

        Args:
            config: Provider configuration

        Raises:
            ImportError: If anthropic package is not installed
        """
        if not ANTHROPIC_AVAILABLE:
            raise ImportError(
                "anthropic package is required for AnthropicProvider. "
                "Install with: pip install anthropic"
            )

        super().__init__(config)

        self.client = AsyncAnthropic(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=config.max_retries,
        )

    def _format_messages_for_api(
        self, messages: list[Message], system_prompt: Optional[str] = None
    ) -> tuple[Optional[str], list[dict[str, Any]]]:
        """Convert messages to Anthropic format.

        Anthropic uses a separate system parameter, not in messages.
        Consecutive messages with the same role are merged, since the
        API requires alternating turns.

        Returns:
            Tuple of (system_prompt, messages_list)
        """
        api_messages: list[dict[str, Any]] = []
        system = system_prompt

        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                system = f"{msg.content}\n\n{system}" if system else msg.content
                continue

            role = msg.role.value
            if api_messages and api_messages[-1]["role"] == role:
                api_messages[-1]["content"] += f"\n\n{msg.content}"
            else:
                api_messages.append({"role": role, "content": msg.content})

        return system, api_messages

    def _format_tools_for_api(
        self, tools: list[ToolDescriptor]
    ) -> list[dict[str, Any]]:
        """Convert tools to Anthropic format."""
        return [tool.to_anthropic_format() for tool in tools]

    async def chat(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDescriptor]] = None,
        system_prompt: Optional[str] = None,
    ) -> AsyncIterator[ChatEvent]:
        """Generate a streaming response using Claude.

        Args:
            messages: Conversation history
            tools: Available tools
            system_prompt: System prompt

        Yields:
            TEXT_DELTA and TOOL_CALL_DELTA events, then DONE (or ERROR)
        """
        self._reset_sequence()

        system, api_messages = self._format_messages_for_api(messages, system_prompt)

        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": api_messages,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = self._format_tools_for_api(tools)

        try:
            async with self.client.messages.stream(**kwargs) as stream_response:
                async for event in stream_response:
                    event_type = getattr(event, "type", None)

                    if event_type == "content_block_start":
                        block = event.content_block
                        if getattr(block, "type", None) == "tool_use":
                            yield self._create_tool_call_delta(
                                event.index, tool_call_id=block.id, name=block.name
                            )

                    elif event_type == "content_block_delta":
                        delta = event.delta
                        delta_type = getattr(delta, "type", None)
                        if delta_type == "text_delta":
                            yield self._create_text_delta(delta.text)
                        elif delta_type == "input_json_delta":
                            yield self._create_tool_call_delta(
                                event.index, arguments=delta.partial_json
                            )

            yield self._create_done()

        except anthropic.RateLimitError as e:
            logger.warning(f"Rate limited by Anthropic: {e}")
            yield self._create_error(f"Rate limited: {e}", ErrorType.RATE_LIMIT)
        except anthropic.APITimeoutError as e:
            logger.error(f"Anthropic API timeout: {e}")
            yield self._create_error(f"Request timed out: {e}", ErrorType.TIMEOUT)
        except anthropic.APIError as e:
            logger.error(f"Anthropic API error: {e}")
            yield self._create_error(f"API error: {e}", ErrorType.RECOVERABLE)
        except Exception as e:
            logger.exception(f"Unexpected error in Anthropic chat: {e}")
            yield self._create_error(str(e), ErrorType.FATAL)

    async def close(self) -> None:
        """Close the client."""
        await self.client.close()
