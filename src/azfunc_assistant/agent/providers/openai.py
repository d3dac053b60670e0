"""
OpenAI GPT Completion Provider.

Implements the ILLMProvider interface for OpenAI and Azure OpenAI chat
completions. Supports streaming, tool calling and JSON mode.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Optional

from ..domain.entities import (
    ChatEvent,
    CompletionResult,
    ErrorType,
    Message,
    ToolCall,
    ToolDescriptor,
)
from ..domain.exceptions import CompletionError
from .base import BaseLLMProvider, LLMProviderConfig

logger = logging.getLogger(__name__)

# Lazy import to avoid requiring openai if not used
try:
    import openai
    from openai import AsyncAzureOpenAI, AsyncOpenAI

    OPENAI_AVAILABLE = True
except ImportError:
    OPENAI_AVAILABLE = False
    openai = None
    AsyncOpenAI = None
    AsyncAzureOpenAI = None


class OpenAIProvider(BaseLLMProvider):
    """OpenAI GPT provider implementation.

    Supports:
    - GPT-4o, GPT-4.1 and other chat-completions models
    - Streaming responses
    - Tool/function calling
    - JSON object responses

    Usage:
        config = LLMProviderConfig(api_key="sk-...", model="gpt-4o")
        provider = OpenAIProvider(config)

        result = await provider.complete(messages, tools)

        async for event in provider.chat(messages, tools):
            print(event)
    """

    DEFAULT_MODEL = "gpt-4o"

    def __init__(self, config: LLMProviderConfig):
        """Initialize the OpenAI provider.

        Args:
            config: Provider configuration

        Raises:
            ImportError: If openai package is not installed
        """
        if not OPENAI_AVAILABLE:
            raise ImportError(
                "openai package is required for OpenAIProvider. "
                "Install with: pip install openai"
            )

        super().__init__(config)
        self.client = self._create_client(config)

    def _create_client(self, config: LLMProviderConfig):
        return AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=config.max_retries,
        )

    def _format_messages_for_api(
        self, messages: list[Message], system_prompt: Optional[str] = None
    ) -> list[dict[str, Any]]:
        """Convert messages to OpenAI format.

        OpenAI includes system messages in the messages array.
        """
        api_messages = []
        if system_prompt:
            api_messages.append({"role": "system", "content": system_prompt})
        api_messages.extend(super()._format_messages_for_api(messages))
        return api_messages

    def _format_tools_for_api(
        self, tools: list[ToolDescriptor]
    ) -> list[dict[str, Any]]:
        """Convert tools to OpenAI format."""
        return [tool.to_openai_format() for tool in tools]

    def _build_request(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDescriptor]],
        system_prompt: Optional[str],
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": self._format_messages_for_api(messages, system_prompt),
            "temperature": self.config.temperature,
        }
        if self.config.max_tokens:
            kwargs["max_tokens"] = self.config.max_tokens
        if tools:
            kwargs["tools"] = self._format_tools_for_api(tools)
            kwargs["tool_choice"] = "auto"
        return kwargs

    async def complete(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDescriptor]] = None,
        system_prompt: Optional[str] = None,
        json_mode: bool = False,
    ) -> CompletionResult:
        """Request a single non-streaming completion.

        Raises:
            CompletionError: On API errors or an empty response
        """
        kwargs = self._build_request(messages, tools, system_prompt)
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except openai.RateLimitError as e:
            logger.warning(f"Rate limited by OpenAI: {e}")
            raise CompletionError(
                f"Rate limited: {e}", error_type=ErrorType.RATE_LIMIT, cause=e
            ) from e
        except openai.APITimeoutError as e:
            raise self._completion_error(
                f"Request timed out: {e}", ErrorType.TIMEOUT, e
            ) from e
        except openai.APIError as e:
            raise self._completion_error(
                f"API error: {e}", ErrorType.RECOVERABLE, e
            ) from e

        if not response.choices:
            raise CompletionError("Completion response contained no choices")

        message = response.choices[0].message
        tool_calls = []
        for tc in message.tool_calls or []:
            try:
                arguments = json.loads(tc.function.arguments) if tc.function.arguments else {}
            except json.JSONDecodeError:
                arguments = {"raw": tc.function.arguments}
            tool_calls.append(
                ToolCall(id=tc.id, name=tc.function.name, arguments=arguments)
            )

        return CompletionResult(text=message.content or "", tool_calls=tool_calls)

    async def chat(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDescriptor]] = None,
        system_prompt: Optional[str] = None,
    ) -> AsyncIterator[ChatEvent]:
        """Generate a streaming response.

        Args:
            messages: Conversation history
            tools: Available tools
            system_prompt: System prompt

        Yields:
            TEXT_DELTA and TOOL_CALL_DELTA events, then DONE (or ERROR)
        """
        self._reset_sequence()

        kwargs = self._build_request(messages, tools, system_prompt)
        kwargs["stream"] = True

        try:
            stream_response = await self.client.chat.completions.create(**kwargs)

            async for chunk in stream_response:
                choice = chunk.choices[0] if chunk.choices else None
                if not choice:
                    continue

                delta = choice.delta

                if delta.content:
                    yield self._create_text_delta(delta.content)

                if delta.tool_calls:
                    for tc in delta.tool_calls:
                        function = tc.function
                        yield self._create_tool_call_delta(
                            tc.index,
                            tool_call_id=tc.id,
                            name=function.name if function else None,
                            arguments=function.arguments if function else None,
                        )

                if choice.finish_reason:
                    break

            yield self._create_done()

        except openai.RateLimitError as e:
            logger.warning(f"Rate limited by OpenAI: {e}")
            yield self._create_error(f"Rate limited: {e}", ErrorType.RATE_LIMIT)
        except openai.APITimeoutError as e:
            logger.error(f"OpenAI API timeout: {e}")
            yield self._create_error(f"Request timed out: {e}", ErrorType.TIMEOUT)
        except openai.APIError as e:
            logger.error(f"OpenAI API error: {e}")
            yield self._create_error(f"API error: {e}", ErrorType.RECOVERABLE)
        except Exception as e:
            logger.exception(f"Unexpected error in OpenAI chat: {e}")
            yield self._create_error(str(e), ErrorType.FATAL)

    async def close(self) -> None:
        """Close the client."""
        await self.client.close()


class AzureOpenAIProvider(OpenAIProvider):
    """Azure OpenAI provider.

    ``config.model`` is the deployment name and ``config.base_url`` the
    resource endpoint.

    Usage:
        config = LLMProviderConfig(
            api_key="...",
            model="gpt-4o-deployment",
            base_url="https://my-resource.openai.azure.com",
            api_version="2024-06-01",
        )
        provider = AzureOpenAIProvider(config)
    """

    DEFAULT_API_VERSION = "2024-06-01"

    def _create_client(self, config: LLMProviderConfig):
        return AsyncAzureOpenAI(
            api_key=config.api_key,
            azure_endpoint=config.base_url,
            azure_deployment=config.model,
            api_version=config.api_version or self.DEFAULT_API_VERSION,
            timeout=config.timeout,
            max_retries=config.max_retries,
        )
