"""Test doubles shared by the agent tests."""

from __future__ import annotations

import json
from typing import Any, Optional, Union

from azfunc_assistant.agent.domain.entities import (
    CompletionResult,
    ContentBlock,
    ErrorType,
    ToolCall,
    ToolDescriptor,
    ToolResult,
)
from azfunc_assistant.agent.domain.exceptions import DiscoveryError
from azfunc_assistant.agent.domain.ports import IToolServerClient
from azfunc_assistant.agent.providers.base import BaseLLMProvider, LLMProviderConfig


class AsyncContextManager:
    """Helper class to create async context managers for mocking."""

    def __init__(self, return_value):
        self.return_value = return_value

    async def __aenter__(self):
        return self.return_value

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


class ScriptedProvider(BaseLLMProvider):
    """Provider that replays scripted completions as streamed events.

    Text is split into small fragments and tool-call arguments into two
    halves, so both ``complete`` (which drains the stream) and the
    streaming path see the same logical result.
    """

    def __init__(self, responses: list[Union[CompletionResult, Exception]]):
        super().__init__(LLMProviderConfig(api_key="test-key", model="scripted"))
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    async def chat(self, messages, tools=None, system_prompt=None):
        self._reset_sequence()
        self.calls.append(
            {
                "messages": list(messages),
                "tools": tools,
                "system_prompt": system_prompt,
            }
        )
        response = self.responses.pop(0)

        if isinstance(response, Exception):
            yield self._create_error(str(response), ErrorType.RECOVERABLE)
            return

        text = response.text
        for start in range(0, len(text), 4):
            yield self._create_text_delta(text[start:start + 4])

        for index, call in enumerate(response.tool_calls):
            arguments = json.dumps(call.arguments)
            half = len(arguments) // 2
            yield self._create_tool_call_delta(index, tool_call_id=call.id, name=call.name)
            yield self._create_tool_call_delta(index, arguments=arguments[:half])
            yield self._create_tool_call_delta(index, arguments=arguments[half:])

        yield self._create_done()

    async def close(self) -> None:
        self.closed = True


class FakeToolClient(IToolServerClient):
    """In-memory tool server."""

    def __init__(
        self,
        tools: list[ToolDescriptor],
        results: Optional[dict[str, Union[ToolResult, Exception]]] = None,
        url: str = "http://tools.test",
        fail_discovery: bool = False,
    ):
        self._url = url
        self.tools = tools
        self.results = results or {}
        self.fail_discovery = fail_discovery
        self.list_calls = 0
        self.invocations: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    @property
    def server_url(self) -> str:
        return self._url

    async def list_tools(self) -> list[ToolDescriptor]:
        self.list_calls += 1
        if self.fail_discovery:
            raise DiscoveryError("connection refused", server_url=self._url)
        return [
            ToolDescriptor(
                name=t.name,
                description=t.description,
                parameters=dict(t.parameters),
                server_url=self._url,
            )
            for t in self.tools
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        self.invocations.append((name, arguments))
        result = self.results.get(name)
        if isinstance(result, Exception):
            raise result
        if result is None:
            return ToolResult(
                tool_name=name,
                content=[ContentBlock(kind="text", text=f"{name} output")],
            )
        return result

    async def close(self) -> None:
        self.closed = True


def text_result(text: str) -> CompletionResult:
    return CompletionResult(text=text)


def tool_result(*calls: ToolCall, text: str = "") -> CompletionResult:
    return CompletionResult(text=text, tool_calls=list(calls))
