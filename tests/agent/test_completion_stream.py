"""
Tests for streaming completion helpers.

Tests cover:
- Tool-call fragment accumulation
- CompletionStream result, early stop and single-use iteration
- Error events surfacing as CompletionError
"""

import pytest

from azfunc_assistant.agent.domain.entities import (
    ChatEvent,
    ChatEventType,
    ErrorType,
    ToolCall,
)
from azfunc_assistant.agent.domain.exceptions import CompletionError
from azfunc_assistant.agent.providers.stream import CompletionStream, ToolCallAccumulator

from fakes import ScriptedProvider, text_result, tool_result


# ============================================
# Helpers
# ============================================


async def _events(*events):
    for event in events:
        yield event


def _text(content, seq=1):
    return ChatEvent(type=ChatEventType.TEXT_DELTA, sequence=seq, content=content)


def _done(seq=99):
    return ChatEvent(type=ChatEventType.DONE, sequence=seq)


# ============================================
# ToolCallAccumulator Tests
# ============================================


class TestToolCallAccumulator:
    """Tests for ToolCallAccumulator."""

    def test_fragments_concatenate_per_index(self):
        acc = ToolCallAccumulator()
        acc.add(0, tool_call_id="call_a", name="get_function_")
        acc.add(1, tool_call_id="call_b", name="search_docs")
        acc.add(0, name="template")
        acc.add(0, arguments='{"trig')
        acc.add(1, arguments='{"query": "cosmos"}')
        acc.add(0, arguments='ger": "timer"}')

        calls = acc.finalize()

        assert [(c.id, c.name, c.arguments) for c in calls] == [
            ("call_a", "get_function_template", {"trigger": "timer"}),
            ("call_b", "search_docs", {"query": "cosmos"}),
        ]

    def test_finalize_orders_by_index(self):
        acc = ToolCallAccumulator()
        acc.add(2, name="third")
        acc.add(0, name="first")

        assert [c.name for c in acc.finalize()] == ["first", "third"]

    def test_invalid_json_kept_raw(self):
        acc = ToolCallAccumulator()
        acc.add(0, name="search_docs", arguments='{"query": ')

        assert acc.finalize()[0].arguments == {"raw": '{"query": '}

    def test_unnamed_fragment_skipped(self):
        acc = ToolCallAccumulator()
        acc.add(0, arguments="{}")

        assert acc.finalize() == []
        assert len(acc) == 1


# ============================================
# CompletionStream Tests
# ============================================


class TestCompletionStream:
    """Tests for CompletionStream."""

    @pytest.mark.asyncio
    async def test_result_after_exhaustion(self):
        stream = CompletionStream(_events(_text("Use a "), _text("timer trigger."), _done()))

        fragments = [f async for f in stream]

        assert fragments == ["Use a ", "timer trigger."]
        assert stream.result.text == "Use a timer trigger."
        assert stream.result.tool_calls == []

    @pytest.mark.asyncio
    async def test_early_stop_leaves_no_result(self):
        stream = CompletionStream(_events(_text("a"), _text("b"), _done()))

        async for _ in stream:
            break
        await stream.aclose()

        assert stream.result is None
        assert stream.text == "a"

    @pytest.mark.asyncio
    async def test_second_iteration_raises(self):
        stream = CompletionStream(_events(_done()))
        async for _ in stream:
            pass

        with pytest.raises(RuntimeError):
            async for _ in stream:
                pass

    @pytest.mark.asyncio
    async def test_error_event_raises_completion_error(self):
        error = ChatEvent(
            type=ChatEventType.ERROR,
            sequence=2,
            error="Rate limited",
            error_type=ErrorType.RATE_LIMIT,
        )
        stream = CompletionStream(_events(_text("partial"), error))

        with pytest.raises(CompletionError) as exc_info:
            async for _ in stream:
                pass

        assert exc_info.value.error_type == ErrorType.RATE_LIMIT
        assert stream.result is None

    @pytest.mark.asyncio
    async def test_tool_calls_exposed_in_result(self):
        provider = ScriptedProvider(
            [tool_result(ToolCall(name="search_docs", arguments={"query": "durable"}))]
        )

        stream = provider.stream([])
        fragments = [f async for f in stream]

        assert fragments == []
        assert stream.result.tool_calls[0].name == "search_docs"
        assert stream.result.tool_calls[0].arguments == {"query": "durable"}

    @pytest.mark.asyncio
    async def test_streaming_matches_complete(self):
        """Concatenated fragments equal the non-streaming text."""
        answer = "Durable Functions orchestrate stateful workflows."
        provider = ScriptedProvider([text_result(answer), text_result(answer)])

        stream = provider.stream([])
        streamed = "".join([f async for f in stream])
        completed = await provider.complete([])

        assert streamed == completed.text == answer
