"""
Streaming completion helpers.

ToolCallAccumulator reassembles tool calls from the fragments a
streaming completion delivers; CompletionStream exposes a provider's
event stream as a pull-based iterator of text fragments whose final
structured result is available once the stream is exhausted.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from ..domain.entities import (
    ChatEvent,
    ChatEventType,
    CompletionResult,
    ErrorType,
    ToolCall,
)
from ..domain.exceptions import CompletionError

logger = logging.getLogger(__name__)


@dataclass
class _PartialToolCall:
    id: Optional[str] = None
    name: str = ""
    arguments: str = ""


class ToolCallAccumulator:
    """Accumulates tool-call fragments keyed by their index.

    Name and argument fragments for the same index are concatenated in
    arrival order. Calls are finalized in index order.
    """

    def __init__(self):
        self._calls: dict[int, _PartialToolCall] = {}

    def add(
        self,
        index: int,
        tool_call_id: Optional[str] = None,
        name: Optional[str] = None,
        arguments: Optional[str] = None,
    ) -> None:
        partial = self._calls.setdefault(index, _PartialToolCall())
        if tool_call_id and not partial.id:
            partial.id = tool_call_id
        if name:
            partial.name += name
        if arguments:
            partial.arguments += arguments

    def add_event(self, event: ChatEvent) -> None:
        """Add the fragment carried by a TOOL_CALL_DELTA event."""
        self.add(
            event.tool_index or 0,
            tool_call_id=event.tool_call_id,
            name=event.tool_name,
            arguments=event.tool_arguments,
        )

    def __len__(self) -> int:
        return len(self._calls)

    def finalize(self) -> list[ToolCall]:
        """Build ToolCall objects from the accumulated fragments.

        Fragments that never received a name are skipped. Arguments that
        are not valid JSON are preserved under a ``raw`` key.
        """
        calls = []
        for index in sorted(self._calls):
            partial = self._calls[index]
            if not partial.name:
                logger.debug(f"Skipping unnamed tool call fragment at index {index}")
                continue
            try:
                arguments = json.loads(partial.arguments) if partial.arguments else {}
            except json.JSONDecodeError:
                arguments = {"raw": partial.arguments}
            if not isinstance(arguments, dict):
                arguments = {"raw": partial.arguments}

            call = ToolCall(name=partial.name, arguments=arguments)
            if partial.id:
                call.id = partial.id
            calls.append(call)
        return calls


class CompletionStream:
    """Pull-based, finite, non-restartable stream of text fragments.

    Usage:
        stream = provider.stream(messages, tools)
        async for fragment in stream:
            print(fragment, end="")
        result = stream.result  # CompletionResult, or None if abandoned

    Stopping iteration early leaves ``result`` as None and discards any
    accumulated tool calls.
    """

    def __init__(self, events: AsyncIterator[ChatEvent]):
        self._events = events
        self._started = False
        self._iterator = None
        self._text_parts: list[str] = []
        self._accumulator = ToolCallAccumulator()
        self.result: Optional[CompletionResult] = None

    def __aiter__(self) -> AsyncIterator[str]:
        if self._started:
            raise RuntimeError("CompletionStream can only be iterated once")
        self._started = True
        self._iterator = self._iterate()
        return self._iterator

    async def aclose(self) -> None:
        """Abandon the stream and release the underlying connection."""
        if self._iterator is not None:
            await self._iterator.aclose()
        else:
            aclose = getattr(self._events, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _iterate(self) -> AsyncIterator[str]:
        try:
            async for event in self._events:
                if event.type == ChatEventType.TEXT_DELTA:
                    if event.content:
                        self._text_parts.append(event.content)
                        yield event.content

                elif event.type == ChatEventType.TOOL_CALL_DELTA:
                    self._accumulator.add_event(event)

                elif event.type == ChatEventType.ERROR:
                    raise CompletionError(
                        event.error or "Completion stream failed",
                        error_type=event.error_type or ErrorType.RECOVERABLE,
                    )

                elif event.type == ChatEventType.DONE:
                    break
        finally:
            aclose = getattr(self._events, "aclose", None)
            if aclose is not None:
                await aclose()

        self.result = CompletionResult(
            text="".join(self._text_parts),
            tool_calls=self._accumulator.finalize(),
        )

    @property
    def text(self) -> str:
        """Text received so far."""
        return "".join(self._text_parts)
