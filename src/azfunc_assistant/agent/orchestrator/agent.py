"""
Agent Orchestrator.

Main orchestration logic for the assistant. Coordinates:
- Completion calls (plain, streaming and plan-and-execute)
- Tool discovery, execution and observation handling
- Session history and persistence
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

from ..domain.entities import (
    AgentResponse,
    AgentState,
    CompletionResult,
    Message,
    MessageRole,
    ToolCall,
    ToolDescriptor,
)
from ..domain.exceptions import CompletionError, DiscoveryError
from ..domain.ports import ILLMProvider, ISessionRepository
from ..providers.stream import CompletionStream
from ..tools.registry import ToolRegistry
from .conversation_manager import ConversationManager
from .plan_executor import PlanExecutor
from .prompt_builder import CHAIN_OF_THOUGHT_PREFACE, PromptBuilder
from .tool_executor import ToolExecutor

logger = logging.getLogger(__name__)

NO_RESPONSE_TEXT = "No response generated"
NO_FINAL_RESPONSE_TEXT = "No final response generated"
ERROR_RESPONSE_TEXT = "Sorry, I encountered an error while processing your message."


@dataclass
class AgentConfig:
    """Configuration for the agent orchestrator.

    Attributes:
        system_prompt: System prompt (None for the built-in default)
        chain_of_thought: Insert a reasoning preface before each user message
        max_iterations: Iteration cap for plan-and-execute turns
        parallel_tool_calls: Run the tool calls of one turn concurrently
        tools_in_final_completion: Offer tools again when asking for the final answer
    """

    system_prompt: Optional[str] = None
    chain_of_thought: bool = False
    max_iterations: int = 10
    parallel_tool_calls: bool = False
    tools_in_final_completion: bool = False


class TurnStream:
    """Text fragments of a streaming turn, followed by its response.

    Usage:
        turn = orchestrator.process_turn_stream("How do I add a timer trigger?")
        async for fragment in turn:
            print(fragment, end="")
        response = turn.response

    ``response`` stays None if the consumer stops pulling early; no
    final assistant message is committed in that case. On a tool turn the
    tool announcement and observation are appended before the final stream
    starts, so they remain in history even when the final stream is
    abandoned.
    """

    def __init__(self, factory: Callable[[TurnStream], AsyncIterator[str]]):
        self._factory = factory
        self._iterator: Optional[AsyncIterator[str]] = None
        self.response: Optional[AgentResponse] = None

    def __aiter__(self) -> AsyncIterator[str]:
        if self._iterator is not None:
            raise RuntimeError("TurnStream can only be iterated once")
        self._iterator = self._factory(self)
        return self._iterator

    async def aclose(self) -> None:
        """Abandon the turn."""
        if self._iterator is not None:
            await self._iterator.aclose()


class AgentOrchestrator:
    """Tool-augmented conversation loop bound to one session.

    Manages the conversation loop:
    1. Append the user message
    2. Discover tools (cached by the registry)
    3. Ask the model for an answer or tool calls
    4. Run requested tools, append announcement and observation
    5. Ask the model for the final answer and append it

    Turns must be awaited one at a time per orchestrator.

    Usage:
        orchestrator = AgentOrchestrator(
            llm_provider=provider,
            tool_registry=registry,
            session_store=store,
        )
        await orchestrator.initialize_session()

        response = await orchestrator.process_turn("Show me an HTTP trigger in Python")
    """

    def __init__(
        self,
        llm_provider: ILLMProvider,
        tool_registry: ToolRegistry,
        session_store: Optional[ISessionRepository] = None,
        config: Optional[AgentConfig] = None,
        session_id: Optional[str] = None,
    ):
        """Initialize the agent orchestrator.

        Args:
            llm_provider: Completion provider
            tool_registry: Registry of discovered tools
            session_store: Durable session store (None for in-memory only)
            config: Agent configuration
            session_id: Session to serve (a new id is generated if None)
        """
        self.llm = llm_provider
        self.tools = tool_registry
        self.config = config or AgentConfig()
        self.session_id = session_id or str(uuid.uuid4())

        self.prompts = PromptBuilder(
            system_prompt=self.config.system_prompt,
            chain_of_thought=self.config.chain_of_thought,
        )
        self.conversation = ConversationManager(self.session_id, session_store)
        self.executor = ToolExecutor(tool_registry, parallel=self.config.parallel_tool_calls)

        self.state = AgentState.IDLE
        self._session_initialized = False

    # ============================================
    # Session and tools
    # ============================================

    def current_session_id(self) -> str:
        return self.session_id

    async def initialize_session(self) -> bool:
        """Restore persisted history, or seed a new session with the system prompt.

        Returns:
            True if an existing session was restored
        """
        restored = await self.conversation.restore()
        if not restored and not self._has_system_message():
            await self.conversation.append_role(MessageRole.SYSTEM, self.prompts.build())
            logger.info(f"Started new session {self.session_id}")
        self._session_initialized = True
        return restored

    async def initialize_tools(self, refresh: bool = False) -> list[ToolDescriptor]:
        """Discover tools, degrading to none if discovery fails."""
        try:
            return await self.tools.discover(refresh=refresh)
        except DiscoveryError as e:
            logger.warning(f"Continuing without tools: {e}")
            return []

    def registered_tool_names(self) -> list[str]:
        return self.tools.tool_names()

    def get_history(self) -> list[Message]:
        """Session history, in order."""
        return list(self.conversation.messages)

    async def clear_history(self) -> None:
        """Remove all but system messages and save the session."""
        await self.conversation.clear()

    async def persist_session(self) -> bool:
        """Save the whole session to the durable store."""
        return await self.conversation.persist()

    async def close(self) -> None:
        """Persist the session and release network resources."""
        await self.persist_session()
        await self.tools.close()
        await self.llm.close()

    # ============================================
    # Turns
    # ============================================

    async def process_turn(self, user_message: str) -> AgentResponse:
        """Run one conversational turn.

        Args:
            user_message: User's input text

        Returns:
            AgentResponse; completion failures are reported in ``error``
        """
        tools = await self._begin_turn(user_message)

        try:
            self._set_state(AgentState.AWAITING_COMPLETION)
            completion = await self.llm.complete(
                self.get_history(),
                tools=tools or None,
                system_prompt=self._system_prompt(),
            )

            if completion.has_tool_calls:
                await self._run_tools(completion.tool_calls)

                self._set_state(AgentState.AWAITING_FINAL_COMPLETION)
                final = await self.llm.complete(
                    self.get_history(),
                    tools=self._final_tools(tools),
                    system_prompt=self._system_prompt(),
                )
                return await self._finish(
                    final.text or NO_FINAL_RESPONSE_TEXT, completion.tool_calls
                )

            return await self._finish(completion.text or NO_RESPONSE_TEXT, [])

        except CompletionError as e:
            return self._error_response(e)
        finally:
            self._set_state(AgentState.IDLE)

    def process_turn_stream(self, user_message: str) -> TurnStream:
        """Run one turn, streaming the answer text as it arrives.

        Returns:
            TurnStream; its ``response`` is set once the stream is exhausted
        """
        return TurnStream(lambda turn: self._stream_turn(user_message, turn))

    async def process_turn_with_plan(self, user_message: str) -> AgentResponse:
        """Run one turn in plan-and-execute mode.

        Returns:
            AgentResponse with ``is_complete=False`` if the iteration cap was hit
        """
        tools = await self._begin_turn(user_message)
        planner = PlanExecutor(
            self.llm,
            self.executor,
            self.conversation,
            self.prompts,
            max_iterations=self.config.max_iterations,
            on_state=self._set_state,
        )

        try:
            return await planner.run(user_message, tools)
        except CompletionError as e:
            return self._error_response(e)
        finally:
            self._set_state(AgentState.IDLE)

    async def _stream_turn(
        self, user_message: str, turn: TurnStream
    ) -> AsyncIterator[str]:
        tools = await self._begin_turn(user_message)
        stream: Optional[CompletionStream] = None

        try:
            self._set_state(AgentState.AWAITING_COMPLETION)
            stream = CompletionStream(
                self.llm.chat(
                    self.get_history(),
                    tools=tools or None,
                    system_prompt=self._system_prompt(),
                )
            )
            async for fragment in stream:
                yield fragment
            result = stream.result or CompletionResult()

            if result.has_tool_calls:
                await self._run_tools(result.tool_calls)

                self._set_state(AgentState.AWAITING_FINAL_COMPLETION)
                stream = CompletionStream(
                    self.llm.chat(
                        self.get_history(),
                        tools=self._final_tools(tools),
                        system_prompt=self._system_prompt(),
                    )
                )
                async for fragment in stream:
                    yield fragment
                final = stream.result or CompletionResult()
                response = await self._finish(
                    final.text or NO_FINAL_RESPONSE_TEXT, result.tool_calls
                )
            else:
                response = await self._finish(result.text or NO_RESPONSE_TEXT, [])

            response.is_streaming = True
            turn.response = response

        except CompletionError as e:
            response = self._error_response(e)
            response.is_streaming = True
            turn.response = response
        finally:
            if stream is not None:
                await stream.aclose()
            self._set_state(AgentState.IDLE)

    # ============================================
    # Helpers
    # ============================================

    async def _begin_turn(self, user_message: str) -> list[ToolDescriptor]:
        if not self._session_initialized:
            await self.initialize_session()

        if self.config.chain_of_thought:
            await self.conversation.append_role(
                MessageRole.ASSISTANT, CHAIN_OF_THOUGHT_PREFACE
            )
        await self.conversation.append_role(MessageRole.USER, user_message)

        return await self.initialize_tools()

    async def _run_tools(self, tool_calls: list[ToolCall]) -> None:
        """Execute the calls, then append one announcement and one observation."""
        self._set_state(AgentState.TOOL_EXECUTION)
        results = await self.executor.execute_all(tool_calls)

        await self.conversation.append_role(
            MessageRole.ASSISTANT, self.prompts.tool_announcement(tool_calls)
        )
        await self.conversation.append_role(
            MessageRole.USER, self.prompts.observation(results)
        )

    async def _finish(self, text: str, tool_calls: list[ToolCall]) -> AgentResponse:
        await self.conversation.append_role(MessageRole.ASSISTANT, text)
        return AgentResponse(text=text, tool_calls=list(tool_calls))

    def _final_tools(
        self, tools: list[ToolDescriptor]
    ) -> Optional[list[ToolDescriptor]]:
        if self.config.tools_in_final_completion and tools:
            return tools
        return None

    def _has_system_message(self) -> bool:
        return any(m.role == MessageRole.SYSTEM for m in self.conversation.messages)

    def _system_prompt(self) -> Optional[str]:
        """System prompt to send, unless the history already carries one."""
        if self._has_system_message():
            return None
        return self.prompts.build()

    def _error_response(self, error: CompletionError) -> AgentResponse:
        logger.error(f"Turn failed for session {self.session_id}: {error}")
        return AgentResponse(text=ERROR_RESPONSE_TEXT, error=str(error))

    def _set_state(self, state: AgentState) -> None:
        if state != self.state:
            logger.debug(f"Agent state: {self.state.value} -> {state.value}")
        self.state = state
