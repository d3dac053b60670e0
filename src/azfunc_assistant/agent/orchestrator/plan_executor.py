"""
Plan-and-Execute Loop.

Bounded multi-step variant of a turn: each iteration asks the model for
a structured JSON step (thought, plan, tool calls, completion flag),
runs the requested tools and feeds the observation back, until the
model reports the task complete or the iteration cap is reached.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Callable, Optional

from ..domain.entities import (
    AgentResponse,
    AgentState,
    MessageRole,
    PlanStep,
    ToolCall,
    ToolDescriptor,
)
from ..domain.exceptions import CompletionError
from ..domain.ports import ILLMProvider
from .conversation_manager import ConversationManager
from .prompt_builder import CONTINUATION_PROMPT, PromptBuilder
from .tool_executor import ToolExecutor

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")

NO_PARTIAL_ANSWER_TEXT = "No final response generated"


def parse_plan_step(text: str) -> PlanStep:
    """Parse the model's JSON response into a PlanStep.

    Raises:
        CompletionError: If the text is not a JSON object
    """
    cleaned = _CODE_FENCE.sub("", text.strip())
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise CompletionError(
            f"Plan response was not valid JSON: {e}", cause=e
        ) from e
    if not isinstance(data, dict):
        raise CompletionError("Plan response was not a JSON object")
    return PlanStep.from_dict(data)


class PlanExecutor:
    """Runs the plan-and-execute loop for one turn.

    The user message is expected to be in the history already. Every
    iteration that runs tools appends one announcement and one
    observation message; an iteration that neither runs tools nor
    completes appends the model's thought and a continuation nudge.

    Usage:
        executor = PlanExecutor(llm, tool_executor, conversation, prompts)
        response = await executor.run(user_text, tools)
    """

    def __init__(
        self,
        llm_provider: ILLMProvider,
        tool_executor: ToolExecutor,
        conversation: ConversationManager,
        prompt_builder: PromptBuilder,
        max_iterations: int = 10,
        on_state: Optional[Callable[[AgentState], None]] = None,
    ):
        """Initialize the plan executor.

        Args:
            llm_provider: Completion provider (JSON mode is requested)
            tool_executor: Executor for the tool calls of each step
            conversation: History of the session being served
            prompt_builder: Builds the plan-and-execute system prompt
            max_iterations: Iteration cap
            on_state: Callback receiving each state as the loop advances
        """
        self.llm = llm_provider
        self.executor = tool_executor
        self.conversation = conversation
        self.prompts = prompt_builder
        self.max_iterations = max(1, max_iterations)
        self._on_state = on_state or (lambda state: None)

    async def run(
        self,
        user_message: str,
        tools: list[ToolDescriptor],
    ) -> AgentResponse:
        """Iterate until the model completes the task or the cap is hit.

        Raises:
            CompletionError: If a completion fails or cannot be parsed
        """
        system_prompt = self.prompts.build_plan_prompt(user_message, tools)
        tool_calls: list[ToolCall] = []
        last_thought = ""
        last_observation = ""

        for iteration in range(1, self.max_iterations + 1):
            self._on_state(AgentState.AWAITING_COMPLETION)
            completion = await self.llm.complete(
                list(self.conversation.messages),
                system_prompt=system_prompt,
                json_mode=True,
            )
            step = parse_plan_step(completion.text)
            logger.info(
                f"Plan iteration {iteration}/{self.max_iterations}: "
                f"{len(step.tool_calls)} tool call(s), complete={step.is_task_complete}"
            )
            if step.thought:
                last_thought = step.thought

            if step.is_task_complete:
                answer = step.final_answer or step.thought or NO_PARTIAL_ANSWER_TEXT
                await self.conversation.append_role(MessageRole.ASSISTANT, answer)
                return AgentResponse(
                    text=answer,
                    tool_calls=tool_calls,
                    is_complete=True,
                    iterations=iteration,
                )

            if step.tool_calls:
                self._on_state(AgentState.TOOL_EXECUTION)
                results = await self.executor.execute_all(step.tool_calls)
                tool_calls.extend(step.tool_calls)

                last_observation = self.prompts.observation(results)
                await self.conversation.append_role(
                    MessageRole.ASSISTANT,
                    self.prompts.tool_announcement(step.tool_calls),
                )
                await self.conversation.append_role(MessageRole.USER, last_observation)
            else:
                if step.thought:
                    await self.conversation.append_role(MessageRole.ASSISTANT, step.thought)
                await self.conversation.append_role(MessageRole.USER, CONTINUATION_PROMPT)

        logger.warning(
            f"Plan-and-execute stopped after {self.max_iterations} iterations "
            "without the task being completed"
        )
        partial = last_thought or last_observation or NO_PARTIAL_ANSWER_TEXT
        await self.conversation.append_role(MessageRole.ASSISTANT, partial)
        return AgentResponse(
            text=partial,
            tool_calls=tool_calls,
            is_complete=False,
            iterations=self.max_iterations,
        )
