"""
Prompt Builder for Agent Orchestrator.

Encapsulates prompt and synthetic message construction:
- Loading the system prompt from a markdown file
- Chain-of-thought system prompt and reasoning preface
- The plan-and-execute system prompt
- Tool announcement and observation messages
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, Sequence, Union

from ..domain.entities import ToolCall, ToolDescriptor, ToolResult

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are an Azure Functions expert assistant. "
    "Provide helpful guidance on Azure Functions development."
)

CHAIN_OF_THOUGHT_SYSTEM_PROMPT = (
    "You are an expert AI assistant. Think step by step, explain your "
    "reasoning before answering, and break down problems into logical steps."
)

CHAIN_OF_THOUGHT_PREFACE = (
    "Let's break down the problem and reason step by step before answering."
)

OBSERVATION_HEADER = "Based on these tool results, please provide a helpful response:"

CONTINUATION_PROMPT = (
    "Continue working on the task. Call a tool if you need more information, "
    "or set is_task_complete to true and provide the final_answer."
)

USER_MESSAGE_PLACEHOLDER = "{{USER_MESSAGE}}"
TOOLS_PLACEHOLDER = "{{TOOLS}}"

PLAN_EXECUTE_TEMPLATE = """You are an Azure Functions expert agent that solves tasks by planning and executing steps.

On every turn, reason about the current situation, keep an ordered plan of the
remaining steps, and call tools when you need information you do not have.
Tool results are returned to you as observations in the next message.

Available tools:
{{TOOLS}}

Always respond with a single JSON object of this shape:

{
  "thought": "My reasoning about the current situation",
  "plan": [
    "Step 1: First action to take",
    "Step 2: Second action to take"
  ],
  "tool_calls": [
    {
      "tool_name": "name-of-tool",
      "arguments": {"param": "value"}
    }
  ],
  "is_task_complete": false,
  "final_answer": "Only present when complete"
}

Set "is_task_complete" to true and provide "final_answer" once the task is done.
Leave "tool_calls" empty when no tool is needed.

The user's request is:
{{USER_MESSAGE}}
"""


class PromptBuilder:
    """Manages prompt construction for the agent.

    Usage:
        prompt_builder = PromptBuilder(
            system_prompt=PromptBuilder.load_system_prompt("system_prompt.md"),
        )

        system_prompt = prompt_builder.build()
        plan_prompt = prompt_builder.build_plan_prompt(user_text, tools)
    """

    def __init__(
        self,
        system_prompt: Optional[str] = None,
        chain_of_thought: bool = False,
        plan_template: str = PLAN_EXECUTE_TEMPLATE,
    ):
        """Initialize the prompt builder.

        Args:
            system_prompt: Base system prompt (None for the built-in default)
            chain_of_thought: Use the step-by-step prompt when no base prompt is set
            plan_template: Template for plan-and-execute mode
        """
        self.system_prompt = system_prompt
        self.chain_of_thought = chain_of_thought
        self.plan_template = plan_template

    @staticmethod
    def load_system_prompt(path: Optional[Union[str, Path]]) -> str:
        """Read a system prompt from a markdown file.

        Falls back to the built-in prompt if the file is missing or empty.
        """
        if not path:
            return DEFAULT_SYSTEM_PROMPT

        try:
            text = Path(path).read_text(encoding="utf-8").strip()
        except OSError as e:
            logger.warning(f"Could not read system prompt from {path}: {e}")
            return DEFAULT_SYSTEM_PROMPT

        if not text:
            logger.warning(f"System prompt file {path} is empty - using default")
            return DEFAULT_SYSTEM_PROMPT

        logger.info(f"Loaded system prompt from {path}")
        return text

    def build(self) -> str:
        """Return the system prompt for a regular turn."""
        if self.system_prompt:
            return self.system_prompt
        if self.chain_of_thought:
            return CHAIN_OF_THOUGHT_SYSTEM_PROMPT
        return DEFAULT_SYSTEM_PROMPT

    def build_plan_prompt(
        self,
        user_message: str,
        tools: Sequence[ToolDescriptor] = (),
    ) -> str:
        """Render the plan-and-execute system prompt."""
        if tools:
            tool_lines = "\n".join(
                f"- {tool.name}: {tool.description} "
                f"(arguments schema: {json.dumps(tool.parameters or {})})"
                for tool in tools
            )
        else:
            tool_lines = "(no tools are available)"

        return self.plan_template.replace(TOOLS_PLACEHOLDER, tool_lines).replace(
            USER_MESSAGE_PLACEHOLDER, user_message
        )

    @staticmethod
    def tool_announcement(tool_calls: Sequence[ToolCall]) -> str:
        """Synthetic assistant message naming the tools about to be used."""
        names = ", ".join(call.name for call in tool_calls)
        return f"I'll use the {names} tool(s) to help you."

    @staticmethod
    def observation(results: Sequence[ToolResult]) -> str:
        """One observation message with a line per result, in order."""
        lines = [OBSERVATION_HEADER]
        for result in results:
            label = "error" if result.is_error else "result"
            lines.append(f"Tool {result.tool_name} {label}: {result.text}")
        return "\n".join(lines)
