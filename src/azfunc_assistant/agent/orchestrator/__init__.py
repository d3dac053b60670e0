"""Agent orchestration: the conversation loop and its collaborators."""

from .agent import (
    ERROR_RESPONSE_TEXT,
    NO_FINAL_RESPONSE_TEXT,
    NO_RESPONSE_TEXT,
    AgentConfig,
    AgentOrchestrator,
    TurnStream,
)
from .conversation_manager import ConversationManager
from .plan_executor import PlanExecutor, parse_plan_step
from .prompt_builder import PromptBuilder
from .tool_executor import ToolExecutor

__all__ = [
    "AgentConfig",
    "AgentOrchestrator",
    "ConversationManager",
    "ERROR_RESPONSE_TEXT",
    "NO_FINAL_RESPONSE_TEXT",
    "NO_RESPONSE_TEXT",
    "PlanExecutor",
    "PromptBuilder",
    "ToolExecutor",
    "TurnStream",
    "parse_plan_step",
]
