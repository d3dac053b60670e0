"""Tool-augmented Azure Functions assistant.

Combines a completion provider (Azure OpenAI, OpenAI or Claude) with tools
discovered from MCP servers, keeping per-session history that can be
persisted to PostgreSQL.

Usage:
    from azfunc_assistant.agent import AgentSettings, create_orchestrator

    orchestrator = await create_orchestrator(AgentSettings.from_env())
    response = await orchestrator.process_turn("How do I add a queue trigger?")
"""

from .bootstrap import create_llm_provider, create_orchestrator, create_tool_registry
from .config import AgentSettings, configure_logging
from .domain import (
    AgentResponse,
    AgentState,
    Message,
    MessageRole,
    Session,
    ToolCall,
    ToolDescriptor,
    ToolResult,
)
from .orchestrator import AgentConfig, AgentOrchestrator, TurnStream

__all__ = [
    "AgentConfig",
    "AgentOrchestrator",
    "AgentResponse",
    "AgentSettings",
    "AgentState",
    "Message",
    "MessageRole",
    "Session",
    "ToolCall",
    "ToolDescriptor",
    "ToolResult",
    "TurnStream",
    "configure_logging",
    "create_llm_provider",
    "create_orchestrator",
    "create_tool_registry",
]
