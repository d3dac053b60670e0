"""Domain entities, exceptions and port interfaces for the agent module."""

from .entities import (
    AgentResponse,
    AgentState,
    ChatEvent,
    ChatEventType,
    CompletionResult,
    ContentBlock,
    ErrorType,
    Message,
    MessageRole,
    PlanStep,
    Session,
    ToolCall,
    ToolDescriptor,
    ToolResult,
)
from .exceptions import (
    AgentError,
    ArgumentError,
    CompletionError,
    ConfigurationError,
    DiscoveryError,
    InvocationError,
    PersistenceError,
)
from .ports import ILLMProvider, ISessionRepository, IToolServerClient

__all__ = [
    # Entities
    "AgentResponse",
    "AgentState",
    "ChatEvent",
    "ChatEventType",
    "CompletionResult",
    "ContentBlock",
    "ErrorType",
    "Message",
    "MessageRole",
    "PlanStep",
    "Session",
    "ToolCall",
    "ToolDescriptor",
    "ToolResult",
    # Exceptions
    "AgentError",
    "ArgumentError",
    "CompletionError",
    "ConfigurationError",
    "DiscoveryError",
    "InvocationError",
    "PersistenceError",
    # Ports
    "ILLMProvider",
    "ISessionRepository",
    "IToolServerClient",
]
