"""
Domain entities for the tool-augmented agent.

These are pure domain objects with no infrastructure dependencies.
They define the core data structures shared by the orchestrator,
the completion providers, the tool layer and the session stores.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


# ============================================
# Message Types
# ============================================


class MessageRole(str, Enum):
    """Role of a message in a conversation."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass
class Message:
    """A single message in a session's history.

    Attributes:
        role: Message role (system, user, assistant)
        content: Message text content
        session_id: Owning session identifier
        created_at: Creation timestamp
    """

    role: MessageRole
    content: str
    session_id: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.role, str) and not isinstance(self.role, MessageRole):
            self.role = MessageRole(self.role)
        if self.created_at is None:
            self.created_at = utcnow()

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted record shape."""
        return {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.created_at.isoformat() if self.created_at else None,
            "sessionId": self.session_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        """Rebuild a message from its persisted record shape."""
        return cls(
            role=MessageRole(data["role"]),
            content=data.get("content", ""),
            session_id=data.get("sessionId"),
            created_at=_parse_timestamp(data.get("timestamp")),
        )


# ============================================
# Session
# ============================================


@dataclass
class Session:
    """A durable, identified conversation context.

    Attributes:
        session_id: Stable session identifier
        messages: Ordered message history
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    session_id: str
    messages: list[Message] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = (
                self.messages[0].created_at if self.messages else utcnow()
            )
        if self.updated_at is None:
            self.updated_at = self.created_at

    def add_message(self, message: Message) -> None:
        """Append a message to this session."""
        message.session_id = self.session_id
        self.messages.append(message)
        self.updated_at = utcnow()

    def to_record(self) -> dict[str, Any]:
        """Serialize to the persistence record shape."""
        return {
            "id": self.session_id,
            "sessionId": self.session_id,
            "messages": [m.to_dict() for m in self.messages],
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Session:
        """Rebuild a session from its persistence record."""
        return cls(
            session_id=record.get("sessionId") or record["id"],
            messages=[Message.from_dict(m) for m in record.get("messages", [])],
            created_at=_parse_timestamp(record.get("createdAt")),
            updated_at=_parse_timestamp(record.get("updatedAt")),
        )

    def copy(self) -> Session:
        """Deep copy, so stores never share mutable state with callers."""
        return copy.deepcopy(self)


# ============================================
# Tool System
# ============================================


@dataclass
class ToolDescriptor:
    """Published name, description and schema of a callable tool.

    Attributes:
        name: Tool name, unique within a registry
        description: Human-readable description
        parameters: JSON Schema for the tool arguments
        server_url: Base URL of the tool server that owns this tool
    """

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)
    server_url: Optional[str] = None

    def allowed_arguments(self) -> set[str]:
        """Names of the parameters declared in the schema."""
        properties = self.parameters.get("properties") or {}
        return set(properties.keys())

    def to_openai_format(self) -> dict[str, Any]:
        """Convert to OpenAI function calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters or {"type": "object", "properties": {}},
            },
        }

    def to_anthropic_format(self) -> dict[str, Any]:
        """Convert to Anthropic tool use format."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameters or {"type": "object", "properties": {}},
        }


@dataclass
class ToolCall:
    """A tool call requested by the model.

    Attributes:
        name: Tool name being called
        arguments: Arguments passed to the tool
        id: Tool call identifier (for correlation)
    """

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class ContentBlock:
    """One block of tool output."""

    kind: str
    text: str


@dataclass
class ToolResult:
    """Result from a tool invocation.

    Errors are carried by the ``is_error`` flag instead of being raised,
    so the agent loop can keep going.

    Attributes:
        tool_name: Name of the tool that produced this result
        content: Ordered content blocks
        is_error: True if the invocation failed
        latency_ms: Execution time in milliseconds
    """

    tool_name: str
    content: list[ContentBlock] = field(default_factory=list)
    is_error: bool = False
    latency_ms: Optional[int] = None

    @property
    def text(self) -> str:
        """Concatenated text of all content blocks."""
        return "\n".join(block.text for block in self.content if block.text)

    @classmethod
    def error(cls, tool_name: str, message: str) -> ToolResult:
        """Create an error-flagged result carrying a diagnostic."""
        return cls(
            tool_name=tool_name,
            content=[ContentBlock(kind="text", text=message)],
            is_error=True,
        )


# ============================================
# Completion and Agent Results
# ============================================


class AgentState(str, Enum):
    """States of the agent loop during a turn."""

    IDLE = "idle"
    AWAITING_COMPLETION = "awaiting_completion"
    TOOL_EXECUTION = "tool_execution"
    AWAITING_FINAL_COMPLETION = "awaiting_final_completion"


@dataclass
class CompletionResult:
    """Outcome of a completion request: final text or requested tool calls."""

    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


@dataclass
class AgentResponse:
    """Result of one conversational turn.

    Attributes:
        text: Final answer text
        tool_calls: Tool calls made during the turn
        error: Error message if the turn failed
        is_complete: False when the plan-and-execute cap was hit
        iterations: Number of plan-and-execute iterations used
        is_streaming: True when produced by the streaming entry point
    """

    text: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    error: Optional[str] = None
    is_complete: bool = True
    iterations: int = 0
    is_streaming: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


def _is_true(value: Any) -> bool:
    """Strict flag parsing: only ``True`` or the string "true" count."""
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


@dataclass
class PlanStep:
    """Structured model response in plan-and-execute mode.

    Attributes:
        thought: The model's reasoning about the current situation
        plan: Remaining steps, in order
        tool_calls: Tools to run in this iteration
        is_task_complete: True when the model considers the task done
        final_answer: Answer text, present when complete
    """

    thought: str = ""
    plan: list[str] = field(default_factory=list)
    tool_calls: list[ToolCall] = field(default_factory=list)
    is_task_complete: bool = False
    final_answer: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlanStep:
        """Build from the model's JSON object.

        Accepts both ``tool_name`` and ``name`` keys for tool calls.
        """
        calls = []
        for raw in data.get("tool_calls") or []:
            if not isinstance(raw, dict):
                continue
            name = raw.get("tool_name") or raw.get("name")
            if not name:
                continue
            arguments = raw.get("arguments") or {}
            if not isinstance(arguments, dict):
                arguments = {}
            calls.append(ToolCall(name=name, arguments=arguments))

        plan = data.get("plan") or []
        if isinstance(plan, str):
            plan = [plan]

        return cls(
            thought=str(data.get("thought") or ""),
            plan=[str(step) for step in plan],
            tool_calls=calls,
            is_task_complete=_is_true(data.get("is_task_complete", False)),
            final_answer=data.get("final_answer"),
        )


# ============================================
# Streaming Events
# ============================================


class ChatEventType(str, Enum):
    """Types of streaming chat events."""

    TEXT_DELTA = "text_delta"  # Partial text token
    TOOL_CALL_DELTA = "tool_call_delta"  # Partial tool call name/arguments
    ERROR = "error"  # Error occurred
    DONE = "done"  # Stream finished


class ErrorType(str, Enum):
    """Types of errors in streaming."""

    RECOVERABLE = "recoverable"  # Can retry
    FATAL = "fatal"  # Must abort
    TIMEOUT = "timeout"  # Tool/LLM timeout
    RATE_LIMIT = "rate_limit"  # Rate limited, back off


@dataclass
class ChatEvent:
    """A streaming chat event.

    Attributes:
        type: Event type
        sequence: Sequence number for ordering
        content: Text content (TEXT_DELTA, ERROR)
        tool_index: Call index for TOOL_CALL_DELTA fragments
        tool_call_id: Provider-assigned call id
        tool_name: Tool name, or name fragment for TOOL_CALL_DELTA
        tool_arguments: Raw argument fragment for TOOL_CALL_DELTA
        error: Error message (ERROR events)
        error_type: Type of error
    """

    type: ChatEventType
    sequence: int
    content: Optional[str] = None
    tool_index: Optional[int] = None
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None
    tool_arguments: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[ErrorType] = None
