"""Exception hierarchy for the agent core.

Design Principles:
    - All exceptions inherit from AgentError
    - Exceptions preserve context (original error, timestamps, details)
    - Exceptions are categorized by recoverability

Exception Hierarchy:
    AgentError (base)
    ├── ConfigurationError (unrecoverable - fix config)
    ├── DiscoveryError (degrade to zero tools)
    ├── InvocationError (becomes an error-flagged ToolResult)
    ├── CompletionError (terminal for the current turn)
    ├── PersistenceError (logged; memory stays authoritative)
    └── ArgumentError (unknown tool arguments were dropped)

Only CompletionError is surfaced to callers as a failed turn.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from .entities import ErrorType


class AgentError(Exception):
    """Base exception for all agent errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code
        details: Additional context as a dictionary
        timestamp: When the error occurred
        cause: The original exception that caused this error
        recoverable: Whether a retry might succeed
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__.upper()
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)
        self.cause = cause
        self.recoverable = recoverable

        if cause:
            self.__cause__ = cause

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"details={self.details!r}, "
            f"recoverable={self.recoverable})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
            "cause": str(self.cause) if self.cause else None,
        }


class ConfigurationError(AgentError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list[str]] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(
            message,
            code="CONFIGURATION_ERROR",
            details=details,
            recoverable=False,
            **kwargs,
        )
        self.missing_keys = missing_keys or []


class DiscoveryError(AgentError):
    """Raised when a tool server cannot be reached during discovery."""

    def __init__(self, message: str, server_url: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if server_url:
            details["server_url"] = server_url
        kwargs.setdefault("recoverable", True)
        super().__init__(message, code="DISCOVERY_ERROR", details=details, **kwargs)
        self.server_url = server_url


class InvocationError(AgentError):
    """Raised inside the tool layer when a single tool call fails."""

    def __init__(
        self,
        message: str,
        tool_name: str,
        status_code: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["tool_name"] = tool_name
        if status_code:
            details["status_code"] = status_code
        kwargs.setdefault("recoverable", True)
        super().__init__(message, code="INVOCATION_ERROR", details=details, **kwargs)
        self.tool_name = tool_name
        self.status_code = status_code


class CompletionError(AgentError):
    """Raised when the completion service fails or returns garbage."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.RECOVERABLE,
        **kwargs,
    ):
        kwargs.setdefault("recoverable", error_type != ErrorType.FATAL)
        super().__init__(message, code="COMPLETION_ERROR", **kwargs)
        self.error_type = error_type


class PersistenceError(AgentError):
    """Raised when the durable session store fails."""

    def __init__(self, message: str, session_id: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if session_id:
            details["session_id"] = session_id
        kwargs.setdefault("recoverable", True)
        super().__init__(message, code="PERSISTENCE_ERROR", details=details, **kwargs)
        self.session_id = session_id


class ArgumentError(AgentError):
    """Describes tool-call arguments that fall outside the declared schema."""

    def __init__(self, tool_name: str, dropped: list[str], **kwargs):
        super().__init__(
            f"Dropped undeclared arguments for {tool_name}: {', '.join(dropped)}",
            code="ARGUMENT_ERROR",
            details={"tool_name": tool_name, "dropped": dropped},
            **kwargs,
        )
        self.tool_name = tool_name
        self.dropped = dropped
