"""Memory system for the agent.

Provides:
- In-memory conversation history for the active session
- Durable session persistence (PostgreSQL or in-process)
"""

from .conversation import ConversationStore
from .session_store import (
    InMemorySessionStore,
    PostgresSessionStore,
    create_session_store,
)

__all__ = [
    "ConversationStore",
    "InMemorySessionStore",
    "PostgresSessionStore",
    "create_session_store",
]
