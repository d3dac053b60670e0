"""
Session Store Implementations.

Durable, key-value persistence of whole sessions keyed by session id,
with upsert semantics. Uses PostgreSQL via asyncpg; an in-memory
implementation is provided for deployments without a database.

Record shape: {id, sessionId, messages[], createdAt, updatedAt}
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, Protocol

import asyncpg

from ..domain.entities import Session
from ..domain.exceptions import PersistenceError
from ..domain.ports import ISessionRepository

logger = logging.getLogger(__name__)


class IAsyncDBPool(Protocol):
    """Protocol for async database pool."""

    def acquire(self): ...
    async def close(self) -> None: ...


_DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


class PostgresSessionStore(ISessionRepository):
    """PostgreSQL-backed session store.

    Each session is one row; messages are stored as a JSON document so
    a save is a single upsert.

    Usage:
        pool = await asyncpg.create_pool(database_url)
        store = PostgresSessionStore(pool)
        await store.ensure_schema()

        await store.save(session)
        restored = await store.load(session.session_id)
    """

    TABLE_NAME = "agent_sessions_history"

    def __init__(self, db_pool: IAsyncDBPool):
        """Initialize the session store.

        Args:
            db_pool: Async database connection pool
        """
        self.db = db_pool

    async def ensure_schema(self) -> None:
        """Create the sessions table if it does not exist."""
        try:
            async with self.db.acquire() as conn:
                await conn.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {self.TABLE_NAME} (
                        id TEXT PRIMARY KEY,
                        session_id TEXT NOT NULL,
                        messages JSONB NOT NULL DEFAULT '[]'::jsonb,
                        created_at TIMESTAMPTZ NOT NULL,
                        updated_at TIMESTAMPTZ NOT NULL
                    )
                    """
                )
        except _DB_ERRORS as e:
            raise PersistenceError(
                f"Failed to create session table: {e}", cause=e
            ) from e

    async def load(self, session_id: str) -> Optional[Session]:
        """Load a session by id.

        Args:
            session_id: Session identifier

        Returns:
            Session with messages, or None if not found

        Raises:
            PersistenceError: If the database is unreachable or the
                stored record cannot be decoded
        """
        try:
            async with self.db.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    SELECT id, session_id, messages, created_at, updated_at
                    FROM {self.TABLE_NAME}
                    WHERE session_id = $1
                    """,
                    session_id,
                )
        except _DB_ERRORS as e:
            raise PersistenceError(
                f"Failed to load session: {e}", session_id=session_id, cause=e
            ) from e

        if not row:
            return None

        try:
            messages = row["messages"]
            if isinstance(messages, str):
                messages = json.loads(messages)
            if messages and not isinstance(messages, list):
                raise TypeError(f"messages is a {type(messages).__name__}, not a list")

            session = Session.from_record(
                {
                    "id": row["id"],
                    "sessionId": row["session_id"],
                    "messages": messages or [],
                    "createdAt": row["created_at"],
                    "updatedAt": row["updated_at"],
                }
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise PersistenceError(
                f"Corrupt session record: {e}", session_id=session_id, cause=e
            ) from e

        logger.debug(f"Loaded session {session_id} with {len(session.messages)} messages")
        return session

    async def save(self, session: Session) -> None:
        """Upsert a session.

        Raises:
            PersistenceError: If the write is rejected
        """
        record = session.to_record()
        try:
            async with self.db.acquire() as conn:
                await conn.execute(
                    f"""
                    INSERT INTO {self.TABLE_NAME} (
                        id, session_id, messages, created_at, updated_at
                    ) VALUES ($1, $2, $3::jsonb, $4, $5)
                    ON CONFLICT (id)
                    DO UPDATE SET
                        messages = EXCLUDED.messages,
                        updated_at = EXCLUDED.updated_at
                    """,
                    record["id"],
                    record["sessionId"],
                    json.dumps(record["messages"]),
                    session.created_at,
                    session.updated_at,
                )
        except _DB_ERRORS as e:
            raise PersistenceError(
                f"Failed to save session: {e}",
                session_id=session.session_id,
                cause=e,
            ) from e

        logger.debug(f"Saved session {session.session_id}")


class InMemorySessionStore(ISessionRepository):
    """Process-local session store.

    Stores deep copies so callers can never mutate persisted state.
    """

    def __init__(self):
        self._sessions: dict[str, Session] = {}

    async def load(self, session_id: str) -> Optional[Session]:
        session = self._sessions.get(session_id)
        return session.copy() if session else None

    async def save(self, session: Session) -> None:
        self._sessions[session.session_id] = session.copy()

    def records(self) -> list[dict[str, Any]]:
        """All stored sessions in record shape."""
        return [s.to_record() for s in self._sessions.values()]


async def create_session_store(database_url: Optional[str]) -> ISessionRepository:
    """Create a session store for the given database URL.

    Falls back to the in-memory store when no URL is configured or the
    database cannot be reached.
    """
    if not database_url:
        logger.info("DATABASE_URL not set - sessions will be kept in memory")
        return InMemorySessionStore()

    try:
        pool = await asyncpg.create_pool(
            database_url,
            min_size=1,
            max_size=5,
            command_timeout=60,
        )
        store = PostgresSessionStore(pool)
        await store.ensure_schema()
        logger.info("Connected to PostgreSQL session store")
        return store
    except (PersistenceError, *_DB_ERRORS) as e:
        logger.warning(f"Session database unavailable, using in-memory store: {e}")
        return InMemorySessionStore()
