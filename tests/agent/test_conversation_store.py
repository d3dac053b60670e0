"""
Tests for the in-memory conversation store and message/session entities.
"""

from datetime import datetime, timezone

from azfunc_assistant.agent.domain.entities import Message, MessageRole, Session
from azfunc_assistant.agent.memory.conversation import ConversationStore


def _msg(role, content):
    return Message(role=role, content=content)


class TestConversationStore:
    """Tests for ConversationStore."""

    def test_append_preserves_order(self):
        store = ConversationStore()
        store.append(_msg(MessageRole.USER, "first"))
        store.append(_msg(MessageRole.ASSISTANT, "second"))
        store.append(_msg(MessageRole.USER, "first"))

        assert [m.content for m in store.snapshot()] == ["first", "second", "first"]
        assert len(store) == 3

    def test_empty_content_is_ignored(self):
        """Messages without content are rejected without raising."""
        store = ConversationStore()

        assert store.append(_msg(MessageRole.USER, "")) is False
        assert len(store) == 0

    def test_snapshot_is_read_only_copy(self):
        store = ConversationStore()
        store.append(_msg(MessageRole.USER, "hello"))

        snapshot = store.snapshot()
        store.append(_msg(MessageRole.ASSISTANT, "hi"))

        assert isinstance(snapshot, tuple)
        assert len(snapshot) == 1

    def test_clear_keeps_system_messages(self):
        store = ConversationStore(
            [
                _msg(MessageRole.SYSTEM, "You are helpful"),
                _msg(MessageRole.USER, "question"),
                _msg(MessageRole.ASSISTANT, "answer"),
            ]
        )

        store.clear()

        assert [m.role for m in store] == [MessageRole.SYSTEM]

    def test_replace_and_last(self):
        store = ConversationStore()
        assert store.last is None

        store.replace([_msg(MessageRole.USER, "a"), _msg(MessageRole.ASSISTANT, "b")])

        assert store.last.content == "b"
        assert len(store) == 2


class TestSessionRecord:
    """Tests for the persisted session record shape."""

    def test_record_shape(self):
        session = Session(session_id="session-1")
        session.add_message(_msg(MessageRole.USER, "hello"))

        record = session.to_record()

        assert record["id"] == "session-1"
        assert record["sessionId"] == "session-1"
        assert record["messages"][0]["role"] == "user"
        assert record["messages"][0]["sessionId"] == "session-1"
        assert "createdAt" in record and "updatedAt" in record

    def test_record_restores_messages(self):
        created = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        session = Session(
            session_id="session-1",
            messages=[
                Message(role=MessageRole.USER, content="hi", created_at=created),
                Message(role=MessageRole.ASSISTANT, content="hello", created_at=created),
            ],
        )

        restored = Session.from_record(session.to_record())

        assert [(m.role, m.content, m.created_at) for m in restored.messages] == [
            (MessageRole.USER, "hi", created),
            (MessageRole.ASSISTANT, "hello", created),
        ]
        assert restored.created_at == created

    def test_copy_is_independent(self):
        session = Session(session_id="session-1")
        session.add_message(_msg(MessageRole.USER, "hello"))

        clone = session.copy()
        clone.add_message(_msg(MessageRole.ASSISTANT, "hi"))

        assert len(session.messages) == 1
