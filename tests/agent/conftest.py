"""Shared fixtures for the agent tests."""

import pytest

from azfunc_assistant.agent.domain.entities import ToolDescriptor
from azfunc_assistant.agent.memory.session_store import InMemorySessionStore
from azfunc_assistant.agent.tools.registry import ToolRegistry

from fakes import FakeToolClient


@pytest.fixture
def template_tool():
    return ToolDescriptor(
        name="get_function_template",
        description="Return a starter Azure Function for a trigger",
        parameters={
            "type": "object",
            "properties": {
                "trigger": {"type": "string"},
                "language": {"type": "string"},
            },
            "required": ["trigger"],
        },
    )


@pytest.fixture
def docs_tool():
    return ToolDescriptor(
        name="search_docs",
        description="Search Azure Functions documentation",
        parameters={
            "type": "object",
            "properties": {"query": {"type": "string"}},
        },
    )


@pytest.fixture
def tool_client(template_tool, docs_tool):
    return FakeToolClient([template_tool, docs_tool])


@pytest.fixture
def registry(tool_client):
    return ToolRegistry([tool_client])


@pytest.fixture
def session_store():
    return InMemorySessionStore()
