"""
Tests for the MCP tool server client.

Tests cover:
- JSON-RPC body parsing (plain JSON and server-sent events)
- Session handshake and token reuse
- "Already initialized" fallback to tokenless mode
- Tool calls never raising
- Discovery failures
- Malformed server payloads
"""

import json
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from azfunc_assistant.agent.domain.exceptions import DiscoveryError
from azfunc_assistant.agent.tools.mcp_client import (
    SESSION_HEADER,
    MCPClient,
    MCPClientConfig,
    parse_rpc_body,
)

from fakes import AsyncContextManager


# ============================================
# Helpers
# ============================================


def _response(status=200, body=None, headers=None, reason="OK"):
    """Build a mocked aiohttp response wrapped for ``async with``."""
    response = MagicMock()
    response.status = status
    response.reason = reason
    if body is None:
        text = ""
    elif isinstance(body, str):
        text = body
    else:
        text = json.dumps(body)
    response.text = AsyncMock(return_value=text)
    response.headers = {"Content-Type": "application/json", **(headers or {})}
    return AsyncContextManager(response)


def _result(result, request_id=1):
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _client_with(*responses, **config):
    """Create a client whose HTTP session replays the given responses."""
    client = MCPClient(MCPClientConfig(base_url="http://mcp.test", **config))
    session = MagicMock()
    session.closed = False
    session.post = MagicMock(side_effect=list(responses))
    client._get_session = AsyncMock(return_value=session)
    return client, session


def _sent(session, index):
    """Return (method, headers) of the index-th POST."""
    kwargs = session.post.call_args_list[index].kwargs
    return kwargs["json"].get("method"), kwargs["headers"]


INIT_OK = _response(
    body=_result({"protocolVersion": "2024-11-05", "capabilities": {}}),
    headers={"Mcp-Session-Id": "token-123"},
)
NOTIFIED = _response(status=202)

TOOLS = _result(
    {
        "tools": [
            {
                "name": "get_function_template",
                "description": "Starter code for a trigger",
                "inputSchema": {
                    "type": "object",
                    "properties": {"trigger": {"type": "string"}},
                },
            }
        ]
    },
    request_id=2,
)


# ============================================
# parse_rpc_body Tests
# ============================================


class TestParseRpcBody:
    """Tests for JSON-RPC body parsing."""

    def test_plain_json(self):
        assert parse_rpc_body('{"jsonrpc": "2.0", "id": 1, "result": {}}') == {
            "jsonrpc": "2.0",
            "id": 1,
            "result": {},
        }

    def test_empty_body(self):
        assert parse_rpc_body("   ") is None

    def test_sse_stream_takes_first_result(self):
        body = (
            "event: message\n"
            'data: {"jsonrpc": "2.0", "method": "notifications/progress"}\n'
            "\n"
            "event: message\n"
            'data: {"jsonrpc": "2.0", "id": 3, "result": {"tools": []}}\n'
        )

        message = parse_rpc_body(body, "text/event-stream")

        assert message["id"] == 3
        assert message["result"] == {"tools": []}

    def test_sse_without_result(self):
        assert parse_rpc_body("data: not-json\n", "text/event-stream") is None


# ============================================
# Handshake Tests
# ============================================


class TestHandshake:
    """Tests for the MCP session handshake."""

    @pytest.mark.asyncio
    async def test_token_is_reused_after_initialize(self):
        client, session = _client_with(INIT_OK, NOTIFIED, _response(body=TOOLS))

        tools = await client.list_tools()

        method, headers = _sent(session, 0)
        assert method == "initialize"
        assert SESSION_HEADER not in headers
        assert "text/event-stream" in headers["Accept"]

        method, headers = _sent(session, 1)
        assert method == "notifications/initialized"
        assert headers[SESSION_HEADER] == "token-123"

        method, headers = _sent(session, 2)
        assert method == "tools/list"
        assert headers[SESSION_HEADER] == "token-123"

        assert client.session_token == "token-123"
        assert [t.name for t in tools] == ["get_function_template"]
        assert tools[0].parameters["properties"]["trigger"]["type"] == "string"
        assert tools[0].server_url == "http://mcp.test"

    @pytest.mark.asyncio
    async def test_handshake_happens_once(self):
        client, session = _client_with(
            INIT_OK,
            NOTIFIED,
            _response(body=TOOLS),
            _response(body=_result({"content": [{"type": "text", "text": "ok"}]}, 3)),
        )

        await client.list_tools()
        await client.call_tool("get_function_template", {"trigger": "http"})

        methods = [call.kwargs["json"]["method"] for call in session.post.call_args_list]
        assert methods.count("initialize") == 1

    @pytest.mark.asyncio
    async def test_already_initialized_http_error(self, caplog):
        """A server that refuses re-initialization is used without a token."""
        client, session = _client_with(
            _response(
                status=400,
                reason="Bad Request",
                body={"jsonrpc": "2.0", "error": {"message": "Server already initialized"}},
            ),
            _response(body=TOOLS),
        )

        with caplog.at_level(logging.WARNING):
            tools = await client.list_tools()

        assert len(tools) == 1
        assert client.is_initialized
        assert client.session_token is None
        _, headers = _sent(session, 1)
        assert SESSION_HEADER not in headers
        assert "already initialized" in caplog.text

    @pytest.mark.asyncio
    async def test_already_initialized_rpc_error(self, caplog):
        client, _ = _client_with(
            _response(body={"jsonrpc": "2.0", "id": 1, "error": {"message": "Already initialized"}}),
            _response(body=TOOLS),
        )

        with caplog.at_level(logging.WARNING):
            tools = await client.list_tools()

        assert len(tools) == 1
        assert any(r.levelno == logging.WARNING for r in caplog.records)

    @pytest.mark.asyncio
    async def test_already_initialized_string_error(self):
        """A bare string error on initialize is checked like an object error."""
        client, session = _client_with(
            _response(body={"jsonrpc": "2.0", "id": 1, "error": "Server already initialized"}),
            _response(body=TOOLS),
            _response(body=_result({"content": [{"type": "text", "text": "ok"}]}, 3)),
        )

        await client.list_tools()
        await client.call_tool("get_function_template", {"trigger": "http"})

        assert client.is_initialized
        assert client.session_token is None
        methods = [call.kwargs["json"]["method"] for call in session.post.call_args_list]
        assert methods == ["initialize", "tools/list", "tools/call"]

    @pytest.mark.asyncio
    async def test_string_initialize_error_raises_discovery_error(self):
        client, _ = _client_with(
            _response(body={"jsonrpc": "2.0", "id": 1, "error": "unsupported protocol"}),
        )

        with pytest.raises(DiscoveryError) as exc_info:
            await client.list_tools()

        assert "unsupported protocol" in str(exc_info.value)


# ============================================
# Tool Call Tests
# ============================================


class TestCallTool:
    """Tests for tool invocation."""

    @pytest.mark.asyncio
    async def test_content_blocks_and_error_flag(self):
        client, _ = _client_with(
            INIT_OK,
            NOTIFIED,
            _response(
                body=_result(
                    {
                        "content": [
                            {"type": "text", "text": "def main(req): ..."},
                            {"type": "resource", "uri": "file:///host.json"},
                        ],
                        "isError": False,
                    },
                    2,
                )
            ),
        )

        result = await client.call_tool("get_function_template", {"trigger": "http"})

        assert result.is_error is False
        assert result.content[0].text == "def main(req): ..."
        assert result.content[1].kind == "resource"
        assert json.loads(result.content[1].text) == {"uri": "file:///host.json"}
        assert result.latency_ms is not None

    @pytest.mark.asyncio
    async def test_rpc_error_becomes_error_result(self):
        client, _ = _client_with(
            INIT_OK,
            NOTIFIED,
            _response(body={"jsonrpc": "2.0", "id": 2, "error": {"message": "Unknown tool"}}),
        )

        result = await client.call_tool("nope", {})

        assert result.is_error is True
        assert "Unknown tool" in result.text

    @pytest.mark.asyncio
    async def test_connection_failure_becomes_error_result(self):
        client, _ = _client_with(max_retries=1)
        client._get_session.return_value.post = MagicMock(
            side_effect=aiohttp.ClientConnectionError("refused")
        )

        result = await client.call_tool("get_function_template", {})

        assert result.is_error is True
        assert "Failed to connect" in result.text

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self):
        client, session = _client_with(
            INIT_OK,
            NOTIFIED,
            _response(status=429, reason="Too Many Requests"),
            _response(body=_result({"content": [{"type": "text", "text": "ok"}]}, 2)),
        )

        with patch("azfunc_assistant.agent.tools.mcp_client.asyncio.sleep", AsyncMock()):
            result = await client.call_tool("search_docs", {"query": "timer"})

        assert result.is_error is False
        assert result.text == "ok"
        assert session.post.call_count == 4

    @pytest.mark.asyncio
    async def test_non_string_text_is_encoded(self):
        client, _ = _client_with(
            INIT_OK,
            NOTIFIED,
            _response(
                body=_result(
                    {
                        "content": [
                            {"type": "text", "text": 42},
                            {"type": "text", "text": {"runtime": "python"}},
                        ]
                    },
                    2,
                )
            ),
        )

        result = await client.call_tool("get_function_template", {})

        assert result.is_error is False
        assert [block.text for block in result.content] == ["42", '{"runtime": "python"}']
        assert result.text == '42\n{"runtime": "python"}'

    @pytest.mark.asyncio
    async def test_non_object_result_becomes_error_result(self):
        client, _ = _client_with(
            INIT_OK,
            NOTIFIED,
            _response(body=_result(["not", "a", "dict"], 2)),
        )

        result = await client.call_tool("get_function_template", {})

        assert result.is_error is True
        assert "malformed result" in result.text

    @pytest.mark.asyncio
    async def test_non_list_content_becomes_error_result(self):
        client, _ = _client_with(
            INIT_OK,
            NOTIFIED,
            _response(body=_result({"content": "plain text"}, 2)),
        )

        result = await client.call_tool("get_function_template", {})

        assert result.is_error is True
        assert "malformed content" in result.text


class TestListTools:
    """Tests for discovery failures."""

    @pytest.mark.asyncio
    async def test_unreachable_server_raises_discovery_error(self):
        client, _ = _client_with(max_retries=1)
        client._get_session.return_value.post = MagicMock(
            side_effect=aiohttp.ClientConnectionError("refused")
        )

        with pytest.raises(DiscoveryError) as exc_info:
            await client.list_tools()

        assert exc_info.value.server_url == "http://mcp.test"

    @pytest.mark.asyncio
    async def test_server_error_raises_discovery_error(self):
        client, _ = _client_with(
            INIT_OK,
            NOTIFIED,
            _response(status=500, reason="Internal Server Error", body="boom"),
        )

        with pytest.raises(DiscoveryError):
            await client.list_tools()

    @pytest.mark.asyncio
    async def test_malformed_tool_entries_are_skipped(self):
        client, _ = _client_with(
            INIT_OK,
            NOTIFIED,
            _response(
                body=_result(
                    {
                        "tools": [
                            "not-an-object",
                            None,
                            {"description": "no name"},
                            {"name": "search_docs", "description": "Search docs"},
                        ]
                    },
                    2,
                )
            ),
        )

        tools = await client.list_tools()

        assert [t.name for t in tools] == ["search_docs"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "result",
        [["not", "a", "dict"], {"tools": "search_docs"}],
    )
    async def test_malformed_tool_list_raises_discovery_error(self, result):
        client, _ = _client_with(INIT_OK, NOTIFIED, _response(body=_result(result, 2)))

        with pytest.raises(DiscoveryError) as exc_info:
            await client.list_tools()

        assert exc_info.value.server_url == "http://mcp.test"
