"""
MCP Client.

Connects to an MCP tool server over the streamable HTTP transport
(JSON-RPC 2.0 POSTed to ``<base_url>/mcp``). Performs the session
handshake once, then lists and calls tools reusing the session token.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp

from ..domain.entities import ContentBlock, ToolDescriptor, ToolResult
from ..domain.exceptions import DiscoveryError, InvocationError
from ..domain.ports import IToolServerClient

logger = logging.getLogger(__name__)

SESSION_HEADER = "mcp-session-id"


@dataclass
class MCPClientConfig:
    """Configuration for MCP client."""

    # Server connection
    base_url: str = "http://localhost:3000"
    endpoint_path: str = "/mcp"
    timeout: float = 30.0
    max_retries: int = 3

    # Handshake
    protocol_version: str = "2024-11-05"
    client_name: str = "azfunc-assistant"
    client_version: str = "0.1.0"

    # Request settings
    verify_ssl: bool = True


def parse_rpc_body(text: str, content_type: str = "") -> Optional[dict[str, Any]]:
    """Parse a JSON-RPC response body.

    The body is either a plain JSON object or a server-sent event
    stream; for SSE, the first ``data:`` payload carrying ``result``
    or ``error`` wins.

    Returns:
        The JSON-RPC message, or None for an empty body
    """
    stripped = text.strip()
    if not stripped:
        return None

    if "text/event-stream" in content_type or stripped.startswith(("event:", "data:")):
        for line in stripped.splitlines():
            line = line.strip()
            if not line.startswith("data:"):
                continue
            payload = line[len("data:"):].strip()
            if not payload:
                continue
            try:
                message = json.loads(payload)
            except json.JSONDecodeError:
                logger.debug(f"Skipping non-JSON SSE data line: {payload[:80]}")
                continue
            if isinstance(message, dict) and ("result" in message or "error" in message):
                return message
        return None

    message = json.loads(stripped)
    return message if isinstance(message, dict) else None


class MCPClient(IToolServerClient):
    """Client for one MCP tool server.

    Usage:
        config = MCPClientConfig(base_url="http://localhost:3000")
        client = MCPClient(config)

        # List available tools
        tools = await client.list_tools()

        # Execute a tool (never raises)
        result = await client.call_tool("get_function_template", {"language": "python"})

    Handshake:
        - ``initialize`` is sent once, without a session token
        - the token comes back in the ``mcp-session-id`` response header
        - a ``notifications/initialized`` notification completes it
        - if the server reports it is already initialized, the client
          continues without a token
    """

    def __init__(self, config: MCPClientConfig):
        """Initialize the MCP client.

        Args:
            config: Client configuration
        """
        self.config = config
        self._session: Optional[aiohttp.ClientSession] = None
        self._session_token: Optional[str] = None
        self._initialized = False
        self._init_lock = asyncio.Lock()
        self._ids = itertools.count(1)

    @property
    def server_url(self) -> str:
        return self.config.base_url

    @property
    def session_token(self) -> Optional[str]:
        """Token issued by the server during the handshake, if any."""
        return self._session_token

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def endpoint(self) -> str:
        return f"{self.config.base_url.rstrip('/')}{self.config.endpoint_path}"

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout)
            connector = None
            if not self.config.verify_ssl:
                connector = aiohttp.TCPConnector(ssl=False)
            self._session = aiohttp.ClientSession(timeout=timeout, connector=connector)
        return self._session

    async def close(self) -> None:
        """Close the client session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_headers(self, include_token: bool = True) -> dict[str, str]:
        """Build request headers."""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
        }
        if include_token and self._session_token:
            headers[SESSION_HEADER] = self._session_token
        return headers

    async def _post(
        self,
        payload: dict[str, Any],
        include_token: bool = True,
    ) -> tuple[Optional[dict[str, Any]], dict[str, str]]:
        """POST a JSON-RPC message, retrying on rate limits and connection errors.

        Returns:
            Tuple of (parsed JSON-RPC message or None, response headers)

        Raises:
            InvocationError: On a non-success status or exhausted retries
        """
        session = await self._get_session()
        method = payload.get("method", "")

        for attempt in range(self.config.max_retries):
            try:
                async with session.post(
                    self.endpoint,
                    headers=self._get_headers(include_token),
                    json=payload,
                ) as response:
                    if response.status == 429:
                        # Rate limited - retry with backoff
                        if attempt < self.config.max_retries - 1:
                            wait_time = 2 ** attempt
                            logger.warning(f"Rate limited, retrying in {wait_time}s")
                            await asyncio.sleep(wait_time)
                            continue

                        raise InvocationError(
                            "Rate limited by MCP server",
                            tool_name=method,
                            status_code=429,
                        )

                    text = await response.text()
                    headers = {k.lower(): v for k, v in response.headers.items()}

                    if response.status >= 400:
                        raise InvocationError(
                            f"MCP server responded with {response.status}: {response.reason}",
                            tool_name=method,
                            status_code=response.status,
                            details={"body": text[:500]},
                        )

                    try:
                        message = parse_rpc_body(text, headers.get("content-type", ""))
                    except json.JSONDecodeError as e:
                        raise InvocationError(
                            f"Invalid JSON-RPC response from MCP server: {e}",
                            tool_name=method,
                            cause=e,
                        ) from e

                    return message, headers

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if attempt < self.config.max_retries - 1:
                    wait_time = 2 ** attempt
                    logger.warning(f"Connection error, retrying in {wait_time}s: {e}")
                    await asyncio.sleep(wait_time)
                    continue

                raise InvocationError(
                    f"Failed to connect to MCP server at {self.endpoint}: {e}",
                    tool_name=method,
                    cause=e,
                ) from e

        raise InvocationError(
            f"MCP request failed after {self.config.max_retries} retries",
            tool_name=method,
        )

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        async with self._init_lock:
            if not self._initialized:
                await self._handshake()

    async def _handshake(self) -> None:
        """Run the initialize handshake and record the session token."""
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": "initialize",
            "params": {
                "protocolVersion": self.config.protocol_version,
                "capabilities": {},
                "clientInfo": {
                    "name": self.config.client_name,
                    "version": self.config.client_version,
                },
            },
        }

        try:
            message, headers = await self._post(payload, include_token=False)
        except InvocationError as e:
            if self._is_already_initialized(e.message, e.details.get("body", "")):
                self._enter_tokenless_mode()
                return
            raise

        error = (message or {}).get("error")
        if error:
            error_message = str(error.get("message", error) if isinstance(error, dict) else error)
            if self._is_already_initialized(error_message):
                self._enter_tokenless_mode()
                return
            raise InvocationError(
                f"MCP initialize failed: {error_message}",
                tool_name="initialize",
            )

        self._session_token = headers.get(SESSION_HEADER)
        self._initialized = True
        logger.info(
            f"MCP session initialized with {self.config.base_url}"
            f" (session token {'received' if self._session_token else 'not issued'})"
        )

        await self._post(
            {"jsonrpc": "2.0", "method": "notifications/initialized"},
        )

    @staticmethod
    def _is_already_initialized(*texts: str) -> bool:
        return any("already initialized" in (text or "").lower() for text in texts)

    def _enter_tokenless_mode(self) -> None:
        self._session_token = None
        self._initialized = True
        logger.warning(
            f"MCP server at {self.config.base_url} reports it is already "
            "initialized; continuing without a session token"
        )

    async def _request(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        """Send a JSON-RPC request and return its ``result``.

        Raises:
            InvocationError: On transport failure or a JSON-RPC error
        """
        await self._ensure_initialized()

        message, _ = await self._post(
            {
                "jsonrpc": "2.0",
                "id": next(self._ids),
                "method": method,
                "params": params,
            }
        )
        if message is None:
            raise InvocationError(f"MCP {method} returned an empty response", tool_name=method)

        error = message.get("error")
        if error:
            error_message = error.get("message", error) if isinstance(error, dict) else error
            raise InvocationError(f"MCP {method} failed: {error_message}", tool_name=method)

        result = message.get("result") or {}
        if not isinstance(result, dict):
            raise InvocationError(
                f"MCP {method} returned a malformed result: expected an object,"
                f" got {type(result).__name__}",
                tool_name=method,
            )
        return result

    async def list_tools(self) -> list[ToolDescriptor]:
        """List available tools from the MCP server.

        Returns:
            List of tool descriptors

        Raises:
            DiscoveryError: If the server cannot be reached or errors
        """
        try:
            result = await self._request("tools/list", {})
        except InvocationError as e:
            raise DiscoveryError(
                str(e), server_url=self.config.base_url, cause=e
            ) from e

        tool_list = result.get("tools") or []
        if not isinstance(tool_list, list):
            raise DiscoveryError(
                "MCP tools/list returned a malformed tool list",
                server_url=self.config.base_url,
            )

        tools = []
        for tool_data in tool_list:
            if not isinstance(tool_data, dict) or not tool_data.get("name"):
                logger.debug(f"Skipping malformed tool entry from {self.config.base_url}")
                continue
            tools.append(
                ToolDescriptor(
                    name=tool_data["name"],
                    description=tool_data.get("description", ""),
                    parameters=tool_data.get("inputSchema") or {},
                    server_url=self.config.base_url,
                )
            )

        logger.info(f"Discovered {len(tools)} MCP tools at {self.config.base_url}")
        return tools

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Execute a tool on the MCP server.

        Args:
            name: Tool name
            arguments: Tool arguments

        Returns:
            ToolResult; failures are returned with ``is_error=True``
        """
        start = time.monotonic()
        try:
            result = await self._request(
                "tools/call", {"name": name, "arguments": arguments}
            )
        except InvocationError as e:
            logger.warning(f"Tool {name} failed: {e}")
            tool_result = ToolResult.error(name, str(e))
            tool_result.latency_ms = int((time.monotonic() - start) * 1000)
            return tool_result

        content = result.get("content") or []
        if not isinstance(content, list):
            logger.warning(f"Tool {name} returned malformed content")
            tool_result = ToolResult.error(name, "MCP tools/call returned malformed content")
            tool_result.latency_ms = int((time.monotonic() - start) * 1000)
            return tool_result

        blocks = []
        for item in content:
            if not isinstance(item, dict):
                continue
            kind = str(item.get("type", "text"))
            text = item.get("text")
            if text is None:
                text = json.dumps({k: v for k, v in item.items() if k != "type"}, default=str)
            elif not isinstance(text, str):
                text = json.dumps(text, default=str)
            blocks.append(ContentBlock(kind=kind, text=text))

        return ToolResult(
            tool_name=name,
            content=blocks,
            is_error=bool(result.get("isError", False)),
            latency_ms=int((time.monotonic() - start) * 1000),
        )
