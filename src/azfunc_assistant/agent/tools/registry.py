"""
Tool Registry.

Provides a unified registry of the tools published by every configured
MCP server. Handles discovery, caching and call routing.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional, Sequence

from ..domain.entities import ToolCall, ToolDescriptor, ToolResult
from ..domain.exceptions import ArgumentError, DiscoveryError
from ..domain.ports import IToolServerClient

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], Awaitable[ToolResult]]


class ToolRegistry:
    """Registry of tools discovered from one or more tool servers.

    Discovery happens once per registry; later calls return the cache
    until ``refresh=True`` or ``clear_cache()``. Handlers are built from
    discovery results only, so no tool name is hardcoded.

    Usage:
        registry = ToolRegistry([MCPClient(config)])

        # Discover (cached after the first call)
        tools = await registry.discover()

        # Route a call to the server that published the tool
        result = await registry.handlers["get_function_template"]({"language": "python"})
    """

    def __init__(self, clients: Sequence[IToolServerClient] = ()):
        """Initialize the tool registry.

        Args:
            clients: Tool server clients to aggregate
        """
        self.clients = list(clients)
        self._tools: dict[str, ToolDescriptor] = {}
        self._handlers: dict[str, ToolHandler] = {}
        self._discovered = False

    @property
    def is_discovered(self) -> bool:
        return self._discovered

    @property
    def handlers(self) -> dict[str, ToolHandler]:
        """Name to async handler map, built from discovery results."""
        return dict(self._handlers)

    async def discover(self, refresh: bool = False) -> list[ToolDescriptor]:
        """Discover tools from every configured server.

        Args:
            refresh: Force re-discovery instead of using the cache

        Returns:
            List of all tool descriptors

        Raises:
            DiscoveryError: If no configured server could be reached
        """
        if self._discovered and not refresh:
            return list(self._tools.values())

        tools: dict[str, ToolDescriptor] = {}
        failures: list[DiscoveryError] = []

        for client in self.clients:
            try:
                server_tools = await client.list_tools()
            except DiscoveryError as e:
                logger.warning(f"Tool discovery failed for {client.server_url}: {e}")
                failures.append(e)
                continue

            for tool in server_tools:
                if tool.name in tools:
                    logger.warning(
                        f"Tool {tool.name} from {client.server_url} replaces the "
                        f"one published by {tools[tool.name].server_url}"
                    )
                tool.server_url = tool.server_url or client.server_url
                tools[tool.name] = tool

        if failures and len(failures) == len(self.clients):
            # Cached as an empty directory until refresh() or clear_cache()
            self._tools = {}
            self._handlers = {}
            self._discovered = True
            raise DiscoveryError(
                f"Tool discovery failed: {failures[0]}",
                server_url=failures[0].server_url,
                cause=failures[0],
            )

        self._tools = tools
        self._handlers = {
            name: self._make_handler(tool) for name, tool in tools.items()
        }
        self._discovered = True
        logger.info(f"Tool registry loaded {len(tools)} total tools")

        return list(tools.values())

    def clear_cache(self) -> None:
        """Forget discovered tools so the next discover() goes to the servers."""
        self._tools = {}
        self._handlers = {}
        self._discovered = False

    def get(self, name: str) -> Optional[ToolDescriptor]:
        return self._tools.get(name)

    def tool_names(self) -> list[str]:
        """Names of discovered tools, in discovery order."""
        return list(self._tools.keys())

    def filter_arguments(self, call: ToolCall) -> dict[str, Any]:
        """Keep only the arguments declared in the tool's schema.

        Tools whose schema declares no properties receive no arguments.
        Dropped keys are logged, never raised.
        """
        tool = self._tools.get(call.name)
        if tool is None:
            return dict(call.arguments)

        allowed = tool.allowed_arguments()
        filtered = {k: v for k, v in call.arguments.items() if k in allowed}

        dropped = sorted(set(call.arguments) - allowed)
        if dropped:
            logger.debug(str(ArgumentError(call.name, dropped)))

        return filtered

    def _client_for(self, tool: ToolDescriptor) -> Optional[IToolServerClient]:
        for client in self.clients:
            if client.server_url == tool.server_url:
                return client
        return self.clients[0] if self.clients else None

    def _make_handler(self, tool: ToolDescriptor) -> ToolHandler:
        client = self._client_for(tool)

        async def handler(arguments: dict[str, Any]) -> ToolResult:
            if client is None:
                return ToolResult.error(tool.name, f"Tool {tool.name} not found")
            return await client.call_tool(tool.name, arguments)

        return handler

    async def close(self) -> None:
        """Close every tool server client."""
        for client in self.clients:
            await client.close()
