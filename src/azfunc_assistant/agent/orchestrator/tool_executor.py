"""
Tool Executor.

Handles execution of tool calls with error handling and result ordering.
Coordinates with ToolRegistry to route tool calls to their servers.
"""

from __future__ import annotations

import asyncio
import logging
import time

from ..domain.entities import ToolCall, ToolResult
from ..tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class ToolExecutor:
    """Executes tool calls with error handling.

    Tool failures never propagate: every call yields a ToolResult, with
    ``is_error=True`` when the tool is unknown or the invocation failed.

    Usage:
        executor = ToolExecutor(tool_registry)

        results = await executor.execute_all(completion.tool_calls)

    Architecture:
        - Delegates to the registry's descriptor-driven handlers
        - Drops arguments not declared in the tool's schema
        - Runs calls sequentially unless ``parallel`` is enabled
        - Always returns results in request order
    """

    def __init__(self, tool_registry: ToolRegistry, parallel: bool = False):
        """Initialize the tool executor.

        Args:
            tool_registry: Registry for tool discovery and routing
            parallel: Run the calls of one turn concurrently
        """
        self.tools = tool_registry
        self.parallel = parallel

    async def execute(self, tool_call: ToolCall) -> ToolResult:
        """Execute one tool call.

        Args:
            tool_call: Tool call requested by the model

        Returns:
            ToolResult (error-flagged on failure)
        """
        handler = self.tools.handlers.get(tool_call.name)
        if handler is None:
            logger.warning(f"Model requested unknown tool: {tool_call.name}")
            return ToolResult.error(tool_call.name, f"Tool {tool_call.name} not found")

        arguments = self.tools.filter_arguments(tool_call)
        logger.info(f"Executing tool: {tool_call.name}")
        start = time.monotonic()

        try:
            result = await handler(arguments)
        except Exception as e:
            logger.error(f"Tool execution failed: {e}")
            result = ToolResult.error(tool_call.name, str(e))

        if result.latency_ms is None:
            result.latency_ms = int((time.monotonic() - start) * 1000)
        logger.debug(
            f"Tool {tool_call.name} finished in {result.latency_ms}ms"
            f" (error={result.is_error})"
        )
        return result

    async def execute_all(self, tool_calls: list[ToolCall]) -> list[ToolResult]:
        """Execute several tool calls.

        A failed call does not stop execution of the others.

        Returns:
            One ToolResult per call, in request order
        """
        if self.parallel and len(tool_calls) > 1:
            return list(
                await asyncio.gather(*(self.execute(call) for call in tool_calls))
            )

        results = []
        for tool_call in tool_calls:
            results.append(await self.execute(tool_call))
        return results
