"""Tool discovery and invocation for the agent module."""

from .mcp_client import MCPClient, MCPClientConfig, parse_rpc_body
from .registry import ToolRegistry

__all__ = [
    "MCPClient",
    "MCPClientConfig",
    "ToolRegistry",
    "parse_rpc_body",
]
