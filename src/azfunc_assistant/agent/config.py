"""
Agent settings.

Reads configuration from the environment (and a ``.env`` file when
present) and configures logging.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from .domain.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

PROVIDER_AZURE = "azure"
PROVIDER_OPENAI = "openai"
PROVIDER_ANTHROPIC = "anthropic"
PROVIDERS = (PROVIDER_AZURE, PROVIDER_OPENAI, PROVIDER_ANTHROPIC)

DEFAULT_MCP_SERVER_URL = "http://localhost:3000"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with the standard format."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )


@dataclass
class AgentSettings:
    """Runtime settings for the assistant.

    Attributes:
        completion_provider: azure, openai or anthropic
        mcp_server_urls: Base URLs of the MCP tool servers
        database_url: PostgreSQL DSN for sessions (None for in-memory)
        system_prompt_path: Markdown file holding the system prompt
        max_iterations: Plan-and-execute iteration cap
        chain_of_thought: Insert a reasoning preface before each user message
        parallel_tool_calls: Run the tool calls of one turn concurrently
        log_level: Logging level name
    """

    completion_provider: Optional[str] = None

    azure_openai_endpoint: Optional[str] = None
    azure_openai_api_key: Optional[str] = None
    azure_openai_deployment: Optional[str] = None
    azure_openai_api_version: str = "2024-06-01"

    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"

    anthropic_api_key: Optional[str] = None
    anthropic_model: str = "claude-sonnet-4-5-20250929"

    mcp_server_urls: list[str] = field(
        default_factory=lambda: [DEFAULT_MCP_SERVER_URL]
    )
    database_url: Optional[str] = None
    system_prompt_path: Optional[str] = None

    max_iterations: int = 10
    chain_of_thought: bool = False
    parallel_tool_calls: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv: bool = True) -> AgentSettings:
        """Build settings from environment variables.

        Args:
            dotenv: Load a ``.env`` file first (existing variables win)
        """
        if dotenv:
            load_dotenv()

        urls = os.getenv("MCP_SERVER_URLS", DEFAULT_MCP_SERVER_URL)
        settings = cls(
            completion_provider=(os.getenv("COMPLETION_PROVIDER") or "").strip().lower() or None,
            azure_openai_endpoint=os.getenv("AZURE_OPENAI_ENDPOINT"),
            azure_openai_api_key=os.getenv("AZURE_OPENAI_API_KEY"),
            azure_openai_deployment=os.getenv("AZURE_OPENAI_DEPLOYMENT_NAME"),
            azure_openai_api_version=os.getenv("AZURE_OPENAI_API_VERSION", "2024-06-01"),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o"),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            anthropic_model=os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-5-20250929"),
            mcp_server_urls=[u.strip() for u in urls.split(",") if u.strip()],
            database_url=os.getenv("DATABASE_URL") or None,
            system_prompt_path=os.getenv("SYSTEM_PROMPT_PATH") or None,
            max_iterations=_env_int("AGENT_MAX_ITERATIONS", 10),
            chain_of_thought=_env_bool("AGENT_CHAIN_OF_THOUGHT"),
            parallel_tool_calls=_env_bool("AGENT_PARALLEL_TOOL_CALLS"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
        return settings

    @property
    def provider(self) -> Optional[str]:
        """Selected provider, inferred from credentials when not set."""
        if self.completion_provider:
            return self.completion_provider
        if self.azure_openai_endpoint and self.azure_openai_api_key:
            return PROVIDER_AZURE
        if self.anthropic_api_key:
            return PROVIDER_ANTHROPIC
        if self.openai_api_key:
            return PROVIDER_OPENAI
        return None

    def validate(self) -> None:
        """Check that the selected provider has what it needs.

        Raises:
            ConfigurationError: Listing the missing environment variables
        """
        provider = self.provider
        if provider is None:
            raise ConfigurationError(
                "No completion provider configured",
                missing_keys=["AZURE_OPENAI_API_KEY", "OPENAI_API_KEY", "ANTHROPIC_API_KEY"],
            )
        if provider not in PROVIDERS:
            raise ConfigurationError(
                f"Unknown COMPLETION_PROVIDER {provider!r} "
                f"(expected one of: {', '.join(PROVIDERS)})"
            )

        required = {
            PROVIDER_AZURE: {
                "AZURE_OPENAI_ENDPOINT": self.azure_openai_endpoint,
                "AZURE_OPENAI_API_KEY": self.azure_openai_api_key,
                "AZURE_OPENAI_DEPLOYMENT_NAME": self.azure_openai_deployment,
            },
            PROVIDER_OPENAI: {"OPENAI_API_KEY": self.openai_api_key},
            PROVIDER_ANTHROPIC: {"ANTHROPIC_API_KEY": self.anthropic_api_key},
        }[provider]

        missing = [key for key, value in required.items() if not value]
        if missing:
            raise ConfigurationError(
                f"Missing configuration for {provider} provider: {', '.join(missing)}",
                missing_keys=missing,
            )
        if self.max_iterations < 1:
            raise ConfigurationError("AGENT_MAX_ITERATIONS must be at least 1")
