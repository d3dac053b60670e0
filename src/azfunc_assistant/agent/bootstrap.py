"""
Orchestrator wiring.

Builds the completion provider, MCP clients, tool registry, session
store and orchestrator from AgentSettings.
"""

from __future__ import annotations

import logging
from typing import Optional

from .config import PROVIDER_ANTHROPIC, PROVIDER_AZURE, AgentSettings
from .domain.ports import ILLMProvider, ISessionRepository
from .memory.session_store import create_session_store
from .orchestrator.agent import AgentConfig, AgentOrchestrator
from .orchestrator.prompt_builder import PromptBuilder
from .providers.anthropic import AnthropicProvider
from .providers.base import LLMProviderConfig
from .providers.openai import AzureOpenAIProvider, OpenAIProvider
from .tools.mcp_client import MCPClient, MCPClientConfig
from .tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def create_llm_provider(settings: AgentSettings) -> ILLMProvider:
    """Create the completion provider selected by the settings.

    Raises:
        ConfigurationError: If the provider is missing credentials
    """
    settings.validate()
    provider = settings.provider

    if provider == PROVIDER_AZURE:
        config = LLMProviderConfig(
            api_key=settings.azure_openai_api_key,
            model=settings.azure_openai_deployment,
            base_url=settings.azure_openai_endpoint,
            api_version=settings.azure_openai_api_version,
        )
        llm_provider = AzureOpenAIProvider(config)
    elif provider == PROVIDER_ANTHROPIC:
        config = LLMProviderConfig(
            api_key=settings.anthropic_api_key,
            model=settings.anthropic_model,
        )
        llm_provider = AnthropicProvider(config)
    else:
        config = LLMProviderConfig(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
        )
        llm_provider = OpenAIProvider(config)

    logger.info(f"Using {provider} provider with model: {config.model}")
    return llm_provider


def create_tool_registry(settings: AgentSettings) -> ToolRegistry:
    """Create a registry over one MCP client per configured server."""
    clients = []
    for url in settings.mcp_server_urls:
        clients.append(MCPClient(MCPClientConfig(base_url=url)))
        logger.info(f"MCP client configured for: {url}")
    return ToolRegistry(clients)


async def create_orchestrator(
    settings: Optional[AgentSettings] = None,
    session_id: Optional[str] = None,
    llm_provider: Optional[ILLMProvider] = None,
    session_store: Optional[ISessionRepository] = None,
) -> AgentOrchestrator:
    """Wire an orchestrator and initialize its session and tools.

    Args:
        settings: Settings (read from the environment if None)
        session_id: Session to resume (a new one is started if None)
        llm_provider: Override the provider built from settings
        session_store: Override the store built from settings

    Returns:
        Ready-to-use AgentOrchestrator
    """
    settings = settings or AgentSettings.from_env()

    llm_provider = llm_provider or create_llm_provider(settings)
    if session_store is None:
        session_store = await create_session_store(settings.database_url)

    system_prompt = None
    if settings.system_prompt_path or not settings.chain_of_thought:
        system_prompt = PromptBuilder.load_system_prompt(settings.system_prompt_path)

    orchestrator = AgentOrchestrator(
        llm_provider=llm_provider,
        tool_registry=create_tool_registry(settings),
        session_store=session_store,
        config=AgentConfig(
            system_prompt=system_prompt,
            chain_of_thought=settings.chain_of_thought,
            max_iterations=settings.max_iterations,
            parallel_tool_calls=settings.parallel_tool_calls,
        ),
        session_id=session_id,
    )

    restored = await orchestrator.initialize_session()
    tools = await orchestrator.initialize_tools()
    logger.info(
        f"Agent orchestrator ready: session {orchestrator.session_id} "
        f"({'restored' if restored else 'new'}), {len(tools)} tools"
    )
    return orchestrator
