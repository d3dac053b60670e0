"""Completion provider implementations for the agent module."""

from .anthropic import ANTHROPIC_AVAILABLE, AnthropicProvider
from .base import BaseLLMProvider, LLMProviderConfig
from .openai import OPENAI_AVAILABLE, AzureOpenAIProvider, OpenAIProvider
from .stream import CompletionStream, ToolCallAccumulator

__all__ = [
    "ANTHROPIC_AVAILABLE",
    "AnthropicProvider",
    "AzureOpenAIProvider",
    "BaseLLMProvider",
    "CompletionStream",
    "LLMProviderConfig",
    "OPENAI_AVAILABLE",
    "OpenAIProvider",
    "ToolCallAccumulator",
]
