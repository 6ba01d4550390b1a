"""Model provider package."""

from .anthropic_provider import AnthropicProvider
from .base import (
    ChatTurn,
    Provider,
    ProviderError,
    ProviderTurn,
    ToolCallRequest,
    ToolResult,
)
from .factory import ProviderFactory
from .gemini_provider import GeminiProvider
from .openai_provider import OpenAIProvider

__all__ = [
    "AnthropicProvider",
    "ChatTurn",
    "GeminiProvider",
    "OpenAIProvider",
    "Provider",
    "ProviderError",
    "ProviderFactory",
    "ProviderTurn",
    "ToolCallRequest",
    "ToolResult",
]
