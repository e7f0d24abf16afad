from mikrobot.providers.exceptions import ProviderError
from mikrobot.providers.openai_provider import OpenAICompatProvider, create_provider
from mikrobot.providers.types import (
    LLMMessage,
    LLMProvider,
    LLMResponse,
    TokenUsage,
    ToolCall,
)

__all__ = [
    "LLMMessage",
    "LLMResponse",
    "LLMProvider",
    "OpenAICompatProvider",
    "ProviderError",
    "ToolCall",
    "TokenUsage",
    "create_provider",
]
