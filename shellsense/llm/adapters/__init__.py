"""One adapter per backend wire protocol."""

from shellsense.llm.adapters.anthropic import AnthropicAdapter
from shellsense.llm.adapters.base import ProviderAdapter
from shellsense.llm.adapters.google import GoogleAdapter
from shellsense.llm.adapters.local import LocalAdapter
from shellsense.llm.adapters.openai import OpenAIAdapter

__all__ = [
    "ProviderAdapter",
    "OpenAIAdapter",
    "AnthropicAdapter",
    "GoogleAdapter",
    "LocalAdapter",
]
