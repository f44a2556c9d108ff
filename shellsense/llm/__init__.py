"""
LLM Module
==========

Provider transport for OpenAI, Anthropic, Google and local
OpenAI-compatible servers (Ollama, LM Studio, vLLM).
"""

from shellsense.llm.accumulator import ToolCallAccumulator
from shellsense.llm.models import TokenEstimator, is_reasoning_model
from shellsense.llm.transport import Transport, provider_from_config
from shellsense.llm.types import (
    ChatMessage,
    CompletionRequest,
    CompletionResult,
    Done,
    ParsedToolCall,
    Provider,
    ProviderKind,
    ReasoningEffort,
    StreamingToolEvent,
    TextDelta,
    ToolCallComplete,
    ToolCallDelta,
    ToolCallStart,
    ToolCompletionResult,
    ToolParameter,
    ToolSchema,
    Usage,
)
from shellsense.llm.usage import UsageTracker

__all__ = [
    "Transport",
    "provider_from_config",
    "ToolCallAccumulator",
    "TokenEstimator",
    "is_reasoning_model",
    "UsageTracker",
    "ChatMessage",
    "CompletionRequest",
    "CompletionResult",
    "Done",
    "ParsedToolCall",
    "Provider",
    "ProviderKind",
    "ReasoningEffort",
    "StreamingToolEvent",
    "TextDelta",
    "ToolCallComplete",
    "ToolCallDelta",
    "ToolCallStart",
    "ToolCompletionResult",
    "ToolParameter",
    "ToolSchema",
    "Usage",
]
