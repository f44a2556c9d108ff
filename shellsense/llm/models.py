"""
Model capability tables and token estimation.
"""

import math
from typing import Optional

from shellsense.llm.types import ProviderKind


# OpenAI models that take reasoning_effort and max_completion_tokens
_OPENAI_REASONING_PREFIXES = ("gpt-5", "o1", "o3", "o4")

# Claude families that accept extended thinking
_ANTHROPIC_THINKING_MARKERS = (
    "claude-3-7", "claude-sonnet-4", "claude-opus-4", "claude-haiku-4",
    "claude-4",
)

_CHARS_PER_TOKEN = (
    (("claude",), 3.5),
    (("gpt-4", "gpt-5", "o1", "o3", "o4", "llama", "mistral", "qwen", "gemma"), 4.0),
)
_DEFAULT_CHARS_PER_TOKEN = 3.8


def is_reasoning_model(kind: ProviderKind, model: str) -> bool:
    """Whether the model takes a reasoning-effort knob on this backend."""
    lowered = model.lower()
    if kind == ProviderKind.OPENAI:
        return lowered.startswith(_OPENAI_REASONING_PREFIXES)
    if kind == ProviderKind.ANTHROPIC:
        return any(marker in lowered for marker in _ANTHROPIC_THINKING_MARKERS)
    return False


class TokenEstimator:
    """Character-ratio token estimate for backends that omit usage."""

    @staticmethod
    def chars_per_token(model: Optional[str]) -> float:
        lowered = (model or "").lower()
        for markers, ratio in _CHARS_PER_TOKEN:
            if any(marker in lowered for marker in markers):
                return ratio
        return _DEFAULT_CHARS_PER_TOKEN

    @classmethod
    def estimate(cls, text: Optional[str], model: Optional[str] = None) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / cls.chars_per_token(model))
