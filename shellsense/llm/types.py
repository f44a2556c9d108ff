"""
Value types shared by every provider adapter.

Requests, results and streaming events are plain dataclasses so the
pipeline never touches vendor JSON directly.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class ProviderKind(str, Enum):
    """Backend families with distinct wire protocols."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    LOCAL = "local"

    @property
    def display_name(self) -> str:
        return {
            ProviderKind.OPENAI: "OpenAI",
            ProviderKind.ANTHROPIC: "Anthropic",
            ProviderKind.GOOGLE: "Google",
            ProviderKind.LOCAL: "Local",
        }[self]


class ReasoningEffort(str, Enum):
    """Extra hidden computation requested before the visible answer."""
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def thinking_budget(self) -> int:
        """Anthropic extended-thinking budget in tokens."""
        return {
            ReasoningEffort.NONE: 0,
            ReasoningEffort.LOW: 1024,
            ReasoningEffort.MEDIUM: 8192,
            ReasoningEffort.HIGH: 32000,
        }[self]


@dataclass(frozen=True)
class Provider:
    """A backend plus the model to call on it."""
    kind: ProviderKind
    model: str
    base_url: Optional[str] = None
    api_key: Optional[str] = None

    @classmethod
    def openai(cls, model: str, api_key: Optional[str] = None) -> 'Provider':
        return cls(ProviderKind.OPENAI, model, api_key=api_key)

    @classmethod
    def anthropic(cls, model: str, api_key: Optional[str] = None) -> 'Provider':
        return cls(ProviderKind.ANTHROPIC, model, api_key=api_key)

    @classmethod
    def google(cls, model: str, api_key: Optional[str] = None) -> 'Provider':
        return cls(ProviderKind.GOOGLE, model, api_key=api_key)

    @classmethod
    def local(cls, model: str, base_url: str) -> 'Provider':
        return cls(ProviderKind.LOCAL, model, base_url=base_url)


@dataclass(frozen=True)
class CompletionRequest:
    """A single-shot, non-tool completion."""
    system_prompt: str
    user_prompt: str
    provider: Provider
    reasoning_effort: ReasoningEffort = ReasoningEffort.NONE
    temperature: float = 0.3
    max_tokens: int = 500
    timeout: float = 30.0
    request_type: str = "suggestion"


@dataclass(frozen=True)
class CompletionResult:
    """Completion text with token usage."""
    content: str
    prompt_tokens: int
    completion_tokens: int
    is_estimated: bool = False

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


# ============================================================================
# Tools
# ============================================================================

@dataclass
class ToolParameter:
    """One named argument of a tool."""
    name: str
    type: str
    description: str
    required: bool = True
    enum: Optional[List[str]] = None

    def json_schema(self, upper_case_types: bool = False) -> Dict[str, Any]:
        schema: Dict[str, Any] = {
            "type": self.type.upper() if upper_case_types else self.type,
            "description": self.description,
        }
        if self.enum:
            schema["enum"] = list(self.enum)
        return schema


@dataclass
class ToolSchema:
    """Provider-neutral tool definition with one converter per wire format."""
    name: str
    description: str
    parameters: List[ToolParameter] = field(default_factory=list)

    def _parameters_schema(self, upper_case_types: bool = False) -> Dict[str, Any]:
        return {
            "type": "OBJECT" if upper_case_types else "object",
            "properties": {
                p.name: p.json_schema(upper_case_types) for p in self.parameters
            },
            "required": [p.name for p in self.parameters if p.required],
        }

    def to_openai(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self._parameters_schema(),
            },
        }

    def to_anthropic(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self._parameters_schema(),
        }

    def to_google(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self._parameters_schema(upper_case_types=True),
        }


@dataclass
class ParsedToolCall:
    """A complete tool call issued by the model."""
    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)

    @property
    def string_arguments(self) -> Dict[str, str]:
        """Arguments flattened to strings for tool registries."""
        result = {}
        for key, value in self.arguments.items():
            if isinstance(value, bool):
                result[key] = "true" if value else "false"
            elif isinstance(value, str):
                result[key] = value
            elif isinstance(value, (int, float)):
                result[key] = str(value)
            else:
                result[key] = json.dumps(value)
        return result


@dataclass
class ChatMessage:
    """One turn of tool-enabled conversation history."""
    role: str  # system, user, assistant, tool
    content: Optional[str] = None
    tool_calls: List[ParsedToolCall] = field(default_factory=list)
    tool_call_id: Optional[str] = None
    name: Optional[str] = None  # tool name, for tool results


@dataclass
class ToolCompletionResult:
    """Non-streaming tool-enabled completion."""
    content: Optional[str]
    tool_calls: List[ParsedToolCall]
    prompt_tokens: int
    completion_tokens: int
    is_estimated: bool = False
    stop_reason: Optional[str] = None

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


# ============================================================================
# Streaming events
# ============================================================================

@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ToolCallStart:
    id: str
    name: str


@dataclass(frozen=True)
class ToolCallDelta:
    id: str
    fragment: str


@dataclass(frozen=True)
class ToolCallComplete:
    """Authoritative over any earlier deltas for the same id."""
    call: ParsedToolCall


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int
    completion_tokens: int


@dataclass(frozen=True)
class Done:
    stop_reason: Optional[str] = None


StreamingToolEvent = Union[TextDelta, ToolCallStart, ToolCallDelta, ToolCallComplete, Usage, Done]
