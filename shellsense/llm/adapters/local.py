"""
Local Adapter
=============

Self-hosted servers (Ollama, LM Studio, vLLM). Requests use the OpenAI
Chat Completions shape; responses may come back in OpenAI shape, in
Ollama's native shape, or as bare text.
"""

from typing import Any, Dict, Optional

from shellsense.llm.adapters.openai import OpenAIAdapter
from shellsense.llm.types import (
    CompletionRequest,
    CompletionResult,
    Provider,
    ProviderKind,
    ReasoningEffort,
)
from shellsense.utils.errors import EmptyResponseError, ToolsNotSupportedError
from shellsense.utils.logging import get_logger

logger = get_logger(__name__)

_TOOL_REJECTION_MARKERS = ("tool", "function", "not supported")


class LocalAdapter(OpenAIAdapter):
    """Adapter for OpenAI-compatible local endpoints."""

    kind = ProviderKind.LOCAL

    def require_api_key(self, provider: Provider) -> str:
        return ""

    def endpoint(self, provider: Provider) -> str:
        base_url = provider.base_url or self.provider_config.ollama_base_url
        return f"{base_url.rstrip('/')}/chat/completions"

    def headers(self, provider: Provider) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def _apply_token_limits(self, body: Dict[str, Any], provider: Provider, max_tokens: int,
                            temperature: Optional[float], effort: ReasoningEffort) -> None:
        body["max_tokens"] = max_tokens
        if temperature is not None:
            body["temperature"] = temperature

    def parse_raw_text(self, text: str) -> Any:
        return text

    def parse_completion(self, data: Any, request: CompletionRequest) -> CompletionResult:
        content: Optional[str] = None
        prompt_tokens = completion_tokens = None

        if isinstance(data, str):
            content = data
        elif isinstance(data, dict):
            choices = data.get("choices")
            if isinstance(choices, list) and choices:
                content = (choices[0].get("message") or {}).get("content")
                usage = data.get("usage") or {}
                prompt_tokens = usage.get("prompt_tokens")
                completion_tokens = usage.get("completion_tokens")
            else:
                message = data.get("message")
                if isinstance(message, dict):
                    content = message.get("content")
                if not content:
                    content = data.get("response")
                prompt_tokens = data.get("prompt_eval_count")
                completion_tokens = data.get("eval_count")

        if not content or not content.strip():
            raise EmptyResponseError()
        return self.estimated_result(content, request, prompt_tokens, completion_tokens)

    def raise_for_status(self, status_code: int, body: str, tools_requested: bool, model: str) -> None:
        if tools_requested and status_code in (400, 422):
            lowered = (body or "").lower()
            if any(marker in lowered for marker in _TOOL_REJECTION_MARKERS):
                logger.warning("llm.local.tools_not_supported", extra={"model": model})
                raise ToolsNotSupportedError(model)
        super().raise_for_status(status_code, body, tools_requested, model)
