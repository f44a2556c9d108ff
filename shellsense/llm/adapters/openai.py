"""
OpenAI Adapter
==============

Chat Completions wire format. Also the base for local OpenAI-compatible
servers (see local.py).
"""

import json
from typing import Any, AsyncIterator, Dict, List, Optional

from shellsense.llm.accumulator import ToolCallAccumulator
from shellsense.llm.adapters.base import ProviderAdapter, RequestSpec
from shellsense.llm.models import is_reasoning_model
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
    ToolSchema,
    Usage,
)
from shellsense.utils.errors import EmptyResponseError

OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"

# Reasoning models only accept the default temperature
REASONING_TEMPERATURE = 1.0


def to_openai_messages(system_prompt: Optional[str], messages: List[ChatMessage]) -> List[Dict[str, Any]]:
    """Convert history to Chat Completions messages."""
    result: List[Dict[str, Any]] = []
    if system_prompt:
        result.append({"role": "system", "content": system_prompt})

    for message in messages:
        if message.role == "tool":
            result.append({
                "role": "tool",
                "tool_call_id": message.tool_call_id,
                "content": message.content or "",
            })
        elif message.role == "assistant" and message.tool_calls:
            result.append({
                "role": "assistant",
                "content": message.content,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                    }
                    for call in message.tool_calls
                ],
            })
        else:
            result.append({"role": message.role, "content": message.content or ""})
    return result


def _parse_arguments(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


class OpenAIAdapter(ProviderAdapter):
    """Adapter for api.openai.com."""

    kind = ProviderKind.OPENAI

    def configured_api_key(self) -> Optional[str]:
        return self.provider_config.openai_api_key

    def endpoint(self, provider: Provider) -> str:
        return OPENAI_API_URL

    def headers(self, provider: Provider) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.require_api_key(provider)}",
            "Content-Type": "application/json",
        }

    def _apply_token_limits(self, body: Dict[str, Any], provider: Provider, max_tokens: int,
                            temperature: Optional[float], effort: ReasoningEffort) -> None:
        if is_reasoning_model(self.kind, provider.model):
            body["max_completion_tokens"] = max_tokens
            body["temperature"] = REASONING_TEMPERATURE
            if effort != ReasoningEffort.NONE:
                body["reasoning_effort"] = effort.value
        else:
            body["max_tokens"] = max_tokens
            if temperature is not None:
                body["temperature"] = temperature

    def build_completion(self, request: CompletionRequest) -> RequestSpec:
        provider = request.provider
        headers = self.headers(provider)
        body: Dict[str, Any] = {
            "model": provider.model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_prompt},
            ],
        }
        self._apply_token_limits(body, provider, request.max_tokens, request.temperature,
                                 request.reasoning_effort)
        return self.endpoint(provider), headers, body

    def parse_completion(self, data: Any, request: CompletionRequest) -> CompletionResult:
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise EmptyResponseError()
        if not content:
            raise EmptyResponseError()
        usage = data.get("usage") or {}
        return self.estimated_result(
            content, request, usage.get("prompt_tokens"), usage.get("completion_tokens")
        )

    def build_tool_request(
        self,
        system_prompt: str,
        messages: List[ChatMessage],
        tools: List[ToolSchema],
        provider: Provider,
        max_tokens: int,
        stream: bool,
    ) -> RequestSpec:
        headers = self.headers(provider)
        body: Dict[str, Any] = {
            "model": provider.model,
            "messages": to_openai_messages(system_prompt, messages),
            "stream": stream,
        }
        self._apply_token_limits(body, provider, max_tokens, None, ReasoningEffort.NONE)
        if stream:
            body["stream_options"] = {"include_usage": True}
        if tools:
            body["tools"] = [tool.to_openai() for tool in tools]
            body["tool_choice"] = "auto"
        return self.endpoint(provider), headers, body

    def parse_tool_completion(self, data: Any, provider: Provider) -> ToolCompletionResult:
        try:
            choice = data["choices"][0]
            message = choice["message"]
        except (KeyError, IndexError, TypeError):
            raise EmptyResponseError()

        tool_calls = []
        for index, raw in enumerate(message.get("tool_calls") or []):
            function = raw.get("function") or {}
            name = function.get("name")
            if not name:
                continue
            tool_calls.append(ParsedToolCall(
                id=raw.get("id") or f"tool_{index}",
                name=name,
                arguments=_parse_arguments(function.get("arguments")),
            ))

        usage = data.get("usage") or {}
        return ToolCompletionResult(
            content=message.get("content"),
            tool_calls=tool_calls,
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            is_estimated=not usage,
            stop_reason=choice.get("finish_reason"),
        )

    async def parse_stream(self, payloads: AsyncIterator[Dict[str, Any]]) -> AsyncIterator[StreamingToolEvent]:
        accumulator = ToolCallAccumulator()
        ids_by_index: Dict[int, str] = {}
        started = set()
        stop_reason = None

        async for chunk in payloads:
            usage = chunk.get("usage")
            if usage:
                yield Usage(usage.get("prompt_tokens", 0), usage.get("completion_tokens", 0))

            choices = chunk.get("choices") or []
            if not choices:
                continue
            choice = choices[0]
            if choice.get("finish_reason"):
                stop_reason = choice["finish_reason"]

            delta = choice.get("delta") or {}
            if delta.get("content"):
                yield TextDelta(delta["content"])

            for tool_delta in delta.get("tool_calls") or []:
                index = tool_delta.get("index", 0)
                # Later fragments usually omit the id; resolve by position
                if index not in ids_by_index:
                    ids_by_index[index] = tool_delta.get("id") or f"tool_{index}"
                call_id = ids_by_index[index]

                function = tool_delta.get("function") or {}
                name = function.get("name")
                fragment = function.get("arguments")
                accumulator.add_delta(call_id, name, fragment)

                if name and call_id not in started:
                    started.add(call_id)
                    yield ToolCallStart(call_id, name)
                if fragment:
                    yield ToolCallDelta(call_id, fragment)

        for call in accumulator.get_completed_tool_calls():
            yield ToolCallComplete(call)
        yield Done(stop_reason)
