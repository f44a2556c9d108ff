"""
Google Adapter
==============

Gemini generateContent wire format. Function calls arrive whole, so the
stream emits start, delta and complete for each call at once.
"""

import json
from typing import Any, AsyncIterator, Dict, List, Optional

from shellsense.llm.adapters.base import ProviderAdapter, RequestSpec
from shellsense.llm.types import (
    ChatMessage,
    CompletionRequest,
    CompletionResult,
    Done,
    ParsedToolCall,
    Provider,
    ProviderKind,
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

GOOGLE_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"


def to_google_contents(messages: List[ChatMessage]) -> List[Dict[str, Any]]:
    """Convert history to Gemini contents."""
    contents: List[Dict[str, Any]] = []
    for message in messages:
        if message.role == "system":
            continue
        if message.role == "tool":
            contents.append({
                "role": "function",
                "parts": [{
                    "functionResponse": {
                        "name": message.name or "",
                        "response": {"output": message.content or ""},
                    }
                }],
            })
        elif message.role == "assistant":
            parts: List[Dict[str, Any]] = []
            if message.content:
                parts.append({"text": message.content})
            for call in message.tool_calls:
                parts.append({"functionCall": {"name": call.name, "args": call.arguments}})
            contents.append({"role": "model", "parts": parts or [{"text": ""}]})
        else:
            contents.append({"role": "user", "parts": [{"text": message.content or ""}]})
    return contents


def _candidate_parts(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    candidates = data.get("candidates") or []
    if not candidates:
        return []
    return ((candidates[0].get("content") or {}).get("parts")) or []


def _finish_reason(data: Dict[str, Any]) -> Optional[str]:
    candidates = data.get("candidates") or []
    return candidates[0].get("finishReason") if candidates else None


class GoogleAdapter(ProviderAdapter):
    """Adapter for generativelanguage.googleapis.com."""

    kind = ProviderKind.GOOGLE

    def configured_api_key(self) -> Optional[str]:
        return self.provider_config.google_api_key

    def _headers(self, provider: Provider) -> Dict[str, str]:
        return {
            "x-goog-api-key": self.require_api_key(provider),
            "Content-Type": "application/json",
        }

    def build_completion(self, request: CompletionRequest) -> RequestSpec:
        provider = request.provider
        headers = self._headers(provider)
        body: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": request.user_prompt}]}],
            "generationConfig": {
                "temperature": request.temperature,
                "maxOutputTokens": request.max_tokens,
            },
        }
        if request.system_prompt:
            body["systemInstruction"] = {"parts": [{"text": request.system_prompt}]}
        return f"{GOOGLE_API_BASE}/{provider.model}:generateContent", headers, body

    def parse_completion(self, data: Any, request: CompletionRequest) -> CompletionResult:
        if not isinstance(data, dict):
            raise EmptyResponseError()
        content = "".join(part.get("text", "") for part in _candidate_parts(data))
        if not content:
            raise EmptyResponseError()
        usage = data.get("usageMetadata") or {}
        return self.estimated_result(
            content, request, usage.get("promptTokenCount"), usage.get("candidatesTokenCount")
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
        headers = self._headers(provider)
        body: Dict[str, Any] = {
            "contents": to_google_contents(messages),
            "generationConfig": {"maxOutputTokens": max_tokens},
        }
        if system_prompt:
            body["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        if tools:
            body["tools"] = [{"functionDeclarations": [tool.to_google() for tool in tools]}]

        if stream:
            url = f"{GOOGLE_API_BASE}/{provider.model}:streamGenerateContent?alt=sse"
        else:
            url = f"{GOOGLE_API_BASE}/{provider.model}:generateContent"
        return url, headers, body

    def parse_tool_completion(self, data: Any, provider: Provider) -> ToolCompletionResult:
        if not isinstance(data, dict):
            raise EmptyResponseError()

        texts = []
        tool_calls = []
        for part in _candidate_parts(data):
            if part.get("text"):
                texts.append(part["text"])
            function_call = part.get("functionCall")
            if function_call:
                args = function_call.get("args")
                tool_calls.append(ParsedToolCall(
                    id=f"google_call_{len(tool_calls)}",
                    name=function_call.get("name", ""),
                    arguments=args if isinstance(args, dict) else {},
                ))

        usage = data.get("usageMetadata") or {}
        return ToolCompletionResult(
            content="".join(texts) or None,
            tool_calls=tool_calls,
            prompt_tokens=usage.get("promptTokenCount", 0),
            completion_tokens=usage.get("candidatesTokenCount", 0),
            is_estimated=not usage,
            stop_reason=_finish_reason(data),
        )

    async def parse_stream(self, payloads: AsyncIterator[Dict[str, Any]]) -> AsyncIterator[StreamingToolEvent]:
        call_count = 0
        prompt_tokens: Optional[int] = None
        completion_tokens: Optional[int] = None
        stop_reason = None

        async for chunk in payloads:
            usage = chunk.get("usageMetadata")
            if usage:
                prompt_tokens = usage.get("promptTokenCount", prompt_tokens)
                completion_tokens = usage.get("candidatesTokenCount", completion_tokens)
            stop_reason = _finish_reason(chunk) or stop_reason

            for part in _candidate_parts(chunk):
                if part.get("text"):
                    yield TextDelta(part["text"])
                function_call = part.get("functionCall")
                if function_call:
                    args = function_call.get("args")
                    call = ParsedToolCall(
                        id=f"google_call_{call_count}",
                        name=function_call.get("name", ""),
                        arguments=args if isinstance(args, dict) else {},
                    )
                    call_count += 1
                    yield ToolCallStart(call.id, call.name)
                    yield ToolCallDelta(call.id, json.dumps(call.arguments))
                    yield ToolCallComplete(call)

        if prompt_tokens is not None or completion_tokens is not None:
            yield Usage(prompt_tokens or 0, completion_tokens or 0)
        yield Done(stop_reason)
