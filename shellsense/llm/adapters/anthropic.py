"""
Anthropic Adapter
=================

Messages API wire format, including extended thinking and the typed SSE
event stream.
"""

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
from shellsense.utils.errors import EmptyResponseError, TransportError

ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
THINKING_BETA = "interleaved-thinking-2025-05-14"

# Room left for the visible answer on top of the thinking budget
THINKING_ANSWER_HEADROOM = 1000


def to_anthropic_messages(messages: List[ChatMessage]) -> List[Dict[str, Any]]:
    """
    Convert history to Messages API turns.

    Tool results become user turns carrying tool_result blocks; consecutive
    results are merged into one turn.
    """
    result: List[Dict[str, Any]] = []
    for message in messages:
        if message.role == "system":
            continue
        if message.role == "tool":
            block = {
                "type": "tool_result",
                "tool_use_id": message.tool_call_id,
                "content": message.content or "",
            }
            previous = result[-1] if result else None
            if (previous and previous["role"] == "user"
                    and isinstance(previous["content"], list)
                    and all(b.get("type") == "tool_result" for b in previous["content"])):
                previous["content"].append(block)
            else:
                result.append({"role": "user", "content": [block]})
        elif message.role == "assistant" and message.tool_calls:
            blocks: List[Dict[str, Any]] = []
            if message.content:
                blocks.append({"type": "text", "text": message.content})
            for call in message.tool_calls:
                blocks.append({
                    "type": "tool_use",
                    "id": call.id,
                    "name": call.name,
                    "input": call.arguments,
                })
            result.append({"role": "assistant", "content": blocks})
        else:
            result.append({"role": message.role, "content": message.content or ""})
    return result


class AnthropicAdapter(ProviderAdapter):
    """Adapter for api.anthropic.com."""

    kind = ProviderKind.ANTHROPIC

    def configured_api_key(self) -> Optional[str]:
        return self.provider_config.anthropic_api_key

    def _headers(self, provider: Provider) -> Dict[str, str]:
        return {
            "x-api-key": self.require_api_key(provider),
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    def build_completion(self, request: CompletionRequest) -> RequestSpec:
        provider = request.provider
        headers = self._headers(provider)
        body: Dict[str, Any] = {
            "model": provider.model,
            "max_tokens": request.max_tokens,
            "system": request.system_prompt,
            "messages": [{"role": "user", "content": request.user_prompt}],
        }

        effort = request.reasoning_effort
        if effort != ReasoningEffort.NONE and is_reasoning_model(self.kind, provider.model):
            budget = effort.thinking_budget
            headers["anthropic-beta"] = THINKING_BETA
            body["thinking"] = {"type": "enabled", "budget_tokens": budget}
            body["max_tokens"] = max(request.max_tokens, budget + THINKING_ANSWER_HEADROOM)
        else:
            body["temperature"] = request.temperature

        return ANTHROPIC_API_URL, headers, body

    def parse_completion(self, data: Any, request: CompletionRequest) -> CompletionResult:
        if not isinstance(data, dict):
            raise EmptyResponseError()
        content = next(
            (block.get("text") for block in data.get("content") or []
             if block.get("type") == "text"),
            None,
        )
        if not content:
            raise EmptyResponseError()
        usage = data.get("usage") or {}
        return self.estimated_result(
            content, request, usage.get("input_tokens"), usage.get("output_tokens")
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
            "model": provider.model,
            "max_tokens": max_tokens,
            "system": system_prompt,
            "messages": to_anthropic_messages(messages),
        }
        if stream:
            body["stream"] = True
        if tools:
            body["tools"] = [tool.to_anthropic() for tool in tools]
        return ANTHROPIC_API_URL, headers, body

    def parse_tool_completion(self, data: Any, provider: Provider) -> ToolCompletionResult:
        if not isinstance(data, dict):
            raise EmptyResponseError()

        texts = []
        tool_calls = []
        for block in data.get("content") or []:
            block_type = block.get("type")
            if block_type == "text" and block.get("text"):
                texts.append(block["text"])
            elif block_type == "tool_use":
                tool_input = block.get("input")
                tool_calls.append(ParsedToolCall(
                    id=block.get("id") or f"tool_{len(tool_calls)}",
                    name=block.get("name", ""),
                    arguments=tool_input if isinstance(tool_input, dict) else {},
                ))

        usage = data.get("usage") or {}
        return ToolCompletionResult(
            content="".join(texts) or None,
            tool_calls=tool_calls,
            prompt_tokens=usage.get("input_tokens", 0),
            completion_tokens=usage.get("output_tokens", 0),
            is_estimated=not usage,
            stop_reason=data.get("stop_reason"),
        )

    async def parse_stream(self, payloads: AsyncIterator[Dict[str, Any]]) -> AsyncIterator[StreamingToolEvent]:
        accumulator = ToolCallAccumulator()
        tool_blocks: Dict[int, str] = {}
        input_tokens: Optional[int] = None
        output_tokens: Optional[int] = None
        usage_sent = False
        stop_reason = None

        async for event in payloads:
            event_type = event.get("type")
            index = event.get("index", 0)

            if event_type == "message_start":
                usage = (event.get("message") or {}).get("usage") or {}
                input_tokens = usage.get("input_tokens", input_tokens)

            elif event_type == "content_block_start":
                block = event.get("content_block") or {}
                if block.get("type") == "tool_use":
                    call_id = block.get("id") or f"tool_{index}"
                    tool_blocks[index] = call_id
                    accumulator.add_delta(call_id, block.get("name"))
                    yield ToolCallStart(call_id, block.get("name", ""))

            elif event_type == "content_block_delta":
                delta = event.get("delta") or {}
                if delta.get("type") == "text_delta" and delta.get("text"):
                    yield TextDelta(delta["text"])
                elif delta.get("type") == "input_json_delta":
                    call_id = tool_blocks.get(index)
                    fragment = delta.get("partial_json")
                    if call_id and fragment:
                        accumulator.add_delta(call_id, args_delta=fragment)
                        yield ToolCallDelta(call_id, fragment)

            elif event_type == "content_block_stop":
                call_id = tool_blocks.pop(index, None)
                if call_id:
                    for call in accumulator.get_completed_tool_calls():
                        if call.id == call_id:
                            yield ToolCallComplete(call)

            elif event_type == "message_delta":
                delta = event.get("delta") or {}
                stop_reason = delta.get("stop_reason") or stop_reason
                usage = event.get("usage") or {}
                output_tokens = usage.get("output_tokens", output_tokens)
                if not usage_sent and input_tokens is not None and output_tokens is not None:
                    usage_sent = True
                    yield Usage(input_tokens, output_tokens)

            elif event_type == "message_stop":
                break

            elif event_type == "error":
                error = event.get("error") or {}
                raise TransportError(
                    f"Anthropic stream error: {error.get('message') or error.get('type') or 'unknown'}"
                )

        if not usage_sent and (input_tokens is not None or output_tokens is not None):
            yield Usage(input_tokens or 0, output_tokens or 0)
        yield Done(stop_reason)
