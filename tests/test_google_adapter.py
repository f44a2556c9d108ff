"""
Tests for the Gemini generateContent adapter.
"""

import json

import pytest

from conftest import json_response, sse_response
from shellsense.llm.adapters.google import to_google_contents
from shellsense.llm.types import (
    ChatMessage,
    CompletionRequest,
    Done,
    ParsedToolCall,
    Provider,
    ToolCallComplete,
    ToolCallDelta,
    ToolCallStart,
    Usage,
)
from shellsense.pipeline.tools import RESEARCH_TOOL_SCHEMAS
from shellsense.utils.errors import EmptyResponseError, ProviderAPIError


class TestCompletion:

    @pytest.mark.asyncio
    async def test_request_shape_and_usage(self, make_transport):
        transport, handler = make_transport([json_response({
            "candidates": [{"content": {"parts": [{"text": "go test "}, {"text": "./..."}]},
                            "finishReason": "STOP"}],
            "usageMetadata": {"promptTokenCount": 15, "candidatesTokenCount": 5},
        })])
        request = CompletionRequest("sys", "user", Provider.google("gemini-2.0-flash"),
                                    max_tokens=200, temperature=0.1)

        result = await transport.complete_with_usage(request)

        assert result.content == "go test ./..."
        assert (result.prompt_tokens, result.completion_tokens) == (15, 5)
        sent = handler.requests[0]
        assert str(sent.url).endswith("/models/gemini-2.0-flash:generateContent")
        assert sent.headers["x-goog-api-key"] == "gk-test"
        body = handler.bodies[0]
        assert body["systemInstruction"] == {"parts": [{"text": "sys"}]}
        assert body["generationConfig"] == {"temperature": 0.1, "maxOutputTokens": 200}
        assert body["contents"] == [{"role": "user", "parts": [{"text": "user"}]}]

    @pytest.mark.asyncio
    async def test_no_candidates(self, make_transport):
        transport, _ = make_transport([json_response({"candidates": []})])

        with pytest.raises(EmptyResponseError):
            await transport.complete(CompletionRequest("s", "u", Provider.google("gemini-2.0-flash")))

    @pytest.mark.asyncio
    async def test_quota_exhausted(self, make_transport):
        transport, _ = make_transport([json_response(
            {"error": {"code": 429, "message": "Resource has been exhausted", "status": "RESOURCE_EXHAUSTED"}},
            status_code=429,
        )])

        with pytest.raises(ProviderAPIError) as exc_info:
            await transport.complete(CompletionRequest("s", "u", Provider.google("gemini-2.0-flash")))

        assert exc_info.value.api_message.startswith("Google API quota exceeded")


class TestTools:

    def test_tool_results_become_function_turns(self):
        contents = to_google_contents([
            ChatMessage(role="user", content="hi"),
            ChatMessage(role="assistant", tool_calls=[ParsedToolCall("google_call_0", "list_dir", {"path": "."})]),
            ChatMessage(role="tool", content="src/", tool_call_id="google_call_0", name="list_dir"),
        ])

        assert contents[1] == {"role": "model", "parts": [{"functionCall": {"name": "list_dir", "args": {"path": "."}}}]}
        assert contents[2]["role"] == "function"
        assert contents[2]["parts"][0]["functionResponse"] == {"name": "list_dir", "response": {"output": "src/"}}

    @pytest.mark.asyncio
    async def test_complete_with_tools_declarations(self, make_transport):
        transport, handler = make_transport([json_response({
            "candidates": [{"content": {"parts": [
                {"functionCall": {"name": "search_files", "args": {"pattern": "*.go"}}},
                {"functionCall": {"name": "read_file", "args": {"path": "go.mod"}}},
            ]}, "finishReason": "STOP"}],
        })])

        result = await transport.complete_with_tools(
            "sys", [ChatMessage(role="user", content="hi")], RESEARCH_TOOL_SCHEMAS,
            Provider.google("gemini-2.0-flash"),
        )

        assert [c.id for c in result.tool_calls] == ["google_call_0", "google_call_1"]
        assert result.tool_calls[0].arguments == {"pattern": "*.go"}
        assert result.is_estimated
        declarations = handler.bodies[0]["tools"][0]["functionDeclarations"]
        assert declarations[0]["parameters"]["type"] == "OBJECT"
        assert declarations[0]["parameters"]["properties"]["path"]["type"] == "STRING"

    @pytest.mark.asyncio
    async def test_stream_emits_whole_calls(self, make_transport):
        transport, handler = make_transport([sse_response([
            {"candidates": [{"content": {"parts": [
                {"functionCall": {"name": "read_file", "args": {"path": "Cargo.toml"}}},
            ]}}]},
            {"candidates": [{"content": {"parts": []}, "finishReason": "STOP"}],
             "usageMetadata": {"promptTokenCount": 21, "candidatesTokenCount": 8}},
        ], done_marker=False)])

        events = [
            event async for event in transport.stream_with_tools(
                "sys", [ChatMessage(role="user", content="hi")], RESEARCH_TOOL_SCHEMAS,
                Provider.google("gemini-2.0-flash"),
            )
        ]

        call = ParsedToolCall("google_call_0", "read_file", {"path": "Cargo.toml"})
        assert events == [
            ToolCallStart("google_call_0", "read_file"),
            ToolCallDelta("google_call_0", json.dumps({"path": "Cargo.toml"})),
            ToolCallComplete(call),
            Usage(21, 8),
            Done("STOP"),
        ]
        assert str(handler.requests[0].url).endswith(":streamGenerateContent?alt=sse")
