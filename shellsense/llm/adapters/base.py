"""
Provider Adapter Base
=====================

Shared HTTP plumbing for every backend. Subclasses supply one request
builder and one response parser per call shape; this class owns posting,
status classification and SSE line reading.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import httpx

from shellsense.llm.models import TokenEstimator
from shellsense.llm.types import (
    ChatMessage,
    CompletionRequest,
    CompletionResult,
    Provider,
    ProviderKind,
    StreamingToolEvent,
    ToolCompletionResult,
    ToolSchema,
)
from shellsense.utils.config import ProviderConfig
from shellsense.utils.errors import (
    EmptyResponseError,
    MissingCredentialError,
    ProviderAPIError,
    TransportError,
    friendly_api_message,
)
from shellsense.utils.logging import get_logger

logger = get_logger(__name__)

RequestSpec = Tuple[str, Dict[str, str], Dict[str, Any]]


class ProviderAdapter(ABC):
    """
    One backend's wire protocol.

    Subclasses implement:
    - build_completion / parse_completion
    - build_tool_request / parse_tool_completion
    - parse_stream
    """

    kind: ProviderKind

    def __init__(self, client: httpx.AsyncClient, provider_config: Optional[ProviderConfig] = None):
        self.client = client
        self.provider_config = provider_config or ProviderConfig()

    @property
    def display_name(self) -> str:
        return self.kind.display_name

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def build_completion(self, request: CompletionRequest) -> RequestSpec:
        """URL, headers and JSON body for a single-shot completion."""

    @abstractmethod
    def parse_completion(self, data: Any, request: CompletionRequest) -> CompletionResult:
        pass

    @abstractmethod
    def build_tool_request(
        self,
        system_prompt: str,
        messages: List[ChatMessage],
        tools: List[ToolSchema],
        provider: Provider,
        max_tokens: int,
        stream: bool,
    ) -> RequestSpec:
        pass

    @abstractmethod
    def parse_tool_completion(self, data: Any, provider: Provider) -> ToolCompletionResult:
        pass

    @abstractmethod
    def parse_stream(self, payloads: AsyncIterator[Dict[str, Any]]) -> AsyncIterator[StreamingToolEvent]:
        """Map decoded SSE payloads to events, ending with exactly one Done."""

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def configured_api_key(self) -> Optional[str]:
        return None

    def require_api_key(self, provider: Provider) -> str:
        """Resolve the API key or fail before any network call."""
        key = provider.api_key or self.configured_api_key()
        if not key:
            raise MissingCredentialError(self.display_name)
        return key

    # ------------------------------------------------------------------
    # Uniform contract
    # ------------------------------------------------------------------

    async def complete_with_usage(self, request: CompletionRequest) -> CompletionResult:
        url, headers, body = self.build_completion(request)
        data = await self._post(url, headers, body, request.timeout, tools_requested=False,
                                model=request.provider.model)
        return self.parse_completion(data, request)

    async def complete_with_tools(
        self,
        system_prompt: str,
        messages: List[ChatMessage],
        tools: List[ToolSchema],
        provider: Provider,
        max_tokens: int,
        timeout: float,
    ) -> ToolCompletionResult:
        url, headers, body = self.build_tool_request(
            system_prompt, messages, tools, provider, max_tokens, stream=False
        )
        data = await self._post(url, headers, body, timeout, tools_requested=bool(tools),
                                model=provider.model)
        return self.parse_tool_completion(data, provider)

    async def stream_with_tools(
        self,
        system_prompt: str,
        messages: List[ChatMessage],
        tools: List[ToolSchema],
        provider: Provider,
        max_tokens: int,
        timeout: float,
    ) -> AsyncIterator[StreamingToolEvent]:
        url, headers, body = self.build_tool_request(
            system_prompt, messages, tools, provider, max_tokens, stream=True
        )
        try:
            async with self.client.stream("POST", url, json=body, headers=headers, timeout=timeout) as response:
                if response.status_code >= 400:
                    await response.aread()
                    self.raise_for_status(response.status_code, response.text,
                                          tools_requested=bool(tools), model=provider.model)
                async for event in self.parse_stream(self._sse_payloads(response)):
                    yield event
        except httpx.TimeoutException as e:
            raise TransportError(f"Request to {self.display_name} timed out") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Network error contacting {self.display_name}: {e}") from e

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    async def _post(
        self,
        url: str,
        headers: Dict[str, str],
        body: Dict[str, Any],
        timeout: float,
        tools_requested: bool,
        model: str,
    ) -> Any:
        try:
            response = await self.client.post(url, json=body, headers=headers, timeout=timeout)
        except httpx.TimeoutException as e:
            raise TransportError(f"Request to {self.display_name} timed out") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Network error contacting {self.display_name}: {e}") from e

        if response.status_code >= 400:
            self.raise_for_status(response.status_code, response.text,
                                  tools_requested=tools_requested, model=model)

        if not response.content:
            raise EmptyResponseError()
        try:
            return response.json()
        except ValueError:
            return self.parse_raw_text(response.text)

    def parse_raw_text(self, text: str) -> Any:
        """Non-JSON success body. Only the local backend tolerates this."""
        raise EmptyResponseError()

    def raise_for_status(self, status_code: int, body: str, tools_requested: bool, model: str) -> None:
        logger.warning(
            "llm.request.failed",
            extra={"provider": self.kind.value, "status_code": status_code, "model": model}
        )
        raise ProviderAPIError(
            status_code,
            friendly_api_message(status_code, body, self.display_name),
            provider=self.kind.value,
        )

    @staticmethod
    async def _sse_payloads(response: httpx.Response) -> AsyncIterator[Dict[str, Any]]:
        """Yield JSON payloads from `data:` lines until `[DONE]`."""
        async for line in response.aiter_lines():
            if not line.startswith("data:"):
                continue
            data = line[5:].strip()
            if data == "[DONE]":
                break
            if not data:
                continue
            try:
                payload = json.loads(data)
            except ValueError:
                logger.debug("llm.stream.unparseable_chunk", extra={"chunk": data[:200]})
                continue
            if isinstance(payload, dict):
                yield payload

    # ------------------------------------------------------------------
    # Usage helpers
    # ------------------------------------------------------------------

    @staticmethod
    def estimated_result(content: str, request: CompletionRequest,
                         prompt_tokens: Optional[int], completion_tokens: Optional[int]) -> CompletionResult:
        """Fill missing usage counts from the token estimator."""
        model = request.provider.model
        is_estimated = prompt_tokens is None or completion_tokens is None
        if prompt_tokens is None:
            prompt_tokens = TokenEstimator.estimate(request.system_prompt + request.user_prompt, model)
        if completion_tokens is None:
            completion_tokens = TokenEstimator.estimate(content, model)
        return CompletionResult(
            content=content,
            prompt_tokens=max(0, int(prompt_tokens)),
            completion_tokens=max(0, int(completion_tokens)),
            is_estimated=is_estimated,
        )
