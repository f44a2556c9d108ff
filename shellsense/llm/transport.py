"""
Provider Transport
==================

Single entry point for every model call. Dispatches to one adapter per
backend and exposes the same four operations for all of them:

- complete: text only
- complete_with_usage: text plus token counts
- complete_with_tools: one tool-enabled turn
- stream_with_tools: the same turn as a stream of events

Errors are raised, never retried here; retry policy belongs to callers.
"""

from typing import AsyncIterator, Dict, List, Optional, Type

import httpx

from shellsense.llm.adapters import (
    AnthropicAdapter,
    GoogleAdapter,
    LocalAdapter,
    OpenAIAdapter,
    ProviderAdapter,
)
from shellsense.llm.types import (
    ChatMessage,
    CompletionRequest,
    CompletionResult,
    Provider,
    ProviderKind,
    StreamingToolEvent,
    ToolCompletionResult,
    ToolSchema,
    Usage,
)
from shellsense.llm.usage import UsageTracker
from shellsense.utils.cancellation import CancellationToken
from shellsense.utils.config import Config, ProviderConfig, TimeoutConfig
from shellsense.utils.errors import ConfigurationError
from shellsense.utils.logging import PerformanceLogger, get_logger

logger = get_logger(__name__)

ADAPTERS: Dict[ProviderKind, Type[ProviderAdapter]] = {
    ProviderKind.OPENAI: OpenAIAdapter,
    ProviderKind.ANTHROPIC: AnthropicAdapter,
    ProviderKind.GOOGLE: GoogleAdapter,
    ProviderKind.LOCAL: LocalAdapter,
}


def provider_from_config(config: Config) -> Provider:
    """
    Build the suggestion provider from configuration.

    Raises:
        ConfigurationError: If no provider/model is set or the provider is unknown
    """
    settings = config.suggestions
    if not settings.provider or not settings.model:
        raise ConfigurationError("No suggestion provider/model configured", config_key="suggestions")

    try:
        kind = ProviderKind(settings.provider.lower())
    except ValueError:
        raise ConfigurationError(
            f"Unknown provider: {settings.provider}",
            config_key="suggestions.provider"
        )

    if kind == ProviderKind.LOCAL:
        return Provider.local(settings.model, config.providers.local_base_url(settings.local_backend))
    return Provider(kind, settings.model)


class Transport:
    """
    Uniform model-call facade over all backends.

    One instance per terminal session; it owns an httpx.AsyncClient unless
    one is injected. Tool-enabled calls without an explicit timeout use
    timeouts.tools.
    """

    def __init__(
        self,
        provider_config: Optional[ProviderConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        usage_tracker: Optional[UsageTracker] = None,
        timeouts: Optional[TimeoutConfig] = None,
    ):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient()
        self.provider_config = provider_config or ProviderConfig()
        self.usage = usage_tracker or UsageTracker()
        self.timeouts = timeouts or TimeoutConfig()
        self._adapters: Dict[ProviderKind, ProviderAdapter] = {
            kind: adapter_cls(self.client, self.provider_config)
            for kind, adapter_cls in ADAPTERS.items()
        }

    @classmethod
    def from_config(cls, config: Config, client: Optional[httpx.AsyncClient] = None) -> 'Transport':
        return cls(provider_config=config.providers, client=client, timeouts=config.timeouts)

    async def __aenter__(self) -> 'Transport':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    def adapter_for(self, provider: Provider) -> ProviderAdapter:
        return self._adapters[provider.kind]

    async def complete(self, request: CompletionRequest,
                       cancel_token: Optional[CancellationToken] = None) -> str:
        """
        Single-shot completion returning only text.

        Args:
            request: Prompt, provider and sampling settings
            cancel_token: Checked before the request is sent

        Returns:
            The model's text
        """
        result = await self.complete_with_usage(request, cancel_token)
        return result.content

    async def complete_with_usage(self, request: CompletionRequest,
                                  cancel_token: Optional[CancellationToken] = None) -> CompletionResult:
        """
        Single-shot completion with token usage.

        Raises:
            MissingCredentialError: No API key for a cloud backend
            ProviderAPIError: Non-2xx response
            EmptyResponseError: Success status but no content
            PipelineCancelledError: Token already cancelled
        """
        if cancel_token:
            cancel_token.raise_if_cancelled()

        provider = request.provider
        adapter = self.adapter_for(provider)
        with PerformanceLogger(f"llm.{provider.kind.value}.complete",
                               {"model": provider.model, "request_type": request.request_type}):
            result = await adapter.complete_with_usage(request)

        self.usage.record(request.request_type, provider.kind.value,
                          result.prompt_tokens, result.completion_tokens, result.is_estimated)
        logger.debug(
            "llm.complete.success",
            extra={
                "provider": provider.kind.value,
                "model": provider.model,
                "request_type": request.request_type,
                "prompt_tokens": result.prompt_tokens,
                "completion_tokens": result.completion_tokens,
                "is_estimated": result.is_estimated,
            }
        )
        return result

    async def complete_with_tools(
        self,
        system_prompt: str,
        messages: List[ChatMessage],
        tools: List[ToolSchema],
        provider: Provider,
        max_tokens: int = 64000,
        timeout: Optional[float] = None,
        request_type: str = "tools",
        cancel_token: Optional[CancellationToken] = None,
    ) -> ToolCompletionResult:
        """
        One tool-enabled turn.

        Args:
            system_prompt: System instructions
            messages: Conversation history, including prior tool results
            tools: Tools the model may call
            provider: Backend and model
            max_tokens: Output token cap
            timeout: Request timeout in seconds; defaults to timeouts.tools

        Returns:
            Text content, tool calls, usage and stop reason
        """
        if cancel_token:
            cancel_token.raise_if_cancelled()

        if timeout is None:
            timeout = self.timeouts.tools
        adapter = self.adapter_for(provider)
        with PerformanceLogger(f"llm.{provider.kind.value}.complete_with_tools",
                               {"model": provider.model, "tool_count": len(tools)}):
            result = await adapter.complete_with_tools(
                system_prompt, messages, tools, provider, max_tokens, timeout
            )

        self.usage.record(request_type, provider.kind.value,
                          result.prompt_tokens, result.completion_tokens, result.is_estimated)
        logger.debug(
            "llm.complete_with_tools.success",
            extra={
                "provider": provider.kind.value,
                "model": provider.model,
                "tool_calls": len(result.tool_calls),
                "stop_reason": result.stop_reason,
            }
        )
        return result

    async def stream_with_tools(
        self,
        system_prompt: str,
        messages: List[ChatMessage],
        tools: List[ToolSchema],
        provider: Provider,
        max_tokens: int = 64000,
        timeout: Optional[float] = None,
        request_type: str = "tools",
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[StreamingToolEvent]:
        """
        Streaming variant of complete_with_tools.

        Yields:
            TextDelta, ToolCallStart, ToolCallDelta, ToolCallComplete, Usage,
            and finally Done
        """
        if cancel_token:
            cancel_token.raise_if_cancelled()

        if timeout is None:
            timeout = self.timeouts.tools
        adapter = self.adapter_for(provider)
        logger.debug(
            "llm.stream_with_tools.started",
            extra={"provider": provider.kind.value, "model": provider.model, "tool_count": len(tools)}
        )
        async for event in adapter.stream_with_tools(
            system_prompt, messages, tools, provider, max_tokens, timeout
        ):
            if isinstance(event, Usage):
                self.usage.record(request_type, provider.kind.value,
                                  event.prompt_tokens, event.completion_tokens)
            yield event
            if cancel_token and cancel_token.cancelled:
                logger.debug("llm.stream_with_tools.cancelled", extra={"provider": provider.kind.value})
                cancel_token.raise_if_cancelled()
