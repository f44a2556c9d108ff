"""
ShellSense Error Hierarchy

Provides a structured error framework for the transport and pipeline layers.
All custom exceptions include error categories, recoverability flags, and error codes.
"""

import json
from enum import Enum
from typing import Optional, Dict, Any


class ErrorCategory(str, Enum):
    """Categories of errors for grouping and monitoring"""
    CONFIGURATION = "configuration"
    CREDENTIAL = "credential"
    NETWORK = "network"
    PROVIDER_API = "provider_api"
    RESPONSE = "response"
    CAPABILITY = "capability"
    CANCELLATION = "cancellation"


class ShellSenseError(Exception):
    """
    Base exception for all ShellSense errors.

    Attributes:
        category: Error category for grouping
        recoverable: Whether the error can be recovered from
        error_code: Unique error code for tracking
        context: Additional context about the error
    """
    category: ErrorCategory = ErrorCategory.CONFIGURATION
    error_code: str = "UNKNOWN"

    def __init__(
        self,
        message: str,
        recoverable: bool = False,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.recoverable = recoverable
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging"""
        return {
            "error_code": self.error_code,
            "category": self.category.value,
            "message": str(self),
            "recoverable": self.recoverable,
            "context": self.context
        }


# ============================================================================
# Configuration Errors
# ============================================================================

class ConfigurationError(ShellSenseError):
    """Invalid or incomplete configuration"""
    category = ErrorCategory.CONFIGURATION
    error_code = "CONFIG_ERROR"

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        super().__init__(message, recoverable=False, **kwargs)
        if config_key:
            self.context["config_key"] = config_key


class MissingCredentialError(ShellSenseError):
    """No API key configured for a cloud provider"""
    category = ErrorCategory.CREDENTIAL
    error_code = "MISSING_CREDENTIAL"

    def __init__(self, provider: str, **kwargs):
        super().__init__(f"{provider} API key not configured", recoverable=False, **kwargs)
        self.provider = provider
        self.context["provider"] = provider


# ============================================================================
# Transport Errors
# ============================================================================

class TransportError(ShellSenseError):
    """Base class for failures talking to a model backend"""
    category = ErrorCategory.NETWORK
    error_code = "TRANSPORT_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)
        self.status_code = status_code
        if status_code is not None:
            self.context["status_code"] = status_code


class ProviderAPIError(TransportError):
    """Backend answered with a non-2xx status"""
    category = ErrorCategory.PROVIDER_API
    error_code = "PROVIDER_API"

    def __init__(self, status_code: int, message: str, provider: Optional[str] = None, **kwargs):
        super().__init__(f"API error ({status_code}): {message}", status_code=status_code, **kwargs)
        self.api_message = message
        if provider:
            self.context["provider"] = provider


class EmptyResponseError(TransportError):
    """Backend answered 2xx with no usable content"""
    category = ErrorCategory.RESPONSE
    error_code = "EMPTY_RESPONSE"

    def __init__(self, message: str = "Empty response from model", **kwargs):
        super().__init__(message, **kwargs)


class ToolsNotSupportedError(TransportError):
    """Selected local model rejected a tool-enabled request"""
    category = ErrorCategory.CAPABILITY
    error_code = "TOOLS_NOT_SUPPORTED"

    def __init__(self, model: str, **kwargs):
        kwargs.setdefault("recoverable", False)
        super().__init__(
            f"Agent mode is not available with '{model}'. This model does not support "
            "tool/function calling. Please select a different model or use chat mode instead.",
            **kwargs
        )
        self.model = model
        self.context["model"] = model


# ============================================================================
# Pipeline Errors
# ============================================================================

class PipelineCancelledError(ShellSenseError):
    """Cooperative cancellation observed at a checkpoint"""
    category = ErrorCategory.CANCELLATION
    error_code = "CANCELLED"

    def __init__(self, message: str = "Pipeline run cancelled", **kwargs):
        super().__init__(message, recoverable=True, **kwargs)


# ============================================================================
# Friendly API messages
# ============================================================================

def _extract_error_fields(body: str) -> tuple:
    """Pull (message, status) out of a vendor error body, if it is JSON."""
    try:
        data = json.loads(body)
    except (ValueError, TypeError):
        return None, None
    if not isinstance(data, dict):
        return None, None
    error = data.get("error")
    if isinstance(error, dict):
        return error.get("message"), error.get("status")
    if isinstance(error, str):
        return error, None
    return data.get("message"), None


def friendly_api_message(status_code: int, body: str, provider: str) -> str:
    """
    Translate a vendor error response into a short user-facing message.

    Args:
        status_code: HTTP status of the failed response
        body: Raw response body
        provider: Display name of the provider ("OpenAI", "Anthropic", ...)

    Returns:
        Message suitable for showing in the terminal
    """
    message, api_status = _extract_error_fields(body)
    lowered = (message or body or "").lower()

    if status_code == 400:
        if "api key" in lowered or "api_key" in lowered:
            return f"Invalid API key format for {provider}. Please check your API key in Settings."
        if "model" in lowered:
            return f"Invalid model configuration for {provider}. {message or ''}".rstrip()
        if "content" in lowered or "safety" in lowered:
            return "The request was blocked by content policy. Please rephrase your message."
        return f"Bad request to {provider}. {message or 'Please check your request.'}"

    if status_code == 401:
        return f"Authentication failed. Please verify your {provider} API key in Settings."

    if status_code == 403:
        if "permission" in lowered or "access" in lowered:
            return f"Access denied. Your {provider} API key may not have permission for this model."
        if "region" in lowered or "country" in lowered:
            return f"{provider} is not available in your region."
        return f"Access forbidden. Please check your {provider} account permissions."

    if status_code == 404:
        if "model" in lowered:
            return "Model not found. The selected model may not be available or the name is incorrect."
        return f"Resource not found on {provider}."

    if status_code == 429:
        if "quota" in lowered or api_status == "RESOURCE_EXHAUSTED":
            return f"{provider} API quota exceeded. Please check your billing or wait before retrying."
        if "token" in lowered or "rpm" in lowered or "tpm" in lowered:
            return f"Rate limit reached for {provider}. Please wait a moment before sending another message."
        return f"Too many requests to {provider}. Please wait a moment and try again."

    if status_code == 500:
        return f"{provider} server error. Please try again in a moment."
    if status_code == 502:
        return f"{provider} gateway error. The service may be temporarily unavailable."
    if status_code == 503:
        if "overloaded" in lowered or "capacity" in lowered:
            return f"{provider} is currently overloaded. Please try again in a few moments."
        return f"{provider} service temporarily unavailable. Please try again later."
    if status_code == 504:
        return f"Request to {provider} timed out. Please try again."
    if status_code == 529:
        return f"{provider} is overloaded. Please try again in a few moments."
    if status_code >= 500:
        return f"{provider} server error (HTTP {status_code}). Please try again later."

    if message:
        return f"{provider} error: {message}"
    return f"{provider} error: {(body or '')[:100]}..."
