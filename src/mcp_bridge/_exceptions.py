"""
Error taxonomy for mcp-bridge.

Provider SDK and transport failures are translated into `ProviderError`
subclasses by `classify_error`, while the original exception is preserved
for full tracebacks.
"""

from __future__ import annotations

import logging
from typing import Final, Optional, Sequence, Type

import httpx
import ollama
import openai

__all__: tuple[str, ...] = (
    "BridgeError",
    "ConfigurationError",
    "ToolServerConnectionError",
    "ServerNotRunningError",
    "ToolServerError",
    "ToolDiscoveryError",
    "DiscoveryTimeoutError",
    "InvalidToolError",
    "ToolArgumentError",
    "InvalidRequestError",
    "ProviderError",
    "PayloadTooLargeError",
    "ProviderUnavailableError",
    "ModelUnavailableError",
    "RequestCancelledError",
    "classify_error",
)


class BridgeError(RuntimeError):
    """Public bridge-level exception.

    Attributes:
        original_exc: The underlying exception, if any.
    """

    original_exc: Optional[BaseException]

    def __init__(self, message: str, original_exc: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.original_exc = original_exc
        if original_exc is not None:
            self.__cause__ = original_exc


class ConfigurationError(BridgeError):
    """Tool-server or provider configuration is missing or malformed."""


class ToolServerConnectionError(BridgeError):
    """A local server could not be spawned or a remote one could not be reached."""


class ServerNotRunningError(BridgeError):
    """An operation was attempted on a tool server that is not running."""


class ToolServerError(BridgeError):
    """A tool server answered with an error or broke the protocol."""


class ToolDiscoveryError(ToolServerError):
    """Listing a server's tools failed."""


class DiscoveryTimeoutError(ToolDiscoveryError):
    """A server did not answer the tool listing in time."""


class InvalidToolError(BridgeError, LookupError):
    """No running server advertises the requested tool."""


class ToolArgumentError(BridgeError, ValueError):
    """Arguments for a tool call do not match the tool's parameter schema."""


class InvalidRequestError(BridgeError, ValueError):
    """A chat request is malformed, e.g. a tool message without its call."""


class ProviderError(BridgeError):
    """The LLM provider failed to produce a completion."""


class PayloadTooLargeError(ProviderError):
    """The provider rejected the request as too large, even after a reduced retry."""


class ProviderUnavailableError(ProviderError):
    """The provider (or the requested model) cannot serve requests."""


class ModelUnavailableError(ProviderUnavailableError):
    """The requested model is not enabled for this account."""

    def __init__(
        self,
        model: str,
        available: Sequence[str] = (),
        original_exc: Optional[BaseException] = None,
    ) -> None:
        listing = ", ".join(available) if available else "none reported"
        super().__init__(
            f"Model '{model}' is not available. Available models: {listing}",
            original_exc,
        )
        self.model = model
        self.available = list(available)


class RequestCancelledError(BridgeError):
    """The caller cancelled the request before it completed."""


RATE_LIMIT_ERRORS: Final[tuple[Type[BaseException], ...]] = (openai.RateLimitError,)

CONN_ERRORS: Final[tuple[Type[BaseException], ...]] = (
    openai.APIConnectionError,
    ollama.RequestError,
    httpx.TransportError,
    TimeoutError,
    ConnectionError,
)

API_ERRORS: Final[tuple[Type[BaseException], ...]] = (
    openai.APIError,
    ollama.ResponseError,
    httpx.HTTPStatusError,
)


def classify_error(
    exc: BaseException,
    logger: Optional[logging.Logger] = None,
) -> ProviderError:
    """Wrap an SDK exception in ProviderError with a friendly, concise message."""
    log = logger or logging.getLogger("mcp_bridge.exceptions")

    if isinstance(exc, RATE_LIMIT_ERRORS):
        msg = "Rate limit exceeded, please retry later"
    elif isinstance(exc, CONN_ERRORS):
        msg = "Connection problem, unable to reach the LLM provider"
    elif isinstance(exc, API_ERRORS):
        status = getattr(exc, "status_code", None)
        msg = f"Provider reported an error ({status})" if status else "Provider reported an error"
    else:
        msg = exc.__class__.__name__

    log.warning("Wrapping provider exception: %r", exc)
    return ProviderError(f"{msg}: {exc}", exc)
