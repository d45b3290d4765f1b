"""Base class for provider implementations."""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, Protocol

from mcp_bridge._exceptions import BridgeError, RequestCancelledError, classify_error
from mcp_bridge.budget import check_tool_links, truncate_request
from mcp_bridge.models import model_token_limit
from mcp_bridge.stream_utils import CANCEL_MESSAGE
from mcp_bridge.types.chat import ChatRequest, ChatResponse

__all__ = ["BaseAsyncLLM", "RequestAdapter"]


class RequestAdapter(Protocol):
    """Protocol for adapting between generic chat format and provider-specific format."""

    def to_provider(self, request: ChatRequest) -> dict[str, Any]:
        """Convert a generic request to provider-specific request arguments."""
        ...

    def from_provider(self, raw: Any) -> ChatResponse:
        """Convert provider response to unified ChatResponse."""
        ...

    def stream_text(self, raw_chunk: Any) -> str:
        """Extract the text fragment from a streaming chunk."""
        ...


class BaseAsyncLLM(ABC):
    """
    Abstract base class for async-first provider wrappers.

    ``chat`` fits every request into the model's context window before it
    reaches ``_chat_impl`` and turns library failures into ``ProviderError``.
    """

    hard_token_cap: Optional[int] = None

    def __init__(
        self,
        model: str,
        *,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
        token_limits: Optional[Mapping[str, int]] = None,
    ) -> None:
        self.model = model
        self.logger = logger or logging.getLogger(__name__)
        self.name = name or self.__class__.__name__
        self.token_limits = dict(token_limits or {})

    @abstractmethod
    async def _chat_impl(
        self,
        request: ChatRequest,
        cancel: Optional[asyncio.Event],
    ) -> ChatResponse:
        """
        Send an already-fitted request to the provider.

        Args:
            request: The request, truncated to the model's budget.
            cancel: Optional event that aborts the call when set.
        """
        ...

    @property
    @abstractmethod
    def adapter(self) -> RequestAdapter:
        """Request adapter for this provider."""
        ...

    @abstractmethod
    async def check_health(self) -> bool:
        """Return True when the provider can serve requests."""
        ...

    @abstractmethod
    async def list_models(self) -> list[str]:
        ...

    def token_limit(self, model: Optional[str] = None) -> int:
        limit = model_token_limit(model or self.model, self.token_limits)
        if self.hard_token_cap is not None:
            limit = min(limit, self.hard_token_cap)
        return limit

    def prepare(self, request: ChatRequest, limit: Optional[int] = None) -> ChatRequest:
        """Truncate ``request`` to ``limit`` (default: the model's) and check its tool links."""
        limit = limit if limit is not None else self.token_limit(request.model)
        fitted = truncate_request(request, limit)
        if fitted is not request:
            self._log(
                f"Truncated request from {len(request.messages)} to "
                f"{len(fitted.messages)} messages for a {limit} token limit",
                logging.WARNING,
            )
        check_tool_links(fitted.messages)
        return fitted

    async def chat(
        self,
        request: ChatRequest,
        *,
        cancel: Optional[asyncio.Event] = None,
    ) -> ChatResponse:
        """
        Send a chat request and return the unified response.

        Streaming requests return a response whose ``stream`` yields text.
        """
        if cancel is not None and cancel.is_set():
            raise RequestCancelledError(CANCEL_MESSAGE)

        prepared = self.prepare(request)
        self._log(
            f"Sending request to {prepared.model} "
            f"({len(prepared.messages)} messages, {len(prepared.tools)} tools, stream={prepared.stream})",
            logging.DEBUG,
        )
        try:
            return await self._chat_impl(prepared, cancel)
        except BridgeError:
            raise
        except Exception as exc:
            raise classify_error(exc, self.logger) from exc

    def _log(self, message: str, level: int = logging.INFO) -> None:
        self.logger.log(level, f"[{self.name}] {message}")

    # --- lifecycle ---------------------------------------------------------
    async def aclose(self) -> None:
        """
        Close the underlying async client. Safe to call multiple times.
        """
        client = getattr(self, "_client", None)
        close = getattr(client, "close", None) or getattr(client, "aclose", None)
        if close:
            await close()

    async def __aenter__(self) -> "BaseAsyncLLM":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
