from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Mapping, Optional, Self

import openai
from openai import AsyncOpenAI, AsyncStream
from openai.types.chat import ChatCompletion, ChatCompletionChunk

from mcp_bridge._exceptions import PayloadTooLargeError, ProviderError, classify_error
from mcp_bridge.adapters.openai import OpenAIRequestAdapter
from mcp_bridge.budget import strip_attachments
from mcp_bridge.providers.base import BaseAsyncLLM, RequestAdapter
from mcp_bridge.stream_utils import TextStream, race_cancel
from mcp_bridge.types.chat import ChatMessage, ChatRequest, ChatResponse

TOKENS_LIMIT_REACHED = "tokens_limit_reached"
RETRY_RATIO = 0.75


def _error_code(error: Any) -> Optional[str]:
    if isinstance(error, Mapping):
        code = error.get("code")
        return str(code) if code is not None else None
    return None


class OpenAILLM(BaseAsyncLLM):
    """
    OpenAI-compatible chat completions (async-only).

    A request rejected as too large (HTTP 413, or a ``tokens_limit_reached``
    error inside a 200 response) is retried exactly once with a smaller token
    limit and without attachments.

    Use ``OpenAILLM.from_client`` when you already have an ``AsyncOpenAI`` instance.
    """

    def __init__(
        self,
        model: str,
        *,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        max_retries: int = 2,
        default_headers: Optional[Mapping[str, str]] = None,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
        token_limits: Optional[Mapping[str, int]] = None,
    ) -> None:
        super().__init__(model=model, logger=logger, name=name, token_limits=token_limits)
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
            default_headers=dict(default_headers) if default_headers else None,
        )
        self._adapter = OpenAIRequestAdapter()

    @classmethod
    def from_client(
        cls,
        model: str,
        client: AsyncOpenAI,
        *,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
        token_limits: Optional[Mapping[str, int]] = None,
    ) -> Self:
        """
        Build around an already-configured ``AsyncOpenAI`` client.
        """
        if not isinstance(client, AsyncOpenAI):
            raise TypeError(
                f"{cls.__name__}.from_client expects AsyncOpenAI; got {type(client).__name__}"
            )

        self = cls.__new__(cls)  # bypass __init__
        BaseAsyncLLM.__init__(self, model=model, logger=logger, name=name, token_limits=token_limits)
        self._client = client
        self._adapter = OpenAIRequestAdapter()
        return self

    @property
    def adapter(self) -> RequestAdapter:
        return self._adapter

    async def check_health(self) -> bool:
        try:
            await self._client.models.list()
        except openai.OpenAIError as exc:
            self._log(f"Health check failed: {exc}", logging.WARNING)
            return False
        return True

    async def _fetch_models(self) -> list[str]:
        page = await self._client.models.list()
        return [m.id for m in page.data]

    async def list_models(self) -> list[str]:
        try:
            return await self._fetch_models()
        except openai.OpenAIError as exc:
            self._log(f"Could not list models: {exc}", logging.WARNING)
            return []

    async def _chat_impl(
        self,
        request: ChatRequest,
        cancel: Optional[asyncio.Event],
    ) -> ChatResponse:
        try:
            return await self._complete(request, cancel)
        except PayloadTooLargeError as exc:
            limit = int(self.token_limit(request.model) * RETRY_RATIO)
            self._log(
                f"Payload too large ({exc}), retrying once with a {limit} token limit and no attachments",
                logging.WARNING,
            )

        retry = self.prepare(strip_attachments(request), limit=limit)
        try:
            return await self._complete(retry, cancel)
        except PayloadTooLargeError as exc:
            raise PayloadTooLargeError(
                f"Request still too large after reducing to {limit} tokens", exc
            ) from exc

    async def _complete(
        self,
        request: ChatRequest,
        cancel: Optional[asyncio.Event],
    ) -> ChatResponse:
        args = self._adapter.to_provider(request)
        try:
            raw = await race_cancel(
                self._client.chat.completions.create(**args, stream=request.stream),
                cancel,
            )
        except openai.APIStatusError as exc:
            await self._raise_for_status(exc, request)
            raise

        if request.stream:
            return self._stream_response(raw, cancel)
        return self._completion_response(raw)

    async def _raise_for_status(self, exc: openai.APIStatusError, request: ChatRequest) -> None:
        """Translate known status errors; return to let the caller classify the rest."""
        if exc.status_code == 413:
            raise PayloadTooLargeError(f"Payload too large: {exc.message}", exc) from exc

    def _completion_response(self, raw: ChatCompletion) -> ChatResponse:
        # some gateways answer 200 with an error object instead of choices
        error = (raw.model_extra or {}).get("error")
        if error:
            message = error.get("message", error) if isinstance(error, Mapping) else error
            if _error_code(error) == TOKENS_LIMIT_REACHED:
                raise PayloadTooLargeError(f"Payload too large: {message}")
            raise ProviderError(f"Provider returned an error: {message}")
        if not raw.choices:
            raise ProviderError("Provider returned no choices")
        return self._adapter.from_provider(raw)

    def _stream_response(
        self,
        raw: AsyncStream[ChatCompletionChunk],
        cancel: Optional[asyncio.Event],
    ) -> ChatResponse:
        stream = TextStream(self._fragments(raw), cancel=cancel, on_close=raw.close)
        return ChatResponse(
            message=ChatMessage.assistant(""),
            stream=stream,
            done=False,
            raw=raw,
        )

    async def _fragments(self, raw: AsyncStream[ChatCompletionChunk]) -> AsyncIterator[str]:
        try:
            async for chunk in raw:
                text = self._adapter.stream_text(chunk)
                if text:
                    yield text
        except openai.OpenAIError as exc:
            raise classify_error(exc, self.logger) from exc
