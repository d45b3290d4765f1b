from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Mapping, Optional, Self

import httpx
import ollama
from ollama import AsyncClient

from mcp_bridge._exceptions import classify_error
from mcp_bridge.adapters.ollama import OllamaRequestAdapter
from mcp_bridge.providers.base import BaseAsyncLLM, RequestAdapter
from mcp_bridge.settings import DEFAULT_OLLAMA_HOST
from mcp_bridge.stream_utils import TextStream, race_cancel
from mcp_bridge.types.chat import ChatMessage, ChatRequest, ChatResponse

_LIST_ERRORS = (ollama.ResponseError, ollama.RequestError, httpx.HTTPError, ConnectionError)


class OllamaLLM(BaseAsyncLLM):
    """
    Local Ollama runner.

    Both buffered and streamed calls race the cancel event, so a cancel is
    honoured immediately even while the model is still loading.
    """

    def __init__(
        self,
        model: str,
        *,
        host: Optional[str] = None,
        timeout: Optional[float] = None,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
        token_limits: Optional[Mapping[str, int]] = None,
    ) -> None:
        super().__init__(model=model, logger=logger, name=name, token_limits=token_limits)
        self.host = host or DEFAULT_OLLAMA_HOST
        self._client = AsyncClient(host=self.host, timeout=timeout)
        self._adapter = OllamaRequestAdapter()

    @classmethod
    def from_client(
        cls,
        model: str,
        client: AsyncClient,
        *,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
        token_limits: Optional[Mapping[str, int]] = None,
    ) -> Self:
        """
        Build an ``OllamaLLM`` around an already-configured ``AsyncClient``.
        """
        self = cls.__new__(cls)  # bypass __init__
        BaseAsyncLLM.__init__(self, model=model, logger=logger, name=name, token_limits=token_limits)
        self.host = None
        self._client = client
        self._adapter = OllamaRequestAdapter()
        return self

    @property
    def adapter(self) -> RequestAdapter:
        return self._adapter

    async def check_health(self) -> bool:
        try:
            await self._client.list()
        except _LIST_ERRORS as exc:
            self._log(f"Ollama not reachable at {self.host}: {exc}", logging.WARNING)
            return False
        return True

    async def list_models(self) -> list[str]:
        try:
            listing = await self._client.list()
        except _LIST_ERRORS as exc:
            self._log(f"Could not list models: {exc}", logging.WARNING)
            return []
        return [m.model for m in listing.models if m.model]

    async def _chat_impl(
        self,
        request: ChatRequest,
        cancel: Optional[asyncio.Event],
    ) -> ChatResponse:
        args = self._adapter.to_provider(request)
        raw = await race_cancel(
            self._client.chat(**args, stream=request.stream),
            cancel,
        )
        if not request.stream:
            return self._adapter.from_provider(raw)

        return ChatResponse(
            message=ChatMessage.assistant(""),
            stream=TextStream(self._fragments(raw), cancel=cancel),
            done=False,
            raw=raw,
        )

    async def _fragments(self, chunks: AsyncIterator[ollama.ChatResponse]) -> AsyncIterator[str]:
        try:
            async for chunk in chunks:
                text = self._adapter.stream_text(chunk)
                if text:
                    yield text
                if chunk.done:
                    break
        except (ollama.ResponseError, ollama.RequestError, httpx.HTTPError) as exc:
            raise classify_error(exc, self.logger) from exc
        finally:
            close = getattr(chunks, "aclose", None)
            if close is not None:
                await close()
