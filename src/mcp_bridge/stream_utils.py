"""Shared streaming and cancellation utilities for providers."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, TypeVar

from mcp_bridge._exceptions import RequestCancelledError

__all__ = ["race_cancel", "TextStream"]

T = TypeVar("T")

logger = logging.getLogger(__name__)

CANCEL_MESSAGE = "Operation cancelled by caller"


async def race_cancel(awaitable: Awaitable[T], cancel: Optional[asyncio.Event]) -> T:
    """
    Await ``awaitable`` unless ``cancel`` fires first.

    When the event wins, the pending work is cancelled and
    ``RequestCancelledError`` is raised.
    """
    if cancel is None:
        return await awaitable
    if cancel.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise RequestCancelledError(CANCEL_MESSAGE)

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()

    if task.done():
        return task.result()

    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception as exc:
        logger.debug("Cancelled request finished with %r", exc)
    raise RequestCancelledError(CANCEL_MESSAGE)


class TextStream:
    """
    Forward-only async iterator of text fragments.

    Can be consumed once. Reading stops as soon as ``cancel`` is set; the
    underlying connection is then released and ``RequestCancelledError``
    raised. When the stream ends for any reason the source is closed and
    ``on_close`` runs, exactly once.
    """

    def __init__(
        self,
        source: AsyncIterator[str],
        *,
        cancel: Optional[asyncio.Event] = None,
        on_close: Optional[Callable[[], Awaitable[Any]]] = None,
    ) -> None:
        self._source = source
        self._cancel = cancel
        self._on_close = on_close
        self._consumed = False
        self._closed = False

    def __aiter__(self) -> AsyncIterator[str]:
        if self._consumed:
            raise RuntimeError("TextStream can only be consumed once")
        self._consumed = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        try:
            while True:
                try:
                    fragment = await race_cancel(self._source.__anext__(), self._cancel)
                except StopAsyncIteration:
                    return
                if fragment:
                    yield fragment
        finally:
            await self.aclose()

    async def text(self) -> str:
        """Drain the stream and return the full text."""
        return "".join([fragment async for fragment in self])

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        close = getattr(self._source, "aclose", None)
        try:
            if close is not None:
                await close()
        finally:
            if self._on_close is not None:
                await self._on_close()
