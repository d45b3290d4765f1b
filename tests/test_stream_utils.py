"""Tests for cancellation racing and TextStream."""
import asyncio

import pytest

from mcp_bridge._exceptions import RequestCancelledError
from mcp_bridge.stream_utils import TextStream, race_cancel


async def fragments(*parts, delay=0.0):
    for part in parts:
        await asyncio.sleep(delay)
        yield part


class TestRaceCancel:
    @pytest.mark.asyncio
    async def test_without_event(self):
        async def work():
            return 42

        assert await race_cancel(work(), None) == 42

    @pytest.mark.asyncio
    async def test_work_wins(self):
        async def work():
            return "done"

        assert await race_cancel(work(), asyncio.Event()) == "done"

    @pytest.mark.asyncio
    async def test_already_cancelled(self):
        cancel = asyncio.Event()
        cancel.set()

        async def work():
            return "never"

        with pytest.raises(RequestCancelledError):
            await race_cancel(work(), cancel)

    @pytest.mark.asyncio
    async def test_cancel_interrupts_pending_work(self):
        cancel = asyncio.Event()
        finished = asyncio.Event()
        interrupted = []

        async def work():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                interrupted.append(True)
                raise
            finished.set()

        asyncio.get_running_loop().call_later(0.05, cancel.set)
        with pytest.raises(RequestCancelledError):
            await race_cancel(work(), cancel)
        assert interrupted == [True]
        assert not finished.is_set()

    @pytest.mark.asyncio
    async def test_errors_propagate(self):
        async def work():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            await race_cancel(work(), asyncio.Event())


class TestTextStream:
    @pytest.mark.asyncio
    async def test_yields_fragments_and_closes_once(self):
        closed = []

        async def on_close():
            closed.append(True)

        stream = TextStream(fragments("Hel", "", "lo"), on_close=on_close)
        assert await stream.text() == "Hello"
        await stream.aclose()
        assert closed == [True]

    @pytest.mark.asyncio
    async def test_single_consumption(self):
        stream = TextStream(fragments("a"))
        assert await stream.text() == "a"
        with pytest.raises(RuntimeError):
            stream.__aiter__()

    @pytest.mark.asyncio
    async def test_cancel_stops_reading(self):
        cancel = asyncio.Event()
        closed = []

        async def on_close():
            closed.append(True)

        stream = TextStream(
            fragments("one", "two", "three", delay=0.05), cancel=cancel, on_close=on_close
        )
        received = []
        with pytest.raises(RequestCancelledError):
            async for part in stream:
                received.append(part)
                cancel.set()
        assert received == ["one"]
        assert closed == [True]
