"""Shared fixtures and fakes for the test-suite."""
from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any, AsyncIterator, Optional, Sequence

import pytest

from mcp_bridge._exceptions import ToolServerConnectionError, ToolServerError
from mcp_bridge.config import LocalServerConfig, RemoteServerConfig
from mcp_bridge.providers.base import BaseAsyncLLM
from mcp_bridge.servers.connection import ToolServerConnection
from mcp_bridge.stream_utils import TextStream
from mcp_bridge.types.chat import ChatMessage, ChatRequest, ChatResponse, ToolCall

FAKE_SERVER = Path(__file__).with_name("fake_tool_server.py")


def local_config(*args: str, **kwargs: Any) -> LocalServerConfig:
    """Config that runs the fake stdio tool server with the current interpreter."""
    return LocalServerConfig(command=sys.executable, args=(str(FAKE_SERVER), *args), **kwargs)


class FakeConnection(ToolServerConnection):
    """In-memory tool server used by manager and orchestrator tests."""

    def __init__(
        self,
        name: str,
        config: Any,
        *,
        logger: Any = None,
        tools: Sequence[dict[str, Any]] = (),
        fail_start: bool = False,
        fail_discovery: bool = False,
        results: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(name, config, logger=logger)
        self.raw_tools = list(tools)
        self.fail_start = fail_start
        self.fail_discovery = fail_discovery
        self.results = dict(results or {})
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.stop_count = 0

    async def start(self) -> None:
        if self.fail_start:
            raise ToolServerConnectionError(f"cannot start {self.name}")
        self.running = True

    async def _list_tools(self) -> Any:
        if self.fail_discovery:
            raise ToolServerError("listing broke")
        return self.raw_tools

    async def _call(self, name: str, arguments: dict[str, Any]) -> Any:
        self.calls.append((name, arguments))
        result = self.results.get(name, f"{name} ok")
        if isinstance(result, Exception):
            raise result
        return result

    async def _close(self) -> None:
        self.stop_count += 1


def tool(name: str, description: str = "", **properties: str) -> dict[str, Any]:
    return {
        "name": name,
        "description": description,
        "inputSchema": {
            "type": "object",
            "properties": {k: {"type": v} for k, v in properties.items()},
            "required": list(properties),
        },
    }


class ScriptedLLM(BaseAsyncLLM):
    """Provider that replays canned responses and records every request."""

    def __init__(self, responses: Sequence[Any], model: str = "gpt-4o", **kwargs: Any) -> None:
        super().__init__(model, **kwargs)
        self.responses = list(responses)
        self.requests: list[ChatRequest] = []
        self.closed = False
        self.healthy = True

    @property
    def adapter(self) -> Any:
        return None

    async def check_health(self) -> bool:
        return self.healthy

    async def list_models(self) -> list[str]:
        return [self.model]

    async def _chat_impl(self, request: ChatRequest, cancel: Optional[asyncio.Event]) -> ChatResponse:
        self.requests.append(request)
        scripted = self.responses.pop(0)
        if isinstance(scripted, Exception):
            raise scripted
        if request.stream:
            fragments = scripted if isinstance(scripted, list) else [scripted]
            return ChatResponse(
                message=ChatMessage.assistant(""),
                stream=TextStream(_fragments(fragments), cancel=cancel),
                done=False,
            )
        if isinstance(scripted, ChatMessage):
            return ChatResponse(message=scripted)
        return ChatResponse(message=ChatMessage.assistant(scripted))

    async def aclose(self) -> None:
        self.closed = True


async def _fragments(parts: list[str]) -> AsyncIterator[str]:
    for part in parts:
        await asyncio.sleep(0)
        yield part


def tool_call_message(*calls: tuple[str, str, dict[str, Any]]) -> ChatMessage:
    return ChatMessage.assistant("", [ToolCall(cid, name, args) for cid, name, args in calls])


class MemoryStore:
    def __init__(self) -> None:
        self.turns: list[tuple[str, str]] = []

    async def save_turn(self, question: str, answer: str) -> str:
        self.turns.append((question, answer))
        return f"conv-{len(self.turns)}"


@pytest.fixture
def remote_config() -> RemoteServerConfig:
    return RemoteServerConfig(url="http://tools.test/mcp", headers={"Authorization": "Bearer t0k"})


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()
