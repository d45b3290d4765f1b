"""
Single-turn tool-calling loop.

One user turn is: offer tools, ask the model, run whatever tools it asked
for (all at once), then ask again without tools for the final answer. A turn
never runs more than one round of tool calls.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Iterable, Optional, Protocol, Sequence

from mcp_bridge.providers.base import BaseAsyncLLM
from mcp_bridge.servers.manager import ToolServerManager
from mcp_bridge.stream_utils import TextStream
from mcp_bridge.types.chat import ChatMessage, ChatRequest, ContentPart, ImagePart, TextPart, ToolCall
from mcp_bridge.types.tool import ToolCallResult

__all__ = ["ConversationStore", "TurnResult", "ToolOrchestrator"]


class ConversationStore(Protocol):
    """Where finished turns are persisted; returns the conversation id."""

    async def save_turn(self, question: str, answer: str) -> str:
        ...


@dataclass
class TurnResult:
    """Outcome of one turn.

    When the answer is streamed, ``answer`` and ``conversation_id`` are only
    filled in once ``stream`` has been read to the end.
    """

    answer: Optional[str] = None
    stream: Optional[TextStream] = None
    tool_results: list[ToolCallResult] = field(default_factory=list)
    messages: list[ChatMessage] = field(default_factory=list)
    conversation_id: Optional[str] = None

    @property
    def used_tools(self) -> bool:
        return bool(self.tool_results)

    async def collect(self) -> str:
        """Return the full answer, draining the stream if there is one."""
        if self.stream is not None and self.answer is None:
            await self.stream.text()
        return self.answer or ""


class ToolOrchestrator:
    def __init__(
        self,
        llm: BaseAsyncLLM,
        servers: ToolServerManager,
        *,
        model: Optional[str] = None,
        store: Optional[ConversationStore] = None,
        allowed_servers: Optional[Sequence[str]] = None,
        options: Optional[dict[str, Any]] = None,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
    ) -> None:
        self.llm = llm
        self.servers = servers
        self.model = model or llm.model
        self.store = store
        self.allowed_servers = list(allowed_servers) if allowed_servers else None
        self.options = dict(options or {})
        self.logger = logger or logging.getLogger(__name__)
        self.name = name or self.__class__.__name__

    async def run_turn(
        self,
        question: str,
        *,
        system_prompt: Optional[str] = None,
        server_names: Optional[Iterable[str]] = None,
        history: Sequence[ChatMessage] = (),
        images: Sequence[ImagePart] = (),
        stream: bool = False,
        cancel: Optional[asyncio.Event] = None,
    ) -> TurnResult:
        """
        Answer ``question``, calling tools once if the model asks for them.

        Args:
            question: The user's message text.
            system_prompt: Optional system message for both completions.
            server_names: Restrict the offered tools to these servers. Falls
                back to the orchestrator's allow-list, then to every server.
            history: Earlier messages of the conversation.
            images: Attachments sent with the question.
            stream: Stream the final answer.
            cancel: Event that aborts the provider calls when set.
        """
        names = list(server_names) if server_names else self.allowed_servers
        offers = self.servers.tool_offers(names)

        messages: list[ChatMessage] = []
        if system_prompt:
            messages.append(ChatMessage.system(system_prompt))
        messages.extend(history)
        messages.append(self._user_message(question, images))

        self._log(f"Turn started with {len(offers)} tools offered")
        first = await self.llm.chat(
            ChatRequest(self.model, messages, tools=offers, options=self.options),
            cancel=cancel,
        )
        result = TurnResult(messages=messages)

        if not first.tool_calls:
            result.answer = first.content
            result.conversation_id = await self._persist(question, result.answer)
            return result

        messages.append(first.message)
        result.tool_results = await self._run_tools(first.tool_calls)
        messages.extend(r.to_message() for r in result.tool_results)

        follow_up = await self.llm.chat(
            ChatRequest(self.model, messages, stream=stream, options=self.options),
            cancel=cancel,
        )
        if follow_up.stream is not None:
            result.stream = TextStream(self._persist_when_done(result, question, follow_up.stream))
            return result

        result.answer = follow_up.content
        result.conversation_id = await self._persist(question, result.answer)
        return result

    async def _run_tools(self, calls: Sequence[ToolCall]) -> list[ToolCallResult]:
        self._log(f"Executing {len(calls)} tool calls: {', '.join(c.name for c in calls)}")
        outcomes = await asyncio.gather(
            *(self.servers.execute_tool(c.name, c.arguments) for c in calls),
            return_exceptions=True,
        )
        results: list[ToolCallResult] = []
        for call, outcome in zip(calls, outcomes):
            if isinstance(outcome, Exception):
                self._log(f"Tool {call.name} failed: {outcome}", logging.WARNING)
                outcome = f"Error calling {call.name}: {outcome}"
            elif isinstance(outcome, BaseException):
                raise outcome
            results.append(ToolCallResult(call.id, outcome))
        return results

    async def _persist_when_done(
        self, result: TurnResult, question: str, stream: TextStream
    ) -> AsyncIterator[str]:
        parts: list[str] = []
        try:
            async for fragment in stream:
                parts.append(fragment)
                yield fragment
        finally:
            await stream.aclose()
        result.answer = "".join(parts)
        result.conversation_id = await self._persist(question, result.answer)

    async def _persist(self, question: str, answer: str) -> Optional[str]:
        if self.store is None:
            return None
        return await self.store.save_turn(question, answer)

    @staticmethod
    def _user_message(question: str, images: Sequence[ImagePart]) -> ChatMessage:
        if not images:
            return ChatMessage.user(question)
        parts: list[ContentPart] = [TextPart(question), *images]
        return ChatMessage.user(parts)

    def _log(self, message: str, level: int = logging.INFO) -> None:
        self.logger.log(level, f"[{self.name}] {message}")
