"""
Token budget management.

Keeps a chat request within a model's context window while preserving the
system message, the latest user message, and complete tool-call units (an
assistant message with tool calls plus every tool message answering it).

All functions here are pure: they never mutate their inputs and never raise
for an oversized request, they always return *some* request that fits.
"""
from __future__ import annotations

import json
import math
from dataclasses import replace
from typing import Iterator, Optional, Sequence

from mcp_bridge._exceptions import InvalidRequestError
from mcp_bridge.types.chat import ChatMessage, ChatRequest, ImagePart, TextPart
from mcp_bridge.types.tool import ToolOffer

__all__ = [
    "CHARS_PER_TOKEN",
    "BUDGET_RATIO",
    "AGGRESSIVE_RATIO",
    "TRUNCATION_MARKER",
    "IMAGE_PLACEHOLDER",
    "estimate_tokens",
    "message_tokens",
    "tools_tokens",
    "request_tokens",
    "truncate_request",
    "strip_attachments",
    "check_tool_links",
]

CHARS_PER_TOKEN = 4
BUDGET_RATIO = 0.8
AGGRESSIVE_RATIO = 0.5
TRUNCATION_MARKER = "... [truncated]"
IMAGE_PLACEHOLDER = "[image removed]"


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def message_tokens(message: ChatMessage) -> int:
    if isinstance(message.content, str):
        chars = len(message.content)
    else:
        chars = sum(
            len(part.text) if isinstance(part, TextPart) else len(part.data)
            for part in message.content
        )
    if message.tool_calls:
        chars += len(json.dumps([tc.to_dict() for tc in message.tool_calls]))
    return math.ceil(chars / CHARS_PER_TOKEN)


def tools_tokens(tools: Sequence[ToolOffer]) -> int:
    if not tools:
        return 0
    return estimate_tokens(json.dumps([t.to_openai() for t in tools]))


def request_tokens(request: ChatRequest) -> int:
    return sum(message_tokens(m) for m in request.messages) + tools_tokens(request.tools)


def truncate_request(request: ChatRequest, limit: int) -> ChatRequest:
    """
    Reduce ``request`` to fit 80% of ``limit`` tokens.

    Returns the request itself when it already fits. Otherwise history is
    kept newest-first, one unit at a time, until the next unit would not fit.
    When even the system message plus the latest user message are too big,
    only those two are kept and the user text is cut down to a quarter of
    the model limit.
    """
    budget = int(limit * BUDGET_RATIO)
    if request_tokens(request) <= budget:
        return request

    messages = request.messages
    system_idx = next((i for i, m in enumerate(messages) if m.role == "system"), None)
    user_idx = next(
        (i for i in range(len(messages) - 1, -1, -1) if messages[i].role == "user"), None
    )
    core = {i for i in (system_idx, user_idx) if i is not None}

    used = tools_tokens(request.tools) + sum(message_tokens(messages[i]) for i in core)
    if used > budget:
        return _aggressive(request, limit, system_idx, user_idx)

    kept = set(core)
    for unit in _units(messages, core):
        cost = sum(message_tokens(messages[i]) for i in unit)
        if used + cost > budget:
            break
        kept.update(unit)
        used += cost

    retained = _repair_tool_links([messages[i] for i in sorted(kept)])
    return replace(request, messages=tuple(retained))


def _units(messages: Sequence[ChatMessage], core: set[int]) -> Iterator[list[int]]:
    """Yield keepable units of message indexes, newest first."""
    for i in range(len(messages) - 1, -1, -1):
        if i in core:
            continue
        message = messages[i]
        if message.role == "user" or (message.role == "assistant" and not message.tool_calls):
            yield [i]
        elif message.role == "assistant":
            wanted = {tc.id for tc in message.tool_calls}
            answers: list[int] = []
            for j in range(i + 1, len(messages)):
                other = messages[j]
                if other.role == "assistant":
                    break
                if other.role == "tool" and other.tool_call_id in wanted and j not in core:
                    answers.append(j)
            if {messages[j].tool_call_id for j in answers} >= wanted:
                yield [i, *answers]
        # extra system messages and orphan tool messages never form a unit


def _aggressive(
    request: ChatRequest,
    limit: int,
    system_idx: Optional[int],
    user_idx: Optional[int],
) -> ChatRequest:
    aggressive = int(limit * AGGRESSIVE_RATIO)
    keep_tokens = aggressive // 2
    retained: list[ChatMessage] = []
    if system_idx is not None:
        retained.append(request.messages[system_idx])
    if user_idx is not None:
        text = request.messages[user_idx].text
        if estimate_tokens(text) > keep_tokens:
            text = text[: keep_tokens * CHARS_PER_TOKEN] + TRUNCATION_MARKER
        retained.append(ChatMessage.user(text))
    return replace(request, messages=tuple(retained))


def _repair_tool_links(messages: list[ChatMessage]) -> list[ChatMessage]:
    """Drop assistant messages with unanswered calls, then the orphans that leaves."""
    for _ in range(2):
        answered = {m.tool_call_id for m in messages if m.role == "tool"}
        complete = [
            m
            for m in messages
            if not (m.tool_calls and any(tc.id not in answered for tc in m.tool_calls))
        ]
        issued: set[str] = set()
        repaired: list[ChatMessage] = []
        for m in complete:
            issued.update(tc.id for tc in m.tool_calls)
            if m.role == "tool" and m.tool_call_id not in issued:
                continue
            repaired.append(m)
        if len(repaired) == len(messages):
            return repaired
        messages = repaired
    return messages


def strip_attachments(request: ChatRequest) -> ChatRequest:
    """Replace every image part with a short text placeholder."""
    if not any(m.images for m in request.messages):
        return request
    stripped = []
    for message in request.messages:
        if message.images:
            parts = tuple(
                TextPart(IMAGE_PLACEHOLDER) if isinstance(p, ImagePart) else p
                for p in message.content
            )
            message = replace(message, content=parts)
        stripped.append(message)
    return replace(request, messages=tuple(stripped))


def check_tool_links(messages: Sequence[ChatMessage]) -> None:
    """Raise InvalidRequestError if a tool message answers no earlier tool call."""
    issued: set[str] = set()
    for message in messages:
        issued.update(tc.id for tc in message.tool_calls)
        if message.role == "tool" and message.tool_call_id not in issued:
            raise InvalidRequestError(
                f"Tool message {message.tool_call_id!r} has no matching assistant tool call"
            )
