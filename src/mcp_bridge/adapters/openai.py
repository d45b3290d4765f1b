"""OpenAI chat-completions adapter for pure request/response transformations."""

from __future__ import annotations

import json
import logging
from typing import Any

from openai.types.chat import ChatCompletion, ChatCompletionChunk

from mcp_bridge.params import normalize_params
from mcp_bridge.types.chat import ChatMessage, ChatRequest, ChatResponse, ToolCall

logger = logging.getLogger(__name__)


class OpenAIRequestAdapter:
    """Adapter for converting between generic format and OpenAI format."""

    def to_provider(self, request: ChatRequest) -> dict[str, Any]:
        """Convert a generic request to chat-completions keyword arguments."""
        params = normalize_params(request.options)
        extras = params.pop("extra", {})

        args: dict[str, Any] = {
            "model": request.model,
            "messages": [m.to_dict() for m in request.messages],
            **params,
        }
        if request.tools:
            args["tools"] = [t.to_openai() for t in request.tools]
        for k, v in extras.items():
            args.setdefault(k, v)
        return args

    def from_provider(self, raw: ChatCompletion) -> ChatResponse:
        """Convert an OpenAI completion to a unified ChatResponse."""
        message = raw.choices[0].message
        tool_calls: list[ToolCall] = []
        for tc in message.tool_calls or []:
            raw_args = tc.function.arguments
            arguments: dict[str, Any] = {}
            if isinstance(raw_args, str) and raw_args.strip():
                try:
                    arguments = json.loads(raw_args)
                except json.JSONDecodeError:
                    logger.warning("Skipping tool call %s with malformed arguments", tc.id)
                    continue  # Skip malformed tool calls
            tool_calls.append(ToolCall(id=tc.id, name=tc.function.name, arguments=arguments))

        return ChatResponse(
            message=ChatMessage.assistant(message.content or "", tool_calls),
            raw=raw,
        )

    def stream_text(self, raw_chunk: ChatCompletionChunk) -> str:
        """Extract content from a streaming chunk."""
        if raw_chunk.choices and raw_chunk.choices[0].delta:
            return raw_chunk.choices[0].delta.content or ""
        return ""
