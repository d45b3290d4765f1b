"""Ollama adapter for pure request/response transformations."""

from __future__ import annotations

import uuid
from typing import Any

from ollama import ChatResponse as OllamaChatResponse

from mcp_bridge.params import normalize_params
from mcp_bridge.types.chat import ChatMessage, ChatRequest, ChatResponse, ToolCall

# generic option name -> Ollama option name
_OPTION_NAMES = {
    "temperature": "temperature",
    "top_p": "top_p",
    "seed": "seed",
    "stop": "stop",
    "max_tokens": "num_predict",
}


class OllamaRequestAdapter:
    """Adapter for converting between generic format and Ollama's chat API."""

    def to_provider(self, request: ChatRequest) -> dict[str, Any]:
        params = normalize_params(request.options)
        extras = params.pop("extra", {})
        options = {_OPTION_NAMES[k]: v for k, v in params.items()}
        if isinstance(options.get("stop"), str):
            options["stop"] = [options["stop"]]
        options.update(extras)
        # tool messages carry the name of the call they answer
        tool_names = {tc.id: tc.name for m in request.messages for tc in m.tool_calls}

        args: dict[str, Any] = {
            "model": request.model,
            "messages": [self._message(m, tool_names) for m in request.messages],
        }
        if request.tools:
            args["tools"] = [t.to_openai() for t in request.tools]
        if options:
            args["options"] = options
        return args

    @staticmethod
    def _message(message: ChatMessage, tool_names: dict[str, str]) -> dict[str, Any]:
        msg: dict[str, Any] = {"role": message.role, "content": message.text}
        if message.role == "tool" and message.tool_call_id in tool_names:
            msg["tool_name"] = tool_names[message.tool_call_id]
        if message.images:
            msg["images"] = [img.data for img in message.images]
        if message.tool_calls:
            msg["tool_calls"] = [
                {"function": {"name": tc.name, "arguments": tc.arguments}}
                for tc in message.tool_calls
            ]
        return msg

    def from_provider(self, raw: OllamaChatResponse) -> ChatResponse:
        message = raw.message
        # Ollama does not assign call ids, so synthesise unique ones
        tool_calls = [
            ToolCall(
                id=f"call_{index}_{uuid.uuid4().hex[:8]}",
                name=tc.function.name,
                arguments=dict(tc.function.arguments or {}),
            )
            for index, tc in enumerate(message.tool_calls or [])
        ]
        return ChatResponse(
            message=ChatMessage.assistant(message.content or "", tool_calls),
            done=bool(raw.done) if raw.done is not None else True,
            raw=raw,
        )

    def stream_text(self, raw_chunk: OllamaChatResponse) -> str:
        return raw_chunk.message.content or ""
