"""
Provider-neutral chat types.

Messages are immutable: the token budget manager builds new requests instead
of editing the caller's conversation in place.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, Optional, Sequence, Union

from mcp_bridge._exceptions import InvalidRequestError

if TYPE_CHECKING:
    from mcp_bridge.stream_utils import TextStream
    from mcp_bridge.types.tool import ToolOffer

__all__ = [
    "Role",
    "TextPart",
    "ImagePart",
    "ContentPart",
    "ToolCall",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
]

Role = Literal["system", "user", "assistant", "tool"]
_ROLES = ("system", "user", "assistant", "tool")


@dataclass(frozen=True, slots=True)
class TextPart:
    text: str


@dataclass(frozen=True, slots=True)
class ImagePart:
    """An inline image attachment, base64 encoded."""
    data: str
    media_type: str = "image/png"

    @property
    def data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.data}"


ContentPart = Union[TextPart, ImagePart]


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A model-agnostic request emitted by the LLM to call a tool."""
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": json.dumps(self.arguments)},
        }


@dataclass(frozen=True, slots=True)
class ChatMessage:
    role: Role
    content: Union[str, tuple[ContentPart, ...]] = ""
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.role not in _ROLES:
            raise InvalidRequestError(f"Unknown message role: {self.role!r}")
        if isinstance(self.content, list):
            object.__setattr__(self, "content", tuple(self.content))
        if isinstance(self.tool_calls, list):
            object.__setattr__(self, "tool_calls", tuple(self.tool_calls))
        if self.tool_calls and self.role != "assistant":
            raise InvalidRequestError("Only assistant messages may carry tool calls")
        if self.role == "tool" and not self.tool_call_id:
            raise InvalidRequestError("Tool messages require a tool_call_id")
        if self.tool_call_id and self.role != "tool":
            raise InvalidRequestError("Only tool messages may carry a tool_call_id")

    # Constructors
    @classmethod
    def system(cls, text: str) -> ChatMessage:
        return cls("system", text)

    @classmethod
    def user(cls, content: Union[str, Sequence[ContentPart]]) -> ChatMessage:
        return cls("user", content if isinstance(content, str) else tuple(content))

    @classmethod
    def assistant(cls, text: str = "", tool_calls: Sequence[ToolCall] = ()) -> ChatMessage:
        return cls("assistant", text, tuple(tool_calls))

    @classmethod
    def tool(cls, tool_call_id: str, text: str) -> ChatMessage:
        return cls("tool", text, tool_call_id=tool_call_id)

    @property
    def text(self) -> str:
        """Concatenated text content, ignoring attachments."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(p.text for p in self.content if isinstance(p, TextPart))

    @property
    def images(self) -> list[ImagePart]:
        if isinstance(self.content, str):
            return []
        return [p for p in self.content if isinstance(p, ImagePart)]

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the chat-completions wire shape."""
        msg: dict[str, Any] = {"role": self.role}
        if isinstance(self.content, str):
            msg["content"] = self.content
        else:
            parts: list[dict[str, Any]] = []
            for part in self.content:
                if isinstance(part, TextPart):
                    parts.append({"type": "text", "text": part.text})
                else:
                    parts.append({"type": "image_url", "image_url": {"url": part.data_url}})
            msg["content"] = parts
        if self.tool_calls:
            msg["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
            # content must be null rather than empty next to tool calls
            if not self.text:
                msg["content"] = None
        if self.tool_call_id:
            msg["tool_call_id"] = self.tool_call_id
        return msg


@dataclass(frozen=True, slots=True)
class ChatRequest:
    model: str
    messages: tuple[ChatMessage, ...]
    tools: tuple["ToolOffer", ...] = ()
    stream: bool = False
    options: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.messages, tuple):
            object.__setattr__(self, "messages", tuple(self.messages))
        if not isinstance(self.tools, tuple):
            object.__setattr__(self, "tools", tuple(self.tools))


@dataclass
class ChatResponse:
    """Unified response object for all providers.

    For streaming requests ``message`` holds an empty assistant message and
    the text arrives through ``stream``.
    """

    message: ChatMessage
    stream: Optional["TextStream"] = None
    done: bool = True
    raw: Any = None

    @property
    def content(self) -> str:
        return self.message.text

    @property
    def tool_calls(self) -> tuple[ToolCall, ...]:
        return self.message.tool_calls
