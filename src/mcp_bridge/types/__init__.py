from .chat import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ContentPart,
    ImagePart,
    Role,
    TextPart,
    ToolCall,
)
from .tool import (
    OfferKind,
    PromptArgument,
    PromptDescriptor,
    ResourceDescriptor,
    ToolCallResult,
    ToolDescriptor,
    ToolOffer,
    parse_prompt_descriptors,
    parse_resource_descriptors,
    parse_tool_descriptors,
    prompt_tool,
    qualified_tool_name,
    resource_reader_tool,
    validate_arguments,
)

__all__ = [
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "ContentPart",
    "ImagePart",
    "Role",
    "TextPart",
    "ToolCall",
    "OfferKind",
    "PromptArgument",
    "PromptDescriptor",
    "ResourceDescriptor",
    "ToolCallResult",
    "ToolDescriptor",
    "ToolOffer",
    "parse_prompt_descriptors",
    "parse_resource_descriptors",
    "parse_tool_descriptors",
    "prompt_tool",
    "qualified_tool_name",
    "resource_reader_tool",
    "validate_arguments",
]
