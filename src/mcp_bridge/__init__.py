"""
MCP Bridge - tool-calling chat over Ollama, OpenAI-compatible and Copilot
backends, with tools served by MCP servers.
"""

from ._exceptions import (
    BridgeError,
    ConfigurationError,
    DiscoveryTimeoutError,
    InvalidRequestError,
    InvalidToolError,
    ModelUnavailableError,
    PayloadTooLargeError,
    ProviderError,
    ProviderUnavailableError,
    RequestCancelledError,
    ServerNotRunningError,
    ToolArgumentError,
    ToolDiscoveryError,
    ToolServerConnectionError,
    ToolServerError,
)
from .budget import truncate_request
from .config import LocalServerConfig, RemoteServerConfig, load_server_configs
from .factory import create_llm, create_llm_from_settings
from .models import model_token_limit
from .orchestrator import ConversationStore, ToolOrchestrator, TurnResult
from .providers import BaseAsyncLLM, CopilotLLM, OllamaLLM, OpenAILLM
from .runtime import BridgeRuntime
from .servers import ToolServerManager
from .settings import Provider, Settings, get_api_key
from .stream_utils import TextStream
from .types import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ImagePart,
    TextPart,
    ToolCall,
    ToolCallResult,
    ToolDescriptor,
    ToolOffer,
)

__version__ = "0.1.0"

__all__ = [
    "BaseAsyncLLM",
    "OllamaLLM",
    "OpenAILLM",
    "CopilotLLM",
    "create_llm",
    "create_llm_from_settings",
    "Provider",
    "Settings",
    "get_api_key",
    "BridgeRuntime",
    "ToolServerManager",
    "LocalServerConfig",
    "RemoteServerConfig",
    "load_server_configs",
    "ToolOrchestrator",
    "TurnResult",
    "ConversationStore",
    "truncate_request",
    "model_token_limit",
    "TextStream",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "ImagePart",
    "TextPart",
    "ToolCall",
    "ToolCallResult",
    "ToolDescriptor",
    "ToolOffer",
    "BridgeError",
    "ConfigurationError",
    "DiscoveryTimeoutError",
    "InvalidRequestError",
    "InvalidToolError",
    "ModelUnavailableError",
    "PayloadTooLargeError",
    "ProviderError",
    "ProviderUnavailableError",
    "RequestCancelledError",
    "ServerNotRunningError",
    "ToolArgumentError",
    "ToolDiscoveryError",
    "ToolServerConnectionError",
    "ToolServerError",
]
