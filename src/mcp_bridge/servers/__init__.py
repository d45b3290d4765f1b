from .connection import (
    LocalToolServer,
    RemoteToolServer,
    ToolServerConnection,
    create_connection,
    prompt_text,
    resource_text,
    result_text,
)
from .manager import ToolServerManager

__all__ = [
    "LocalToolServer",
    "RemoteToolServer",
    "ToolServerConnection",
    "ToolServerManager",
    "create_connection",
    "prompt_text",
    "resource_text",
    "result_text",
]
