"""
Tool-server configuration file.

The file holds one entry per server under a top-level ``mcp`` key::

    {
      "mcp": {
        "time": {"type": "local", "command": ["python", "time_server.py"]},
        "search": {"type": "remote", "url": "https://tools.example.com/mcp"}
      }
    }

A missing file means "no tool servers". Servers are enabled unless they say
``"enabled": false``.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from mcp_bridge._exceptions import ConfigurationError

__all__ = [
    "LocalServerConfig",
    "RemoteServerConfig",
    "ToolServerConfig",
    "ToolServerConfigFile",
    "load_server_configs",
    "parse_server_configs",
    "server_config",
    "enabled_servers",
    "write_default_config",
]

logger = logging.getLogger(__name__)


class LocalServerConfig(BaseModel):
    """A tool server spawned as a child process speaking newline-delimited JSON."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["local"] = "local"
    command: str = Field(min_length=1)
    args: tuple[str, ...] = ()
    environment: dict[str, str] = Field(default_factory=dict)
    enabled: bool = True

    @model_validator(mode="before")
    @classmethod
    def _split_command(cls, data: Any) -> Any:
        # ["python", "server.py"] is shorthand for command + args
        if isinstance(data, dict) and isinstance(data.get("command"), list):
            parts = list(data["command"])
            if not parts:
                raise ValueError("command must not be empty")
            data = {**data, "command": parts[0], "args": [*parts[1:], *data.get("args", [])]}
        return data

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.args]


class RemoteServerConfig(BaseModel):
    """A tool server reachable over HTTP."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["remote"] = "remote"
    url: str = Field(min_length=1)
    headers: dict[str, str] = Field(default_factory=dict)
    enabled: bool = True


ToolServerConfig = Annotated[
    Union[LocalServerConfig, RemoteServerConfig], Field(discriminator="type")
]


class ToolServerConfigFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    mcp: dict[str, ToolServerConfig] = Field(default_factory=dict)


_CONFIG_ADAPTER: TypeAdapter[ToolServerConfig] = TypeAdapter(ToolServerConfig)


def parse_server_configs(raw: Any) -> dict[str, ToolServerConfig]:
    """Validate an already-decoded config document."""
    try:
        return dict(ToolServerConfigFile.model_validate(raw).mcp)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid tool server config: {exc}", exc) from exc


def load_server_configs(path: str | Path) -> dict[str, ToolServerConfig]:
    """Read and validate the config file at ``path``; a missing file yields ``{}``."""
    path = Path(path)
    if not path.exists():
        logger.debug("Tool server config %s not found, using empty config", path)
        return {}
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Failed to read tool server config {path}: {exc}", exc) from exc

    configs = parse_server_configs(raw)
    logger.debug("Loaded %d tool server configs from %s", len(configs), path)
    return configs


def enabled_servers(configs: Mapping[str, ToolServerConfig]) -> dict[str, ToolServerConfig]:
    return {name: cfg for name, cfg in configs.items() if cfg.enabled}


def server_config(raw: Mapping[str, Any]) -> ToolServerConfig:
    """Validate a single server entry."""
    try:
        return _CONFIG_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid tool server config: {exc}", exc) from exc


def write_default_config(path: str | Path) -> Path:
    """Write an example config with two disabled servers."""
    path = Path(path)
    example = ToolServerConfigFile(
        mcp={
            "example-local": LocalServerConfig(
                command="python",
                args=("example_server.py",),
                environment={"PYTHONUNBUFFERED": "1"},
                enabled=False,
            ),
            "example-remote": RemoteServerConfig(
                url="https://api.example.com/mcp",
                headers={"Authorization": "Bearer your-token-here"},
                enabled=False,
            ),
        }
    )
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(example.model_dump_json(indent=2), encoding="utf-8")
    logger.info("Created default tool server config at %s", path)
    return path
