from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import StrEnum
from typing import Optional, Self

from dotenv import load_dotenv

from mcp_bridge._exceptions import ConfigurationError

load_dotenv()

DEFAULT_CONFIG_PATH = "mcp-servers.json"
DEFAULT_OLLAMA_HOST = "http://localhost:11434"


class Provider(StrEnum):
    OLLAMA = "ollama"
    OPENAI = "openai"
    COPILOT = "copilot"


_ENV_VARS: dict[Provider, str] = {
    Provider.OPENAI: "OPENAI_API_KEY",
    Provider.COPILOT: "GITHUB_TOKEN",
}


def get_api_key(provider: Provider) -> str:
    env = _ENV_VARS.get(provider)
    if not env:
        raise ConfigurationError(f"Provider {provider} does not use an API key")
    key = os.getenv(env)
    if not key:
        raise ConfigurationError(f"Missing {env} environment variable")
    return key


@dataclass(frozen=True)
class Settings:
    """Runtime settings, read from the environment (and a ``.env`` file)."""

    provider: Provider = Provider.OLLAMA
    model: str = "llama3.2"
    ollama_host: str = DEFAULT_OLLAMA_HOST
    openai_base_url: Optional[str] = None
    copilot_base_url: Optional[str] = None
    config_path: str = DEFAULT_CONFIG_PATH
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Self:
        raw_provider = os.getenv("LLM_PROVIDER", Provider.OLLAMA.value).lower()
        try:
            provider = Provider(raw_provider)
        except ValueError as exc:
            choices = ", ".join(p.value for p in Provider)
            raise ConfigurationError(
                f"Unknown LLM_PROVIDER '{raw_provider}', expected one of: {choices}"
            ) from exc

        return cls(
            provider=provider,
            model=os.getenv("LLM_MODEL", cls.model),
            ollama_host=os.getenv("OLLAMA_HOST", DEFAULT_OLLAMA_HOST),
            openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
            copilot_base_url=os.getenv("COPILOT_BASE_URL") or None,
            config_path=os.getenv("MCP_CONFIG_PATH", DEFAULT_CONFIG_PATH),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    @property
    def log_level_value(self) -> int:
        level = logging.getLevelName(self.log_level)
        return level if isinstance(level, int) else logging.INFO
