from __future__ import annotations

import logging
from typing import Any, Optional, Type

from ollama import AsyncClient
from openai import AsyncOpenAI

from mcp_bridge.providers.base import BaseAsyncLLM
from mcp_bridge.providers.copilot import CopilotLLM
from mcp_bridge.providers.ollama import OllamaLLM
from mcp_bridge.providers.openai import OpenAILLM
from mcp_bridge.settings import Provider, Settings, get_api_key

# map Provider enum to its LLM implementation
_LLM_REGISTRY: dict[Provider, Type[BaseAsyncLLM]] = {
    Provider.OLLAMA: OllamaLLM,
    Provider.OPENAI: OpenAILLM,
    Provider.COPILOT: CopilotLLM,
}


def create_llm(
    provider: Provider | str,
    model: str,
    *,
    api_key: str | None = None,
    client: AsyncOpenAI | AsyncClient | None = None,
    logger: logging.Logger | None = None,
    **provider_kwargs: Any,
) -> BaseAsyncLLM:
    """
    Factory for creating any supported LLM.

    Args:
        provider: Which provider to use (OLLAMA, OPENAI, COPILOT).
        model: Model identifier (e.g. "llama3.2" or "gpt-4o").
        api_key: Overrides automatic lookup; if omitted, pulled from env.
            Ignored for Ollama.
        client: Optional pre-configured client instance to use.
            - For Provider.OLLAMA: an ollama AsyncClient instance
            - For Provider.OPENAI / Provider.COPILOT: an AsyncOpenAI instance
        logger: Optional custom logger.
        **provider_kwargs: Any extra args to pass through (host, base_url, timeout).
    """
    try:
        llm_cls = _LLM_REGISTRY[Provider(provider)]
    except (KeyError, ValueError) as exc:
        raise ValueError(f"Unsupported provider: {provider}") from exc

    if client is not None:  # use caller-supplied client verbatim
        return llm_cls.from_client(model, client, logger=logger, **provider_kwargs)

    if llm_cls is OllamaLLM:
        return OllamaLLM(model, logger=logger, **provider_kwargs)

    key = api_key or get_api_key(Provider(provider))
    return llm_cls(model, api_key=key, logger=logger, **provider_kwargs)


def create_llm_from_settings(
    settings: Settings,
    *,
    logger: Optional[logging.Logger] = None,
) -> BaseAsyncLLM:
    match settings.provider:
        case Provider.OLLAMA:
            return create_llm(settings.provider, settings.model, logger=logger, host=settings.ollama_host)
        case Provider.OPENAI:
            return create_llm(
                settings.provider, settings.model, logger=logger, base_url=settings.openai_base_url
            )
        case Provider.COPILOT:
            return create_llm(
                settings.provider, settings.model, logger=logger, base_url=settings.copilot_base_url
            )
    raise ValueError(f"Unsupported provider: {settings.provider}")
