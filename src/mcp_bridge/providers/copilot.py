from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import openai

from mcp_bridge._exceptions import ModelUnavailableError
from mcp_bridge.providers.openai import OpenAILLM
from mcp_bridge.types.chat import ChatRequest

COPILOT_BASE_URL = "https://api.githubcopilot.com"

COPILOT_HEADERS: dict[str, str] = {
    "Editor-Version": "vscode/1.95.0",
    "Editor-Plugin-Version": "copilot-chat/0.22.0",
    "Copilot-Integration-Id": "vscode-chat",
}

FALLBACK_MODELS = ["gpt-4o", "gpt-4o-mini"]
MODEL_DISABLED_CODE = "model_max_prompt_tokens_exceeded"


class CopilotLLM(OpenAILLM):
    """
    GitHub Copilot chat gateway.

    Speaks the chat-completions protocol but caps every request at 8000
    tokens, needs editor integration headers, and reports models that are
    not enabled for the account as a prompt limit of 0.
    """

    hard_token_cap = 8000

    def __init__(
        self,
        model: str,
        *,
        api_key: str,
        base_url: Optional[str] = None,
        default_headers: Optional[Mapping[str, str]] = None,
        logger: Optional[logging.Logger] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            model,
            api_key=api_key,
            base_url=base_url or COPILOT_BASE_URL,
            default_headers={**COPILOT_HEADERS, **(default_headers or {})},
            logger=logger,
            **kwargs,
        )

    async def list_models(self) -> list[str]:
        try:
            models = await self._fetch_models()
        except openai.OpenAIError as exc:
            self._log(f"Could not list models, using defaults: {exc}", logging.WARNING)
            return list(FALLBACK_MODELS)
        return models or list(FALLBACK_MODELS)

    async def _raise_for_status(self, exc: openai.APIStatusError, request: ChatRequest) -> None:
        if (
            exc.status_code == 400
            and exc.code == MODEL_DISABLED_CODE
            and "limit of 0" in exc.message
        ):
            self._log(f"Model '{request.model}' is not available (token limit of 0)", logging.WARNING)
            available = await self.list_models()
            raise ModelUnavailableError(request.model, available, exc) from exc
        await super()._raise_for_status(exc, request)
