"""Context window sizes for well-known model families."""
from __future__ import annotations

import logging
from typing import Mapping, Optional

__all__ = ["DEFAULT_TOKEN_LIMIT", "MODEL_TOKEN_LIMITS", "model_token_limit"]

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LIMIT = 8192

# Keys are model-name prefixes; the longest matching prefix wins.
MODEL_TOKEN_LIMITS: dict[str, int] = {
    # OpenAI
    "gpt-4o": 128000,
    "gpt-4-turbo": 128000,
    "gpt-4.1": 1047576,
    "gpt-4-32k": 32768,
    "gpt-4": 8192,
    "gpt-3.5-turbo-instruct": 4096,
    "gpt-3.5": 16385,
    "o1": 128000,
    "o3": 128000,
    # Anthropic
    "claude": 200000,
    # Google
    "gemini-1.5": 1048576,
    "gemini-2": 1048576,
    "gemini": 32768,
    # Ollama families
    "llama3.1": 131072,
    "llama3.2": 131072,
    "llama3.3": 131072,
    "llama3": 8192,
    "llama2": 4096,
    "mistral": 32768,
    "mixtral:8x22b": 65536,
    "mixtral": 32768,
    "qwen": 32768,
}


def model_token_limit(model: str, overrides: Optional[Mapping[str, int]] = None) -> int:
    """
    Return the context window of ``model`` in tokens.

    Exact names win over prefixes, and ``overrides`` win over the built-in
    table. A namespace such as ``openai/`` is ignored. Unknown models get
    ``DEFAULT_TOKEN_LIMIT`` and a warning.
    """
    table = {**MODEL_TOKEN_LIMITS, **(overrides or {})}
    name = model.strip().lower().rsplit("/", 1)[-1]

    if name in table:
        return table[name]

    matches = [key for key in table if name.startswith(key)]
    if matches:
        return table[max(matches, key=len)]

    logger.warning("Unknown model '%s', assuming a %d token context", model, DEFAULT_TOKEN_LIMIT)
    return DEFAULT_TOKEN_LIMIT
