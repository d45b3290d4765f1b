"""
Sampling option normalization for mcp-bridge.

Public API
- Callers pass a dict as ``ChatRequest.options``.

Contract
- Standard keys work across providers:
  temperature: float
  top_p: float
  max_tokens: int
  seed: int
  stop: str | list[str]

- Provider specific keys go under `extra` and pass through unchanged.
  Examples:
    extra.num_ctx: int            (Ollama)
    extra.frequency_penalty: float (OpenAI-compatible)

Unknown top-level keys are moved into extra.
"""

from __future__ import annotations

from typing import Any

STANDARD_KEYS = {
    "temperature",
    "top_p",
    "max_tokens",
    "seed",
    "stop",
}


def normalize_params(params: dict[str, Any] | None) -> dict[str, Any]:
    """
    Normalize a user-supplied options dict to a single internal shape.

    Returns a dict with only standard keys plus an `extra` dict.
    Rules:
      - Keys not in STANDARD_KEYS are moved into extra
      - If the caller already passed an `extra` dict it is merged last
      - None values are dropped

    Example
    -------
    >>> normalize_params({"temperature": 0.2, "num_ctx": 4096})
    {'temperature': 0.2, 'extra': {'num_ctx': 4096}}
    """
    if params is None:
        return {"extra": {}}
    if not isinstance(params, dict):
        raise TypeError(f"params must be a dict, got {type(params).__name__}")

    user_extra = params.get("extra") or {}
    if not isinstance(user_extra, dict):
        raise TypeError("params['extra'] must be a dict")

    std: dict[str, Any] = {}
    extra: dict[str, Any] = {}
    for key, value in params.items():
        if key == "extra" or value is None:
            continue
        if key in STANDARD_KEYS:
            std[key] = value
        else:
            extra[key] = value

    std["extra"] = {**extra, **user_extra}
    return std
