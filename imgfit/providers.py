"""
Provider-specific image size ceilings and proxy resolution.

Limits are for decoded image bytes (before base64 encoding). Provider
identifiers follow the models.dev registry names.
"""
from __future__ import annotations

from typing import Dict, Mapping, Optional

KB = 1024
MB = 1024 * 1024


PROVIDER_IMAGE_LIMITS: Dict[str, int] = {
    # 5 MB per image on the API, oversized images are rejected.
    "anthropic": 5 * MB,
    # 5 MB encoded / 1.33 ~= 3.75 MB decoded.
    "amazon-bedrock": int(3.75 * MB),
    "openai": 20 * MB,
    "azure": 20 * MB,
    # AI Studio inline limit per request.
    "google": 100 * MB,
    "google-vertex": 7 * MB,
    "google-vertex-anthropic": 5 * MB,
    # base64 limit (URLs allow 20 MB).
    "groq": 4 * MB,
    "fireworks-ai": 10 * MB,
    "perplexity": 50 * MB,
    "xai": 20 * MB,
    # Not officially documented.
    "deepseek": 10 * MB,
    "togetherai": 20 * MB,
    "mistral": 10 * MB,
    # Unknown providers get a conservative ceiling.
    "default": 5 * MB,
}

# Model ID prefix -> provider that actually enforces the limit.
# Order matters: the first matching prefix wins.
MODEL_PREFIX_TO_PROVIDER: Dict[str, str] = {
    "claude": "anthropic",
    "gpt": "openai",
    "o1": "openai",
    "o3": "openai",
    "o4": "openai",
    "gemini": "google",
    "grok": "xai",
    "deepseek": "deepseek",
    "llama": "groq",
    "mixtral": "groq",
    "qwen": "fireworks-ai",
    "mistral": "mistral",
}

# Destinations that forward to an upstream provider without a limit of their own.
PROXY_PROVIDERS = frozenset(
    {
        "github-copilot",
        "opencode",
        "github-models",
        "openrouter",
    }
)


def resolve_provider_from_model(
    model_id: str,
    prefixes: Mapping[str, str] = MODEL_PREFIX_TO_PROVIDER,
) -> Optional[str]:
    """Return the upstream provider for a model ID, or None if no prefix matches."""
    model = model_id.lower()
    for prefix, provider in prefixes.items():
        if model.startswith(prefix.lower()):
            return provider
    return None


def resolve_limit(
    destination_id: str,
    model_id: Optional[str] = None,
    limits: Mapping[str, int] = PROVIDER_IMAGE_LIMITS,
) -> int:
    """
    Byte ceiling for a destination.

    - proxy destinations with a model ID resolve through the model prefix table
    - everything else uses the direct entry, model ID ignored
    - unknown destinations fall back to limits["default"]
    """
    if destination_id in PROXY_PROVIDERS and model_id:
        upstream = resolve_provider_from_model(model_id)
        if upstream is not None and upstream in limits:
            return limits[upstream]

    limit = limits.get(destination_id)
    if limit is None:
        return limits.get("default", PROVIDER_IMAGE_LIMITS["default"])
    return limit
