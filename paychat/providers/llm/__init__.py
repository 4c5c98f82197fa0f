from typing import Any, Dict, Optional, Type

from .anthropic import AnthropicProvider
from .base import (
    LLMMessage,
    LLMProvider,
    LLMProviderAPIError,
    LLMProviderAuthError,
    LLMProviderError,
    LLMProviderRateLimitError,
    LLMResponse,
)

PROVIDER_ALIAS_MAP: Dict[str, str] = {
    "claude": "anthropic",
}

PROVIDER_REGISTRY: Dict[str, Type[LLMProvider]] = {
    AnthropicProvider.name: AnthropicProvider,
}


def canonical_provider_name(name: str) -> str:
    """Normalize provider aliases to their canonical identifier."""

    key = (name or "").strip().lower()
    return PROVIDER_ALIAS_MAP.get(key, key)


def create_provider(name: str, api_key: str, model: Optional[str], **options: Any) -> LLMProvider:
    provider_key = canonical_provider_name(name)
    try:
        provider_class = PROVIDER_REGISTRY[provider_key]
    except KeyError:
        raise ValueError(
            f"Unsupported provider '{name}'. Available providers: {', '.join(PROVIDER_REGISTRY)}"
        ) from None
    if not model:
        raise ValueError(f"No model provided for provider '{provider_key}'.")
    return provider_class(api_key=api_key, model=model, **options)


def _api_key_for(provider_key: str) -> str:
    from ...config import settings

    if provider_key == "anthropic":
        return settings.anthropic_api_key
    return ""


def get_llm_provider(provider_name: Optional[str] = None, model: Optional[str] = None) -> LLMProvider:
    """Provider from settings, optionally overriding the provider or model.

    A model id listed in the provider catalog selects its provider when no
    provider is named. Raises ``ValueError`` when the provider has no API key.
    """

    from ...config import settings

    model = (model or "").strip() or None
    requested = provider_name or (model and settings.resolve_provider_for_model(model)) or settings.llm_provider
    provider_key = canonical_provider_name(requested)

    api_key = _api_key_for(provider_key)
    if not api_key:
        raise ValueError(f"No API key configured for provider: {provider_key}")

    return create_provider(
        provider_key,
        api_key=api_key,
        model=model or settings.llm_model or settings.resolve_default_model(provider_key),
        timeout_s=settings.request_timeout_seconds,
    )


__all__ = [
    "AnthropicProvider",
    "LLMMessage",
    "LLMProvider",
    "LLMProviderAPIError",
    "LLMProviderAuthError",
    "LLMProviderError",
    "LLMProviderRateLimitError",
    "LLMResponse",
    "PROVIDER_REGISTRY",
    "canonical_provider_name",
    "create_provider",
    "get_llm_provider",
]
