"""Backend selection from provider, model and configured API keys."""

from __future__ import annotations

from siftdesk.backends.base import ReportBackend
from siftdesk.backends.gemini import GeminiBackend
from siftdesk.backends.openai_compat import OpenAICompatibleBackend
from siftdesk.config import Settings, settings
from siftdesk.models.catalog import Provider, find_model


def api_key_for(provider: Provider, config: Settings = settings) -> str:
    return {
        Provider.GOOGLE_GEMINI: config.google_api_key,
        Provider.OPENAI: config.openai_api_key,
        Provider.OPENROUTER: config.openrouter_api_key,
        Provider.MISTRAL: config.mistral_api_key,
    }[provider]


def available_providers(config: Settings = settings) -> list[Provider]:
    return [p for p in Provider if api_key_for(p, config)]


def build_backend(provider: Provider, model_id: str, config: Settings = settings) -> ReportBackend:
    """Construct the backend for a model. Raises ValueError without an API key."""
    api_key = api_key_for(provider, config)
    if not api_key:
        raise ValueError(f"No API key configured for {provider.value}")
    model = find_model(provider, model_id)
    if provider is Provider.GOOGLE_GEMINI:
        return GeminiBackend(model, api_key)
    return OpenAICompatibleBackend(model, api_key)
