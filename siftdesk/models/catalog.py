"""Provider and model catalogue."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Provider(Enum):
    GOOGLE_GEMINI = "GOOGLE_GEMINI"
    OPENAI = "OPENAI"
    OPENROUTER = "OPENROUTER"
    MISTRAL = "MISTRAL"


GEMINI_PARAMS = {"temperature": 0.7, "topP": 0.95, "topK": 40}
GEMINI_THINKING_PARAMS = {**GEMINI_PARAMS, "maxOutputTokens": 4096, "thinkingBudget": 1024}
OPENAI_PARAMS = {"temperature": 0.7, "topP": 1, "max_tokens": 4096}


@dataclass(frozen=True)
class ModelConfig:
    """A selectable model and the knobs it accepts."""

    id: str
    name: str
    provider: Provider
    default_params: dict = field(default_factory=dict)
    supports_search: bool = False
    supports_vision: bool = False
    supports_thinking: bool = False


MODELS: list[ModelConfig] = [
    ModelConfig(
        id="gemini-3-pro-preview",
        name="Gemini 3 Pro",
        provider=Provider.GOOGLE_GEMINI,
        default_params=GEMINI_THINKING_PARAMS,
        supports_search=True,
        supports_vision=True,
        supports_thinking=True,
    ),
    ModelConfig(
        id="gemini-3-flash-preview",
        name="Gemini 3 Flash",
        provider=Provider.GOOGLE_GEMINI,
        default_params=GEMINI_THINKING_PARAMS,
        supports_search=True,
        supports_vision=True,
        supports_thinking=True,
    ),
    ModelConfig(
        id="gemini-flash-lite-latest",
        name="Gemini Flash Lite",
        provider=Provider.GOOGLE_GEMINI,
        default_params=GEMINI_PARAMS,
        supports_search=True,
        supports_vision=True,
    ),
    ModelConfig(
        id="gpt-4.1",
        name="GPT-4.1",
        provider=Provider.OPENAI,
        default_params=OPENAI_PARAMS,
        supports_vision=True,
    ),
    ModelConfig(
        id="gpt-4o-mini",
        name="GPT-4o mini",
        provider=Provider.OPENAI,
        default_params=OPENAI_PARAMS,
        supports_vision=True,
    ),
    ModelConfig(
        id="deepseek/deepseek-r1",
        name="DeepSeek R1 (OpenRouter)",
        provider=Provider.OPENROUTER,
        default_params=OPENAI_PARAMS,
        supports_thinking=True,
    ),
    ModelConfig(
        id="anthropic/claude-sonnet-4",
        name="Claude Sonnet 4 (OpenRouter)",
        provider=Provider.OPENROUTER,
        default_params=OPENAI_PARAMS,
        supports_vision=True,
    ),
    ModelConfig(
        id="mistral-large-latest",
        name="Mistral Large",
        provider=Provider.MISTRAL,
        default_params=OPENAI_PARAMS,
    ),
]


def find_model(provider: Provider, model_id: str) -> ModelConfig:
    """Look up a model; unknown ids get a bare config for that provider."""
    for model in MODELS:
        if model.provider is provider and model.id == model_id:
            return model
    defaults = GEMINI_PARAMS if provider is Provider.GOOGLE_GEMINI else OPENAI_PARAMS
    return ModelConfig(id=model_id, name=model_id, provider=provider, default_params=defaults)


def default_params(provider: Provider, model_id: str) -> dict:
    return dict(find_model(provider, model_id).default_params)


def default_model_for(provider: Provider) -> str:
    for model in MODELS:
        if model.provider is provider:
            return model.id
    raise ValueError(f"No models known for {provider.value}")
