"""
Model Registry

The model the pipeline talks to is a deployment setting (``OPENAI_MODEL``),
not a per-request choice. Each registered model names the OpenAI API it is
served through; every model on the same API shares one provider instance.
"""

from dataclasses import dataclass
from typing import Callable

from mathprereq.services.llm.base import LLMProvider


@dataclass(frozen=True)
class ModelSpec:
    id: str
    display_name: str
    provider: str  # key into PROVIDER_FACTORIES
    api_model: str  # model string sent to the API
    tier: str
    description: str = ""

    def describe(self, active: bool = False) -> dict:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "provider": self.provider,
            "tier": self.tier,
            "description": self.description,
            "active": active,
        }


# ── Models ────────────────────────────────────────────────────────────────────

MODELS = (
    ModelSpec(
        id="gpt-5-mini",
        display_name="GPT-5 Mini",
        provider="openai_responses",
        api_model="gpt-5-mini",
        tier="standard",
        description="Reasoning model. Slower, better on multi-step derivations.",
    ),
    ModelSpec(
        id="gpt-4o",
        display_name="GPT-4o",
        provider="openai_chat",
        api_model="gpt-4o",
        tier="standard",
        description="Fast and reliable. Recommended default.",
    ),
    ModelSpec(
        id="gpt-4o-mini",
        display_name="GPT-4o Mini (Budget)",
        provider="openai_chat",
        api_model="gpt-4o-mini",
        tier="budget",
        description="Fastest and cheapest. Fine for concept identification.",
    ),
)

MODEL_REGISTRY: dict[str, ModelSpec] = {m.id: m for m in MODELS}

DEFAULT_MODEL_ID = "gpt-4o"


# ── Providers ─────────────────────────────────────────────────────────────────

def _responses_provider() -> LLMProvider:
    from mathprereq.services.llm.openai_responses import OpenAIResponsesProvider
    return OpenAIResponsesProvider()


def _chat_provider() -> LLMProvider:
    from mathprereq.services.llm.openai_chat import OpenAIChatProvider
    return OpenAIChatProvider()


PROVIDER_FACTORIES: dict[str, Callable[[], LLMProvider]] = {
    "openai_responses": _responses_provider,
    "openai_chat": _chat_provider,
}

_providers: dict[str, LLMProvider] = {}


def resolve_model(model_id: str) -> ModelSpec:
    spec = MODEL_REGISTRY.get(model_id)
    if spec is None:
        raise ValueError(
            f"Unknown model: {model_id}. Available models: {', '.join(MODEL_REGISTRY)}"
        )
    return spec


def get_provider(model_id: str) -> tuple[LLMProvider, str]:
    """Return the shared provider for ``model_id`` and the API model name."""
    spec = resolve_model(model_id)
    provider = _providers.get(spec.provider)
    if provider is None:
        provider = _providers[spec.provider] = PROVIDER_FACTORIES[spec.provider]()
    return provider, spec.api_model


def list_models(active_model_id: str | None = None) -> list[dict]:
    return [spec.describe(active=spec.id == active_model_id) for spec in MODELS]


async def close_providers() -> None:
    for provider in list(_providers.values()):
        await provider.close()
    _providers.clear()
