"""
LLM Orchestrator

The generative text service used by the query pipeline:
- concept identification (comma-separated list -> cleaned names)
- explanation generation grounded on the prerequisite path and context
- truncation heuristic on generated explanations

The orchestrator delegates the actual API call to the provider selected
from the model registry, keeping providers focused on API translation.
"""

from mathprereq.core.config import get_settings
from mathprereq.core.logging import get_logger
from mathprereq.services.entities import Concept
from mathprereq.services.llm.base import LLMProvider
from mathprereq.services.llm.registry import MODEL_REGISTRY, get_provider, DEFAULT_MODEL_ID
from mathprereq.services.prompt_compiler import (
    compile_identify_prompt,
    compile_explanation_prompt,
)

logger = get_logger(__name__)

# Endings that suggest the model stopped mid-sentence
TRUNCATION_SUFFIXES = (" and their", " is a", " we can", " the", " this")


def split_concepts(raw: str) -> list[str]:
    """Split a comma-separated model answer into trimmed, non-empty names."""
    return [part.strip() for part in raw.strip().split(",") if part.strip()]


def looks_truncated(text: str) -> bool:
    stripped = text.rstrip(" ")
    if not stripped:
        return True
    if stripped[-1] not in ".!?\n$)":
        return True
    return any(stripped.endswith(suffix) for suffix in TRUNCATION_SUFFIXES)


class LLMOrchestrator:
    """Orchestrates LLM calls for the query pipeline."""

    def __init__(self, model_id: str | None = None, provider: LLMProvider | None = None):
        self.model_id = model_id or get_settings().openai_model or DEFAULT_MODEL_ID
        if provider is not None:
            self._provider = provider
            spec = MODEL_REGISTRY.get(self.model_id)
            self._api_model = spec.api_model if spec else self.model_id
        else:
            self._provider, self._api_model = get_provider(self.model_id)

    @property
    def provider_name(self) -> str:
        return self._provider.provider_name

    @property
    def model(self) -> str:
        return self._api_model

    async def identify_concepts(self, question: str) -> list[str]:
        system_prompt, user_prompt = compile_identify_prompt(question)
        content = await self._provider.chat(
            system_prompt=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            model=self._api_model,
            max_output_tokens=200,
            temperature=0.1,
        )
        concepts = split_concepts(content)
        logger.info("concepts_identified", concepts=concepts, model=self.model_id)
        return concepts

    async def generate_explanation(
        self,
        question: str,
        path: list[Concept],
        chunks: list[str],
    ) -> str:
        """
        Generate an explanation for the question.

        Args:
            question: The student's question
            path: Prerequisite path, prerequisites before targets
            chunks: Retrieved course material (may be empty)

        Returns:
            The explanation text
        """
        system_prompt, user_prompt = compile_explanation_prompt(question, path, chunks)
        content = await self._provider.chat(
            system_prompt=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            model=self._api_model,
            max_output_tokens=4000,
            temperature=0.3,
        )
        logger.info(
            "explanation_generated",
            length=len(content),
            appears_complete=not looks_truncated(content),
            model=self.model_id,
        )
        return content


# ── Singleton ─────────────────────────────────────────────────────────────────

_orchestrator: LLMOrchestrator | None = None


def get_orchestrator() -> LLMOrchestrator:
    """Get or create the LLM orchestrator singleton."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = LLMOrchestrator()
    return _orchestrator
