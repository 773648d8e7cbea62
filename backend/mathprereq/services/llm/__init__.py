"""
LLM Provider Abstraction Layer

Provides a unified interface over the OpenAI APIs with a model registry
and shared orchestration logic for the query pipeline.
"""

from mathprereq.services.llm.orchestrator import LLMOrchestrator, get_orchestrator
from mathprereq.services.llm.registry import MODEL_REGISTRY, get_provider, list_models

__all__ = [
    "LLMOrchestrator",
    "get_orchestrator",
    "MODEL_REGISTRY",
    "get_provider",
    "list_models",
]
