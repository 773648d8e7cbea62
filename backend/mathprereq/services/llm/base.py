"""
Abstract base class for all LLM providers.

Each provider implements the API-specific translation layer.
Prompt construction and response post-processing live in the orchestrator.
"""

from abc import ABC, abstractmethod


class LLMProvider(ABC):
    """Abstract base class for all LLM providers."""

    provider_name: str = "base"

    @abstractmethod
    async def chat(
        self,
        system_prompt: str,
        messages: list[dict],
        model: str,
        max_output_tokens: int = 4000,
        temperature: float = 0.3,
    ) -> str:
        """
        Text-only chat completion.

        Args:
            system_prompt: The system prompt
            messages: List of message dicts with "role" and "content"
            model: The API model identifier (e.g., "gpt-4o", "gpt-5-mini")
            max_output_tokens: Maximum tokens in the response
            temperature: Sampling temperature

        Returns:
            Raw text response from the LLM

        Raises:
            ValueError: If the provider returned an empty response
        """
        ...

    async def close(self) -> None:
        """Release the underlying HTTP client, if any."""
