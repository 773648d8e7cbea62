"""
OpenAI Responses API Provider

Handles GPT-5.x models using the newer Responses API format:
- client.responses.create()
- input (not messages)
- response.output_text

Reasoning models reject a temperature parameter, so it is not forwarded.
"""

from openai import AsyncOpenAI

from mathprereq.core.config import get_settings
from mathprereq.services.llm.base import LLMProvider


class OpenAIResponsesProvider(LLMProvider):
    """Provider for OpenAI Responses API (GPT-5.x models)."""

    provider_name = "openai_responses"

    def __init__(self, client: AsyncOpenAI | None = None):
        settings = get_settings()
        self.client = client or AsyncOpenAI(
            api_key=settings.openai_api_key,
            timeout=settings.llm_timeout_seconds,
        )

    async def chat(
        self,
        system_prompt: str,
        messages: list[dict],
        model: str,
        max_output_tokens: int = 4000,
        temperature: float = 0.3,
    ) -> str:
        response = await self.client.responses.create(
            model=model,
            instructions=system_prompt,
            input=messages,
            max_output_tokens=max_output_tokens,
        )

        content = response.output_text
        if not content:
            raise ValueError("Empty response from OpenAI Responses API")
        return content

    async def close(self) -> None:
        await self.client.close()
