"""
OpenAI Chat Completions API Provider

Handles GPT-4o, GPT-4o-mini, and other Chat Completions API models:
- client.chat.completions.create()
- messages (not input)
- response.choices[0].message.content
"""

from openai import AsyncOpenAI

from mathprereq.core.config import get_settings
from mathprereq.services.llm.base import LLMProvider


class OpenAIChatProvider(LLMProvider):
    """Provider for OpenAI Chat Completions API (GPT-4o, GPT-4o-mini, etc.)."""

    provider_name = "openai_chat"

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
        chat_messages = [{"role": "system", "content": system_prompt}] + messages

        response = await self.client.chat.completions.create(
            model=model,
            messages=chat_messages,
            max_completion_tokens=max_output_tokens,
            temperature=temperature,
        )

        content = response.choices[0].message.content
        if not content:
            raise ValueError("Empty response from OpenAI Chat Completions API")
        return content

    async def close(self) -> None:
        await self.client.close()
