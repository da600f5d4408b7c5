"""
Streaming completion providers for the decision coach.

Every vendor is wrapped behind ``StreamingCompletion``:

    async for text in completion.stream(system_prompt, user_message):
        ...

Providers are constructed explicitly (see ``build_completions``) and owned by
the application lifespan, which closes them on shutdown.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

import anthropic
import openai
from google import genai
from google.genai import types

from deliberate.config import Settings

logger = logging.getLogger(__name__)


class StreamingCompletion(ABC):
    """One LLM vendor capable of streaming a single reply."""

    provider_id: str = ""
    display_name: str = ""

    def __init__(self, model: str, max_tokens: int = 8192):
        self.model = model
        self.max_tokens = max_tokens

    @abstractmethod
    def stream(self, system_prompt: str, user_message: str) -> AsyncIterator[str]:
        """Yield text chunks of the reply as they arrive."""
        ...

    async def aclose(self) -> None:
        """Release the underlying HTTP client."""
        return None


class OpenAICompletion(StreamingCompletion):
    """OpenAI chat completions."""

    provider_id = "openai"
    display_name = "OpenAI"

    def __init__(self, api_key: str, model: str = "gpt-4o", max_tokens: int = 8192):
        super().__init__(model, max_tokens)
        self._client = openai.AsyncOpenAI(api_key=api_key)

    async def stream(self, system_prompt: str, user_message: str) -> AsyncIterator[str]:
        response = await self._client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            stream=True,
            max_completion_tokens=self.max_tokens,
        )
        async for chunk in response:
            if not chunk.choices:
                continue
            content = chunk.choices[0].delta.content
            if content:
                yield content

    async def aclose(self) -> None:
        await self._client.close()


class AnthropicCompletion(StreamingCompletion):
    """Claude messages API."""

    provider_id = "claude"
    display_name = "Claude"

    def __init__(self, api_key: str, model: str = "claude-sonnet-4-5", max_tokens: int = 8192):
        super().__init__(model, max_tokens)
        self._client = anthropic.AsyncAnthropic(api_key=api_key)

    async def stream(self, system_prompt: str, user_message: str) -> AsyncIterator[str]:
        async with self._client.messages.stream(
            model=self.model,
            max_tokens=self.max_tokens,
            system=system_prompt,
            messages=[{"role": "user", "content": user_message}],
        ) as response:
            async for text in response.text_stream:
                if text:
                    yield text

    async def aclose(self) -> None:
        await self._client.close()


class GeminiCompletion(StreamingCompletion):
    """Google Gemini via the google-genai SDK."""

    provider_id = "gemini"
    display_name = "Gemini"

    def __init__(self, api_key: str, model: str = "gemini-2.5-flash", max_tokens: int = 8192):
        super().__init__(model, max_tokens)
        self._client = genai.Client(api_key=api_key)

    async def stream(self, system_prompt: str, user_message: str) -> AsyncIterator[str]:
        response = await self._client.aio.models.generate_content_stream(
            model=self.model,
            contents=user_message,
            config=types.GenerateContentConfig(
                max_output_tokens=self.max_tokens,
                system_instruction=system_prompt,
            ),
        )
        async for chunk in response:
            if chunk.text:
                yield chunk.text

    async def aclose(self) -> None:
        await self._client.aio.aclose()


def build_completions(settings: Settings) -> dict[str, StreamingCompletion]:
    """Instantiate every provider that has an API key configured."""
    completions: dict[str, StreamingCompletion] = {}
    if settings.openai_api_key:
        completions["openai"] = OpenAICompletion(
            settings.openai_api_key, settings.openai_model, settings.llm_max_tokens
        )
    if settings.anthropic_api_key:
        completions["claude"] = AnthropicCompletion(
            settings.anthropic_api_key, settings.anthropic_model, settings.llm_max_tokens
        )
    if settings.google_ai_api_key:
        completions["gemini"] = GeminiCompletion(
            settings.google_ai_api_key, settings.gemini_model, settings.llm_max_tokens
        )
    logger.info("LLM providers configured: %s", ", ".join(completions) or "none")
    return completions


async def close_completions(completions: dict[str, StreamingCompletion]) -> None:
    for name, completion in completions.items():
        try:
            await completion.aclose()
        except Exception as exc:
            logger.warning("Error closing %s client: %s", name, exc)
