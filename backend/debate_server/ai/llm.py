from __future__ import annotations

import logging
from typing import Protocol

from debate_server.core import config

logger = logging.getLogger("debate_server.ai.llm")


class ConfigurationError(RuntimeError):
    """Raised when the text-generation backend cannot be configured."""


class TextGenerator(Protocol):
    async def generate(self, prompt: str, model: str) -> str:
        ...


class GeminiTextGenerator:
    def __init__(self, api_key: str):
        import google.generativeai as genai

        genai.configure(api_key=api_key)
        self._genai = genai

    async def generate(self, prompt: str, model: str) -> str:
        response = await self._genai.GenerativeModel(model).generate_content_async(prompt)
        return str(response.text or "")


class OpenAITextGenerator:
    def __init__(self, api_key: str):
        from openai import AsyncOpenAI

        self._client = AsyncOpenAI(api_key=api_key)

    async def generate(self, prompt: str, model: str) -> str:
        response = await self._client.chat.completions.create(
            model=model,
            messages=[
                {
                    "role": "user",
                    "content": prompt,
                }
            ],
            temperature=0.2,
        )
        message = response.choices[0].message.content
        return str(message or "")


def build_text_generator(provider: str | None = None) -> TextGenerator:
    """
    Builds the configured backend. A missing credential is fatal here,
    before any transcript is processed.
    """
    name = str(provider or config.LLM_PROVIDER).strip().lower()
    if name == "gemini":
        if not config.GEMINI_API_KEY:
            raise ConfigurationError("GEMINI_API_KEY not found")
        logger.info("Text generator initialized: gemini")
        return GeminiTextGenerator(config.GEMINI_API_KEY)
    if name == "openai":
        if not config.OPENAI_API_KEY:
            raise ConfigurationError("OPENAI_API_KEY not found")
        logger.info("Text generator initialized: openai")
        return OpenAITextGenerator(config.OPENAI_API_KEY)
    raise ConfigurationError(f"Unsupported LLM_PROVIDER: {name}")
