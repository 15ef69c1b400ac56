"""
AI provider - text generation and embeddings behind one small interface.

The concrete provider talks to any OpenAI-compatible API (OpenAI itself,
OpenRouter, a local gateway) through the async openai SDK.
"""

import logging
from typing import List, Optional, Protocol

from openai import AsyncOpenAI

from faultline.core.config import settings

logger = logging.getLogger(__name__)


class AIProvider(Protocol):
    name: str
    model: str

    async def generate(self, prompt: str, temperature: float = 0.7, max_tokens: int = 1000) -> str: ...

    async def embed(self, texts: List[str]) -> List[List[float]]: ...


class OpenAIProvider:
    """Chat completions and embeddings via AsyncOpenAI."""

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        model: str = "gpt-4o-mini",
        embedding_model: str = "text-embedding-3-small",
        name: str = "openai",
        timeout: float = 30.0,
    ):
        self.name = name
        self.model = model
        self.embedding_model = embedding_model
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)

    async def generate(self, prompt: str, temperature: float = 0.7, max_tokens: int = 1000) -> str:
        response = await self._client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return response.choices[0].message.content or ""

    async def embed(self, texts: List[str]) -> List[List[float]]:
        response = await self._client.embeddings.create(model=self.embedding_model, input=texts)
        return [item.embedding for item in response.data]


def build_provider() -> Optional[OpenAIProvider]:
    """Provider from settings, or None when no API key is configured."""
    if not settings.ai_enabled:
        logger.warning("⚠️ AI API key not configured, AI features will be disabled")
        return None
    logger.info("🤖 AI provider: %s (%s)", settings.ai_provider, settings.ai_default_model)
    return OpenAIProvider(
        api_key=settings.ai_api_key,
        base_url=settings.ai_base_url,
        model=settings.ai_default_model,
        embedding_model=settings.ai_embedding_model,
        name=settings.ai_provider,
        timeout=settings.ai_timeout_seconds,
    )
