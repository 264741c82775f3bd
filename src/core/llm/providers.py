"""LLM providers for structured (JSON) document extraction.

Each provider wraps one vendor SDK and returns the raw JSON text plus token
usage. SDK and network failures surface as ProviderError; everything about
interpreting the answer is left to the ExtractionClient.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import anthropic
import openai
from anthropic import AsyncAnthropic
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from openai import AsyncOpenAI

from src.core.exceptions import ConfigurationError, ProviderError

logger = logging.getLogger(__name__)

DEEPSEEK_BASE_URL = "https://api.deepseek.com"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

# USD per 1M tokens (input, output)
OPENAI_PRICING: dict[str, tuple[float, float]] = {
    "gpt-4o": (5.0, 15.0),
    "gpt-4o-mini": (0.15, 0.6),
    "gpt-4-turbo": (10.0, 30.0),
    "gpt-3.5-turbo": (0.5, 1.5),
}
DEEPSEEK_PRICING = (0.14, 0.28)


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    cost_usd: float | None = None

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass
class ProviderResponse:
    content: str
    model: str
    usage: TokenUsage | None = None


def _cost(pricing: tuple[float, float], prompt_tokens: int, completion_tokens: int) -> float:
    return prompt_tokens / 1_000_000 * pricing[0] + completion_tokens / 1_000_000 * pricing[1]


class ExtractionProvider(ABC):
    name: str = ""

    def __init__(
        self,
        model: str,
        api_key: str,
        temperature: float = 0.1,
        max_tokens: int | None = None,
    ):
        if not api_key:
            raise ConfigurationError(f"API key is missing for provider {self.name}")
        self.model = model
        self.api_key = api_key
        self.temperature = temperature
        self.max_tokens = max_tokens

    @abstractmethod
    async def complete_json(self, system: str, prompt: str) -> ProviderResponse:
        """Send one extraction request in JSON output mode."""


class OpenAICompatibleProvider(ExtractionProvider):
    name = "openai"
    base_url: str | None = None

    def __init__(self, *args, client: AsyncOpenAI | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.client = client or AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)

    def estimate_cost(self, prompt_tokens: int, completion_tokens: int) -> float | None:
        return None

    async def complete_json(self, system: str, prompt: str) -> ProviderResponse:
        kwargs = {}
        if self.max_tokens:
            kwargs["max_tokens"] = self.max_tokens
        try:
            resp = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
                temperature=self.temperature,
                **kwargs,
            )
        except openai.APIError as e:
            raise ProviderError(f"{self.name} request failed: {e}") from e

        content = resp.choices[0].message.content if resp.choices else None
        if not content:
            raise ProviderError(f"No response content from {self.name}")

        usage = None
        if resp.usage:
            usage = TokenUsage(
                prompt_tokens=resp.usage.prompt_tokens or 0,
                completion_tokens=resp.usage.completion_tokens or 0,
            )
            usage.cost_usd = self.estimate_cost(usage.prompt_tokens, usage.completion_tokens)
        return ProviderResponse(content=content, model=resp.model or self.model, usage=usage)


class OpenAIProvider(OpenAICompatibleProvider):
    name = "openai"

    def estimate_cost(self, prompt_tokens: int, completion_tokens: int) -> float | None:
        pricing = OPENAI_PRICING.get(self.model, OPENAI_PRICING["gpt-4o-mini"])
        return _cost(pricing, prompt_tokens, completion_tokens)


class DeepSeekProvider(OpenAICompatibleProvider):
    name = "deepseek"
    base_url = DEEPSEEK_BASE_URL

    def estimate_cost(self, prompt_tokens: int, completion_tokens: int) -> float | None:
        return _cost(DEEPSEEK_PRICING, prompt_tokens, completion_tokens)


class OpenRouterProvider(OpenAICompatibleProvider):
    name = "openrouter"
    base_url = OPENROUTER_BASE_URL


class AnthropicProvider(ExtractionProvider):
    """Claude has no JSON mode; the prompt demands JSON and the client parses it."""

    name = "anthropic"

    def __init__(self, *args, client: AsyncAnthropic | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.client = client or AsyncAnthropic(api_key=self.api_key)

    async def complete_json(self, system: str, prompt: str) -> ProviderResponse:
        try:
            resp = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens or 4096,
                temperature=self.temperature,
                system=system,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as e:
            raise ProviderError(f"anthropic request failed: {e}") from e

        content = "".join(
            block.text for block in resp.content if getattr(block, "type", None) == "text"
        )
        if not content:
            raise ProviderError("No response content from anthropic")
        usage = TokenUsage(
            prompt_tokens=resp.usage.input_tokens, completion_tokens=resp.usage.output_tokens
        )
        return ProviderResponse(content=content, model=resp.model or self.model, usage=usage)


class GoogleProvider(ExtractionProvider):
    name = "google"

    def __init__(self, *args, client: genai.Client | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.client = client or genai.Client(api_key=self.api_key)

    async def complete_json(self, system: str, prompt: str) -> ProviderResponse:
        try:
            resp = await self.client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    system_instruction=system,
                    temperature=self.temperature,
                    max_output_tokens=self.max_tokens,
                    response_mime_type="application/json",
                ),
            )
        except genai_errors.APIError as e:
            raise ProviderError(f"google request failed: {e}") from e

        if not resp.text:
            raise ProviderError("No response content from google")
        usage = None
        meta = resp.usage_metadata
        if meta:
            usage = TokenUsage(
                prompt_tokens=meta.prompt_token_count or 0,
                completion_tokens=meta.candidates_token_count or 0,
            )
        return ProviderResponse(content=resp.text, model=self.model, usage=usage)


PROVIDERS: dict[str, type[ExtractionProvider]] = {
    "openai": OpenAIProvider,
    "deepseek": DeepSeekProvider,
    "openrouter": OpenRouterProvider,
    "anthropic": AnthropicProvider,
    "google": GoogleProvider,
}


def create_provider(
    provider: str,
    model: str,
    api_key: str,
    temperature: float = 0.1,
    max_tokens: int | None = None,
) -> ExtractionProvider:
    cls = PROVIDERS.get(provider)
    if cls is None:
        raise ConfigurationError(f"Unsupported provider type: {provider}")
    return cls(model, api_key, temperature=temperature, max_tokens=max_tokens)
