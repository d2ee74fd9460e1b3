"""Provider adapters — OpenAI, Anthropic and Google Gemini.

Each adapter exposes `complete(prompt, options) -> ProviderCompletion` and a
`retryable_errors` tuple consumed by `retry_with_backoff`. SDK-level retries
are disabled; LLMLayer owns the retry policy.
"""

from __future__ import annotations

import logging

import anthropic
import httpx
import openai

from mypraxis.config import settings
from mypraxis.errors import GenerationError
from mypraxis.llm.layer import GenerationOptions, ProviderCompletion

logger = logging.getLogger(__name__)


class OpenAIProvider:
    """Chat Completions via AsyncOpenAI."""

    retryable_errors = (openai.RateLimitError, openai.APIConnectionError, openai.InternalServerError)

    def __init__(self, api_key: str = "", timeout: float | None = None) -> None:
        key = api_key or settings.openai_api_key
        if not key:
            raise GenerationError("OPENAI_API_KEY environment variable is not set")
        self.client = openai.AsyncOpenAI(
            api_key=key,
            timeout=timeout or settings.llm_timeout_seconds,
            max_retries=0,
        )

    async def complete(self, prompt: str, options: GenerationOptions) -> ProviderCompletion:
        kwargs = dict(options.extra)
        if options.temperature is not None:
            kwargs["temperature"] = options.temperature
        if options.max_tokens is not None:
            kwargs["max_tokens"] = options.max_tokens

        response = await self.client.chat.completions.create(
            model=options.model,
            messages=[{"role": "user", "content": prompt}],
            **kwargs,
        )
        if not response.choices:
            raise GenerationError("OpenAI response contained no choices")

        usage = response.usage
        return ProviderCompletion(
            content=response.choices[0].message.content or "",
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
            model_version=response.model or options.model,
        )


class AnthropicProvider:
    """Messages API via AsyncAnthropic."""

    retryable_errors = (anthropic.RateLimitError, anthropic.APIConnectionError, anthropic.InternalServerError)

    def __init__(self, api_key: str = "", timeout: float | None = None) -> None:
        key = api_key or settings.anthropic_api_key
        if not key:
            raise GenerationError("ANTHROPIC_API_KEY environment variable is not set")
        self.client = anthropic.AsyncAnthropic(
            api_key=key,
            timeout=timeout or settings.llm_timeout_seconds,
            max_retries=0,
        )

    async def complete(self, prompt: str, options: GenerationOptions) -> ProviderCompletion:
        kwargs = dict(options.extra)
        if options.temperature is not None:
            kwargs["temperature"] = options.temperature

        response = await self.client.messages.create(
            model=options.model,
            max_tokens=options.max_tokens or settings.default_max_tokens,
            messages=[{"role": "user", "content": prompt}],
            **kwargs,
        )
        text = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
        return ProviderCompletion(
            content=text,
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
            model_version=response.model,
        )


class GoogleTransientError(Exception):
    """Gemini returned 429 or a 5xx status."""


class GoogleProvider:
    """Gemini generateContent over the REST API."""

    retryable_errors = (httpx.TransportError, GoogleTransientError)

    def __init__(
        self,
        api_key: str = "",
        timeout: float | None = None,
        base_url: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key or settings.google_api_key
        if not self.api_key:
            raise GenerationError("GOOGLE_API_KEY environment variable is not set")
        self.base_url = (base_url or settings.google_api_base_url).rstrip("/")
        self._timeout = timeout or settings.llm_timeout_seconds
        self._transport = transport

    async def complete(self, prompt: str, options: GenerationOptions) -> ProviderCompletion:
        generation_config = dict(options.extra)
        if options.temperature is not None:
            generation_config["temperature"] = options.temperature
        if options.max_tokens is not None:
            generation_config["maxOutputTokens"] = options.max_tokens

        body: dict = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        if generation_config:
            body["generationConfig"] = generation_config

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            resp = await client.post(
                f"{self.base_url}/models/{options.model}:generateContent",
                headers={"x-goog-api-key": self.api_key},
                json=body,
            )
            if resp.status_code == 429 or resp.status_code >= 500:
                raise GoogleTransientError(f"Gemini returned HTTP {resp.status_code}")
            resp.raise_for_status()
            data = resp.json()

        candidates = data.get("candidates") or []
        if not candidates:
            raise GenerationError("Gemini response contained no candidates")
        parts = candidates[0].get("content", {}).get("parts", [])
        usage = data.get("usageMetadata", {})
        return ProviderCompletion(
            content="".join(part.get("text", "") for part in parts),
            prompt_tokens=usage.get("promptTokenCount", 0),
            completion_tokens=usage.get("candidatesTokenCount", 0),
            model_version=data.get("modelVersion", options.model),
        )


_PROVIDERS = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "google": GoogleProvider,
}


def build_provider(name: str):
    """Instantiate the adapter for a provider name.

    Raises:
        GenerationError: for an unsupported provider or a missing API key.
    """
    factory = _PROVIDERS.get(name)
    if factory is None:
        raise GenerationError(f"Unsupported model provider: {name}")
    logger.info("Initializing %s provider", name)
    return factory()
