"""LLM Layer — every generation call goes through this layer.

The provider (OpenAI, Anthropic, Google) is data-driven: it comes from the
prompt row, not from the call site. `LLMLayer` talks to the real providers;
`MockLLMLayer` (mock_layer.py) is swapped in at startup when
MOCK_EXTERNAL_SERVICES is set.

Every call is bounded by `settings.llm_timeout_seconds`. Transient transport
failures are retried inside the provider adapter with exponential backoff; the
orchestration layer above never retries.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from mypraxis.config import ModelProvider, get_default_models, settings
from mypraxis.errors import GenerationError

logger = logging.getLogger(__name__)

_FENCE = "```"

# Keys of a prompt's `parameters` map that GenerationOptions lifts out
_KNOWN_PARAMETERS = frozenset({"temperature", "max_tokens"})


@dataclass
class GenerationOptions:
    """Per-call generation knobs, resolved from the prompt row."""

    provider: ModelProvider
    model: str = ""
    temperature: float | None = None
    max_tokens: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)  # provider-specific parameters

    @classmethod
    def from_parameters(cls, provider: str, model: str, parameters: dict | None) -> GenerationOptions:
        """Build options from a prompt's provider, model and parameters map.

        An empty parameters map falls back to temperature 0.7.
        """
        params = dict(parameters or {"temperature": settings.default_temperature})
        temperature = params.get("temperature")
        max_tokens = params.get("max_tokens")
        return cls(
            provider=(provider or settings.default_provider),  # type: ignore[arg-type]
            model=model or get_default_models().get(provider, ""),
            temperature=float(temperature) if temperature is not None else None,
            max_tokens=int(max_tokens) if max_tokens is not None else None,
            extra={k: v for k, v in params.items() if k not in _KNOWN_PARAMETERS},
        )


@dataclass
class ProviderCompletion:
    """Raw provider output before post-processing."""

    content: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    model_version: str = ""


@dataclass
class GenerationResult:
    """Generated content plus token and timing metrics."""

    content: str
    duration_ms: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    model_version: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def strip_code_fence(content: str) -> str:
    """Unwrap a response entirely enclosed in one fenced code block.

    Only content that, once trimmed, both starts and ends with ``` and has a
    newline after the opening marker (optionally carrying a language tag) is
    unwrapped. Anything else is returned unchanged, including inline fences.
    """
    trimmed = content.strip()
    if not (trimmed.startswith(_FENCE) and trimmed.endswith(_FENCE)):
        return content
    first_newline = trimmed.find("\n")
    if first_newline == -1:
        return content
    last_marker = trimmed.rfind(_FENCE)
    if last_marker <= first_newline:
        return content
    return trimmed[first_newline + 1:last_marker].strip()


class CircuitBreaker:
    """Per-provider circuit breaker.

    closed: calls flow. open: calls fail fast until `reset_timeout` has
    passed since the last failure. half_open: exactly one probe call is let
    through; its outcome closes or reopens the circuit.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, reset_timeout: float = 60.0, name: str = "") -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._state = self.CLOSED
        self._failures = 0
        self._opened_at = 0.0
        self._probe_taken = False

    @property
    def state(self) -> str:
        if self._state == self.OPEN and time.monotonic() - self._opened_at >= self.reset_timeout:
            self._state = self.HALF_OPEN
            self._probe_taken = False
        return self._state

    def allow_request(self) -> bool:
        state = self.state
        if state == self.HALF_OPEN:
            if self._probe_taken:
                return False
            self._probe_taken = True
            return True
        return state == self.CLOSED

    def record_success(self) -> None:
        if self._state != self.CLOSED:
            logger.info("Circuit for %s closed", self.name or "provider")
        self._failures = 0
        self._state = self.CLOSED

    def record_failure(self) -> None:
        self._failures += 1
        self._opened_at = time.monotonic()
        if self._state == self.HALF_OPEN or self._failures >= self.failure_threshold:
            self._state = self.OPEN
            logger.warning("Circuit for %s open after %d consecutive failures", self.name or "provider", self._failures)


class CircuitBreakerOpenError(Exception):
    """Raised when the circuit breaker is open and rejecting requests."""


async def retry_with_backoff(
    coro_factory,
    retryable: tuple[type[BaseException], ...],
    max_retries: int = 2,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    circuit_breaker: CircuitBreaker | None = None,
):
    """Retry an async provider call with exponential backoff.

    Re-submitting is safe: the same prompt yields an equally valid answer.

    Args:
        coro_factory: Callable that returns a new coroutine each time.
        retryable: Exception types worth another attempt (rate limit, connection, 5xx).
        max_retries: Maximum number of retries (0 = no retry).
        base_delay: Initial delay in seconds.
        max_delay: Maximum delay cap.
        circuit_breaker: Optional circuit breaker instance.

    Returns:
        The result of the successful call.
    """
    if circuit_breaker and not circuit_breaker.allow_request():
        raise CircuitBreakerOpenError("Circuit breaker is open. Provider calls temporarily disabled.")

    for attempt in range(max_retries + 1):
        try:
            result = await coro_factory()
            if circuit_breaker:
                circuit_breaker.record_success()
            return result
        except retryable as e:
            if circuit_breaker:
                circuit_breaker.record_failure()
            if attempt >= max_retries:
                raise
            delay = min(base_delay * (2 ** attempt), max_delay)
            logger.warning(
                "LLM call attempt %d/%d failed (%s), retrying in %.1fs",
                attempt + 1, max_retries + 1, type(e).__name__, delay,
            )
            await asyncio.sleep(delay)
        except Exception:
            # Non-retryable errors (auth, bad request, etc.)
            if circuit_breaker:
                circuit_breaker.record_failure()
            raise
        except asyncio.CancelledError:
            # Cancelled (timed out) calls count as failures
            if circuit_breaker:
                circuit_breaker.record_failure()
            raise


class GenerationClient(ABC):
    """Submits a rendered prompt and returns a post-processed GenerationResult.

    Subclasses implement `_complete`; timing, the timeout bound, error typing
    and code-fence stripping live here so every implementation behaves alike.
    """

    timeout_seconds: float = settings.llm_timeout_seconds

    async def generate(self, prompt: str, options: GenerationOptions, source: str = "") -> GenerationResult:
        """Generate text for a rendered prompt.

        Args:
            prompt: Fully rendered prompt text.
            options: Provider, model and parameters from the prompt registry.
            source: `source_type:source_value` identifier, attached to errors.

        Raises:
            GenerationError: on provider failure, timeout, or an empty response.
        """
        logger.info(
            "Sending request to %s (model=%s, temperature=%s) for %s",
            options.provider, options.model, options.temperature, source,
        )
        started = time.monotonic()
        try:
            completion = await asyncio.wait_for(
                self._complete(prompt, options, source),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.error("%s request timed out after %.0fs for %s", options.provider, self.timeout_seconds, source)
            raise GenerationError(
                f"{options.provider} request timed out after {self.timeout_seconds:.0f}s", source=source,
            ) from e
        except GenerationError as e:
            if not e.source:
                e.source = source
            raise
        except Exception as e:
            logger.error("%s request failed for %s: %s", options.provider, source, type(e).__name__)
            raise GenerationError(f"{options.provider} request failed: {type(e).__name__}", source=source) from e

        content = strip_code_fence(completion.content or "")
        if not content.strip():
            raise GenerationError(f"{options.provider} returned an empty response", source=source)

        duration_ms = int((time.monotonic() - started) * 1000)
        result = GenerationResult(
            content=content,
            duration_ms=duration_ms,
            prompt_tokens=completion.prompt_tokens,
            completion_tokens=completion.completion_tokens,
            total_tokens=completion.prompt_tokens + completion.completion_tokens,
            model_version=completion.model_version,
        )
        logger.info(
            "Generated %s in %dms (prompt=%d, completion=%d, total=%d tokens)",
            source, result.duration_ms, result.prompt_tokens, result.completion_tokens, result.total_tokens,
        )
        return result

    @abstractmethod
    async def _complete(self, prompt: str, options: GenerationOptions, source: str) -> ProviderCompletion:
        """Call the backend and return its raw completion."""


class LLMLayer(GenerationClient):
    """Real provider dispatch with a circuit breaker per provider.

    Provider adapters are created on first use so a missing API key only
    fails requests that need that provider.
    """

    def __init__(self, providers: dict[str, Any] | None = None) -> None:
        self._providers: dict[str, Any] = dict(providers or {})
        self.circuit_breakers: dict[str, CircuitBreaker] = {}

    def _get_provider(self, name: str):
        if name not in self._providers:
            from mypraxis.llm.providers import build_provider

            self._providers[name] = build_provider(name)
        return self._providers[name]

    def _get_breaker(self, name: str) -> CircuitBreaker:
        if name not in self.circuit_breakers:
            self.circuit_breakers[name] = CircuitBreaker(
                failure_threshold=settings.circuit_failure_threshold,
                reset_timeout=settings.circuit_reset_timeout,
                name=name,
            )
        return self.circuit_breakers[name]

    async def _complete(self, prompt: str, options: GenerationOptions, source: str) -> ProviderCompletion:
        provider_name = (options.provider or "").lower()
        provider = self._get_provider(provider_name)
        return await retry_with_backoff(
            coro_factory=lambda: provider.complete(prompt, options),
            retryable=provider.retryable_errors,
            max_retries=settings.llm_max_retries,
            base_delay=settings.llm_retry_base_delay,
            circuit_breaker=self._get_breaker(provider_name),
        )
