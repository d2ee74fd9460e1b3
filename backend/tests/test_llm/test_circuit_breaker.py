"""Tests for the per-provider circuit breaker and retry_with_backoff."""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("OPENAI_API_KEY", "test")

import asyncio
import time

import pytest

from mypraxis.errors import GenerationError
from mypraxis.llm.layer import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    GenerationOptions,
    LLMLayer,
    ProviderCompletion,
    retry_with_backoff,
)

# === CircuitBreaker unit tests ===


def test_circuit_breaker_starts_closed():
    cb = CircuitBreaker(failure_threshold=3)
    assert cb.state == "closed"
    assert cb.allow_request() is True


def test_circuit_breaker_opens_after_threshold():
    cb = CircuitBreaker(failure_threshold=3, reset_timeout=60.0)
    cb.record_failure()
    cb.record_failure()
    assert cb.state == "closed"
    cb.record_failure()
    assert cb.state == "open"
    assert cb.allow_request() is False


def test_circuit_breaker_success_resets():
    cb = CircuitBreaker(failure_threshold=3)
    cb.record_failure()
    cb.record_failure()
    cb.record_success()
    cb.record_failure()
    cb.record_failure()
    assert cb.state == "closed"


def test_circuit_breaker_half_open_allows_single_probe():
    cb = CircuitBreaker(failure_threshold=2, reset_timeout=0.1)
    cb.record_failure()
    cb.record_failure()
    assert cb.state == "open"

    time.sleep(0.15)
    assert cb.state == "half_open"
    assert cb.allow_request() is True
    assert cb.allow_request() is False


def test_circuit_breaker_half_open_success_closes():
    cb = CircuitBreaker(failure_threshold=2, reset_timeout=0.1)
    cb.record_failure()
    cb.record_failure()
    time.sleep(0.15)
    assert cb.allow_request() is True

    cb.record_success()
    assert cb.state == "closed"
    assert cb.allow_request() is True


def test_circuit_breaker_half_open_failure_reopens():
    cb = CircuitBreaker(failure_threshold=5, reset_timeout=0.1)
    for _ in range(5):
        cb.record_failure()
    time.sleep(0.15)
    assert cb.allow_request() is True

    # One failed probe is enough to reopen
    cb.record_failure()
    assert cb.state == "open"


# === retry_with_backoff ===


def test_retry_succeeds_first_try():
    call_count = 0

    async def factory():
        nonlocal call_count
        call_count += 1
        return "ok"

    result = asyncio.run(retry_with_backoff(factory, retryable=(ConnectionError,), base_delay=0.0))
    assert result == "ok"
    assert call_count == 1


def test_retry_gives_up_after_max_retries():
    call_count = 0

    async def factory():
        nonlocal call_count
        call_count += 1
        raise ConnectionError("reset")

    with pytest.raises(ConnectionError):
        asyncio.run(retry_with_backoff(factory, retryable=(ConnectionError,), max_retries=2, base_delay=0.0))
    assert call_count == 3


def test_retry_does_not_retry_other_errors():
    call_count = 0

    async def factory():
        nonlocal call_count
        call_count += 1
        raise PermissionError("bad key")

    with pytest.raises(PermissionError):
        asyncio.run(retry_with_backoff(factory, retryable=(ConnectionError,), max_retries=3, base_delay=0.0))
    assert call_count == 1


def test_retry_with_open_circuit_breaker():
    cb = CircuitBreaker(failure_threshold=1)
    cb.record_failure()

    async def factory():
        return "should not reach here"

    with pytest.raises(CircuitBreakerOpenError):
        asyncio.run(retry_with_backoff(factory, retryable=(ConnectionError,), circuit_breaker=cb))


def test_timed_out_half_open_call_reopens_circuit():
    """A probe cancelled by a timeout must not leave the circuit stuck half-open."""
    cb = CircuitBreaker(failure_threshold=1, reset_timeout=0.2)
    cb.record_failure()
    time.sleep(0.25)

    async def run():
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(
                retry_with_backoff(lambda: asyncio.sleep(5), retryable=(ConnectionError,), circuit_breaker=cb),
                timeout=0.05,
            )

    asyncio.run(run())
    assert cb.state == "open"

    time.sleep(0.25)
    assert cb.state == "half_open"
    assert cb.allow_request() is True
    print("  PASS: timed_out_half_open_call_reopens_circuit")


@pytest.mark.asyncio
async def test_layer_breakers_are_per_provider(monkeypatch):
    """Failures against one provider never block another."""
    monkeypatch.setattr("mypraxis.llm.layer.settings.circuit_failure_threshold", 1)

    class _Failing:
        retryable_errors = ()

        async def complete(self, prompt, options):
            raise PermissionError("denied")

    class _Working:
        retryable_errors = ()

        async def complete(self, prompt, options):
            return ProviderCompletion(content="ok")

    layer = LLMLayer(providers={"openai": _Failing(), "anthropic": _Working()})
    with pytest.raises(GenerationError):
        await layer.generate("p", GenerationOptions(provider="openai", model="m"), source="name:a")
    # Breaker for openai is now open and fails fast
    with pytest.raises(GenerationError, match="CircuitBreakerOpenError"):
        await layer.generate("p", GenerationOptions(provider="openai", model="m"), source="name:a")

    result = await layer.generate("p", GenerationOptions(provider="anthropic", model="m"), source="name:a")
    assert result.content == "ok"
    assert layer.circuit_breakers["openai"].state == "open"
    assert layer.circuit_breakers["anthropic"].state == "closed"


if __name__ == "__main__":
    print("Testing Circuit Breaker:")
    test_circuit_breaker_starts_closed()
    test_circuit_breaker_opens_after_threshold()
    test_circuit_breaker_success_resets()
    test_circuit_breaker_half_open_allows_single_probe()
    test_circuit_breaker_half_open_success_closes()
    test_circuit_breaker_half_open_failure_reopens()
    test_retry_succeeds_first_try()
    test_retry_gives_up_after_max_retries()
    test_retry_does_not_retry_other_errors()
    test_retry_with_open_circuit_breaker()
    print("\nAll Circuit Breaker tests passed!")
