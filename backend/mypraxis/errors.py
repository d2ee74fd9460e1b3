"""Error taxonomy for the content-generation pipeline.

Lookup and render errors abort before any LLM cost is incurred; generation
errors abort before persistence; persistence errors never discard content
that was already generated.
"""

from __future__ import annotations


class GenerationPipelineError(Exception):
    """Base class for all pipeline errors."""


class NotFoundError(GenerationPipelineError):
    """No active prompt, or a required record (session, client, approach) is missing."""


class RenderError(GenerationPipelineError):
    """The template could not be rendered with the variables available."""


class GenerationError(GenerationPipelineError):
    """The LLM provider call failed (network, quota, timeout, malformed response)."""

    def __init__(self, message: str, source: str = "") -> None:
        self.source = source
        prefix = f"[{source}] " if source else ""
        super().__init__(f"{prefix}{message}")


class PersistenceError(GenerationPipelineError):
    """A store write failed."""
