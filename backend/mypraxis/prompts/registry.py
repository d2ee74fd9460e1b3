"""Prompt Registry — resolves a prompt source to the single active template."""

from __future__ import annotations

import logging

from mypraxis.db.repositories import PromptRepository
from mypraxis.errors import NotFoundError
from mypraxis.llm.layer import GenerationOptions
from mypraxis.models.prompt import Prompt, PromptSource

logger = logging.getLogger(__name__)


class PromptRegistry:
    """Looks up active prompts by artifact type or by name.

    Inactive rows are never returned, even when no active row exists.
    """

    def __init__(self, repository: PromptRepository) -> None:
        self.repository = repository

    def get_template_by_artifact_type(self, artifact_type: str) -> Prompt:
        prompt = self.repository.get_active_by_artifact_type(artifact_type)
        if prompt is None:
            logger.warning("No active prompt for artifact type %s", artifact_type)
            raise NotFoundError(f"No active prompt found for artifact type: {artifact_type}")
        return prompt

    def get_template_by_name(self, name: str) -> Prompt:
        prompt = self.repository.get_active_by_name(name)
        if prompt is None:
            logger.warning("No active prompt named %s", name)
            raise NotFoundError(f"No active prompt found with name: {name}")
        return prompt

    def resolve(self, source: PromptSource) -> Prompt:
        if source.source_type == "artifact_type":
            return self.get_template_by_artifact_type(source.source_value)
        return self.get_template_by_name(source.source_value)


def build_generation_options(prompt: Prompt) -> GenerationOptions:
    """Provider, model and parameters of a prompt row as GenerationOptions."""
    return GenerationOptions.from_parameters(prompt.provider, prompt.model, prompt.parameters)
