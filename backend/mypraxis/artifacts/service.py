"""Artifact generation orchestration.

generate_content: registry → variables → render → generation client.
get_or_create_artifact: store lookup, and on a miss generate then upsert.

Lookup and render failures abort before any LLM call. Nothing is persisted
until a complete result is in hand. Concurrent misses for one key may each
generate; the upsert makes the last writer win.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from mypraxis.artifacts.context import GenerationContext
from mypraxis.artifacts.store import ArtifactStore
from mypraxis.artifacts.variables import VariableResolver
from mypraxis.db.repositories import SessionRepository
from mypraxis.errors import PersistenceError, RenderError
from mypraxis.llm.layer import GenerationClient, GenerationResult
from mypraxis.models.artifact import ArtifactResult
from mypraxis.models.prompt import PromptSource
from mypraxis.prompts.registry import PromptRegistry, build_generation_options
from mypraxis.prompts.renderer import TemplateRenderer


@dataclass
class GenerationRequest:
    """A prompt source plus caller-supplied variables.

    `reference_id`/`reference_type` name the session or client that missing
    variables are generated from; without them every template variable must
    be supplied.
    """

    source: PromptSource
    variables: dict[str, str] = field(default_factory=dict)
    reference_id: str | None = None
    reference_type: str | None = None


class ArtifactService:
    def __init__(
        self,
        registry: PromptRegistry,
        renderer: TemplateRenderer,
        llm: GenerationClient,
        store: ArtifactStore,
        sessions: SessionRepository,
    ) -> None:
        self.registry = registry
        self.renderer = renderer
        self.llm = llm
        self.store = store
        self.variables = VariableResolver(sessions, self)
        # Generations whose caller was cancelled; referenced until done
        self._orphaned: set[asyncio.Future] = set()

    async def generate_content(self, request: GenerationRequest, context: GenerationContext) -> GenerationResult:
        """Render the active prompt for `request.source` and generate text.

        Raises:
            NotFoundError: no active prompt, or no therapeutic approach configured.
            RenderError: a variable is missing and cannot be generated, or the template is invalid.
            GenerationError: the provider call failed.
        """
        source = request.source.identifier
        log = context.log
        prompt = self.registry.resolve(request.source)
        approach = context.require_approach()

        required = self.renderer.extract_template_variables(prompt.template)
        missing = sorted(name for name in required if name not in request.variables)
        for name in missing:
            if not self.variables.can_generate(name):
                raise RenderError(f"Variable '{name}' is not provided and cannot be generated")
        if missing and not request.reference_id:
            raise RenderError(f"Variables {missing} need a session or client to be generated from")

        generated = {}
        if missing:
            generated = await self.variables.generate(
                missing, request.reference_id, request.reference_type, context,
            )
        variables = {**generated, **request.variables}

        rendered = self.renderer.render(prompt.template, variables, context.language_name, approach)
        options = build_generation_options(prompt)
        log.info("[%s] Using prompt %s (provider=%s, model=%s)", source, prompt.id, options.provider, options.model)
        return await self.llm.generate(rendered, options, source=source)

    async def get_or_create_artifact(
        self,
        reference_id: str,
        reference_type: str,
        artifact_type: str,
        context: GenerationContext,
        variables: dict[str, str] | None = None,
    ) -> ArtifactResult:
        """Return the cached artifact in the context language, generating it on a miss."""
        existing = self.store.get(reference_id, reference_type, artifact_type, context.language)
        if existing is not None:
            context.log.info("Found existing %s for %s %s", artifact_type, reference_type, reference_id)
            return ArtifactResult(content=existing.content, language=existing.language, generated=False)

        context.log.info("No %s for %s %s, generating", artifact_type, reference_type, reference_id)
        # An in-flight generation finishes and is stored even if the caller goes away
        task = asyncio.ensure_future(
            self._generate_and_store(reference_id, reference_type, artifact_type, context, variables or {})
        )
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            context.log.info("Request cancelled, %s for %s %s keeps generating", artifact_type, reference_type, reference_id)
            self._orphaned.add(task)
            task.add_done_callback(lambda t: self._collect_orphaned(t, context))
            raise

    def _collect_orphaned(self, task: asyncio.Future, context: GenerationContext) -> None:
        self._orphaned.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            context.log.error("Generation finished after cancellation with an error: %s", error)

    async def _generate_and_store(
        self,
        reference_id: str,
        reference_type: str,
        artifact_type: str,
        context: GenerationContext,
        variables: dict[str, str],
    ) -> ArtifactResult:
        request = GenerationRequest(
            source=PromptSource.for_artifact(artifact_type),
            variables=variables,
            reference_id=reference_id,
            reference_type=reference_type,
        )
        result = await self.generate_content(request, context)

        try:
            self.store.upsert(reference_id, reference_type, artifact_type, result.content, context.language)
        except PersistenceError as e:
            context.log.error("Could not save %s for %s %s: %s", artifact_type, reference_type, reference_id, e)

        return ArtifactResult(content=result.content, language=context.language, generated=True)
