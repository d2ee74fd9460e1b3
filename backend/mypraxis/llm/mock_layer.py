"""Mock LLM Layer for tests and e2e runs without provider calls.

Selected at startup when MOCK_EXTERNAL_SERVICES is true. Responses are
routed by the prompt source identifier (`source_type:source_value`), which
is also prefixed to the recorded prompt the way an external mock server
would receive it.
"""

from __future__ import annotations

import asyncio

from mypraxis.llm.layer import GenerationClient, GenerationOptions, ProviderCompletion
from mypraxis.prompts.renderer import with_source_marker

DEFAULT_MOCK_RESPONSES: dict[str, str] = {
    "artifact_type:session_therapist_summary": "Mock therapist summary of the session.",
    "artifact_type:session_client_summary": "Mock client summary of the session.",
    "artifact_type:client_prep_note": "Mock preparation note for the next session.",
    "artifact_type:client_conceptualization": "Mock client conceptualization.",
    "artifact_type:client_bio": "Mock client bio.",
    "name:session_title": "Mock Session Title",
}


class MockLLMLayer(GenerationClient):
    """Returns canned responses keyed by source identifier.

    Usage:
        mock = MockLLMLayer({"artifact_type:client_bio": "Bio text"})
        result = await mock.generate(prompt, options, source="artifact_type:client_bio")
        assert mock.call_log[0]["prompt"].startswith("artifact_type:client_bio\\n")

    A response value that is an exception instance is raised instead of
    returned, which lets tests exercise provider failures.
    """

    def __init__(self, responses: dict[str, str | Exception] | None = None, latency: float = 0.0) -> None:
        self.responses: dict[str, str | Exception] = {**DEFAULT_MOCK_RESPONSES, **(responses or {})}
        self.latency = latency
        self.call_log: list[dict] = []

    async def _complete(self, prompt: str, options: GenerationOptions, source: str) -> ProviderCompletion:
        self.call_log.append({
            "source": source,
            "prompt": with_source_marker(prompt, source),
            "provider": options.provider,
            "model": options.model,
            "temperature": options.temperature,
        })
        if self.latency:
            await asyncio.sleep(self.latency)

        response = self.responses.get(source, "Mock response")
        if isinstance(response, Exception):
            raise response
        return ProviderCompletion(
            content=response,
            prompt_tokens=100,
            completion_tokens=50,
            model_version=f"mock-{options.provider}",
        )
