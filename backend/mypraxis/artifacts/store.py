"""Artifact Store — cache of generated content keyed by reference, type and language."""

from __future__ import annotations

import logging

from mypraxis.db.repositories import ArtifactRepository
from mypraxis.models.artifact import Artifact

logger = logging.getLogger(__name__)


class ArtifactStore:
    """get / upsert / invalidate over the artifacts table.

    Invalidation deletes rows, so any artifact `get` returns is fresh.
    """

    def __init__(self, repository: ArtifactRepository) -> None:
        self.repository = repository

    def get(self, reference_id: str, reference_type: str, artifact_type: str, language: str) -> Artifact | None:
        return self.repository.get(reference_id, reference_type, artifact_type, language)

    def upsert(self, reference_id: str, reference_type: str, artifact_type: str, content: str, language: str) -> bool:
        """Atomically insert or overwrite the artifact for this key.

        Raises:
            PersistenceError: if the write fails.
        """
        saved = self.repository.upsert(reference_id, reference_type, artifact_type, content, language)
        logger.info("Saved %s artifact for %s %s (%s)", artifact_type, reference_type, reference_id, language)
        return saved

    def invalidate(self, reference_id: str, reference_type: str) -> int:
        """Delete every artifact of a reference, in all types and languages."""
        deleted = self.repository.delete_for_reference(reference_id, reference_type)
        logger.info("Invalidated %d artifacts for %s %s", deleted, reference_type, reference_id)
        return deleted
