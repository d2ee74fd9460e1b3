"""Per-request generation context: who is asking and in which language."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from mypraxis.db.repositories import TherapistRepository
from mypraxis.errors import NotFoundError
from mypraxis.prompts.renderer import DEFAULT_LANGUAGE, LANGUAGE_NAMES, get_full_language_name

logger = logging.getLogger(__name__)

# Placeholder approach that carries no clinical framing
_UNSPECIFIED_APPROACH = "other"


@dataclass
class GenerationContext:
    """Everything a generation needs about the requesting account.

    Built once per request and passed explicitly; never shared across
    requests. `primary_therapeutic_approach` is None when the therapist has
    no usable approach configured; generation then fails with NotFoundError.
    """

    account_id: str
    language: str = DEFAULT_LANGUAGE
    primary_therapeutic_approach: str | None = None
    log: logging.LoggerAdapter | None = None

    def __post_init__(self) -> None:
        if self.log is None:
            self.log = logging.LoggerAdapter(logger, {"account_id": self.account_id})

    @property
    def language_name(self) -> str:
        return get_full_language_name(self.language)

    def require_approach(self) -> str:
        if not self.primary_therapeutic_approach:
            raise NotFoundError("Therapeutic approach not found")
        return self.primary_therapeutic_approach

    def bind(self, **extra) -> GenerationContext:
        """Same context with extra fields on the request logger."""
        return GenerationContext(
            account_id=self.account_id,
            language=self.language,
            primary_therapeutic_approach=self.primary_therapeutic_approach,
            log=logging.LoggerAdapter(logger, {**self.log.extra, **extra}),
        )


class ContextResolver:
    """Builds GenerationContext from user preferences and therapist profile."""

    def __init__(self, therapists: TherapistRepository) -> None:
        self.therapists = therapists

    def resolve(self, account_id: str) -> GenerationContext:
        language = self.therapists.get_language(account_id) or DEFAULT_LANGUAGE
        if language not in LANGUAGE_NAMES:
            logger.warning("Unknown language %r for account %s, using %s", language, account_id, DEFAULT_LANGUAGE)
            language = DEFAULT_LANGUAGE

        approach = self.therapists.get_primary_approach(account_id)
        title = None
        if approach is None:
            logger.info("No therapeutic approach configured for account %s", account_id)
        elif approach.name == _UNSPECIFIED_APPROACH:
            logger.info("Therapeutic approach for account %s is unspecified", account_id)
        else:
            title = approach.title

        return GenerationContext(account_id=account_id, language=language, primary_therapeutic_approach=title)
