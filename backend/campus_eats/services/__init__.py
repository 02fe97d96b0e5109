"""Application services."""

from campus_eats.services.context import ANONYMOUS, Caller
from campus_eats.services.effects import AfterCommit
from campus_eats.services.entity_store import EntityStore
from campus_eats.services.idempotency import IdempotencyService
from campus_eats.services.moderation import ModerationService
from campus_eats.services.submission import SubmissionService

__all__ = [
    "ANONYMOUS",
    "AfterCommit",
    "Caller",
    "EntityStore",
    "IdempotencyService",
    "ModerationService",
    "SubmissionService",
]
