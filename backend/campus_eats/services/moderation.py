"""Moderation state machine for stores and reviews.

::

    pending --approve--> approved
    pending --reject---> rejected

``approved`` and ``rejected`` are terminal here. Re-applying the decision an
entity already carries is a successful no-op so retries are safe; asking for
the opposite decision fails with :class:`AlreadyProcessed` and leaves the
entity untouched. Editing a review's content is a separate operation that
puts it back into ``pending``.

Approving a review queues a recompute of its store's rating aggregate on the
supplied :class:`AfterCommit`; the approval does not wait for it.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Literal

from sqlalchemy.ext.asyncio import AsyncSession

from campus_eats.errors import AlreadyProcessed, NotFound, ValidationError
from campus_eats.models import Review, Store
from campus_eats.models.common import APPROVED, PENDING, REJECTED
from campus_eats.services.effects import AfterCommit
from campus_eats.services.entity_store import EntityStore

logger = logging.getLogger(__name__)

Decision = Literal["approved", "rejected"]


@dataclass(frozen=True, slots=True)
class Transition:
    """Outcome of a moderation call."""

    changed: bool
    status: str


def _normalize_reason(reason: str | None) -> str:
    cleaned = (reason or "").strip()
    if not cleaned:
        raise ValidationError("a non-empty reason is required when rejecting")
    return cleaned


def approve(entity: Store | Review, kind: str) -> Transition:
    """Apply an approval in memory; the caller persists it."""
    if entity.status == APPROVED:
        return Transition(changed=False, status=APPROVED)
    if entity.status != PENDING:
        raise AlreadyProcessed(kind, entity.status)
    entity.status = APPROVED
    entity.rejection_reason = ""
    return Transition(changed=True, status=APPROVED)


def reject(entity: Store | Review, kind: str, reason: str | None) -> Transition:
    """Apply a rejection in memory; the caller persists it."""
    cleaned = _normalize_reason(reason)
    if entity.status == REJECTED:
        return Transition(changed=False, status=REJECTED)
    if entity.status != PENDING:
        raise AlreadyProcessed(kind, entity.status)
    entity.status = REJECTED
    entity.rejection_reason = cleaned
    return Transition(changed=True, status=REJECTED)


def _apply(entity: Store | Review, kind: str, decision: str, reason: str | None) -> Transition:
    if decision == APPROVED:
        return approve(entity, kind)
    if decision == REJECTED:
        return reject(entity, kind, reason)
    raise ValidationError(f"status must be 'approved' or 'rejected', got {decision!r}")


class ModerationService:
    def __init__(self, session: AsyncSession, effects: AfterCommit | None = None) -> None:
        self.session = session
        self.entities = EntityStore(session)
        self.effects = effects if effects is not None else AfterCommit()

    async def set_review_status(
        self, review_id: uuid.UUID, decision: str, reason: str | None = None
    ) -> Review:
        review = await self.entities.get_review(review_id)
        if review is None:
            raise NotFound("review not found")

        transition = _apply(review, "review", decision, reason)
        if not transition.changed:
            logger.info("Review %s already %s, nothing to do", review.id, transition.status)
            return review

        await self._commit()
        logger.info("Review %s moderated: %s", review.id, transition.status)
        if transition.status == APPROVED:
            self.effects.refresh_store_aggregate(review.store_id)
        return review

    async def set_store_status(
        self, store_id: uuid.UUID, decision: str, reason: str | None = None
    ) -> Store:
        store = await self.entities.get_store(store_id)
        if store is None:
            raise NotFound("store not found")

        transition = _apply(store, "store", decision, reason)
        if not transition.changed:
            logger.info("Store %s already %s, nothing to do", store.id, transition.status)
            return store

        await self._commit()
        logger.info("Store %s moderated: %s", store.id, transition.status)
        return store

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
