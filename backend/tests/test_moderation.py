"""Tests for the moderation state machine and rating aggregates."""

import uuid

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from campus_eats.database import async_session
from campus_eats.errors import AlreadyProcessed, NotFound, ValidationError
from campus_eats.models import Store, User
from campus_eats.models.common import APPROVED, PENDING, REJECTED
from campus_eats.services import AfterCommit, ModerationService, SubmissionService
from campus_eats.services.aggregates import refresh_store_aggregate
from campus_eats.services.moderation import approve, reject
from campus_eats.services.submission import ReviewChanges

from conftest import caller_for, make_review, make_store


async def _fresh_store(store_id) -> Store:
    async with async_session() as session:
        return await session.get(Store, store_id)


# --- Pure transitions ---

@pytest.mark.asyncio
async def test_approve_pending_review(db: AsyncSession, alice: User, approved_store: Store):
    review = await make_review(db, approved_store, alice)
    transition = approve(review, "review")
    assert transition.changed is True
    assert review.status == APPROVED


@pytest.mark.asyncio
async def test_reject_requires_reason(db: AsyncSession, alice: User, approved_store: Store):
    review = await make_review(db, approved_store, alice)
    for reason in (None, "", "   "):
        with pytest.raises(ValidationError):
            reject(review, "review", reason)
    assert review.status == PENDING


@pytest.mark.asyncio
async def test_reject_stores_trimmed_reason(db: AsyncSession, alice: User, approved_store: Store):
    review = await make_review(db, approved_store, alice)
    reject(review, "review", "  off-topic  ")
    assert review.status == REJECTED
    assert review.rejection_reason == "off-topic"


# --- Service ---

@pytest.mark.asyncio
async def test_approve_twice_is_noop(db: AsyncSession, alice: User, approved_store: Store):
    review = await make_review(db, approved_store, alice)
    effects = AfterCommit()
    service = ModerationService(db, effects)

    first = await service.set_review_status(review.id, APPROVED)
    assert first.status == APPROVED
    assert len(effects) == 1

    effects.clear()
    second = await service.set_review_status(review.id, APPROVED)
    assert second.status == APPROVED
    assert len(effects) == 0


@pytest.mark.asyncio
async def test_opposite_decision_conflicts(db: AsyncSession, alice: User, approved_store: Store):
    review = await make_review(db, approved_store, alice)
    service = ModerationService(db)
    await service.set_review_status(review.id, APPROVED)

    with pytest.raises(AlreadyProcessed):
        await service.set_review_status(review.id, REJECTED, "changed my mind")

    reloaded = await service.entities.get_review(review.id)
    assert reloaded.status == APPROVED
    assert reloaded.rejection_reason == ""


@pytest.mark.asyncio
async def test_reject_then_approve_conflicts(db: AsyncSession, alice: User, approved_store: Store):
    review = await make_review(db, approved_store, alice)
    service = ModerationService(db)
    await service.set_review_status(review.id, REJECTED, "spam")

    with pytest.raises(AlreadyProcessed):
        await service.set_review_status(review.id, APPROVED)


@pytest.mark.asyncio
async def test_unknown_review_not_found(db: AsyncSession, approved_store: Store):
    with pytest.raises(NotFound):
        await ModerationService(db).set_review_status(uuid.uuid4(), APPROVED)


@pytest.mark.asyncio
async def test_store_moderation(db: AsyncSession, alice: User):
    store = await make_store(db, alice, status=PENDING)
    service = ModerationService(db)

    rejected = await service.set_store_status(store.id, REJECTED, "duplicate listing")
    assert rejected.status == REJECTED
    assert rejected.rejection_reason == "duplicate listing"

    with pytest.raises(AlreadyProcessed):
        await service.set_store_status(store.id, APPROVED)


# --- Aggregates ---

@pytest.mark.asyncio
async def test_aggregate_counts_only_approved(db: AsyncSession, alice: User, bob: User, admin: User,
                                              approved_store: Store):
    r1 = await make_review(db, approved_store, alice, rating=4.0)
    r2 = await make_review(db, approved_store, bob, rating=5.0)
    await make_review(db, approved_store, admin, rating=1.0)

    effects = AfterCommit()
    service = ModerationService(db, effects)
    await service.set_review_status(r1.id, APPROVED)
    await service.set_review_status(r2.id, APPROVED)
    assert len(effects) == 1  # both approvals share one recompute
    await effects.run()

    store = await _fresh_store(approved_store.id)
    assert store.average_rating == 4.5
    assert store.total_reviews == 2


@pytest.mark.asyncio
async def test_aggregate_rounds_to_two_decimals(db: AsyncSession, alice: User, bob: User, admin: User,
                                                approved_store: Store):
    for user, rating in ((alice, 4.0), (bob, 4.0), (admin, 5.0)):
        await make_review(db, approved_store, user, rating=rating, status=APPROVED)

    average, total = await refresh_store_aggregate(approved_store.id)
    assert (average, total) == (4.33, 3)


@pytest.mark.asyncio
async def test_aggregate_empty_store(approved_store: Store):
    assert await refresh_store_aggregate(approved_store.id) == (0.0, 0)


@pytest.mark.asyncio
async def test_edit_of_approved_review_resets_and_refreshes(db: AsyncSession, alice: User, approved_store: Store):
    review = await make_review(db, approved_store, alice, rating=3.0)
    await ModerationService(db).set_review_status(review.id, APPROVED)
    await refresh_store_aggregate(approved_store.id)

    effects = AfterCommit()
    updated = await SubmissionService(db, effects=effects).update_review(
        caller_for(alice), review.id, ReviewChanges(rating=5.0)
    )
    assert updated.status == PENDING
    assert updated.rating == 5.0

    await effects.run()
    store = await _fresh_store(approved_store.id)
    assert store.total_reviews == 0
    assert store.average_rating == 0.0


@pytest.mark.asyncio
async def test_delete_of_approved_review_refreshes(db: AsyncSession, alice: User, bob: User, approved_store: Store):
    keep = await make_review(db, approved_store, alice, rating=2.0, status=APPROVED)
    gone = await make_review(db, approved_store, bob, rating=5.0, status=APPROVED)
    await refresh_store_aggregate(approved_store.id)

    effects = AfterCommit()
    await SubmissionService(db, effects=effects).delete_review(caller_for(bob), gone.id)
    await effects.run()

    store = await _fresh_store(approved_store.id)
    assert store.total_reviews == 1
    assert store.average_rating == keep.rating
