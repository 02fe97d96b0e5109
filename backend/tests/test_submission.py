"""Tests for store/review submission, including auto-created stores."""

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_eats.database import async_session
from campus_eats.errors import DuplicateReview, DuplicateStore, InvalidRating, NotFound, ValidationError
from campus_eats.models import Review, Store, User
from campus_eats.models.common import APPROVED, PENDING
from campus_eats.services import SubmissionService
from campus_eats.services.entity_store import EntityStore
from campus_eats.services.submission import ReviewDraft, StoreDraft, validate_rating

from conftest import caller_for, make_review, make_store


def _draft(rating: float = 4.5) -> ReviewDraft:
    return ReviewDraft(title="Great ramen", content="Rich broth, quick service.", rating=rating)


async def _count(model, *conditions) -> int:
    async with async_session() as session:
        return await session.scalar(select(func.count(model.id)).where(*conditions))


# --- Rating bounds ---

@pytest.mark.parametrize("rating", [0, 0.0, 2.5, 5, 5.0])
def test_validate_rating_accepts_bounds(rating):
    assert validate_rating(rating) == float(rating)


@pytest.mark.parametrize("rating", [-0.1, 5.1, None])
def test_validate_rating_rejects_out_of_range(rating):
    with pytest.raises(InvalidRating):
        validate_rating(rating)


# --- Stores ---

@pytest.mark.asyncio
async def test_user_store_starts_pending(db: AsyncSession, alice: User):
    store = await SubmissionService(db).create_store(
        caller_for(alice), StoreDraft(name="Taco Cart", address="North Gate", category="mexican")
    )
    assert store.status == PENDING
    assert store.created_by == alice.id
    assert store.auto_created is False


@pytest.mark.asyncio
async def test_admin_store_is_published(db: AsyncSession, admin: User):
    store = await SubmissionService(db).create_store(
        caller_for(admin), StoreDraft(name="Library Cafe", address="Main Library", category="cafe")
    )
    assert store.status == APPROVED


@pytest.mark.asyncio
async def test_duplicate_store_rejected(db: AsyncSession, alice: User, approved_store: Store):
    with pytest.raises(DuplicateStore):
        await SubmissionService(db).create_store(
            caller_for(alice),
            StoreDraft(name=approved_store.name, address=approved_store.address, category="asian"),
        )


@pytest.mark.asyncio
async def test_store_name_reusable_after_delete(db: AsyncSession, admin: User, approved_store: Store):
    service = SubmissionService(db)
    await service.delete_store(approved_store.id)

    store = await service.create_store(
        caller_for(admin),
        StoreDraft(name=approved_store.name, address=approved_store.address, category="asian"),
    )
    assert store.id != approved_store.id


@pytest.mark.asyncio
async def test_store_requires_name(db: AsyncSession, alice: User):
    with pytest.raises(ValidationError):
        await SubmissionService(db).create_store(
            caller_for(alice), StoreDraft(name="   ", address="Somewhere", category="cafe")
        )


# --- Reviews on existing stores ---

@pytest.mark.asyncio
async def test_submit_review_is_pending(db: AsyncSession, alice: User, approved_store: Store):
    review = await SubmissionService(db).submit_review(caller_for(alice), approved_store.id, _draft())
    assert review.status == PENDING
    assert review.author.id == alice.id
    assert review.images == []


@pytest.mark.asyncio
async def test_second_review_for_same_store_rejected(db: AsyncSession, alice: User, approved_store: Store):
    alice_id, store_id = alice.id, approved_store.id
    caller = caller_for(alice)
    service = SubmissionService(db)
    await service.submit_review(caller, store_id, _draft())

    with pytest.raises(DuplicateReview):
        await service.submit_review(caller, store_id, _draft(3.0))
    assert await _count(Review, Review.author_id == alice_id) == 1


@pytest.mark.asyncio
async def test_review_for_hidden_store_not_found(db: AsyncSession, alice: User, bob: User):
    store = await make_store(db, bob, status=PENDING)
    with pytest.raises(NotFound):
        await SubmissionService(db).submit_review(caller_for(alice), store.id, _draft())


@pytest.mark.asyncio
async def test_review_with_invalid_rating_creates_nothing(db: AsyncSession, alice: User, approved_store: Store):
    with pytest.raises(InvalidRating):
        await SubmissionService(db).submit_review(caller_for(alice), approved_store.id, _draft(5.1))
    assert await _count(Review) == 0


# --- Auto-create ---

@pytest.mark.asyncio
async def test_auto_create_new_store(db: AsyncSession, alice: User):
    result = await SubmissionService(db).submit_with_auto_create(
        caller_for(alice), "  Falafel Stand ", "Quad East", _draft(), store_category="middle eastern"
    )
    assert result.store_created is True
    assert result.store.name == "Falafel Stand"
    assert result.store.status == PENDING
    assert result.store.auto_created is True
    assert result.store.created_by == alice.id
    assert result.review.store_id == result.store.id
    assert result.review.status == PENDING


@pytest.mark.asyncio
async def test_auto_create_reuses_existing_store(db: AsyncSession, alice: User, approved_store: Store):
    result = await SubmissionService(db).submit_with_auto_create(
        caller_for(alice), approved_store.name, approved_store.address, _draft()
    )
    assert result.store_created is False
    assert result.store.id == approved_store.id
    assert result.store.status == APPROVED
    assert await _count(Store) == 1


@pytest.mark.asyncio
async def test_auto_create_is_atomic(db: AsyncSession, alice: User, monkeypatch):
    async def broken_add_review(self, review):
        raise RuntimeError("disk full")

    monkeypatch.setattr(EntityStore, "add_review", broken_add_review)

    with pytest.raises(RuntimeError):
        await SubmissionService(db).submit_with_auto_create(
            caller_for(alice), "Ghost Kitchen", "Nowhere 1", _draft()
        )
    assert await _count(Store, Store.name == "Ghost Kitchen") == 0
    assert await _count(Review) == 0


@pytest.mark.asyncio
async def test_auto_create_duplicate_review_rolls_back(db: AsyncSession, alice: User, approved_store: Store):
    await make_review(db, approved_store, alice)
    alice_id = alice.id
    caller = caller_for(alice)
    store_name, store_address = approved_store.name, approved_store.address

    with pytest.raises(DuplicateReview):
        await SubmissionService(db).submit_with_auto_create(caller, store_name, store_address, _draft())
    assert await _count(Review, Review.author_id == alice_id) == 1


@pytest.mark.asyncio
async def test_auto_create_requires_store_fields(db: AsyncSession, alice: User):
    with pytest.raises(ValidationError):
        await SubmissionService(db).submit_with_auto_create(caller_for(alice), "", "Somewhere", _draft())
    assert await _count(Store) == 0
