"""Store and review submission workflows.

The central piece is :meth:`SubmissionService.submit_with_auto_create`: a
review addressed to a store by name and address, creating the store in the
same transaction when it does not exist yet. Either both rows commit or
neither does; an existing store is reused untouched.

Every write path here owns its transaction: it commits on success and rolls
back on any failure before re-raising. Work that must not hold up the
response (aggregate recompute, blob deletion) is queued on an
:class:`AfterCommit`.
"""

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from campus_eats.config import get_settings
from campus_eats.errors import (
    DuplicateReview,
    DuplicateStore,
    Forbidden,
    InternalError,
    InvalidRating,
    NotFound,
    ValidationError,
)
from campus_eats.models import Review, ReviewImage, Store
from campus_eats.models.common import APPROVED, PENDING
from campus_eats.services.context import Caller
from campus_eats.services.effects import AfterCommit
from campus_eats.services.entity_store import EntityStore
from campus_eats.services.listing import can_view_store
from campus_eats.storage import FileStorage, build_image_key

logger = logging.getLogger(__name__)

MIN_RATING = 0.0
MAX_RATING = 5.0


@dataclass(frozen=True, slots=True)
class ReviewDraft:
    title: str
    content: str
    rating: float


@dataclass(frozen=True, slots=True)
class ReviewChanges:
    title: str | None = None
    content: str | None = None
    rating: float | None = None


@dataclass(frozen=True, slots=True)
class StoreDraft:
    name: str
    address: str
    category: str
    phone: str = ""
    description: str = ""


@dataclass(frozen=True, slots=True)
class SubmissionResult:
    store: Store
    review: Review
    store_created: bool


def validate_rating(rating: float) -> float:
    if rating is None or not (MIN_RATING <= rating <= MAX_RATING):
        raise InvalidRating(rating)
    return float(rating)


def _required(value: str | None, field: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{field} is required")
    return cleaned


def _validated_draft(draft: ReviewDraft) -> ReviewDraft:
    return ReviewDraft(
        title=_required(draft.title, "title"),
        content=_required(draft.content, "content"),
        rating=validate_rating(draft.rating),
    )


class SubmissionService:
    def __init__(
        self,
        session: AsyncSession,
        storage: FileStorage | None = None,
        effects: AfterCommit | None = None,
    ) -> None:
        self.session = session
        self.storage = storage
        self.entities = EntityStore(session)
        self.effects = effects if effects is not None else AfterCommit()

    # ------------------------------------------------------------------
    # Stores
    # ------------------------------------------------------------------

    async def create_store(self, caller: Caller, draft: StoreDraft) -> Store:
        """Explicit store creation; administrators publish immediately."""
        name = _required(draft.name, "name")
        address = _required(draft.address, "address")
        category = _required(draft.category, "category")

        try:
            if await self.entities.find_store_by_name_address(name, address) is not None:
                raise DuplicateStore()

            store = Store(
                name=name,
                address=address,
                category=category,
                phone=(draft.phone or "").strip(),
                description=(draft.description or "").strip(),
                status=APPROVED if caller.is_admin else PENDING,
                created_by=caller.user_id,
                auto_created=False,
            )
            await self.entities.add_store(store)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info("Store %s created by %s (status=%s)", store.id, caller.user_id, store.status)
        return store

    async def delete_store(self, store_id: uuid.UUID) -> None:
        """Soft-delete a store, its reviews and images; blobs go after commit."""
        store = await self.entities.get_store(store_id)
        if store is None:
            raise NotFound("store not found")

        try:
            keys = await self.entities.soft_delete_store(store)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info("Store %s deleted with %d image(s)", store_id, len(keys))
        if self.storage is not None:
            self.effects.delete_blobs(self.storage, keys)

    # ------------------------------------------------------------------
    # Review submission
    # ------------------------------------------------------------------

    async def submit_review(self, caller: Caller, store_id: uuid.UUID, draft: ReviewDraft) -> Review:
        """Create a pending review for an existing store."""
        draft = _validated_draft(draft)

        store = await self.entities.get_store(store_id)
        if store is None or not can_view_store(caller, store):
            raise NotFound("store not found")

        try:
            review = await self._insert_review(caller, store.id, draft)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info("Review %s submitted by %s for store %s", review.id, caller.user_id, store.id)
        return await self.entities.get_review(review.id)

    async def submit_with_auto_create(
        self,
        caller: Caller,
        store_name: str,
        store_address: str,
        draft: ReviewDraft,
        store_category: str = "",
    ) -> SubmissionResult:
        """Review a store named by (name, address), creating it if needed.

        A store inserted concurrently by another submission surfaces as a
        unique-index violation; the whole unit is then retried once so the
        second pass reuses that store.
        """
        name = _required(store_name, "store_name")
        address = _required(store_address, "store_address")
        draft = _validated_draft(draft)

        try:
            return await self._auto_create_once(caller, name, address, draft, store_category)
        except DuplicateStore:
            logger.info("Store %r at %r appeared concurrently, retrying submission", name, address)
        return await self._auto_create_once(caller, name, address, draft, store_category)

    async def _auto_create_once(
        self,
        caller: Caller,
        name: str,
        address: str,
        draft: ReviewDraft,
        category: str,
    ) -> SubmissionResult:
        created = False
        try:
            store = await self.entities.find_store_by_name_address(name, address)
            if store is None:
                store = Store(
                    name=name,
                    address=address,
                    category=(category or "").strip(),
                    status=PENDING,
                    created_by=caller.user_id,
                    auto_created=True,
                )
                await self.entities.add_store(store)
                created = True

            review = await self._insert_review(caller, store.id, draft)
            await self.session.commit()
        except Exception:
            # Also discards a store inserted above: no store without its review.
            await self.session.rollback()
            raise

        if created:
            logger.info("Auto-created store %s (%r) for review %s", store.id, name, review.id)
        logger.info("Review %s submitted by %s for store %s", review.id, caller.user_id, store.id)
        return SubmissionResult(
            store=store,
            review=await self.entities.get_review(review.id),
            store_created=created,
        )

    async def _insert_review(self, caller: Caller, store_id: uuid.UUID, draft: ReviewDraft) -> Review:
        if await self.entities.find_review_by_author_and_store(caller.user_id, store_id) is not None:
            raise DuplicateReview()

        review = Review(
            store_id=store_id,
            author_id=caller.user_id,
            title=draft.title,
            content=draft.content,
            rating=draft.rating,
            status=PENDING,
        )
        return await self.entities.add_review(review)

    # ------------------------------------------------------------------
    # Owner operations
    # ------------------------------------------------------------------

    async def _owned_review(
        self, caller: Caller, review_id: uuid.UUID, store_id: uuid.UUID | None, *, allow_admin: bool = False
    ) -> Review:
        review = await self.entities.get_review(review_id)
        if review is None or (store_id is not None and review.store_id != store_id):
            raise NotFound("review not found")
        if not caller.owns(review.author_id) and not (allow_admin and caller.is_admin):
            raise Forbidden("only the author may modify this review")
        return review

    async def update_review(
        self,
        caller: Caller,
        review_id: uuid.UUID,
        changes: ReviewChanges,
        store_id: uuid.UUID | None = None,
    ) -> Review:
        """Edit an own review; any edit sends it back to moderation."""
        review = await self._owned_review(caller, review_id, store_id)

        title = _required(changes.title, "title") if changes.title is not None else None
        content = _required(changes.content, "content") if changes.content is not None else None
        rating = validate_rating(changes.rating) if changes.rating is not None else None

        was_approved = review.status == APPROVED
        try:
            if title is not None:
                review.title = title
            if content is not None:
                review.content = content
            if rating is not None:
                review.rating = rating
            review.status = PENDING
            review.rejection_reason = ""
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info("Review %s updated by author, back to pending", review.id)
        if was_approved:
            self.effects.refresh_store_aggregate(review.store_id)
        return await self.entities.get_review(review.id)

    async def delete_review(
        self,
        caller: Caller,
        review_id: uuid.UUID,
        store_id: uuid.UUID | None = None,
        *,
        allow_admin: bool = False,
    ) -> None:
        review = await self._owned_review(caller, review_id, store_id, allow_admin=allow_admin)
        was_approved = review.status == APPROVED
        target_store = review.store_id

        try:
            keys = await self.entities.soft_delete_review(review)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info("Review %s deleted by %s", review_id, caller.user_id)
        if self.storage is not None:
            self.effects.delete_blobs(self.storage, keys)
        if was_approved:
            self.effects.refresh_store_aggregate(target_store)

    async def attach_image(
        self,
        caller: Caller,
        review_id: uuid.UUID,
        filename: str,
        content_type: str | None,
        data: bytes,
    ) -> ReviewImage:
        """Store an uploaded image and record it against an own review."""
        if self.storage is None:
            raise InternalError("no storage configured for image uploads")

        review = await self._owned_review(caller, review_id, None)

        if not (content_type or "").startswith("image/"):
            raise ValidationError("only image uploads are accepted")
        if not data:
            raise ValidationError("file is empty")
        max_bytes = get_settings().upload_max_bytes
        if len(data) > max_bytes:
            raise ValidationError(f"file exceeds the {max_bytes} byte limit")

        key = build_image_key(review.id, filename or "upload")
        try:
            stored = await self.storage.save(key, data, content_type)
        except OSError as exc:
            logger.exception("Failed to store upload %s", key)
            raise InternalError("failed to store upload") from exc

        image = ReviewImage(review_id=review.id, storage_key=stored.key, url=stored.url)
        try:
            await self.entities.add_image(image)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            try:
                await self.storage.delete(stored.key)
            except Exception:
                logger.exception("Failed to remove orphaned upload %s", stored.key)
            raise

        logger.info("Image %s attached to review %s", image.id, review.id)
        return image
