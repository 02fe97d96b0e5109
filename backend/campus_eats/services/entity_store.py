"""Persistence access for stores, reviews and review images.

Only constraint enforcement lives here; moderation and submission rules are
in the services built on top. Nothing in this module commits: the caller owns
the transaction.
"""

import logging
import uuid

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from campus_eats.errors import DuplicateReview, DuplicateStore
from campus_eats.models import Review, ReviewImage, Store
from campus_eats.models.common import APPROVED, utcnow

logger = logging.getLogger(__name__)


class EntityStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ------------------------------------------------------------------
    # Stores
    # ------------------------------------------------------------------

    async def get_store(self, store_id: uuid.UUID) -> Store | None:
        result = await self.session.execute(
            select(Store).where(Store.id == store_id, Store.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def find_store_by_name_address(self, name: str, address: str) -> Store | None:
        """Exact match on the de-duplication key among live stores."""
        result = await self.session.execute(
            select(Store).where(
                Store.name == name,
                Store.address == address,
                Store.deleted_at.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def add_store(self, store: Store) -> Store:
        self.session.add(store)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise DuplicateStore() from exc
        return store

    async def compute_store_aggregate(self, store_id: uuid.UUID) -> tuple[float, int]:
        """AVG/COUNT over the approved, live reviews of a store."""
        result = await self.session.execute(
            select(func.avg(Review.rating), func.count(Review.id)).where(
                Review.store_id == store_id,
                Review.status == APPROVED,
                Review.deleted_at.is_(None),
            )
        )
        average, total = result.one()
        return (round(float(average), 2) if average is not None else 0.0), int(total)

    async def update_store_aggregate(self, store_id: uuid.UUID, average_rating: float, total_reviews: int) -> None:
        """Write both derived fields in one statement."""
        await self.session.execute(
            update(Store)
            .where(Store.id == store_id)
            .values(average_rating=average_rating, total_reviews=total_reviews, updated_at=utcnow())
        )

    async def soft_delete_store(self, store: Store) -> list[str]:
        """Soft-delete a store with its reviews and images.

        Returns the storage keys of the images that were removed so the
        caller can delete the blobs once the transaction has committed.
        """
        now = utcnow()
        review_ids = select(Review.id).where(Review.store_id == store.id, Review.deleted_at.is_(None))

        keys_result = await self.session.execute(
            select(ReviewImage.storage_key).where(
                ReviewImage.review_id.in_(review_ids),
                ReviewImage.deleted_at.is_(None),
            )
        )
        keys = [key for key in keys_result.scalars().all() if key]

        await self.session.execute(
            update(ReviewImage)
            .where(ReviewImage.review_id.in_(review_ids), ReviewImage.deleted_at.is_(None))
            .values(deleted_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(
            update(Review)
            .where(Review.store_id == store.id, Review.deleted_at.is_(None))
            .values(deleted_at=now)
            .execution_options(synchronize_session=False)
        )
        store.deleted_at = now
        await self.session.flush()
        return keys

    # ------------------------------------------------------------------
    # Reviews
    # ------------------------------------------------------------------

    async def get_review(self, review_id: uuid.UUID) -> Review | None:
        """Load a live review with its author and images attached."""
        result = await self.session.execute(
            select(Review)
            .options(joinedload(Review.author), selectinload(Review.images))
            .where(Review.id == review_id, Review.deleted_at.is_(None))
            .execution_options(populate_existing=True)
        )
        return result.unique().scalar_one_or_none()

    async def find_review_by_author_and_store(self, author_id: uuid.UUID, store_id: uuid.UUID) -> Review | None:
        result = await self.session.execute(
            select(Review).where(
                Review.author_id == author_id,
                Review.store_id == store_id,
                Review.deleted_at.is_(None),
            )
        )
        return result.scalars().first()

    async def add_review(self, review: Review) -> Review:
        self.session.add(review)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise DuplicateReview() from exc
        return review

    async def soft_delete_review(self, review: Review) -> list[str]:
        now = utcnow()
        keys_result = await self.session.execute(
            select(ReviewImage.storage_key).where(
                ReviewImage.review_id == review.id,
                ReviewImage.deleted_at.is_(None),
            )
        )
        keys = [key for key in keys_result.scalars().all() if key]

        await self.session.execute(
            update(ReviewImage)
            .where(ReviewImage.review_id == review.id, ReviewImage.deleted_at.is_(None))
            .values(deleted_at=now)
            .execution_options(synchronize_session=False)
        )
        review.deleted_at = now
        await self.session.flush()
        return keys

    async def add_image(self, image: ReviewImage) -> ReviewImage:
        self.session.add(image)
        await self.session.flush()
        return image
