"""Review and ReviewImage models."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from campus_eats.database import Base
from campus_eats.models.common import PENDING, utcnow


class Review(Base):
    __tablename__ = "reviews"
    __table_args__ = (
        # One live review per author and store.
        Index(
            "uq_reviews_author_store",
            "author_id",
            "store_id",
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    store_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("stores.id"), index=True)
    author_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), index=True)
    title: Mapped[str] = mapped_column(String(120))
    content: Mapped[str] = mapped_column(Text)
    rating: Mapped[float] = mapped_column(Float)
    status: Mapped[str] = mapped_column(String(20), default=PENDING, index=True)
    rejection_reason: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now()
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), index=True)

    store = relationship("Store", back_populates="reviews")
    author = relationship("User", back_populates="reviews")
    images = relationship(
        "ReviewImage",
        order_by="ReviewImage.created_at",
        primaryjoin="and_(ReviewImage.review_id == Review.id, ReviewImage.deleted_at.is_(None))",
        viewonly=True,
    )


class ReviewImage(Base):
    __tablename__ = "review_images"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    review_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("reviews.id"), index=True)
    storage_key: Mapped[str] = mapped_column(String(255))
    url: Mapped[str] = mapped_column(String(512))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), index=True)

    review = relationship("Review")
