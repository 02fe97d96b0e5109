"""SQLAlchemy models."""

from campus_eats.models.idempotency import IdempotencyKey
from campus_eats.models.review import Review, ReviewImage
from campus_eats.models.store import Store
from campus_eats.models.user import User

__all__ = [
    "IdempotencyKey",
    "Review",
    "ReviewImage",
    "Store",
    "User",
]
