"""Values shared by the moderated models."""

from datetime import datetime, timezone
from typing import Literal

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"

ModerationStatus = Literal["pending", "approved", "rejected"]
MODERATION_STATUSES: tuple[str, ...] = (PENDING, APPROVED, REJECTED)

ROLE_USER = "user"
ROLE_ADMIN = "admin"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
