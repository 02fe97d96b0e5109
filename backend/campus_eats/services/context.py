"""Per-request caller context passed explicitly into services."""

import uuid
from dataclasses import dataclass

from campus_eats.models.common import ROLE_ADMIN


@dataclass(frozen=True, slots=True)
class Caller:
    """Who is making the request, as established by the auth layer."""

    user_id: uuid.UUID | None
    role: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def owns(self, owner_id: uuid.UUID) -> bool:
        return self.user_id is not None and self.user_id == owner_id


ANONYMOUS = Caller(user_id=None)
