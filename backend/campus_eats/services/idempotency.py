"""At-most-once execution of mutating requests keyed by ``Idempotency-Key``.

A record moves ``in_progress`` -> ``completed``. While a key is in progress
any repeat is refused with :class:`InProgress`; once completed, repeats get
the stored status code and body back without touching business logic.

Records live for ``idempotency_ttl_seconds``. An expired record is treated
as if it never existed: a request that outlives its own TTL is therefore not
guaranteed to be de-duplicated against a late retry.
"""

import hashlib
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campus_eats.config import get_settings
from campus_eats.database import async_session
from campus_eats.errors import InProgress, ValidationError
from campus_eats.models import IdempotencyKey
from campus_eats.models.common import utcnow
from campus_eats.models.idempotency import COMPLETED, IN_PROGRESS

logger = logging.getLogger(__name__)

MAX_KEY_LENGTH = 100


def hash_request(method: str, target: str, body: bytes) -> str:
    """Fingerprint of a request: method, path with query, then the raw body."""
    digest = hashlib.sha256(f"{method.upper()} {target}\n".encode())
    digest.update(body or b"")
    return digest.hexdigest()


@dataclass(frozen=True, slots=True)
class StoredResponse:
    status_code: int
    body: bytes


class IdempotencyService:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = async_session,
        ttl_seconds: int | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.ttl = timedelta(
            seconds=ttl_seconds if ttl_seconds is not None else get_settings().idempotency_ttl_seconds
        )

    async def begin(self, user_id: uuid.UUID, key: str, request_hash: str) -> StoredResponse | None:
        """Claim ``key`` for this request.

        Returns the stored response when the key already completed, ``None``
        when the caller should go ahead and execute. Raises
        :class:`InProgress` if the key is still being worked on and
        :class:`ValidationError` if it was used for a different body.
        """
        key = (key or "").strip()
        if not key or len(key) > MAX_KEY_LENGTH:
            raise ValidationError(f"Idempotency-Key must be 1-{MAX_KEY_LENGTH} characters")

        now = utcnow()
        async with self.session_factory() as session:
            result = await session.execute(
                select(IdempotencyKey).where(
                    IdempotencyKey.user_id == user_id,
                    IdempotencyKey.key == key,
                    IdempotencyKey.expires_at > now,
                )
            )
            record = result.scalar_one_or_none()

            if record is not None:
                if record.request_hash != request_hash:
                    raise ValidationError("Idempotency-Key was already used for a different request")
                if record.status == IN_PROGRESS:
                    logger.info("Rejected in-flight duplicate for key %s (user %s)", key, user_id)
                    raise InProgress("a request with this Idempotency-Key is already in progress")
                logger.info("Replaying stored response for key %s (user %s)", key, user_id)
                return StoredResponse(status_code=record.response_code or 200, body=record.response_body or b"")

            # Expired leftovers for the same key would block the unique index.
            await session.execute(
                delete(IdempotencyKey).where(
                    IdempotencyKey.user_id == user_id,
                    IdempotencyKey.key == key,
                )
            )
            session.add(
                IdempotencyKey(
                    user_id=user_id,
                    key=key,
                    request_hash=request_hash,
                    status=IN_PROGRESS,
                    expires_at=now + self.ttl,
                )
            )
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.info("Lost race for key %s (user %s)", key, user_id)
                raise InProgress("a request with this Idempotency-Key is already in progress")
        return None

    async def complete(self, user_id: uuid.UUID, key: str, status_code: int, body: bytes) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(IdempotencyKey)
                .where(IdempotencyKey.user_id == user_id, IdempotencyKey.key == key.strip())
                .values(status=COMPLETED, response_code=status_code, response_body=body, updated_at=utcnow())
            )
            await session.commit()

    async def release(self, user_id: uuid.UUID, key: str) -> None:
        """Forget an in-progress key whose request did not succeed."""
        async with self.session_factory() as session:
            await session.execute(
                delete(IdempotencyKey).where(
                    IdempotencyKey.user_id == user_id,
                    IdempotencyKey.key == key.strip(),
                    IdempotencyKey.status == IN_PROGRESS,
                )
            )
            await session.commit()

    async def purge_expired(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                delete(IdempotencyKey).where(IdempotencyKey.expires_at <= utcnow())
            )
            await session.commit()
        purged = result.rowcount or 0
        if purged:
            logger.info("Purged %d expired idempotency key(s)", purged)
        return purged
