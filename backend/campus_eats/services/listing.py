"""Filtered, sorted and paginated listings of stores and reviews.

Status scoping is decided here from the :class:`Caller`, not from what the
client asked for: anonymous and regular callers only ever see ``approved``
rows, whatever ``status`` filter they send. Administrators may filter on any
status. A caller listing their own reviews sees every status of those.
"""

import math
import uuid
from dataclasses import dataclass, field
from typing import Generic, Sequence, TypeVar

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from campus_eats.config import get_settings
from campus_eats.errors import NotFound, ValidationError
from campus_eats.models import Review, Store
from campus_eats.models.common import APPROVED, MODERATION_STATUSES
from campus_eats.services.context import Caller

T = TypeVar("T")

DEFAULT_SORT = ("created_at", "desc")

STORE_SORT_FIELDS = {
    "created_at": Store.created_at,
    "rating": Store.average_rating,
    "average_rating": Store.average_rating,
}

REVIEW_SORT_FIELDS = {
    "created_at": Review.created_at,
    "rating": Review.rating,
}


def _contains_pattern(text: str) -> str:
    """LIKE pattern matching ``text`` literally anywhere; wildcards are escaped."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


@dataclass
class ListParams:
    page: int = 1
    page_size: int | None = None
    q: str = ""
    sort: str | None = None
    order: str | None = None
    status: str | None = None
    category: str | None = None
    author_id: uuid.UUID | None = None
    store_id: uuid.UUID | None = None

    def normalized(self) -> "ListParams":
        settings = get_settings()
        page_size = self.page_size or settings.default_page_size
        return ListParams(
            page=max(self.page or 1, 1),
            page_size=min(max(page_size, 1), settings.max_page_size),
            q=(self.q or "").strip(),
            sort=self.sort,
            order=self.order,
            status=(self.status or "").strip().lower() or None,
            category=(self.category or "").strip() or None,
            author_id=self.author_id,
            store_id=self.store_id,
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * (self.page_size or 0)


@dataclass
class Page(Generic[T]):
    items: Sequence[T]
    page: int
    page_size: int
    total: int
    total_pages: int = field(init=False)

    def __post_init__(self) -> None:
        self.total_pages = math.ceil(self.total / self.page_size) if self.page_size else 0


def resolve_statuses(caller: Caller, requested: str | None, *, own_only: bool = False) -> list[str] | None:
    """Statuses a caller may see; ``None`` means no status restriction."""
    if caller.is_admin or own_only:
        if requested is None:
            return None
        if requested not in MODERATION_STATUSES:
            raise ValidationError(
                f"unknown status {requested!r}; expected one of {', '.join(MODERATION_STATUSES)}"
            )
        return [requested]
    return [APPROVED]


def parse_sort(sort: str | None, order: str | None, allowed: dict) -> tuple[str, str]:
    """Resolve ``sort``/``order`` against an allow-list.

    ``sort`` accepts ``field`` or ``-field`` (descending); an explicit
    ``order`` of ``asc``/``desc`` wins over the prefix. Anything not on the
    allow-list falls back to ``created_at desc``.
    """
    raw = (sort or "").strip()
    if not raw:
        return DEFAULT_SORT

    direction = "desc" if raw.startswith("-") else "asc"
    name = raw.lstrip("-").lower()
    if name not in allowed:
        return DEFAULT_SORT

    order = (order or "").strip().lower()
    if order in ("asc", "desc"):
        direction = order
    return name, direction


def _order_by(sort: str | None, order: str | None, allowed: dict, tiebreak):
    name, direction = parse_sort(sort, order, allowed)
    column = allowed[name]
    primary = column.desc() if direction == "desc" else column.asc()
    return primary, tiebreak.desc() if direction == "desc" else tiebreak.asc()


async def list_stores(session: AsyncSession, caller: Caller, params: ListParams) -> Page[Store]:
    params = params.normalized()
    conditions = [Store.deleted_at.is_(None)]

    statuses = resolve_statuses(caller, params.status)
    if statuses:
        conditions.append(Store.status.in_(statuses))
    if params.q:
        like = _contains_pattern(params.q)
        conditions.append(or_(Store.name.ilike(like, escape="\\"), Store.address.ilike(like, escape="\\")))
    if params.category:
        conditions.append(func.lower(Store.category) == params.category.lower())

    total = await session.scalar(select(func.count(Store.id)).where(*conditions))

    result = await session.execute(
        select(Store)
        .where(*conditions)
        .order_by(*_order_by(params.sort, params.order, STORE_SORT_FIELDS, Store.id))
        .limit(params.page_size)
        .offset(params.offset)
    )
    return Page(list(result.scalars().all()), params.page, params.page_size, int(total or 0))


async def list_reviews(
    session: AsyncSession,
    caller: Caller,
    params: ListParams,
    *,
    own_only: bool = False,
) -> Page[Review]:
    """List reviews visible to ``caller``.

    With ``own_only`` the listing is pinned to the caller's own reviews and
    covers every status.
    """
    params = params.normalized()
    conditions = [Review.deleted_at.is_(None)]

    if own_only:
        if caller.user_id is None:
            raise ValidationError("an authenticated caller is required to list own reviews")
        conditions.append(Review.author_id == caller.user_id)
    elif params.author_id is not None:
        conditions.append(Review.author_id == params.author_id)

    statuses = resolve_statuses(caller, params.status, own_only=own_only)
    if statuses:
        conditions.append(Review.status.in_(statuses))
    if params.store_id is not None:
        conditions.append(Review.store_id == params.store_id)
    if params.q:
        like = _contains_pattern(params.q)
        conditions.append(or_(Review.title.ilike(like, escape="\\"), Review.content.ilike(like, escape="\\")))

    total = await session.scalar(select(func.count(Review.id)).where(*conditions))

    result = await session.execute(
        select(Review)
        .options(joinedload(Review.author), selectinload(Review.images))
        .where(*conditions)
        .order_by(*_order_by(params.sort, params.order, REVIEW_SORT_FIELDS, Review.id))
        .limit(params.page_size)
        .offset(params.offset)
    )
    return Page(list(result.unique().scalars().all()), params.page, params.page_size, int(total or 0))


def can_view_store(caller: Caller, store: Store) -> bool:
    """Approved stores are public; others only for admins and their creator."""
    if store.status == APPROVED or caller.is_admin:
        return True
    return caller.owns(store.created_by)


def can_view_review(caller: Caller, review: Review) -> bool:
    if review.status == APPROVED or caller.is_admin:
        return True
    return caller.owns(review.author_id)


async def get_visible_store(session: AsyncSession, caller: Caller, store_id: uuid.UUID) -> Store:
    result = await session.execute(
        select(Store).where(Store.id == store_id, Store.deleted_at.is_(None))
    )
    store = result.scalar_one_or_none()
    if store is None or not can_view_store(caller, store):
        raise NotFound("store not found")
    return store


async def get_visible_review(session: AsyncSession, caller: Caller, review_id: uuid.UUID) -> Review:
    result = await session.execute(
        select(Review)
        .options(joinedload(Review.author), selectinload(Review.images))
        .where(Review.id == review_id, Review.deleted_at.is_(None))
    )
    review = result.unique().scalar_one_or_none()
    if review is None or not can_view_review(caller, review):
        raise NotFound("review not found")
    return review
