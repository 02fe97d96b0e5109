"""Response and request schemas shared by the API routers."""

import uuid
from datetime import datetime
from typing import Literal

from fastapi import Query
from pydantic import BaseModel, Field

from campus_eats.services.listing import ListParams, Page


class AuthorResponse(BaseModel):
    id: uuid.UUID
    display_name: str

    model_config = {"from_attributes": True}


class ImageResponse(BaseModel):
    id: uuid.UUID
    review_id: uuid.UUID
    url: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ReviewResponse(BaseModel):
    id: uuid.UUID
    store_id: uuid.UUID
    author: AuthorResponse
    title: str
    content: str
    rating: float
    status: str
    rejection_reason: str
    images: list[ImageResponse]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class StoreResponse(BaseModel):
    id: uuid.UUID
    name: str
    address: str
    phone: str
    category: str
    description: str
    status: str
    rejection_reason: str
    average_rating: float
    total_reviews: int
    created_by: uuid.UUID
    auto_created: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PaginationResponse(BaseModel):
    page: int
    page_size: int
    total: int
    total_pages: int


class StoreListResponse(BaseModel):
    data: list[StoreResponse]
    pagination: PaginationResponse


class ReviewListResponse(BaseModel):
    data: list[ReviewResponse]
    pagination: PaginationResponse


class ReviewUpdateRequest(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=120)
    content: str | None = Field(None, min_length=1)
    rating: float | None = None


class ModerationRequest(BaseModel):
    status: Literal["approved", "rejected"]
    reason: str | None = None


def pagination_of(page: Page) -> PaginationResponse:
    return PaginationResponse(
        page=page.page,
        page_size=page.page_size,
        total=page.total,
        total_pages=page.total_pages,
    )


def store_list(page: Page) -> StoreListResponse:
    return StoreListResponse(
        data=[StoreResponse.model_validate(s) for s in page.items],
        pagination=pagination_of(page),
    )


def review_list(page: Page) -> ReviewListResponse:
    return ReviewListResponse(
        data=[ReviewResponse.model_validate(r) for r in page.items],
        pagination=pagination_of(page),
    )


def list_params(
    page: int = Query(1, description="Page number, starting at 1"),
    page_size: int | None = Query(None, description="Items per page (capped)"),
    limit: int | None = Query(None, description="Alias of page_size"),
    q: str = Query("", description="Case-insensitive substring search"),
    sort: str | None = Query(None, description="created_at or rating, '-' prefix for descending"),
    order: str | None = Query(None, description="asc or desc"),
    status: str | None = Query(None, description="Status filter (administrators only)"),
    category: str | None = Query(None, description="Store category filter"),
) -> ListParams:
    return ListParams(
        page=page,
        page_size=limit if limit is not None else page_size,
        q=q,
        sort=sort,
        order=order,
        status=status,
        category=category,
    )
