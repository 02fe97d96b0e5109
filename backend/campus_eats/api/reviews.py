"""API routes for reviews: listing, submission (optionally auto-creating the
store), owner edits and image uploads."""

import uuid

from fastapi import APIRouter, BackgroundTasks, Depends, File, Query, UploadFile
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from campus_eats.api.idempotency import IdempotentRoute
from campus_eats.api.schemas import (
    ImageResponse,
    ReviewListResponse,
    ReviewResponse,
    ReviewUpdateRequest,
    StoreResponse,
    list_params,
    review_list,
)
from campus_eats.auth import get_caller, get_optional_caller
from campus_eats.config import get_settings
from campus_eats.database import get_db
from campus_eats.errors import NotFound, ValidationError
from campus_eats.services import AfterCommit, Caller, EntityStore, SubmissionService
from campus_eats.services.listing import ListParams, get_visible_review, list_reviews
from campus_eats.services.submission import ReviewChanges, ReviewDraft
from campus_eats.storage import FileStorage, get_storage

router = APIRouter(prefix="/reviews", tags=["reviews"], route_class=IdempotentRoute)


# --- Schemas ---

class ReviewSubmitRequest(BaseModel):
    store_id: uuid.UUID | None = None
    store_name: str | None = Field(None, max_length=120)
    store_address: str | None = Field(None, max_length=255)
    store_category: str = Field("", max_length=50)
    title: str = Field(min_length=1, max_length=120)
    content: str = Field(min_length=1)
    rating: float


class SubmissionResponse(BaseModel):
    store: StoreResponse
    review: ReviewResponse
    store_created: bool


# --- Listing ---

@router.get("", response_model=ReviewListResponse)
async def get_reviews(
    params: ListParams = Depends(list_params),
    store_id: uuid.UUID | None = Query(None),
    author_id: uuid.UUID | None = Query(None),
    caller: Caller = Depends(get_optional_caller),
    db: AsyncSession = Depends(get_db),
):
    params.store_id = store_id
    params.author_id = author_id
    return review_list(await list_reviews(db, caller, params))


@router.get("/me", response_model=ReviewListResponse)
async def get_my_reviews(
    params: ListParams = Depends(list_params),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    return review_list(await list_reviews(db, caller, params, own_only=True))


@router.get("/{review_id}", response_model=ReviewResponse)
async def get_review(
    review_id: uuid.UUID,
    caller: Caller = Depends(get_optional_caller),
    db: AsyncSession = Depends(get_db),
):
    return await get_visible_review(db, caller, review_id)


# --- Submission ---

@router.post("", response_model=SubmissionResponse, status_code=201)
async def submit_review(
    data: ReviewSubmitRequest,
    auto_create: bool = Query(False, alias="autoCreate"),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    service = SubmissionService(db)
    draft = ReviewDraft(title=data.title, content=data.content, rating=data.rating)

    if auto_create:
        if not data.store_name or not data.store_address:
            raise ValidationError("store_name and store_address are required with autoCreate")
        result = await service.submit_with_auto_create(
            caller, data.store_name, data.store_address, draft, store_category=data.store_category
        )
        return SubmissionResponse(
            store=StoreResponse.model_validate(result.store),
            review=ReviewResponse.model_validate(result.review),
            store_created=result.store_created,
        )

    if data.store_id is None:
        raise ValidationError("store_id is required unless autoCreate=true")
    review = await service.submit_review(caller, data.store_id, draft)
    store = await EntityStore(db).get_store(review.store_id)
    if store is None:
        raise NotFound("store not found")
    return SubmissionResponse(
        store=StoreResponse.model_validate(store),
        review=ReviewResponse.model_validate(review),
        store_created=False,
    )


# --- Owner operations ---

@router.patch("/{review_id}", response_model=ReviewResponse)
async def update_review(
    review_id: uuid.UUID,
    data: ReviewUpdateRequest,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    effects = AfterCommit()
    service = SubmissionService(db, effects=effects)
    review = await service.update_review(
        caller,
        review_id,
        ReviewChanges(title=data.title, content=data.content, rating=data.rating),
    )
    background_tasks.add_task(effects.run)
    return review


@router.delete("/{review_id}", status_code=204)
async def delete_review(
    review_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
):
    effects = AfterCommit()
    service = SubmissionService(db, storage=storage, effects=effects)
    await service.delete_review(caller, review_id)
    background_tasks.add_task(effects.run)


@router.post("/{review_id}/images", response_model=ImageResponse, status_code=201)
async def upload_review_image(
    review_id: uuid.UUID,
    file: UploadFile = File(...),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
):
    # One byte past the limit is enough to reject oversized files.
    data = await file.read(get_settings().upload_max_bytes + 1)
    service = SubmissionService(db, storage=storage)
    return await service.attach_image(caller, review_id, file.filename or "upload", file.content_type, data)
