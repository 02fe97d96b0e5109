"""API routes for stores and their reviews."""

import uuid

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from campus_eats.api.idempotency import IdempotentRoute
from campus_eats.api.schemas import (
    ReviewListResponse,
    ReviewResponse,
    ReviewUpdateRequest,
    StoreListResponse,
    StoreResponse,
    list_params,
    review_list,
    store_list,
)
from campus_eats.auth import get_caller, get_optional_caller
from campus_eats.database import get_db
from campus_eats.services import AfterCommit, Caller, SubmissionService
from campus_eats.services.listing import ListParams, get_visible_store, list_reviews, list_stores
from campus_eats.services.submission import ReviewChanges, ReviewDraft, StoreDraft
from campus_eats.storage import FileStorage, get_storage

router = APIRouter(prefix="/stores", tags=["stores"], route_class=IdempotentRoute)


# --- Schemas ---

class StoreCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    address: str = Field(min_length=1, max_length=255)
    category: str = Field(min_length=1, max_length=50)
    phone: str = Field("", max_length=20)
    description: str = ""


class ReviewCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=120)
    content: str = Field(min_length=1)
    rating: float


# --- Stores ---

@router.post("", response_model=StoreResponse, status_code=201)
async def create_store(
    data: StoreCreateRequest,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    service = SubmissionService(db)
    return await service.create_store(
        caller,
        StoreDraft(
            name=data.name,
            address=data.address,
            category=data.category,
            phone=data.phone,
            description=data.description,
        ),
    )


@router.get("", response_model=StoreListResponse)
async def get_stores(
    params: ListParams = Depends(list_params),
    caller: Caller = Depends(get_optional_caller),
    db: AsyncSession = Depends(get_db),
):
    return store_list(await list_stores(db, caller, params))


@router.get("/{store_id}", response_model=StoreResponse)
async def get_store(
    store_id: uuid.UUID,
    caller: Caller = Depends(get_optional_caller),
    db: AsyncSession = Depends(get_db),
):
    return await get_visible_store(db, caller, store_id)


# --- Store reviews ---

@router.get("/{store_id}/reviews", response_model=ReviewListResponse)
async def get_store_reviews(
    store_id: uuid.UUID,
    params: ListParams = Depends(list_params),
    caller: Caller = Depends(get_optional_caller),
    db: AsyncSession = Depends(get_db),
):
    await get_visible_store(db, caller, store_id)
    params.store_id = store_id
    return review_list(await list_reviews(db, caller, params))


@router.post("/{store_id}/reviews", response_model=ReviewResponse, status_code=201)
async def submit_store_review(
    store_id: uuid.UUID,
    data: ReviewCreateRequest,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    service = SubmissionService(db)
    return await service.submit_review(
        caller, store_id, ReviewDraft(title=data.title, content=data.content, rating=data.rating)
    )


@router.patch("/{store_id}/reviews/{review_id}", response_model=ReviewResponse)
async def update_store_review(
    store_id: uuid.UUID,
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
        store_id=store_id,
    )
    background_tasks.add_task(effects.run)
    return review


@router.delete("/{store_id}/reviews/{review_id}", status_code=204)
async def delete_store_review(
    store_id: uuid.UUID,
    review_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
):
    effects = AfterCommit()
    service = SubmissionService(db, storage=storage, effects=effects)
    await service.delete_review(caller, review_id, store_id=store_id)
    background_tasks.add_task(effects.run)
