"""Moderation endpoints. Every route requires an administrator token."""

import uuid

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from campus_eats.api.idempotency import IdempotentRoute
from campus_eats.api.schemas import (
    ModerationRequest,
    ReviewListResponse,
    ReviewResponse,
    StoreListResponse,
    StoreResponse,
    list_params,
    review_list,
    store_list,
)
from campus_eats.auth import require_admin
from campus_eats.database import get_db
from campus_eats.models.common import PENDING
from campus_eats.services import AfterCommit, Caller, ModerationService, SubmissionService
from campus_eats.services.listing import ListParams, list_reviews, list_stores
from campus_eats.storage import FileStorage, get_storage

router = APIRouter(prefix="/admin", tags=["admin"], route_class=IdempotentRoute)


# --- Queues ---

@router.get("/reviews/pending", response_model=ReviewListResponse)
async def get_pending_reviews(
    params: ListParams = Depends(list_params),
    caller: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    params.status = PENDING
    return review_list(await list_reviews(db, caller, params))


@router.get("/stores/pending", response_model=StoreListResponse)
async def get_pending_stores(
    params: ListParams = Depends(list_params),
    caller: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    params.status = PENDING
    return store_list(await list_stores(db, caller, params))


# --- Decisions ---

@router.put("/reviews/{review_id}/status", response_model=ReviewResponse)
async def moderate_review(
    review_id: uuid.UUID,
    data: ModerationRequest,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    effects = AfterCommit()
    review = await ModerationService(db, effects).set_review_status(review_id, data.status, data.reason)
    background_tasks.add_task(effects.run)
    return review


@router.put("/stores/{store_id}/status", response_model=StoreResponse)
async def moderate_store(
    store_id: uuid.UUID,
    data: ModerationRequest,
    caller: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await ModerationService(db).set_store_status(store_id, data.status, data.reason)


# --- Removal ---

@router.delete("/reviews/{review_id}", status_code=204)
async def remove_review(
    review_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
):
    effects = AfterCommit()
    await SubmissionService(db, storage=storage, effects=effects).delete_review(
        caller, review_id, allow_admin=True
    )
    background_tasks.add_task(effects.run)


@router.delete("/stores/{store_id}", status_code=204)
async def remove_store(
    store_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
):
    effects = AfterCommit()
    await SubmissionService(db, storage=storage, effects=effects).delete_store(store_id)
    background_tasks.add_task(effects.run)
