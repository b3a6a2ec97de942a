"""Member-facing progress endpoints."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.progress_service.models import ProgressStatus
from services.progress_service.schemas import (
    AssignSpecialtyRequest,
    ProgressListResponse,
    ProgressResponse,
    SpecialtyCompletionResponse,
    SubmitProgressRequest,
)
from services.progress_service.services import progress_store
from services.progress_service.services.progress_store import Answer
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)
router = APIRouter(prefix="/progress", tags=["progress"])


def _target_member(requested: Optional[uuid.UUID], current_user: AuthUser) -> uuid.UUID:
    member_id = requested or current_user.member_id
    if member_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="member_id is required",
        )
    return member_id


@router.post("/items/{item_id}/submit", response_model=ProgressResponse)
async def submit_answer(
    item_id: uuid.UUID,
    body: SubmitProgressRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Submit (or resubmit) an answer for review."""
    return await progress_store.submit(
        db,
        actor=current_user,
        member_id=_target_member(body.member_id, current_user),
        item_id=item_id,
        answer=Answer(
            text=body.answer_text,
            file_ref=body.answer_file_ref,
            quiz_answers=body.quiz_answers,
        ),
    )


@router.get("/members/{member_id}/items/{item_id}", response_model=ProgressResponse)
async def get_item_progress(
    member_id: uuid.UUID,
    item_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Current record, or a NOT_STARTED placeholder."""
    return await progress_store.get_progress(
        db, actor=current_user, member_id=member_id, item_id=item_id
    )


@router.get("/members/{member_id}", response_model=ProgressListResponse)
async def list_member_progress(
    member_id: uuid.UUID,
    group_id: Optional[uuid.UUID] = None,
    status_filter: Optional[ProgressStatus] = None,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    records = await progress_store.list_progress(
        db,
        actor=current_user,
        member_id=member_id,
        group_id=group_id,
        status=status_filter,
    )
    return ProgressListResponse(records=records, total=len(records))


@router.post(
    "/specialties/{specialty_id}/assign", response_model=SpecialtyCompletionResponse
)
async def assign_specialty(
    specialty_id: uuid.UUID,
    body: AssignSpecialtyRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Open a specialty so its requirements can be answered."""
    return await progress_store.assign_specialty(
        db,
        actor=current_user,
        member_id=_target_member(body.member_id, current_user),
        specialty_id=specialty_id,
    )


@router.get(
    "/members/{member_id}/specialties/{specialty_id}/completion",
    response_model=SpecialtyCompletionResponse,
)
async def get_specialty_completion(
    member_id: uuid.UUID,
    specialty_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await progress_store.get_completion(
        db, actor=current_user, member_id=member_id, specialty_id=specialty_id
    )
