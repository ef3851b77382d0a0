"""Admin decisions on exclusive purchase requests."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from beatstore.core.auth import get_current_admin_id
from beatstore.database import get_db
from beatstore.schemas.exclusive import (
    ExclusiveApproveRequest,
    ExclusiveRejectRequest,
    ExclusiveRequestResponse,
)
from beatstore.services import exclusive_workflow

router = APIRouter(prefix="/admin/exclusive-requests", tags=["admin"])


@router.get("", response_model=list[ExclusiveRequestResponse])
async def list_requests(
    status: str | None = None,
    beat_id: str | None = None,
    db: AsyncSession = Depends(get_db),
    admin_id: str = Depends(get_current_admin_id),
):
    return await exclusive_workflow.list_requests(db, status, beat_id)


@router.post("/{request_id}/approve", response_model=ExclusiveRequestResponse)
async def approve_request(
    request_id: str,
    req: ExclusiveApproveRequest,
    db: AsyncSession = Depends(get_db),
    admin_id: str = Depends(get_current_admin_id),
):
    return await exclusive_workflow.approve_request(db, request_id, admin_id, req.admin_notes)


@router.post("/{request_id}/reject", response_model=ExclusiveRequestResponse)
async def reject_request(
    request_id: str,
    req: ExclusiveRejectRequest,
    db: AsyncSession = Depends(get_db),
    admin_id: str = Depends(get_current_admin_id),
):
    return await exclusive_workflow.reject_request(db, request_id, admin_id, req.reason)


@router.post("/{request_id}/complete", response_model=ExclusiveRequestResponse)
async def complete_request(
    request_id: str,
    db: AsyncSession = Depends(get_db),
    admin_id: str = Depends(get_current_admin_id),
):
    return await exclusive_workflow.confirm_and_complete(db, request_id, actor_id=admin_id)
