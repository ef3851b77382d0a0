"""Operator-triggered repair of duplicate purchases."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from beatstore.core.auth import get_current_admin_id
from beatstore.database import get_db
from beatstore.schemas.maintenance import (
    DuplicateGroupListResponse,
    DuplicateGroupResponse,
    SweepRequest,
    SweepResponse,
)
from beatstore.services import duplicate_sweeper

router = APIRouter(prefix="/admin/maintenance", tags=["admin"])


@router.get("/duplicate-purchases", response_model=DuplicateGroupListResponse)
async def list_duplicate_purchases(
    db: AsyncSession = Depends(get_db),
    admin_id: str = Depends(get_current_admin_id),
):
    groups = await duplicate_sweeper.find_duplicate_groups(db)
    return DuplicateGroupListResponse(
        total=len(groups),
        groups=[DuplicateGroupResponse(**g.to_dict()) for g in groups],
    )


@router.post("/duplicate-purchases/sweep", response_model=SweepResponse)
async def sweep_duplicate_purchases(
    req: SweepRequest,
    db: AsyncSession = Depends(get_db),
    admin_id: str = Depends(get_current_admin_id),
):
    return await duplicate_sweeper.sweep(db, admin_id, dry_run=req.dry_run)
