import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from beatstore.database import get_db
from beatstore.models.exclusive_request import ExclusivePurchaseRequest
from beatstore.models.payment import PaymentRecord
from beatstore.models.purchase import Purchase
from beatstore.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

_VERSION = "0.3.0"


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    purchases = (await db.execute(select(func.count(Purchase.id)))).scalar() or 0
    pending_payments = (await db.execute(
        select(func.count(PaymentRecord.id)).where(PaymentRecord.status == "pending")
    )).scalar() or 0
    pending_requests = (await db.execute(
        select(func.count(ExclusivePurchaseRequest.id)).where(ExclusivePurchaseRequest.status == "pending")
    )).scalar() or 0

    return HealthResponse(
        status="healthy",
        version=_VERSION,
        purchases_count=purchases,
        pending_payments_count=pending_payments,
        pending_exclusive_requests_count=pending_requests,
    )


@router.get("/health/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """Readiness probe: verifies DB connectivity."""
    try:
        await db.execute(text("SELECT 1"))
        return {"status": "ready", "database": "connected"}
    except Exception:
        logger.exception("Readiness check failed: database unreachable")
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "database": "unavailable"},
        )
