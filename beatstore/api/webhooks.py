"""Payment provider callbacks.

The body is authenticated with an HMAC-SHA256 signature in ``X-Signature``
before anything is trusted.  Once authenticated, the callback is always
acknowledged with 200: anomalies are stored and audited, never bounced
back to a provider that would only redeliver them.
"""

import hashlib
import hmac
import json
import logging

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from beatstore.config import settings
from beatstore.database import get_db
from beatstore.schemas.payment import CallbackAck, ProviderCallback
from beatstore.services import payment_service

router = APIRouter(tags=["webhooks"])
logger = logging.getLogger(__name__)


def compute_signature(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


@router.post("/webhooks/payments", response_model=CallbackAck)
async def payment_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    x_signature: str = Header(None, alias="X-Signature"),
):
    """Handle a provider's ``(transaction_id, amount, currency, status)`` notification."""
    payload = await request.body()

    # Verify signature; mandatory when the secret is configured
    if settings.payment_webhook_secret:
        if not x_signature:
            logger.warning("Payment webhook rejected: missing X-Signature header")
            return JSONResponse(status_code=401, content={"error": "Missing X-Signature header"})
        expected = compute_signature(payload, settings.payment_webhook_secret)
        if not hmac.compare_digest(expected, x_signature):
            logger.warning("Payment webhook rejected: bad signature")
            return JSONResponse(status_code=400, content={"error": "Invalid webhook signature"})

    try:
        event = ProviderCallback.model_validate(json.loads(payload))
    except (json.JSONDecodeError, ValueError, ValidationError):
        return JSONResponse(status_code=400, content={"error": "Invalid callback payload"})

    logger.info("Payment webhook received: %s %s", event.transaction_id, event.status)
    result = await payment_service.handle_provider_callback(
        db,
        transaction_id=event.transaction_id,
        amount=event.amount,
        currency=event.currency,
        status=event.status,
    )
    return CallbackAck(received=True, outcome=result["outcome"])
