"""Verification-code delivery. A single best-effort attempt; failures are logged, never raised."""

from __future__ import annotations

import logging

import httpx

from beatstore.config import settings

logger = logging.getLogger(__name__)


async def send_verification_code(destination: str | None, code: str, code_type: str) -> bool:
    """Hand a code to the notification webhook, or log it when none is configured."""
    if not settings.notification_webhook_url:
        logger.info("No notification channel configured; %s code for %s not sent", code_type, destination)
        return False
    if not destination:
        logger.warning("No destination for %s code; not sent", code_type)
        return False

    body = {"type": code_type, "destination": destination, "code": code}
    try:
        async with httpx.AsyncClient() as client:
            resp = await client.post(
                settings.notification_webhook_url,
                json=body,
                timeout=settings.notification_timeout_seconds,
            )
        if resp.status_code >= 400:
            logger.warning("Notification webhook answered %d for %s code", resp.status_code, code_type)
            return False
        return True
    except httpx.HTTPError as exc:
        logger.warning("Notification delivery failed for %s: %s", destination, exc)
        return False
