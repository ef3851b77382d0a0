"""API router registry used by the app factory.

This keeps route module imports and inclusion order in one place so
`beatstore.main` stays focused on startup wiring.
"""

from __future__ import annotations

from fastapi import APIRouter

from . import (
    admin_exclusive,
    admin_payments,
    auth,
    health,
    maintenance,
    purchases,
    webhooks,
)

API_PREFIX = "/api/v1"

API_ROUTERS: tuple[APIRouter, ...] = (
    health.router,
    auth.router,
    purchases.router,
    webhooks.router,
    admin_payments.router,
    admin_exclusive.router,
    maintenance.router,
)

__all__ = ["API_PREFIX", "API_ROUTERS"]
