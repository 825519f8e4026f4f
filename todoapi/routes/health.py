"""Liveness endpoint."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter

from .. import __version__


SERVICE_NAME = "todoapi"


def create_health_router() -> APIRouter:
    """Create the health router (mounted at ``/health`` and ``/api/health``)."""
    router = APIRouter(tags=["health"])

    @router.get("")
    async def health() -> dict[str, Any]:
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "version": __version__,
        }

    return router
