"""
Health check endpoints.
"""

from typing import Any

from fastapi import APIRouter, Depends

from devhub.api.deps import get_chat_client
from devhub.clients.chat_backend import ChatBackendClient
from devhub.core.config import settings
from devhub.core.logging import get_logger
from devhub.db.models import utcnow
from devhub.db.session import check_database

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """
    Basic health check endpoint.
    Returns application status.
    """
    return {
        "status": "healthy",
        "app": settings.app_name,
        "environment": settings.app_env,
        "timestamp": utcnow().isoformat(),
    }


@router.get("/health/ready")
async def readiness_check(
    chat_client: ChatBackendClient = Depends(get_chat_client),
) -> dict[str, Any]:
    """
    Readiness check endpoint.

    Only the database decides readiness; the chat backend is reported so
    operators can see it, but the gateway still serves history without it.
    """
    database = await check_database()
    chat_backend = await chat_client.health_check()
    if not chat_backend:
        logger.warning("Chat backend unreachable", url=chat_client.base_url)

    return {
        "status": "ready" if database else "not_ready",
        "checks": {
            "app": True,
            "database": database,
            "chat_backend": chat_backend,
        },
        "timestamp": utcnow().isoformat(),
    }


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """
    Liveness check endpoint.
    Simple check that the application is running.
    """
    return {"status": "alive"}
