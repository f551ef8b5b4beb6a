import logging
import os
import time

import psutil  # type: ignore[import-untyped]
from fastapi import APIRouter, Request

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """
    Health check endpoint that monitors system resources and service status.

    Returns "initializing" status until the orchestrator has been built
    during startup.
    """
    # System metrics
    cpu_percent = psutil.cpu_percent()
    memory = psutil.virtual_memory()
    disk = psutil.disk_usage("/")

    state = request.app.state
    orchestrator = getattr(state, "orchestrator", None)
    messaging = getattr(state, "messaging_channel", None)
    archive = getattr(state, "archive", None)

    services = {
        "orchestrator": "healthy" if orchestrator else "initializing",
        "telegram": "polling" if messaging and messaging.is_polling else "stopped",
        "archive": "connected" if archive and archive.is_initialized else "lazy",
    }

    pending_reviews = None
    repository = getattr(state, "repository", None)
    if repository is not None:
        try:
            pending_reviews = await repository.count_pending()
        except Exception as e:
            logger.warning(f"Could not count pending reviews: {e}")
            services["database"] = "unavailable"

    overall_status = "healthy" if orchestrator else "initializing"

    return {
        "status": overall_status,
        "timestamp": int(time.time()),
        "build_id": os.getenv("BUILD_ID", "unknown"),
        "system": {
            "cpu_percent": cpu_percent,
            "memory_percent": memory.percent,
            "disk_percent": disk.percent,
        },
        "services": services,
        "pending_reviews": pending_reviews,
    }


@router.get("/health/ready")
async def readiness_check():
    """
    Readiness probe that checks if the service is ready to handle requests.
    """
    return {"status": "ready"}


@router.get("/health/live")
async def liveness_check():
    """
    Liveness probe that checks if the service is running.
    """
    return {"status": "alive"}
