"""
Health API Endpoints
"""

import logging

from fastapi import APIRouter, Depends

from backend.dependencies import ServerResources, get_resources_dependency

logger = logging.getLogger(__name__)

router = APIRouter()


# ========== BASIC HEALTH CHECK ==========
@router.get(
    "/health",
    summary="Basic health check",
    description="Quick health check endpoint to verify the control API is running",
    tags=["Health"],
)
async def health_check(resources: ServerResources = Depends(get_resources_dependency)):
    """
    Basic health check endpoint.

    Returns:
        Status message with the active configuration
    """
    return {
        "status": "healthy",
        "service": "llamadock-control",
        "version": resources.config.version,
        "model_ready": resources.session.is_ready,
        "loaded_configuration": resources.session.loaded_configuration_name,
    }
