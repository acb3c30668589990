"""
Configuration API Endpoints

CRUD over the stored model configurations:
- List configuration names
- Read, create/replace and delete a configuration by name

Records use the persisted JSON format (camelCase keys). The name always comes
from the path.
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import ValidationError

from backend.dependencies import get_store_dependency
from backend.models.control import ConfigurationDeleteResponse, ConfigurationListResponse
from src.core.configurations import DEFAULT_CONFIGURATION_NAME, ConfigurationStore, ModelConfiguration
from src.core.exceptions import ConfigurationError, ConfigurationNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/configurations", tags=["Configurations"])


def _record(configuration: ModelConfiguration) -> dict[str, Any]:
    return configuration.model_dump(by_alias=True)


# ========== LIST ==========
@router.get(
    "",
    response_model=ConfigurationListResponse,
    summary="List configurations",
)
def list_configurations(store: ConfigurationStore = Depends(get_store_dependency)):
    try:
        return ConfigurationListResponse(configurations=store.list())
    except OSError as e:
        logger.error(f"Failed to list configurations: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


# ========== READ ==========
@router.get("/{name}", summary="Get a configuration")
def get_configuration(name: str, store: ConfigurationStore = Depends(get_store_dependency)):
    """
    Get a stored configuration.

    Raises:
        HTTPException 404: If no configuration has this name
        HTTPException 400: If the name or the stored record is invalid
    """
    try:
        return _record(store.load(name))
    except ConfigurationNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Configuration not found: {name}")
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


# ========== CREATE / REPLACE ==========
@router.put("/{name}", summary="Create or replace a configuration")
def put_configuration(
    name: str,
    record: dict[str, Any] = Body(..., description="Configuration record in the persisted format"),
    store: ConfigurationStore = Depends(get_store_dependency),
):
    """
    Save a configuration under ``name``.

    Missing fields take their defaults. Takes effect on the next request that
    names this configuration.
    """
    try:
        configuration = ModelConfiguration.model_validate({**record, "name": name})
        store.save(configuration)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid configuration: {e}")
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.info(f"Configuration saved: {name}")
    return _record(configuration)


# ========== DELETE ==========
@router.delete("/{name}", response_model=ConfigurationDeleteResponse, summary="Delete a configuration")
def delete_configuration(name: str, store: ConfigurationStore = Depends(get_store_dependency)):
    if name == DEFAULT_CONFIGURATION_NAME:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete default configuration")

    if not store.delete(name):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Configuration not found: {name}")

    logger.info(f"Configuration deleted: {name}")
    return ConfigurationDeleteResponse(deleted=name)
