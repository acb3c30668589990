"""
Model listing and liveness endpoints.
"""

import logging
from http import HTTPStatus
from typing import BinaryIO

from pydantic import ValidationError

from backend.dependencies import ServerResources
from backend.http import HttpRequest, InternalServerError, timestamp, write_json
from backend.models.ollama import ModelDescriptor, StatusResponse, TagsResponse

logger = logging.getLogger(__name__)


# ========== GET|POST /api/tags ==========
def handle_tags(resources: ServerResources, request: HttpRequest, wfile: BinaryIO) -> None:
    """List every stored configuration as a model."""
    try:
        modified_at = timestamp()
        tags = TagsResponse(
            models=[ModelDescriptor(name=name, model=name, modified_at=modified_at) for name in resources.store.list()]
        )
    except (OSError, ValidationError) as e:
        logger.error(f"Error building tags response: {e}", exc_info=True)
        raise InternalServerError() from e

    write_json(wfile, HTTPStatus.OK, tags.model_dump_json())


# ========== GET / and /api ==========
def handle_status(resources: ServerResources, request: HttpRequest, wfile: BinaryIO) -> None:
    """Liveness probe."""
    write_json(wfile, HTTPStatus.OK, StatusResponse().model_dump_json())
