"""
Session API Endpoints

Inspect the model session, switch the active configuration ahead of traffic,
and free the loaded model. Both mutating endpoints refuse with 503 while a
request holds the model.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from backend.dependencies import get_session_dependency
from backend.models.control import SessionLoadRequest, SessionStatusResponse
from src.core.exceptions import ModelBusyError
from src.core.session import ModelSessionManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/session", tags=["Session"])


@router.get("", response_model=SessionStatusResponse, summary="Session status")
def get_session_status(session: ModelSessionManager = Depends(get_session_dependency)):
    return SessionStatusResponse.from_status(session.status())


@router.post("/load", response_model=SessionStatusResponse, summary="Load a configuration")
def load_configuration(
    body: SessionLoadRequest,
    session: ModelSessionManager = Depends(get_session_dependency),
):
    """
    Make a configuration active, downloading its model if needed.

    Raises:
        HTTPException 503: If the model is busy
        HTTPException 500: If the configuration could not be loaded
    """
    try:
        with session.reserve():
            loaded = session.ensure_configuration_loaded(body.name)
    except ModelBusyError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    if not loaded:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to load configuration: {body.name}",
        )

    return SessionStatusResponse.from_status(session.status())


@router.post("/free", response_model=SessionStatusResponse, summary="Free the loaded model")
def free_model(session: ModelSessionManager = Depends(get_session_dependency)):
    if not session.release_model():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Model is busy processing another request",
        )
    return SessionStatusResponse.from_status(session.status())
