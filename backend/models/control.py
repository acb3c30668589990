"""
Pydantic models for the control API endpoints.

Models for managing stored configurations and the model session at runtime.
"""

from typing import Optional

from pydantic import BaseModel, Field

from src.core.configurations import DEFAULT_CONFIGURATION_NAME
from src.core.session import SessionStatus


# ========== CONFIGURATIONS ==========
class ConfigurationListResponse(BaseModel):
    """Names of all stored configurations."""

    configurations: list[str] = Field(..., description="Sorted configuration names")

    class Config:
        json_schema_extra = {"example": {"configurations": ["default", "phi-mini"]}}


class ConfigurationDeleteResponse(BaseModel):
    deleted: str = Field(..., description="Name of the removed configuration")


# ========== SESSION ==========
class SessionStatusResponse(BaseModel):
    """Snapshot of the model session."""

    busy: bool = Field(..., description="Whether a request currently holds the model")
    loaded_configuration_name: Optional[str] = Field(None, description="Active configuration")
    loaded_model_path: Optional[str] = Field(None, description="Absolute path of the loaded model file")
    is_ready: bool = Field(..., description="Whether the engine can run inference")

    class Config:
        json_schema_extra = {
            "example": {
                "busy": False,
                "loaded_configuration_name": "default",
                "loaded_model_path": "/srv/llamadock-data/models/tinyllama-1.1b-chat-v1.0.Q4_K_M.gguf",
                "is_ready": True,
            }
        }

    @classmethod
    def from_status(cls, status: SessionStatus) -> "SessionStatusResponse":
        return cls(
            busy=status.busy,
            loaded_configuration_name=status.loaded_configuration_name,
            loaded_model_path=status.loaded_model_path,
            is_ready=status.is_ready,
        )


class SessionLoadRequest(BaseModel):
    """Body of POST /api/session/load."""

    name: str = Field(DEFAULT_CONFIGURATION_NAME, description="Configuration to make active")
