"""
Pydantic models for the Ollama-compatible wire protocol.
"""

from typing import Optional

from pydantic import BaseModel, Field

from src.core.configurations import DEFAULT_CONFIGURATION_NAME


# ========== REQUESTS ==========
class ChatMessage(BaseModel):
    """One conversational turn."""

    role: str = Field("", description="system, user or assistant")
    content: str = Field("", description="Message text")


class GenerateRequest(BaseModel):
    """Body of POST /api/generate."""

    model: str = Field(DEFAULT_CONFIGURATION_NAME, description="Configuration name")
    prompt: str = Field("", description="Prompt text")
    stream: bool = Field(True, description="Deliver the reply as chunked NDJSON")

    class Config:
        json_schema_extra = {
            "example": {
                "model": "default",
                "prompt": "Why is the sky blue?",
                "stream": False,
            }
        }


class ChatRequest(BaseModel):
    """Body of POST /api/chat."""

    model: str = Field(DEFAULT_CONFIGURATION_NAME, description="Configuration name")
    messages: Optional[list[ChatMessage]] = Field(None, description="Ordered conversation")
    stream: bool = Field(True, description="Deliver the reply as chunked NDJSON")

    class Config:
        json_schema_extra = {
            "example": {
                "model": "default",
                "messages": [
                    {"role": "system", "content": "You are terse."},
                    {"role": "user", "content": "Hello"},
                ],
                "stream": False,
            }
        }


# ========== RESPONSES ==========
class GenerateResponse(BaseModel):
    model: str
    created_at: str
    response: str
    done: bool = True


class ChatResponse(BaseModel):
    model: str
    created_at: str
    message: ChatMessage
    done: bool = True


class ModelDetails(BaseModel):
    """Static format metadata; configurations do not measure their model files."""

    format: str = "gguf"
    family: str = "llama"
    parameter_size: str = "unknown"
    quantization_level: str = "unknown"


class ModelDescriptor(BaseModel):
    name: str
    model: str
    modified_at: str
    size: int = 0
    details: ModelDetails = Field(default_factory=ModelDetails)


class TagsResponse(BaseModel):
    models: list[ModelDescriptor]


class StatusResponse(BaseModel):
    status: str = "Ollama is running"
