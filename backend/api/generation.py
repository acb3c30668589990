"""
Completion endpoints: POST /api/generate and POST /api/chat.

Both handlers share one shape: parse and validate the body, take the model
session's busy gate (503 if taken), make the requested configuration active,
build the prompt, run inference, release the gate, then answer either with a
buffered JSON object or with a single NDJSON line in a chunked body.
"""

import logging
from http import HTTPStatus
from typing import BinaryIO, TypeVar

from pydantic import BaseModel, ValidationError

from backend.dependencies import ServerResources
from backend.http import (
    ConfigurationLoadFailed,
    HttpRequest,
    MalformedRequest,
    ModelBusy,
    timestamp,
    write_chunked,
    write_json,
)
from backend.models.ollama import ChatMessage, ChatRequest, ChatResponse, GenerateRequest, GenerateResponse
from src.core.configurations import ConfigurationStore
from src.core.exceptions import ConfigurationError, ModelBusyError
from src.core.session import ModelSessionManager
from src.generation.prompt_builder import build_chat_prompt, build_generate_prompt

logger = logging.getLogger(__name__)

RequestModel = TypeVar("RequestModel", bound=BaseModel)


def parse_body(request: HttpRequest, model: type[RequestModel]) -> RequestModel:
    """
    Decode and validate a JSON request body.

    Raises:
        MalformedRequest: If the body is not JSON or does not fit the model
    """
    payload = request.json()
    if not isinstance(payload, dict):
        raise MalformedRequest("Invalid JSON: expected an object")

    try:
        return model.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise MalformedRequest(f"Invalid request: {location}: {first['msg']}") from e


def lookup_template(store: ConfigurationStore, name: str) -> str | None:
    """Prompt template of a configuration, or None if it cannot be read."""
    try:
        return store.load(name).prompt_template
    except ConfigurationError as e:
        logger.warning(f"Could not load config for template: {e}")
        return None


def _run_exclusive(session: ModelSessionManager, model: str, build_prompt) -> str:
    try:
        with session.reserve():
            if not session.ensure_configuration_loaded(model):
                raise ConfigurationLoadFailed(f"Failed to load configuration: {model}")
            return session.infer(build_prompt())
    except ModelBusyError as e:
        logger.warning("Model is busy, rejecting request")
        raise ModelBusy(str(e)) from e


def _respond(wfile: BinaryIO, result: BaseModel, stream: bool) -> None:
    if stream:
        # Inference is not incremental: the whole reply goes out as one final chunk
        write_chunked(wfile, [result.model_dump_json()])
    else:
        write_json(wfile, HTTPStatus.OK, result.model_dump_json())


# ========== POST /api/generate ==========
def handle_generate(resources: ServerResources, request: HttpRequest, wfile: BinaryIO) -> None:
    """Single-prompt completion."""
    body = parse_body(request, GenerateRequest)

    def build_prompt() -> str:
        return build_generate_prompt(body.prompt, lookup_template(resources.store, body.model))

    response_text = _run_exclusive(resources.session, body.model, build_prompt)

    result = GenerateResponse(model=body.model, created_at=timestamp(), response=response_text)
    _respond(wfile, result, body.stream)


# ========== POST /api/chat ==========
def handle_chat(resources: ServerResources, request: HttpRequest, wfile: BinaryIO) -> None:
    """Multi-message completion."""
    body = parse_body(request, ChatRequest)
    if not body.messages:
        raise MalformedRequest("No messages provided")

    def build_prompt() -> str:
        return build_chat_prompt(body.messages, lookup_template(resources.store, body.model))

    response_text = _run_exclusive(resources.session, body.model, build_prompt)

    result = ChatResponse(
        model=body.model,
        created_at=timestamp(),
        message=ChatMessage(role="assistant", content=response_text),
    )
    _respond(wfile, result, body.stream)
