"""
LlamaDock Backend Dependencies

Shared resources for the socket server and the control API. Everything is
built once by the process entry point (build_resources) and handed to both
surfaces by reference; there are no module-level singletons.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from src.core.configurations import ConfigurationStore
from src.core.engine import InferenceEngine, LlamaCppEngine
from src.core.events import EventBus
from src.core.session import ModelSessionManager
from src.utilities.config import LlamaDockConfig, get_config

logger = logging.getLogger(__name__)


@dataclass
class ServerResources:
    """The long-lived objects request handlers operate on."""

    config: LlamaDockConfig
    store: ConfigurationStore
    session: ModelSessionManager
    events: EventBus


# ========== INITIALIZATION ==========
def build_resources(
    config: Optional[LlamaDockConfig] = None,
    engine: Optional[InferenceEngine] = None,
    events: Optional[EventBus] = None,
) -> ServerResources:
    """
    Construct the configuration store, event bus, engine and model session.

    Args:
        config: Application configuration (defaults are used if None)
        engine: Inference engine; a LlamaCppEngine is created if None
        events: Event bus to publish lifecycle events on

    Returns:
        ServerResources bundle
    """
    config = config or get_config()
    events = events or EventBus()

    store = ConfigurationStore(config.storage.config_directory, config=config)
    logger.info(f"✓ Configuration store ready ({len(store.list())} configurations)")

    engine = engine or LlamaCppEngine(config=config)
    session = ModelSessionManager(
        engine=engine,
        store=store,
        models_directory=config.storage.models_directory,
        events=events,
        config=config,
    )
    logger.info("✓ Model session initialized")

    return ServerResources(config=config, store=store, session=session, events=events)


def cleanup_resources(resources: ServerResources) -> None:
    """Free the model if no request is using it."""
    logger.info("Cleaning up resources...")
    if not resources.session.release_model():
        logger.warning("⚠ Model still busy at shutdown; resources not freed")


# ========== DEPENDENCY FUNCTIONS ==========
def get_resources_dependency(request: Request) -> ServerResources:
    """Dependency: resources attached to the control application."""
    return request.app.state.resources


def get_store_dependency(request: Request) -> ConfigurationStore:
    """Dependency: configuration store."""
    return get_resources_dependency(request).store


def get_session_dependency(request: Request) -> ModelSessionManager:
    """Dependency: model session manager."""
    return get_resources_dependency(request).session
