"""
Model session management.

The ModelSessionManager owns the single inference engine handle. The engine
tolerates exactly one operation in flight and reloading it is expensive, so
the manager provides:

    - a non-blocking single-flight gate (try_acquire/release, reserve()),
      so contenders fail fast instead of queueing;
    - ensure_configuration_loaded(), which short-circuits when the requested
      configuration is already active and otherwise downloads, swaps and
      configures the model;
    - infer() and release_model().

Operations documented as "caller must hold the lock" assume the caller
acquired the gate first.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import TYPE_CHECKING, Optional

from src.core.configurations import DEFAULT_CONFIGURATION_NAME, ConfigurationStore, ModelConfiguration
from src.core.engine import STATUS_OK, InferenceEngine
from src.core.events import EventBus, EventType
from src.core.exceptions import ConfigurationError, ModelBusyError
from src.utilities.utils import ensure_config, filename_from_url, log_debug, log_error, log_info, log_success, log_warning

if TYPE_CHECKING:
    from src.utilities.config import LlamaDockConfig

MODEL_NOT_LOADED = "Model not loaded"


@dataclass(frozen=True)
class SessionStatus:
    """Point-in-time view of the session state."""

    busy: bool
    loaded_configuration_name: str | None
    loaded_model_path: str | None
    is_ready: bool


class ModelSessionManager:
    """Serializes all access to one inference engine and tracks what it has loaded."""

    def __init__(
        self,
        engine: InferenceEngine,
        store: ConfigurationStore,
        models_directory: str | Path,
        events: EventBus | None = None,
        config: Optional["LlamaDockConfig"] = None,
    ):
        self.config = ensure_config(config)
        self.engine = engine
        self.store = store
        self.models_directory = Path(models_directory)
        self.events = events or EventBus()

        # Guards every field below; never held across engine calls
        self._state_lock = Lock()
        self._busy = False
        self._loaded_configuration_name: str | None = None
        self._loaded_model_path: str | None = None
        self._is_ready = False

    # ========== SINGLE-FLIGHT GATE ==========
    def try_acquire(self) -> bool:
        """Take the busy gate if it is free. Never blocks."""
        with self._state_lock:
            if self._busy:
                return False
            self._busy = True
            return True

    def release(self) -> None:
        """Clear the busy gate."""
        with self._state_lock:
            self._busy = False

    @contextmanager
    def reserve(self) -> Iterator["ModelSessionManager"]:
        """
        Hold the busy gate for the duration of a with-block.

        Raises:
            ModelBusyError: If another caller already holds the gate
        """
        if not self.try_acquire():
            raise ModelBusyError()
        try:
            yield self
        finally:
            self.release()

    # ========== STATE ==========
    @property
    def is_busy(self) -> bool:
        with self._state_lock:
            return self._busy

    @property
    def is_ready(self) -> bool:
        with self._state_lock:
            return self._is_ready

    @property
    def loaded_configuration_name(self) -> str | None:
        with self._state_lock:
            return self._loaded_configuration_name

    @property
    def loaded_model_path(self) -> str | None:
        with self._state_lock:
            return self._loaded_model_path

    def status(self) -> SessionStatus:
        with self._state_lock:
            return SessionStatus(
                busy=self._busy,
                loaded_configuration_name=self._loaded_configuration_name,
                loaded_model_path=self._loaded_model_path,
                is_ready=self._is_ready,
            )

    def _set_state(self, name: str | None, path: str | None, ready: bool) -> None:
        with self._state_lock:
            self._loaded_configuration_name = name
            self._loaded_model_path = path
            self._is_ready = ready

    def _fail(self, message: str, subject: str | None = None) -> bool:
        log_error(message, config=self.config)
        self.events.publish(EventType.ERROR, subject, message)
        return False

    # ========== LOADING ==========
    def ensure_configuration_loaded(self, name: str) -> bool:
        """
        Make ``name`` the active configuration. Caller must hold the lock.

        Downloads the model if it is not on disk, reinitializes the engine only
        when the model file changes, and always re-applies sampling parameters.

        Returns:
            True if the configuration is active, False if loading failed
        """
        with self._state_lock:
            if name == self._loaded_configuration_name and self._is_ready:
                log_debug(f"Configuration already loaded: {name}", self.config)
                return True
            current_path = self._loaded_model_path

        try:
            configuration = self.store.load(name)
        except ConfigurationError as e:
            return self._fail(f"Failed to load configuration: {e}", name)

        self.events.publish(EventType.MODEL_LOADING, name)

        filename = filename_from_url(configuration.model_url)
        if not filename:
            return self._fail(f"Cannot determine filename from URL: {configuration.model_url}", name)

        destination = self.models_directory / filename
        model_path = str(destination.resolve())

        if not destination.is_file() or destination.stat().st_size == 0:
            log_info(f"Downloading model for '{name}' from: {configuration.model_url}", config=self.config)
            status = self.engine.fetch_model(configuration.model_url, model_path)
            if status != STATUS_OK:
                return self._fail(f"Download failed: {status}", name)

        if model_path != current_path:
            if current_path is not None:
                # The old instance is gone from here on; a failed init leaves the session unloaded
                self._set_state(None, None, False)
                self.engine.release()

            status = self.engine.initialize(
                model_path,
                n_ctx=configuration.n_ctx,
                n_threads=configuration.n_threads,
                n_batch=configuration.n_batch,
                penalty_last_n=configuration.penalty_last_n,
            )
            if status != STATUS_OK:
                return self._fail(f"Model init failed: {status}", name)

        self.apply_configuration(configuration)

        self._set_state(name, model_path, True)
        self.events.publish(EventType.MODEL_LOADED, name)
        log_success(f"Configuration loaded: {name}", config=self.config)
        return True

    def apply_configuration(self, configuration: ModelConfiguration) -> None:
        """Push a configuration's sampling parameters into the engine."""
        self.engine.configure_sampling(configuration.sampling_parameters())

    def preload(self, name: str = DEFAULT_CONFIGURATION_NAME) -> bool:
        """
        Load a configuration ahead of the first request.

        Skipped (returns False) when the session is already busy.
        """
        if not self.try_acquire():
            log_debug(f"Skipping preload of '{name}': session busy", self.config)
            return False
        try:
            loaded = self.ensure_configuration_loaded(name)
        finally:
            self.release()

        if loaded:
            log_info(f"Preloaded {name} configuration", config=self.config)
        else:
            log_warning(f"Preload {name} configuration failed", config=self.config)
        return loaded

    # ========== GENERATION ==========
    def infer(self, prompt: str) -> str:
        """
        Run the engine on a prompt. Caller must hold the lock.

        Returns:
            The engine output verbatim, or "Model not loaded"
        """
        with self._state_lock:
            if not self._is_ready:
                return MODEL_NOT_LOADED
            name = self._loaded_configuration_name

        self.events.publish(EventType.GENERATING, name)
        result = self.engine.infer(prompt)
        self.events.publish(EventType.GENERATION_COMPLETE, name)
        return result

    # ========== TEARDOWN ==========
    def release_model(self) -> bool:
        """
        Free the engine and reset the session to unloaded.

        Best-effort: does nothing and returns False while the session is busy.
        """
        if not self.try_acquire():
            log_warning("Cannot free model while a request is in progress", config=self.config)
            return False
        try:
            name = self.loaded_configuration_name
            self.engine.release()
            self._set_state(None, None, False)
        finally:
            self.release()

        self.events.publish(EventType.MODEL_RELEASED, name)
        log_info("Model resources freed", config=self.config)
        return True
