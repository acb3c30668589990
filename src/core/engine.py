"""
Inference engine capability and its llama.cpp binding.

The session manager treats the engine as an opaque, non-reentrant resource
exposing five operations. Status-returning operations answer "ok" on success
and an error description otherwise.
"""

import os
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Protocol

import requests

from src.core.configurations import ModelConfiguration, SamplingParameters
from src.utilities.utils import ensure_config, format_bytes, log_debug, log_error, log_progress, timer

if TYPE_CHECKING:
    from src.utilities.config import LlamaDockConfig

STATUS_OK = "ok"


class InferenceEngine(Protocol):
    """Capabilities the session manager needs from an inference backend. Not thread-safe."""

    def fetch_model(self, locator: str, destination: str) -> str:
        """Download the model at ``locator`` to ``destination``."""
        ...

    def initialize(
        self, path: str, n_ctx: int = 2048, n_threads: int = 2, n_batch: int = 16, penalty_last_n: int = 64
    ) -> str:
        """Load the model file at ``path``."""
        ...

    def configure_sampling(self, params: SamplingParameters) -> None:
        """Apply sampling parameters to subsequent generations."""
        ...

    def infer(self, prompt: str) -> str:
        """Generate a completion for ``prompt``."""
        ...

    def release(self) -> None:
        """Free the loaded model."""
        ...


class LlamaCppEngine:
    """InferenceEngine backed by llama-cpp-python, with HTTP downloads through requests."""

    def __init__(
        self,
        config: Optional["LlamaDockConfig"] = None,
        progress_callback: Callable[[int], None] | None = None,
    ):
        self.config = ensure_config(config)
        self.progress_callback = progress_callback
        self._model: Any = None
        self._sampling: SamplingParameters = ModelConfiguration().sampling_parameters()

    @staticmethod
    def _load_llama_class():
        # Imported on first use so the server starts without the native library present
        from llama_cpp import Llama

        return Llama

    @property
    def is_initialized(self) -> bool:
        return self._model is not None

    @timer
    def fetch_model(self, locator: str, destination: str) -> str:
        """
        Stream a model file to disk.

        The payload is written to a ``.part`` file and renamed into place only
        once complete, so an interrupted download never looks like a model.

        Returns:
            "ok" or an error description
        """
        dest = Path(destination)
        partial = dest.with_name(dest.name + ".part")
        log_progress(f"Downloading model from: {locator}", config=self.config)

        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            with requests.get(locator, stream=True, timeout=self.config.engine.download_timeout) as response:
                response.raise_for_status()
                total = int(response.headers.get("Content-Length") or 0)
                received = 0
                last_percent = -1

                with open(partial, "wb") as f:
                    for chunk in response.iter_content(chunk_size=self.config.engine.download_chunk_size):
                        if not chunk:
                            continue
                        f.write(chunk)
                        received += len(chunk)

                        if total:
                            percent = min(100, received * 100 // total)
                            if percent != last_percent:
                                last_percent = percent
                                self._report_progress(percent)

            if received == 0:
                partial.unlink(missing_ok=True)
                return "error: empty download"

            os.replace(partial, dest)

        except requests.exceptions.RequestException as e:
            partial.unlink(missing_ok=True)
            log_error(f"Download failed: {e}", config=self.config)
            return f"error: {e}"
        except OSError as e:
            partial.unlink(missing_ok=True)
            log_error(f"Could not write model file {dest}: {e}", config=self.config)
            return f"error: {e}"

        log_debug(f"Downloaded {format_bytes(received)} to {dest}", self.config)
        return STATUS_OK

    def _report_progress(self, percent: int) -> None:
        if percent % 10 == 0:
            log_debug(f"Download progress: {percent}%", self.config)
        if self.progress_callback:
            self.progress_callback(percent)

    @timer
    def initialize(
        self, path: str, n_ctx: int = 2048, n_threads: int = 2, n_batch: int = 16, penalty_last_n: int = 64
    ) -> str:
        """
        Load a GGUF model file, replacing any model already loaded.

        Returns:
            "ok" or an error description
        """
        try:
            llama_class = self._load_llama_class()
        except ImportError:
            return "error: llama-cpp-python is not installed"

        if self._model is not None:
            self.release()

        try:
            self._model = llama_class(
                model_path=path,
                n_ctx=n_ctx,
                n_threads=n_threads,
                n_batch=n_batch,
                last_n_tokens_size=max(penalty_last_n, 0),
                verbose=self.config.engine.verbose,
            )
        except (ValueError, RuntimeError, OSError) as e:
            self._model = None
            return f"error: {e}"

        return STATUS_OK

    def configure_sampling(self, params: SamplingParameters) -> None:
        # The dry/xtc/dynatemp/top-n-sigma controls are kept but not consumed by this binding
        self._sampling = params
        if self._model is not None:
            # Llama reads last_n_tokens_size on every generation
            self._model.last_n_tokens_size = max(params.penalty_last_n, 0)

    def infer(self, prompt: str) -> str:
        if self._model is None:
            return "Model not loaded"

        p = self._sampling
        try:
            result = self._model.create_completion(
                prompt,
                max_tokens=self.config.engine.max_tokens,
                temperature=p.temperature,
                top_p=p.top_p,
                top_k=p.top_k,
                min_p=p.min_p,
                typical_p=p.typical_p,
                repeat_penalty=p.penalty_repeat,
                frequency_penalty=p.penalty_freq,
                presence_penalty=p.penalty_present,
                mirostat_mode=p.mirostat,
                mirostat_tau=p.mirostat_tau,
                mirostat_eta=p.mirostat_eta,
            )
        except (ValueError, RuntimeError) as e:
            log_error(f"Generation failed: {e}", config=self.config)
            return f"[Error: {e}]"

        return result["choices"][0]["text"]

    def release(self) -> None:
        if self._model is None:
            return
        close = getattr(self._model, "close", None)
        if close is not None:
            close()
        self._model = None
