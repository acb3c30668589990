"""
Named model configurations and their file-backed store.

A configuration bundles a model source locator, loader settings, sampling
parameters and a prompt template. Its name is the "model name" clients see.
Each configuration is persisted as one pretty-printed JSON file with camelCase
keys; a configuration named "default" always exists.
"""

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from src.core.exceptions import ConfigurationError, ConfigurationNotFoundError
from src.utilities.utils import ensure_config, log_debug, log_warning

if TYPE_CHECKING:
    from src.utilities.config import LlamaDockConfig

DEFAULT_CONFIGURATION_NAME = "default"
USER_INPUT_MARKER = "{USER_INPUT}"
DEFAULT_MODEL_URL = (
    "https://huggingface.co/TheBloke/TinyLlama-1.1B-Chat-v1.0-GGUF/resolve/main/tinyllama-1.1b-chat-v1.0.Q4_K_M.gguf"
)
DEFAULT_PROMPT_TEMPLATE = "<|system|>\nYou are a helpful assistant.\n<|user|>\n" + USER_INPUT_MARKER + "\n<|assistant|>\n"


@dataclass(frozen=True)
class SamplingParameters:
    """Closed set of sampling controls pushed to the inference engine."""

    temperature: float
    top_p: float
    top_k: int
    penalty_last_n: int
    penalty_repeat: float
    penalty_freq: float
    penalty_present: float
    mirostat: int
    mirostat_tau: float
    mirostat_eta: float
    min_p: float
    typical_p: float
    dynatemp_range: float
    dynatemp_exponent: float
    xtc_probability: float
    xtc_threshold: float
    top_n_sigma: float
    dry_multiplier: float
    dry_base: float
    dry_allowed_length: int
    dry_penalty_last_n: int
    dry_sequence_breakers: str


class ModelConfiguration(BaseModel):
    """A named model configuration record."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    name: str = Field(DEFAULT_CONFIGURATION_NAME, description="Configuration name, exposed as the model name")
    model_url: str = Field(DEFAULT_MODEL_URL, description="Model source locator")
    n_ctx: int = Field(2048, ge=1, description="Context length")
    n_threads: int = Field(2, ge=1, description="Inference thread count")
    n_batch: int = Field(16, ge=1, description="Batch size")
    temp: float = Field(0.7, ge=0.0)
    top_p: float = Field(0.9, ge=0.0, le=1.0)
    top_k: int = Field(40, ge=0)
    prompt_template: str = Field(DEFAULT_PROMPT_TEMPLATE, description="Template containing the {USER_INPUT} marker")

    # Extended sampling set
    penalty_last_n: int = 64
    penalty_repeat: float = 1.0
    penalty_freq: float = 0.0
    penalty_present: float = 0.0
    mirostat: int = Field(0, ge=0, le=2)
    mirostat_tau: float = 5.0
    mirostat_eta: float = 0.1
    min_p: float = 0.05
    typical_p: float = 1.0
    dynatemp_range: float = 0.0
    dynatemp_exponent: float = 1.0
    xtc_probability: float = 0.0
    xtc_threshold: float = 0.1
    top_n_sigma: float = -1.0
    dry_multiplier: float = 0.0
    dry_base: float = 1.75
    dry_allowed_length: int = 2
    dry_penalty_last_n: int = -1
    dry_sequence_breakers: str = '\n,:,",*'

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Names double as file names, so they must be plain and non-empty."""
        try:
            validate_configuration_name(v)
        except ConfigurationError as e:
            raise ValueError(str(e)) from e
        return v

    def sampling_parameters(self) -> SamplingParameters:
        """Extract the sampling controls consumed by the engine."""
        return SamplingParameters(
            temperature=self.temp,
            top_p=self.top_p,
            top_k=self.top_k,
            penalty_last_n=self.penalty_last_n,
            penalty_repeat=self.penalty_repeat,
            penalty_freq=self.penalty_freq,
            penalty_present=self.penalty_present,
            mirostat=self.mirostat,
            mirostat_tau=self.mirostat_tau,
            mirostat_eta=self.mirostat_eta,
            min_p=self.min_p,
            typical_p=self.typical_p,
            dynatemp_range=self.dynatemp_range,
            dynatemp_exponent=self.dynatemp_exponent,
            xtc_probability=self.xtc_probability,
            xtc_threshold=self.xtc_threshold,
            top_n_sigma=self.top_n_sigma,
            dry_multiplier=self.dry_multiplier,
            dry_base=self.dry_base,
            dry_allowed_length=self.dry_allowed_length,
            dry_penalty_last_n=self.dry_penalty_last_n,
            dry_sequence_breakers=self.dry_sequence_breakers,
        )

    def to_json(self) -> str:
        """Serialize to the persisted record format."""
        return json.dumps(self.model_dump(by_alias=True), indent=2, ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str) -> "ModelConfiguration":
        """Parse a persisted record."""
        try:
            return cls.model_validate_json(text)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration record: {e}") from e


def validate_configuration_name(name: str) -> None:
    """
    Check that a configuration name is usable as a lookup key and file name.

    Raises:
        ConfigurationError: If the name is blank or could escape the store directory
    """
    if not isinstance(name, str) or not name.strip():
        raise ConfigurationError("Configuration name cannot be empty")
    if "/" in name or "\\" in name or "\x00" in name or name.startswith("."):
        raise ConfigurationError(f"Invalid configuration name: {name!r}")


class ConfigurationStore:
    """
    Directory-backed store of named configurations, one JSON file per name.

    Reads are never cached: every load re-reads the file. Writes go through a
    temporary file and an atomic rename, so a concurrent reader always sees a
    complete record.
    """

    SUFFIX = ".json"

    def __init__(self, directory: str | Path, config: Optional["LlamaDockConfig"] = None):
        self.config = ensure_config(config)
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._write_lock = Lock()
        self.ensure_default()

    def ensure_default(self) -> None:
        """Create the default configuration if it is missing."""
        if not self._path_for(DEFAULT_CONFIGURATION_NAME).exists():
            self.save(ModelConfiguration())
            log_debug("Created default configuration", self.config)

    def _path_for(self, name: str) -> Path:
        validate_configuration_name(name)
        return self.directory / f"{name}{self.SUFFIX}"

    def exists(self, name: str) -> bool:
        try:
            return self._path_for(name).is_file()
        except ConfigurationError:
            return False

    def save(self, configuration: ModelConfiguration) -> None:
        """Persist a configuration, replacing any record with the same name."""
        path = self._path_for(configuration.name)
        payload = configuration.to_json()

        with self._write_lock:
            fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=self.SUFFIX)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_path, path)
            except OSError as e:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise ConfigurationError(f"Failed to save configuration '{configuration.name}': {e}") from e

        log_debug(f"Saved configuration: {configuration.name}", self.config)

    def load(self, name: str) -> ModelConfiguration:
        """
        Load a configuration by name.

        Raises:
            ConfigurationNotFoundError: If no record exists under the name
            ConfigurationError: If the name or the stored record is invalid
        """
        path = self._path_for(name)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise ConfigurationNotFoundError(name) from None
        except OSError as e:
            raise ConfigurationError(f"Failed to read configuration '{name}': {e}") from e

        configuration = ModelConfiguration.from_json(text)
        log_debug(f"Loaded configuration: {name}", self.config)
        return configuration

    def list(self) -> list[str]:
        """Names of all stored configurations, sorted."""
        return sorted(
            p.name[: -len(self.SUFFIX)]
            for p in self.directory.iterdir()
            if p.is_file() and p.name.endswith(self.SUFFIX) and not p.name.startswith(".")
        )

    def delete(self, name: str) -> bool:
        """
        Delete a configuration.

        Returns:
            True if a record was removed; False for "default" or a missing record
        """
        if name == DEFAULT_CONFIGURATION_NAME:
            log_warning("Cannot delete default configuration", config=self.config)
            return False

        try:
            self._path_for(name).unlink()
        except (FileNotFoundError, ConfigurationError):
            return False

        log_debug(f"Deleted configuration: {name}", self.config)
        return True
