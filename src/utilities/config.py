import os
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


# ========== ENVIRONMENT VARIABLE HELPERS ==========
def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean value from environment variable"""
    value = os.getenv(key, "").lower()
    if value in ("true", "1", "yes", "on"):
        return True
    elif value in ("false", "0", "no", "off"):
        return False
    return default


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer value from environment variable"""
    try:
        return int(os.getenv(key, str(default)))
    except (ValueError, TypeError):
        return default


def get_env_float(key: str, default: float = 0.0) -> float:
    """Get float value from environment variable"""
    try:
        return float(os.getenv(key, str(default)))
    except (ValueError, TypeError):
        return default


def get_env_str(key: str, default: str = "") -> str:
    """Get string value from environment variable"""
    return os.getenv(key, default)


def get_env_enum(key: str, enum_class: type, default: Any) -> Any:
    """Get enum value from environment variable"""
    value = os.getenv(key, "").lower()
    for enum_val in enum_class:
        if enum_val.value.lower() == value:
            return enum_val
    return default


# ========== ENUMS ==========
class LogLevel(str, Enum):
    """Logging levels"""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


# ========== BASE CONFIGURATION CLASS ==========
@dataclass
class BaseConfig:
    """Base configuration class"""

    def model_dump(self) -> dict[str, Any]:
        """Convert to dictionary"""
        return asdict(self)

    def validate(self) -> None:
        """Validate configuration values"""
        pass


# ========== SERVER CONFIGURATION ==========
DEFAULT_PORT = 11434
DEFAULT_CONTROL_PORT = 11435


@dataclass
class ServerConfig(BaseConfig):
    """Ollama-compatible socket server configuration"""

    host: str = "127.0.0.1"
    port: int = DEFAULT_PORT
    max_workers: int = 32
    client_timeout: float = 60.0  # socket I/O only, never inference
    preload_default: bool = True

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load server configuration from environment variables"""
        return cls(
            host=get_env_str("LLAMADOCK_SERVER_HOST", "127.0.0.1"),
            port=get_env_int("LLAMADOCK_SERVER_PORT", DEFAULT_PORT),
            max_workers=get_env_int("LLAMADOCK_SERVER_MAX_WORKERS", 32),
            client_timeout=get_env_float("LLAMADOCK_SERVER_CLIENT_TIMEOUT", 60.0),
            preload_default=get_env_bool("LLAMADOCK_SERVER_PRELOAD_DEFAULT", True),
        )

    def validate(self) -> None:
        """Validate server configuration"""
        if not 0 <= self.port <= 65535:
            raise ValueError("port must be between 0 and 65535")
        if self.max_workers <= 0:
            raise ValueError("max_workers must be positive")
        if self.client_timeout <= 0:
            raise ValueError("client_timeout must be positive")


@dataclass
class ControlConfig(BaseConfig):
    """Control API (configuration management) settings"""

    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = DEFAULT_CONTROL_PORT

    @classmethod
    def from_env(cls) -> "ControlConfig":
        """Load control API configuration from environment variables"""
        return cls(
            enabled=get_env_bool("LLAMADOCK_CONTROL_ENABLED", True),
            host=get_env_str("LLAMADOCK_CONTROL_HOST", "127.0.0.1"),
            port=get_env_int("LLAMADOCK_CONTROL_PORT", DEFAULT_CONTROL_PORT),
        )

    def validate(self) -> None:
        """Validate control API configuration"""
        if not 0 <= self.port <= 65535:
            raise ValueError("control port must be between 0 and 65535")


# ========== STORAGE CONFIGURATION ==========
@dataclass
class StorageConfig(BaseConfig):
    """Data storage configuration"""

    config_directory: str = "./llamadock-data/configs"
    models_directory: str = "./llamadock-data/models"

    @classmethod
    def from_env(cls) -> "StorageConfig":
        """Load storage configuration from environment variables"""
        return cls(
            config_directory=get_env_str("LLAMADOCK_STORAGE_CONFIG_DIRECTORY", "./llamadock-data/configs"),
            models_directory=get_env_str("LLAMADOCK_STORAGE_MODELS_DIRECTORY", "./llamadock-data/models"),
        )


# ========== ENGINE CONFIGURATION ==========
@dataclass
class EngineConfig(BaseConfig):
    """Inference engine binding configuration"""

    max_tokens: int = 512
    download_timeout: int = 60
    download_chunk_size: int = 1024 * 1024
    verbose: bool = False

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Load engine configuration from environment variables"""
        return cls(
            max_tokens=get_env_int("LLAMADOCK_ENGINE_MAX_TOKENS", 512),
            download_timeout=get_env_int("LLAMADOCK_ENGINE_DOWNLOAD_TIMEOUT", 60),
            download_chunk_size=get_env_int("LLAMADOCK_ENGINE_DOWNLOAD_CHUNK_SIZE", 1024 * 1024),
            verbose=get_env_bool("LLAMADOCK_ENGINE_VERBOSE", False),
        )

    def validate(self) -> None:
        """Validate engine configuration"""
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be positive")
        if self.download_timeout <= 0:
            raise ValueError("download_timeout must be positive")
        if self.download_chunk_size <= 0:
            raise ValueError("download_chunk_size must be positive")


# ========== LOGGING CONFIGURATION ==========
@dataclass
class LoggingConfig(BaseConfig):
    """Logging configuration"""

    level: LogLevel = LogLevel.INFO
    log_to_file: bool = False
    log_file_path: str = "./logs/llamadock.log"
    log_to_console: bool = True
    verbose: bool = False

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """Load logging configuration from environment variables"""
        return cls(
            level=get_env_enum("LLAMADOCK_LOGGING_LEVEL", LogLevel, LogLevel.INFO),
            log_to_file=get_env_bool("LLAMADOCK_LOGGING_LOG_TO_FILE", False),
            log_file_path=get_env_str("LLAMADOCK_LOGGING_LOG_FILE_PATH", "./logs/llamadock.log"),
            log_to_console=get_env_bool("LLAMADOCK_LOGGING_LOG_TO_CONSOLE", True),
            verbose=get_env_bool("LLAMADOCK_LOGGING_VERBOSE", False),
        )


# ========== MAIN CONFIGURATION CLASS ==========
@dataclass
class LlamaDockConfig(BaseConfig):
    """Complete LlamaDock configuration"""

    server: ServerConfig = field(default_factory=ServerConfig)
    control: ControlConfig = field(default_factory=ControlConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    version: str = "1.0.0"

    @classmethod
    def from_env(cls) -> "LlamaDockConfig":
        """Load configuration from environment variables"""
        config = cls(
            server=ServerConfig.from_env(),
            control=ControlConfig.from_env(),
            storage=StorageConfig.from_env(),
            engine=EngineConfig.from_env(),
            logging=LoggingConfig.from_env(),
            version=get_env_str("LLAMADOCK_VERSION", "1.0.0"),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate entire configuration"""
        self.server.validate()
        self.control.validate()
        self.engine.validate()


def get_config(from_env: bool = False) -> LlamaDockConfig:
    """
    Get a configuration instance.

    Args:
        from_env: If True, load configuration from environment variables.
                 If False, use default values.

    Returns:
        LlamaDockConfig instance with specified settings

    Example:
        # Use default configuration
        config = get_config()

        # Load from environment variables
        config = get_config(from_env=True)

        Environment Variables:
        Server Configuration:
            LLAMADOCK_SERVER_HOST="127.0.0.1"
            LLAMADOCK_SERVER_PORT=11434
            LLAMADOCK_SERVER_MAX_WORKERS=32
            LLAMADOCK_SERVER_CLIENT_TIMEOUT=60
            LLAMADOCK_SERVER_PRELOAD_DEFAULT=true

        Control API:
            LLAMADOCK_CONTROL_ENABLED=true
            LLAMADOCK_CONTROL_PORT=11435

        Storage:
            LLAMADOCK_STORAGE_CONFIG_DIRECTORY="./llamadock-data/configs"
            LLAMADOCK_STORAGE_MODELS_DIRECTORY="./llamadock-data/models"

        Engine:
            LLAMADOCK_ENGINE_MAX_TOKENS=512
            LLAMADOCK_ENGINE_DOWNLOAD_TIMEOUT=60

        Logging:
            LLAMADOCK_LOGGING_LEVEL="info"
            LLAMADOCK_LOGGING_VERBOSE=false
    """
    if from_env:
        return LlamaDockConfig.from_env()
    return LlamaDockConfig()
