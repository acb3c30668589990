import logging
import os
import time
from functools import wraps
from typing import TYPE_CHECKING, Optional
from urllib.parse import unquote

from rich.console import Console
from rich.errors import StyleSyntaxError
from rich.style import Style
from rich.text import Text

if TYPE_CHECKING:
    from .config import LlamaDockConfig

console = Console()

# Logger instance - will be configured by config
logger = logging.getLogger("llamadock")


def get_colored_text(text: str, color: str = "white") -> str:
    """Render text in a rich color for the CLI banner. Unknown colors fall back to white."""
    try:
        style = Style.parse(color.lower())
    except StyleSyntaxError:
        style = Style(color="white")

    with console.capture() as capture:
        console.print(Text(text, style=style), end="")
    return capture.get()


def ensure_config(config: Optional["LlamaDockConfig"] = None, from_env: bool = True) -> "LlamaDockConfig":
    """
    Ensure we have a valid config object, using default if none provided.

    Args:
        config: Optional configuration object
        from_env: If True and config is None, load from environment variables

    Returns:
        Configuration object (either provided, from env, or default)
    """
    if config is None:
        from .config import get_config

        try:
            return get_config(from_env=from_env)
        except ValueError as e:
            print(f"⚠️  Failed to load config from environment: {e}. Using defaults.")
            return get_config(from_env=False)
    return config


def _build_handler(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    return handler


def setup_logging(config: Optional["LlamaDockConfig"] = None):
    """Setup logging based on configuration"""

    config = ensure_config(config)

    logger.handlers.clear()

    level_map = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }
    level = logging.DEBUG if config.logging.verbose else level_map[config.logging.level.value]
    logger.setLevel(level)

    # Console handler
    if config.logging.log_to_console:
        logger.addHandler(_build_handler(logging.StreamHandler(), level))

    # File handler
    if config.logging.log_to_file:
        try:
            log_dir = os.path.dirname(config.logging.log_file_path)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            logger.addHandler(_build_handler(logging.FileHandler(config.logging.log_file_path), logging.DEBUG))
        except OSError as e:
            print(f"Warning: Failed to setup file logging: {e}")
            # Fall back to console logging if file logging fails
            if not logger.handlers:
                logger.addHandler(_build_handler(logging.StreamHandler(), level))
                print("Fallback: Using console logging instead")

    # Backend modules log through their own module loggers
    backend_logger = logging.getLogger("backend")
    backend_logger.handlers = list(logger.handlers)
    backend_logger.setLevel(level)
    backend_logger.propagate = False


def log_info(message: str, verbose_only: bool = False, config: Optional["LlamaDockConfig"] = None):
    """Log info message. If verbose_only=True, only shows in verbose mode."""

    config = ensure_config(config)

    if not verbose_only or config.logging.verbose:
        console.print(f"[bold cyan]ℹ️  {message}[/bold cyan]")
        logger.info(message)


def log_success(message: str, verbose_only: bool = False, config: Optional["LlamaDockConfig"] = None):
    """Log success message. If verbose_only=True, only shows in verbose mode."""

    config = ensure_config(config)

    if not verbose_only or config.logging.verbose:
        console.print(f"[bold green]✅ {message}[/bold green]")
        logger.info(f"SUCCESS: {message}")


def log_warning(message: str, verbose_only: bool = False, config: Optional["LlamaDockConfig"] = None):
    """Log warning message. If verbose_only=True, only shows in verbose mode."""

    config = ensure_config(config)

    if not verbose_only or config.logging.verbose:
        console.print(f"[bold yellow]⚠️  {message}[/bold yellow]")
        logger.warning(message)


def log_error(message: str, verbose_only: bool = False, config: Optional["LlamaDockConfig"] = None):
    """Log error message. If verbose_only=True, only shows in verbose mode."""

    config = ensure_config(config)

    if not verbose_only or config.logging.verbose:
        console.print(f"[bold red]❌ {message}[/bold red]")
        logger.error(message)


def log_debug(message: str, config: Optional["LlamaDockConfig"] = None):
    """Log debug message - only shows in verbose mode."""

    config = ensure_config(config)

    if config.logging.verbose:
        console.print(f"[dim]🔍 {message}[/dim]")
        logger.debug(message)


def log_progress(message: str, verbose_only: bool = False, config: Optional["LlamaDockConfig"] = None):
    """Log progress message with special formatting."""

    config = ensure_config(config)

    if not verbose_only or config.logging.verbose:
        console.print(f"[bold blue]🔄 {message}[/bold blue]")
        logger.info(f"PROGRESS: {message}")


def timer(func):
    """Decorator to measure execution time of functions."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        start = time.time()
        start_process_time = time.process_time()

        try:
            result = func(*args, **kwargs)
            wall_time = time.time() - start
            cpu_time = time.process_time() - start_process_time

            logger.info(f"{func.__name__} completed - Wall time: {wall_time:.2f}s, " f"CPU time: {cpu_time:.2f}s")
            return result

        except Exception as e:
            wall_time = time.time() - start
            cpu_time = time.process_time() - start_process_time

            logger.error(f"{func.__name__} failed after {wall_time:.2f}s " f"(CPU: {cpu_time:.2f}s): {str(e)}")
            raise

    return wrapper


def filename_from_url(url: str | None) -> str | None:
    """
    Derive the local file name for a model locator.

    The name is the path segment after the last '/', with any query string removed.

    Args:
        url: Model source locator (e.g. a Hugging Face resolve URL)

    Returns:
        File name, or None if the locator has no usable final segment
    """
    if not url:
        return None

    pure = url.split("?", 1)[0]
    slash = pure.rfind("/")
    name = pure[slash + 1 :] if slash >= 0 else ""
    name = unquote(name)

    if not name or name in (".", "..") or "/" in name or "\\" in name:
        return None
    return name


def format_bytes(size: int) -> str:
    """Format a byte count for human-readable log output."""
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.1f} {unit}" if unit != "B" else f"{int(value)} B"
        value /= 1024
    return f"{value:.1f} GB"
