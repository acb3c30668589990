#!/usr/bin/env python3
"""
LlamaDock CLI

Runs the Ollama-compatible server (and its control API) and manages stored
model configurations.

Usage:
    python run.py serve                      # Serve on 127.0.0.1:11434
    python run.py serve --port 8080 --no-control
    python run.py configs                    # List stored configurations
    python run.py show <name>                # Show one configuration
"""

from typing import Optional

import typer
import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from backend.app import create_app
from backend.dependencies import build_resources, cleanup_resources
from backend.server import RequestServer
from src.core.configurations import ConfigurationStore
from src.core.events import Event, EventType
from src.core.exceptions import ConfigurationError, ConfigurationNotFoundError
from src.utilities.config import LlamaDockConfig, get_config
from src.utilities.utils import get_colored_text, setup_logging

# Initialize CLI app and console
app = typer.Typer(
    name="LlamaDock",
    help="Local Ollama-compatible LLM server",
    add_completion=False,
)
console = Console()

EVENT_STYLES = {
    EventType.SERVER_STARTED: ("green", "🚀 Server started on port {subject}"),
    EventType.SERVER_STOPPED: ("yellow", "🛑 Server stopped"),
    EventType.REQUEST_RECEIVED: ("blue", "→ {subject}"),
    EventType.MODEL_LOADING: ("cyan", "⏳ Loading configuration '{subject}'..."),
    EventType.MODEL_LOADED: ("green", "✓ Configuration '{subject}' ready"),
    EventType.GENERATING: ("magenta", "💭 Generating with '{subject}'..."),
    EventType.GENERATION_COMPLETE: ("green", "✓ Generation complete"),
    EventType.MODEL_RELEASED: ("yellow", "Model released"),
    EventType.ERROR: ("red", "✗ {message}"),
}


# ========== UTILITY FUNCTIONS ==========
def print_header(title: str):
    """Print a formatted header"""
    console.print(Panel(f"[bold blue]{title}[/bold blue]", expand=False))


def print_error(message: str):
    """Print an error message"""
    console.print(f"[red]✗[/red] {message}")


def print_banner(config: LlamaDockConfig):
    """Print welcome banner"""
    print(get_colored_text("🦙 LlamaDock - Local Ollama-compatible LLM server", "green"))
    print(get_colored_text("=" * 60, "yellow"))
    print(get_colored_text(f"🌐 Ollama API:    http://{config.server.host}:{config.server.port}", "cyan"))
    if config.control.enabled:
        print(get_colored_text(f"🔧 Control API:   http://{config.control.host}:{config.control.port}/docs", "cyan"))
    print(get_colored_text(f"📁 Configurations: {config.storage.config_directory}", "cyan"))
    print(get_colored_text(f"📦 Models:         {config.storage.models_directory}", "cyan"))
    print(get_colored_text("=" * 60, "yellow"))
    print(get_colored_text("Press Ctrl+C to exit", "yellow"))


def print_event(event: Event):
    """Console notification for a lifecycle event"""
    color, template = EVENT_STYLES.get(event.type, ("white", "{message}"))
    text = template.format(subject=event.subject or "", message=event.message)
    time = event.timestamp.astimezone().strftime("%H:%M:%S")
    console.print(f"[dim]{time}[/dim] [{color}]{text}[/{color}]")


def load_config(config_env: bool) -> LlamaDockConfig:
    """Load LlamaDock configuration"""
    try:
        return get_config(from_env=config_env)
    except ValueError as e:
        print_error(f"Failed to load configuration: {e}")
        raise typer.Exit(1)


# ========== SERVER COMMANDS ==========
@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Interface for the Ollama API"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port for the Ollama API"),
    control_port: Optional[int] = typer.Option(None, "--control-port", help="Port for the control API"),
    no_control: bool = typer.Option(False, "--no-control", help="Do not start the control API"),
    config_dir: Optional[str] = typer.Option(None, "--config-dir", help="Directory of configuration records"),
    models_dir: Optional[str] = typer.Option(None, "--models-dir", help="Directory for downloaded models"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Connection worker threads"),
    no_preload: bool = typer.Option(False, "--no-preload", help="Skip loading the default configuration at startup"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    config_env: bool = typer.Option(False, "--env", help="Load configuration from environment variables"),
):
    """Run the Ollama-compatible server until Ctrl+C."""
    config = load_config(config_env)

    if host is not None:
        config.server.host = host
    if port is not None:
        config.server.port = port
    if control_port is not None:
        config.control.port = control_port
    if no_control:
        config.control.enabled = False
    if config_dir is not None:
        config.storage.config_directory = config_dir
    if models_dir is not None:
        config.storage.models_directory = models_dir
    if workers is not None:
        config.server.max_workers = workers
    if no_preload:
        config.server.preload_default = False
    if verbose:
        config.logging.verbose = True

    try:
        config.validate()
    except ValueError as e:
        print_error(f"Invalid configuration: {e}")
        raise typer.Exit(1)

    setup_logging(config)
    print_banner(config)

    resources = build_resources(config)
    unsubscribe = resources.events.subscribe(print_event)
    server = RequestServer(resources)

    try:
        server.start()
    except OSError as e:
        print_error(f"Could not bind {config.server.host}:{config.server.port}: {e}")
        unsubscribe()
        raise typer.Exit(1)

    try:
        if config.control.enabled:
            # uvicorn owns the main thread and returns on Ctrl+C
            uvicorn.run(
                create_app(resources),
                host=config.control.host,
                port=config.control.port,
                log_level="debug" if config.logging.verbose else "warning",
            )
        else:
            while server.is_running:
                server.wait(0.5)
    except KeyboardInterrupt:
        pass
    finally:
        server.stop()
        cleanup_resources(resources)
        unsubscribe()
        print(get_colored_text("\n👋 Goodbye!", "green"))


# ========== CONFIGURATION COMMANDS ==========
@app.command()
def configs(
    config_dir: Optional[str] = typer.Option(None, "--config-dir", help="Directory of configuration records"),
    config_env: bool = typer.Option(False, "--env", help="Load configuration from environment variables"),
):
    """List stored model configurations."""
    config = load_config(config_env)
    store = ConfigurationStore(config_dir or config.storage.config_directory, config=config)

    print_header("Model Configurations")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Name", style="cyan")
    table.add_column("Model URL", style="white")
    table.add_column("Context", justify="right")
    table.add_column("Temp", justify="right")

    for name in store.list():
        try:
            configuration = store.load(name)
        except ConfigurationError as e:
            table.add_row(name, f"[red]{e}[/red]", "-", "-")
            continue
        table.add_row(name, configuration.model_url, str(configuration.n_ctx), str(configuration.temp))

    console.print(table)


@app.command()
def show(
    name: str = typer.Argument(..., help="Configuration name"),
    config_dir: Optional[str] = typer.Option(None, "--config-dir", help="Directory of configuration records"),
    config_env: bool = typer.Option(False, "--env", help="Load configuration from environment variables"),
):
    """Show one stored configuration as JSON."""
    config = load_config(config_env)
    store = ConfigurationStore(config_dir or config.storage.config_directory, config=config)

    try:
        configuration = store.load(name)
    except ConfigurationNotFoundError:
        print_error(f"Configuration not found: {name}")
        raise typer.Exit(1)
    except ConfigurationError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_header(f"Configuration: {name}")
    console.print_json(configuration.to_json())


# ========== MAIN ENTRY POINT ==========
def main():
    """Main entry point for the CLI application."""
    app()


if __name__ == "__main__":
    main()
