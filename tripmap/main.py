"""Main entry point for the tripmap application.

Sets up the Typer CLI application, performs dependency injection (Composition Root),
defines CLI commands, and delegates execution to the CommandHandler.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Coroutine, Dict, Optional

import httpx
import typer
from typing_extensions import Annotated

# --- Core Layer ---
from tripmap.core.command_handler import CommandHandler
from tripmap.core.services.chat_gateway import ChatGateway
from tripmap.core.services.chat_service import ChatService
from tripmap.core.services.location_pipeline import LocationResolutionPipeline
from tripmap.core.services.map_fallback import MapFallbackChain

# --- Infrastructure Layer ---
from tripmap.domain.models.common import ENDPOINT_CLASSES
from tripmap.infrastructure.ai.azure_openai_client import AzureChatClient
from tripmap.infrastructure.cli.display import ConsoleDisplay
from tripmap.infrastructure.config.settings import (
    get_azure_maps_key,
    get_azure_openai_settings,
    get_config,
    get_cooldown_settings,
    get_endpoint_policy,
    get_history_window,
    load_configuration,
)
from tripmap.infrastructure.maps.azure_maps import (
    AtlasLiveMapLoader,
    AzureMapsGeocoder,
    AzureStaticMapProvider,
    MapAuthProvider,
)
from tripmap.infrastructure.maps.osm_static import OsmStaticMapProvider
from tripmap.infrastructure.monitoring.logger_setup import DEFAULT_LOG_FORMAT, setup_logging
from tripmap.infrastructure.resilience.api_retry import RetryOrchestrator
from tripmap.infrastructure.resilience.cooldown import CooldownTracker
from tripmap.infrastructure.resilience.state import RateLimitRegistry
from tripmap.infrastructure.resilience.throttle import Throttle

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT_SECONDS = 10.0


# --- Dependency Injection Container (Manual) ---

def create_dependencies() -> Dict[str, Any]:
    """Creates and wires up all dependencies for the application.

    This acts as the Composition Root.
    """
    dependencies: Dict[str, Any] = {}

    # 1. Load Configuration First
    load_configuration()
    log_level_name = str(get_config('logging.level', 'INFO')).upper()
    setup_logging(
        log_level=getattr(logging, log_level_name, logging.INFO),
        log_format=get_config('logging.format', DEFAULT_LOG_FORMAT),
        log_file=get_config('logging.file'),
    )
    logger.info("Configuration and logging initialized.")

    # 2. Resilience layer, shared by every upstream adapter
    policies = {endpoint_class: get_endpoint_policy(endpoint_class) for endpoint_class in ENDPOINT_CLASSES}
    cooldown_settings = get_cooldown_settings()
    registry = RateLimitRegistry()
    throttle = Throttle(registry, {name: policy['min_interval'] for name, policy in policies.items()})
    cooldown = CooldownTracker(registry, threshold=cooldown_settings['threshold'], window=cooldown_settings['window'])
    orchestrator = RetryOrchestrator(throttle, cooldown, policies)
    dependencies['registry'] = registry
    dependencies['cooldown'] = cooldown
    dependencies['retry_orchestrator'] = orchestrator

    # 3. Upstream adapters
    http_client = httpx.AsyncClient(
        timeout=float(get_config('http.timeout', DEFAULT_HTTP_TIMEOUT_SECONDS)),
        follow_redirects=True,
    )
    closers = [http_client.aclose]

    maps_key = get_azure_maps_key()
    if not maps_key:
        logger.warning("Azure Maps key not found, geocoding and Azure map tiers will be unavailable.")
    geocoder = AzureMapsGeocoder(http_client, orchestrator, maps_key)
    live_loader = AtlasLiveMapLoader(http_client, orchestrator, MapAuthProvider(maps_key))
    first_party = AzureStaticMapProvider(http_client, orchestrator, maps_key)
    third_party = OsmStaticMapProvider(http_client, orchestrator)

    try:
        chat_model: Optional[AzureChatClient] = AzureChatClient(**get_azure_openai_settings())
        closers.append(chat_model.aclose)
    except ValueError as e:
        logger.warning(f"Chat service disabled: {e}")
        chat_model = None

    # 4. Core services
    ui = ConsoleDisplay()
    pipeline = LocationResolutionPipeline(geocoder)
    map_chain = MapFallbackChain(first_party, third_party, live_loader=live_loader, cooldown=cooldown)
    gateway = ChatGateway(chat_model, orchestrator, history_window=get_history_window())
    chat_service = ChatService(gateway, pipeline, map_chain, cooldown, ui)
    dependencies.update(
        ui=ui,
        pipeline=pipeline,
        map_chain=map_chain,
        chat_gateway=gateway,
        chat_service=chat_service,
    )

    # 5. Command Handler
    dependencies['command_handler'] = CommandHandler(chat_service, pipeline, map_chain, ui, closers=closers)
    logger.info("All dependencies initialized successfully.")
    return dependencies


_dependencies: Optional[Dict[str, Any]] = None


def get_dependencies() -> Dict[str, Any]:
    """Returns the wired-up dependencies, creating them on first use."""
    global _dependencies
    if _dependencies is None:
        try:
            _dependencies = create_dependencies()
        except Exception as e:
            logger.error(f"Fatal Error during application initialization: {e}", exc_info=True)
            print(f"FATAL ERROR during initialization: {e}", file=sys.stderr)
            raise typer.Exit(code=1)
    return _dependencies


# --- Typer App Definition ---
app = typer.Typer(
    name="tripmap",
    help="tripmap: travel assistant chat with location detection and resilient maps.",
    add_completion=False,
)


# --- Helper for Running Async Commands ---
def run_async(coro: Coroutine[Any, Any, None]) -> None:
    """Runs an async command from a sync Typer command, then closes the upstream clients."""
    dependencies = get_dependencies()
    handler: CommandHandler = dependencies['command_handler']
    try:
        asyncio.run(handler.run(coro))
    except Exception as e:
        logger.error(f"Error executing async command: {e}", exc_info=True)
        dependencies['ui'].display_error(f"Command execution failed: {e}")
        raise typer.Exit(code=1)


# --- CLI Commands ---

@app.command()
def chat():
    """Start an interactive travel chat session."""
    handler: CommandHandler = get_dependencies()['command_handler']
    handler.start_chat()


@app.command()
def locate(
    text: Annotated[str, typer.Argument(help="Free text mentioning a place.")],
):
    """Resolve the place mentioned in TEXT and print it."""
    handler: CommandHandler = get_dependencies()['command_handler']
    run_async(handler.handle_locate(text))


@app.command(name="map")
def map_command(
    text: Annotated[str, typer.Argument(help="Free text mentioning a place.")],
    html: Annotated[Optional[Path], typer.Option("--html", help="Write the live map page to this file.")] = None,
    save: Annotated[Optional[Path], typer.Option("--save", help="Save the static map image to this file.")] = None,
):
    """Resolve TEXT and render it through the map fallback chain."""
    handler: CommandHandler = get_dependencies()['command_handler']
    run_async(handler.handle_map(text, html_path=html, save_path=save))


@app.command()
def status():
    """Show the throttle and circuit state of each upstream service."""
    handler: CommandHandler = get_dependencies()['command_handler']
    run_async(handler.handle_status())


@app.callback(invoke_without_command=True)
def main_callback(ctx: typer.Context):
    """Main entry point. Starts chat if no command is given."""
    if ctx.invoked_subcommand is None:
        logger.info("No command invoked, starting interactive chat mode.")
        handler: CommandHandler = get_dependencies()['command_handler']
        handler.start_chat()


# --- Main Execution Guard ---

def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    app()


if __name__ == "__main__":
    cli_entry_point()
