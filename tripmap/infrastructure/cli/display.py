import logging
import time
from datetime import datetime
from typing import Any, Dict, Optional

from rich.box import HEAVY, ROUNDED, SIMPLE
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from tripmap.domain.interfaces.user_interface import UserInterface
from tripmap.domain.models.common import EndpointClass, PromptText
from tripmap.domain.models.location import Location
from tripmap.domain.models.map import FallbackTier, MapRender
from tripmap.domain.models.resilience import RateLimitState
from tripmap.infrastructure.monitoring.logger_setup import redact_url

logger = logging.getLogger(__name__)

TIER_LABELS = {
    FallbackTier.LIVE_MAP: "Carte interactive",
    FallbackTier.FIRST_PARTY_STATIC: "Carte statique (Azure Maps)",
    FallbackTier.THIRD_PARTY_STATIC: "Carte statique (OpenStreetMap)",
    FallbackTier.PLACEHOLDER: "Carte indisponible",
}


class ConsoleDisplay(UserInterface):
    """Concrete implementation of UserInterface using the rich library for console output."""

    def __init__(self, console: Optional[Console] = None):
        """Initializes the rich Console."""
        self._console = console or Console()
        self.session_start_time = time.time()

    @property
    def console(self) -> Console:
        """Get the Rich console instance for direct operations."""
        return self._console

    def display_output(self, output: str, **kwargs: Any) -> None:
        """Displays a reply, rendering Markdown inside a titled panel.

        Args:
            output: The reply text to display.
            **kwargs: `title` of the panel (default: "Assistant").
        """
        title = kwargs.get("title", "Assistant")
        timestamp = datetime.now().strftime("%H:%M:%S")
        header = f"[bold white]{title}[/bold white] [dim]·[/dim] [dim white]{timestamp}[/dim white]"
        self.console.print("")
        self.console.print(Panel(
            Markdown(str(output)),
            title=header,
            title_align="left",
            border_style="blue",
            box=ROUNDED,
            padding=(0, 1),
        ))

    def get_prompt(self, prompt_message: str = "> ") -> PromptText:
        self.console.print("")
        user_input = self.console.input(f"[bold green]{prompt_message}[/bold green]")
        return PromptText(user_input)

    def display_error(self, error_message: str, **kwargs: Any) -> None:
        self.console.print(Panel(
            Text(error_message, style="white"),
            title="[bold red]Error[/bold red]",
            border_style="red",
            box=HEAVY,
            padding=(0, 1),
        ))

    def display_info(self, info_message: str, **kwargs: Any) -> None:
        self.console.print(Panel(
            Text(info_message, style="white"),
            title="[bold blue]Info[/bold blue]",
            border_style="blue",
            box=SIMPLE,
            padding=(0, 1),
        ))

    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        logger.warning(f"Display warning: {warning_message}")
        self.console.print(Panel(
            Text(warning_message, style="white"),
            title="[bold yellow]Warning[/bold yellow]",
            border_style="yellow",
            box=HEAVY,
            padding=(0, 1),
        ))

    def display_banner(self, message: str) -> None:
        self.console.print(Panel(
            Text(message, style="bold yellow"),
            title="[bold yellow]Service limité[/bold yellow]",
            border_style="yellow",
            box=HEAVY,
            padding=(0, 1),
        ))

    def display_location(self, location: Optional[Location]) -> None:
        if location is None:
            self.display_info("Aucun lieu trouvé.")
            return
        table = Table(show_header=False, box=SIMPLE, border_style="cyan", padding=(0, 1))
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="white")
        table.add_row("Lieu", f"[bold]{location.name}[/bold]")
        table.add_row("Coordonnées", f"{location.longitude:.4f}, {location.latitude:.4f}")
        table.add_row("Zoom", str(location.zoom))
        if location.description:
            table.add_row("Description", location.description)
        self.console.print(table)

    def display_map(self, render: MapRender) -> None:
        """Displays which tier rendered the map and where to find it."""
        label = TIER_LABELS[render.tier]
        lines = [f"[bold]{label}[/bold]"]
        if render.live_map is not None:
            lon, lat = render.live_map.center
            lines.append(f"SDK: {render.live_map.sdk_url}")
            lines.append(f"Centre: {lon:.4f}, {lat:.4f} (zoom {render.live_map.location.zoom})")
        if render.image is not None:
            lines.append(f"Image: {redact_url(render.image.url)}")
            lines.append(f"{render.image.media_type}, {len(render.image.content)} octets")
        if render.notice:
            lines.append(f"[yellow]{render.notice}[/yellow]")
        border = {FallbackTier.LIVE_MAP: "green", FallbackTier.PLACEHOLDER: "red"}.get(render.tier, "yellow")
        self.console.print(Panel(
            "\n".join(lines),
            title="[bold]Carte[/bold]",
            title_align="left",
            border_style=border,
            box=ROUNDED,
            padding=(0, 1),
        ))

    def display_rate_limit_status(
        self, states: Dict[EndpointClass, RateLimitState], open_for: Dict[EndpointClass, float]
    ) -> None:
        table = Table(title="Upstream services", box=ROUNDED, border_style="cyan")
        table.add_column("Endpoint class", style="bold")
        table.add_column("Circuit")
        table.add_column("Rate-limit signals", justify="right")
        table.add_column("Last request", justify="right")

        for endpoint_class, state in sorted(states.items()):
            remaining = open_for.get(endpoint_class, 0.0)
            circuit = f"[red]open ({remaining:.0f}s)[/red]" if remaining > 0 else "[green]closed[/green]"
            last = "never" if state.last_request_at is None else f"{state.last_request_at:.1f}"
            table.add_row(endpoint_class, circuit, str(state.consecutive_rate_limit_signals), last)
        self.console.print(table)
