"""Command Handler: Orchestrates CLI command execution.

Receives commands from the main entry point (main.py) and delegates the
work to the chat service, the location pipeline and the map fallback chain.
Owns the shutdown of the shared upstream clients.
"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from tripmap.core.exceptions import RateLimited
from tripmap.core.services.chat_service import ChatService
from tripmap.core.services.location_pipeline import LocationResolutionPipeline
from tripmap.core.services.map_fallback import MapFallbackChain
from tripmap.domain.interfaces.user_interface import UserInterface
from tripmap.domain.models.map import FallbackTier
from tripmap.infrastructure.maps.azure_maps import render_live_map_html

logger = logging.getLogger(__name__)


class CommandHandler:
    """Handles incoming commands and delegates to appropriate services."""

    def __init__(
        self,
        chat_service: ChatService,
        pipeline: LocationResolutionPipeline,
        map_chain: MapFallbackChain,
        ui: UserInterface,
        closers: Optional[List[Callable[[], Awaitable[None]]]] = None,
    ):
        """Initializes the CommandHandler with required services.

        Args:
            closers: Coroutine functions releasing shared clients, awaited on shutdown.
        """
        self.chat_service = chat_service
        self.pipeline = pipeline
        self.map_chain = map_chain
        self.ui = ui
        self.closers = list(closers or [])

    async def aclose(self) -> None:
        for close in self.closers:
            try:
                await close()
            except Exception as e:
                logger.warning(f"Failed to close upstream client: {e}")

    async def run(self, command: Awaitable[None]) -> None:
        """Awaits one command, then releases the upstream clients."""
        try:
            await command
        finally:
            await self.aclose()

    def start_chat(self) -> None:
        """Handles the initiation of the interactive chat mode."""
        logger.info("Starting interactive chat session.")
        try:
            asyncio.run(self._run_chat())
        except KeyboardInterrupt:
            logger.info("Chat session interrupted by user (KeyboardInterrupt).")
            self.ui.display_info("Ending chat session.")
        except Exception as e:
            logger.error(f"Failed to run chat mode: {e}", exc_info=True)
            self.ui.display_error(f"Failed to run chat mode: {e}")

    async def _run_chat(self) -> None:
        await self.run(self.chat_service.start_chat_loop())

    async def handle_locate(self, text: str) -> None:
        """Handles the 'locate' command: resolve text once and show the location."""
        logger.info(f"Handling 'locate' command for: {text}")
        try:
            location = await self.pipeline.resolve(text)
        except RateLimited as e:
            logger.warning(f"Locate command rate limited: {e}")
            self.ui.display_banner(self.chat_service.banner() or str(e))
            return
        self.ui.display_location(location)

    async def handle_map(self, text: str, html_path: Optional[Path] = None, save_path: Optional[Path] = None) -> None:
        """Handles the 'map' command: resolve, render, and optionally write the result."""
        logger.info(f"Handling 'map' command for: {text}")
        try:
            location = await self.pipeline.resolve(text)
        except RateLimited as e:
            logger.warning(f"Map command rate limited while geocoding: {e}")
            self.ui.display_banner(self.chat_service.banner() or str(e))
            location = None

        if location is not None:
            self.ui.display_location(location)
        render = await self.map_chain.render(location)
        self.ui.display_map(render)

        try:
            if html_path and render.tier is FallbackTier.LIVE_MAP and render.live_map:
                html_path.write_text(render_live_map_html(render.live_map), encoding="utf-8")
                self.ui.display_info(f"Live map page written to {html_path}")
            elif html_path:
                self.ui.display_warning("Live map not available, no HTML page written.")
            if save_path and render.image is not None:
                save_path.write_bytes(render.image.content)
                self.ui.display_info(f"Static map image saved to {save_path}")
            elif save_path:
                self.ui.display_warning("No static map image available, nothing saved.")
        except OSError as e:
            logger.error(f"Failed to write map output: {e}", exc_info=True)
            self.ui.display_error(f"Failed to write map output: {e}")

    async def handle_status(self) -> None:
        """Handles the 'status' command."""
        self.chat_service.display_status()
