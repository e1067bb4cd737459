"""Core service for managing interactive travel chat sessions.

Hides the orchestration of one user turn: the chat reply and the location
resolution run concurrently, the reply text is searched for a place when the
user's own text had none, a found location is rendered through the map
fallback chain, and rate limiting is turned into the 'service limited'
banner instead of an error.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Set, Tuple

from tripmap.core.exceptions import CircuitOpen, RateLimited
from tripmap.core.services.chat_gateway import ChatGateway, degraded_reply
from tripmap.core.services.location_pipeline import LocationResolutionPipeline, ResolutionOutcome
from tripmap.core.services.map_fallback import MapFallbackChain
from tripmap.domain.interfaces.user_interface import UserInterface
from tripmap.domain.models.chat import ASSISTANT, USER, ChatReply, ConversationHistory, DegradedReason
from tripmap.domain.models.common import CHAT, ENDPOINT_CLASSES, GEOCODE, PromptText
from tripmap.domain.models.location import Location
from tripmap.domain.models.map import MapRender
from tripmap.infrastructure.maps.gazetteer import DEFAULT_LOCATION
from tripmap.infrastructure.resilience.cooldown import CooldownTracker

logger = logging.getLogger(__name__)

GREETING = "Bonjour ! Où souhaitez-vous voyager ?"

BANNER_BOTH_LIMITED = (
    "Les services de géocodage et de chat sont temporairement indisponibles en raison d'un trop grand "
    "nombre de requêtes. Veuillez patienter quelques minutes."
)
BANNER_GEOCODE_LIMITED = (
    "Le service de géocodage est temporairement indisponible en raison d'un trop grand nombre de requêtes."
)
BANNER_CHAT_LIMITED = (
    "Le service de chat est temporairement indisponible en raison d'un trop grand nombre de requêtes."
)
GEOCODING_WARNING = "Erreur de géocodage: Erreur lors de la recherche du lieu"

# Consecutive OVERLOADED replies that trip the chat circuit
OVERLOAD_STREAK_THRESHOLD = 2
# Consecutive turns with failed geocoding before the user is warned
GEOCODING_ERROR_THRESHOLD = 2

EXIT_COMMANDS = ("exit", "quit")


@dataclass
class TurnResult:
    """Everything the UI needs to show after one turn."""
    reply: ChatReply
    location: Location
    location_changed: bool = False
    map_render: Optional[MapRender] = None
    banner: Optional[str] = None
    geocoding_warning: Optional[str] = None


class ChatService:
    """Orchestrates the interactive chat functionality."""

    def __init__(
        self,
        gateway: ChatGateway,
        pipeline: LocationResolutionPipeline,
        map_chain: MapFallbackChain,
        cooldown: CooldownTracker,
        ui: UserInterface,
        default_location: Location = DEFAULT_LOCATION,
    ):
        """Initializes the ChatService with its dependencies."""
        self.gateway = gateway
        self.pipeline = pipeline
        self.map_chain = map_chain
        self.cooldown = cooldown
        self.ui = ui
        self.current_session: ConversationHistory = ConversationHistory()
        self.current_location = default_location
        self._overload_streak = 0
        self._geocoding_error_streak = 0
        self._tasks: Set[asyncio.Task] = set()
        logger.info(f"ChatService initialized, default location: {default_location.name}")

    # --- Turn orchestration ---

    async def _reply(self) -> Tuple[ChatReply, bool]:
        """Returns the reply and whether the gateway was actually called."""
        if self.cooldown.is_open(CHAT):
            logger.info("Chat circuit open, answering with the overloaded reply without a call.")
            return degraded_reply(DegradedReason.OVERLOADED), False
        return await self.gateway.send(self.current_session), True

    async def _resolve(self, text: str) -> Optional[ResolutionOutcome]:
        """Runs the pipeline; returns None when geocoding is rate limited."""
        try:
            return await self.pipeline.resolve_with_outcome(text)
        except CircuitOpen as e:
            logger.info(f"Geocoding skipped: {e}")
        except RateLimited as e:
            logger.warning(f"Geocoding rate limited: {e}")
            self.cooldown.trip(GEOCODE)
        return None

    def _track_overload(self, reply: ChatReply) -> None:
        if reply.is_overloaded:
            self._overload_streak += 1
            logger.debug(f"Overloaded chat replies in a row: {self._overload_streak}")
            if self._overload_streak >= OVERLOAD_STREAK_THRESHOLD:
                self.cooldown.trip(CHAT)
        else:
            self._overload_streak = 0

    def _track_geocoding(self, outcome: Optional[ResolutionOutcome]) -> bool:
        """Updates the geocoding error streak; True when the user should be warned."""
        if outcome is None:
            return False
        if outcome.location is not None:
            self._geocoding_error_streak = 0
        elif outcome.had_errors:
            self._geocoding_error_streak += 1
        return self._geocoding_error_streak >= GEOCODING_ERROR_THRESHOLD and outcome.had_errors

    def banner(self) -> Optional[str]:
        """Fixed 'service limited' message for the circuits currently open, if any."""
        geocode_limited = self.cooldown.is_open(GEOCODE)
        chat_limited = self.cooldown.is_open(CHAT)
        if geocode_limited and chat_limited:
            return BANNER_BOTH_LIMITED
        if geocode_limited:
            return BANNER_GEOCODE_LIMITED
        if chat_limited:
            return BANNER_CHAT_LIMITED
        return None

    async def handle_turn(self, text: str) -> TurnResult:
        """Processes one user message; never raises for upstream failures."""
        self.current_session.add_message(USER, text)

        (reply, called), outcome = await asyncio.gather(self._reply(), self._resolve(text))

        self.current_session.add_message(ASSISTANT, reply.text)
        if called:
            self._track_overload(reply)
        warn = self._track_geocoding(outcome)

        location = outcome.location if outcome else None
        if location is None and not reply.is_degraded and not self.cooldown.is_open(GEOCODE):
            reply_outcome = await self._resolve(reply.text)
            if reply_outcome is not None:
                location = reply_outcome.location
                if location is not None:
                    self._geocoding_error_streak = 0
                elif reply_outcome.had_errors:
                    self._geocoding_error_streak += 1

        result = TurnResult(reply=reply, location=self.current_location)
        if location is not None:
            self.current_location = location
            result.location = location
            result.location_changed = True
            result.map_render = await self.map_chain.render(location)
        result.banner = self.banner()
        result.geocoding_warning = GEOCODING_WARNING if warn else None
        return result

    # --- Interactive loop ---

    def display_turn(self, result: TurnResult) -> None:
        self.ui.display_output(result.reply.text, title="Assistant")
        if result.location_changed:
            self.ui.display_location(result.location)
        if result.map_render is not None:
            self.ui.display_map(result.map_render)
        if result.geocoding_warning:
            self.ui.display_warning(result.geocoding_warning)
        if result.banner:
            self.ui.display_banner(result.banner)

    def _display_help_commands(self) -> None:
        help_text = """
Available commands:
- /status - Show the rate-limit state of each upstream service
- /where - Show the current location
- /help or /? - Show this help message
- exit or quit - End the chat session
        """
        self.ui.display_info(help_text)

    def display_status(self) -> None:
        registry = self.cooldown.registry
        states = {endpoint_class: registry.state(endpoint_class) for endpoint_class in ENDPOINT_CLASSES}
        states.update(registry.snapshot())
        open_for = {endpoint_class: self.cooldown.remaining(endpoint_class) for endpoint_class in states}
        self.ui.display_rate_limit_status(states, open_for)

    async def start_chat_loop(self) -> None:
        """Runs the main asynchronous loop for a chat session."""
        logger.info(f"Chat session {self.current_session.session_id} loop started.")
        self.current_session.add_message(ASSISTANT, GREETING)
        self.ui.display_output(GREETING, title="Assistant")
        self.ui.display_location(self.current_location)

        try:
            while True:
                try:
                    user_input_text = await asyncio.to_thread(self.ui.get_prompt, "Vous: ")
                except (EOFError, KeyboardInterrupt):
                    logger.info("Chat session interrupted by user.")
                    break
                user_prompt = PromptText(user_input_text.strip())

                if not user_prompt:
                    continue
                if user_prompt.lower() in EXIT_COMMANDS:
                    self.ui.display_info("Ending chat session.")
                    break
                if user_prompt.lower() in ("/help", "/?"):
                    self._display_help_commands()
                    continue
                if user_prompt.lower() == "/status":
                    self.display_status()
                    continue
                if user_prompt.lower() == "/where":
                    self.ui.display_location(self.current_location)
                    continue

                task = asyncio.create_task(self.handle_turn(user_prompt))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
                try:
                    result = await task
                except Exception as e:
                    logger.error(f"An unexpected error occurred in chat turn: {e}", exc_info=True)
                    self.ui.display_error(f"An unexpected error occurred: {e}")
                    continue
                self.display_turn(result)
        finally:
            await self.aclose()
            logger.info(f"Chat session {self.current_session.session_id} loop finished.")

    async def aclose(self) -> None:
        """Cancels turns still in flight so no timer outlives the session."""
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.debug(f"Cancelled {len(pending)} pending turn(s).")
        self._tasks.clear()
