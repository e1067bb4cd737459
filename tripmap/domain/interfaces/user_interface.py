"""Interface for interacting with the user (input/output).

Defines the contract for displaying replies, locations, map renders,
warnings and banners, and getting input from the user, allowing different
UI implementations (e.g., console, web).
"""

import abc
from typing import Any, Dict, Optional

from tripmap.domain.models.common import EndpointClass, PromptText
from tripmap.domain.models.location import Location
from tripmap.domain.models.map import MapRender
from tripmap.domain.models.resilience import RateLimitState


class UserInterface(abc.ABC):
    """Abstract Base Class for user interaction."""

    @abc.abstractmethod
    def display_output(self, output: str, **kwargs: Any) -> None:
        """Displays standard output (a chat reply) to the user.

        Args:
            output: The reply text to display.
            **kwargs: Additional arguments for formatting (e.g., title).
        """
        pass

    @abc.abstractmethod
    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message to the user."""
        pass

    @abc.abstractmethod
    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        """Displays a warning message to the user."""
        pass

    @abc.abstractmethod
    def display_info(self, info_message: str, **kwargs: Any) -> None:
        """Displays an informational message to the user."""
        pass

    @abc.abstractmethod
    def get_prompt(self, prompt_message: str = "Input: ") -> PromptText:
        """Gets input from the user synchronously.

        Note: For async contexts, the caller should wrap this in asyncio.to_thread.
        """
        pass

    @abc.abstractmethod
    def display_location(self, location: Optional[Location]) -> None:
        """Displays a resolved location, or that none was found."""
        pass

    @abc.abstractmethod
    def display_map(self, render: MapRender) -> None:
        """Displays the outcome of a map render (its tier and what it shows)."""
        pass

    def display_banner(self, message: str) -> None:
        """Displays the persistent 'service limited' banner.

        Args:
            message: The fixed cooldown message.
        """
        self.display_warning(message)

    def display_rate_limit_status(
        self, states: Dict[EndpointClass, RateLimitState], open_for: Dict[EndpointClass, float]
    ) -> None:
        """Displays per endpoint class throttle and circuit state.

        Args:
            states: Snapshot of the rate-limit state per class.
            open_for: Seconds of cooldown remaining per class (0 when closed).
        """
        pass
