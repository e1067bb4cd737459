"""Turns free text into at most one Location.

Resolution order, first success wins:
1. gazetteer substring match (no network);
2. capitalised phrases extracted from the text, geocoded one by one;
3. the whole text, geocoded as a last attempt.

Rate limiting aborts the pipeline and is re-raised for the caller to show a
throttling notice. Any other geocoding failure only skips a candidate.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from tripmap.core.exceptions import RateLimited, UpstreamError
from tripmap.domain.interfaces.geocoder import Geocoder
from tripmap.domain.models.location import Location
from tripmap.infrastructure.maps import gazetteer

logger = logging.getLogger(__name__)

SENTENCE_END = (".", "!", "?")
EDGE_PUNCTUATION = ",;:.!?\"'()"


def extract_location_phrases(text: str) -> List[str]:
    """Extracts candidate place names from text.

    A candidate is a run of whitespace-separated tokens starting with an
    uppercase letter. The first token of the text and a token following a
    sentence end never count, since they are capitalised anyway.

    This is narrower than taking every maximal capitalised run as is: a token
    ending in punctuation (`,`, `;`, `:` included) also closes its run, and a
    phrase seen twice is kept once. An enumeration such as "Marrakech, Fès"
    therefore yields two places to geocode instead of one joined query, and
    no place is geocoded twice.

    Example:
        >>> extract_location_phrases("Je pars à New York puis à Rome.")
        ['New York', 'Rome']
        >>> extract_location_phrases("Je visite Marrakech, Fès et Agadir")
        ['Marrakech', 'Fès', 'Agadir']
    """
    tokens = text.split()
    phrases: List[str] = []
    current: List[str] = []

    def flush() -> None:
        phrase = " ".join(current).strip(EDGE_PUNCTUATION).strip()
        if phrase and phrase not in phrases:
            phrases.append(phrase)
        current.clear()

    for index, token in enumerate(tokens):
        follows_sentence_end = index > 0 and tokens[index - 1].endswith(SENTENCE_END)
        capitalised = token.lstrip("\"'(")[:1].isupper()
        if index > 0 and capitalised and not follows_sentence_end:
            current.append(token)
            # Punctuation closes the phrase: "Marrakech, Fès" is two places
            if token.endswith(tuple(EDGE_PUNCTUATION)):
                flush()
        else:
            flush()
    flush()
    return phrases


@dataclass(frozen=True)
class ResolutionOutcome:
    """Result of one resolution, with whether every remote attempt failed."""
    location: Optional[Location]
    had_errors: bool = False


class LocationResolutionPipeline:
    """Gazetteer, then phrase extraction, then whole-text geocoding."""

    def __init__(self, geocoder: Optional[Geocoder], places: Optional[Dict[str, Location]] = None):
        """Initializes the pipeline.

        Args:
            geocoder: Remote geocoder; None disables steps 2 and 3.
            places: Gazetteer to use instead of the built-in one.
        """
        self.geocoder = geocoder
        self.places = places

    async def resolve(self, text: str) -> Optional[Location]:
        """Resolves `text` to a Location, or None if nothing matched.

        Raises:
            RateLimited: If geocoding is rate limited or its circuit is open.
        """
        outcome = await self.resolve_with_outcome(text)
        return outcome.location

    async def resolve_with_outcome(self, text: str) -> ResolutionOutcome:
        text = text.strip()
        if not text:
            return ResolutionOutcome(location=None)

        location = gazetteer.lookup(text, self.places)
        if location:
            logger.info(f"Gazetteer match for '{text}': {location.name}")
            return ResolutionOutcome(location=location)

        if self.geocoder is None:
            return ResolutionOutcome(location=None)

        queries = extract_location_phrases(text)
        if text not in queries:
            queries.append(text)
        logger.debug(f"Geocoding candidates: {queries}")

        failures = 0
        for query in queries:
            try:
                location = await self.geocoder.geocode(query)
            except RateLimited:
                logger.warning(f"Geocoding rate limited while resolving '{query}', aborting resolution.")
                raise
            except UpstreamError as e:
                failures += 1
                logger.warning(f"Geocoding failed for '{query}': {e}")
                continue
            except Exception as e:
                failures += 1
                logger.error(f"Unexpected error geocoding '{query}': {e}", exc_info=True)
                continue
            if location:
                logger.info(f"Geocoded '{query}' to {location.name} {location.coordinates}")
                return ResolutionOutcome(location=location)

        logger.info(f"No location found in '{text}'")
        return ResolutionOutcome(location=None, had_errors=failures == len(queries))
