"""Defines common Value Objects used across different domain contexts.

These objects represent simple values or concepts like endpoint classes,
reply texts and retry policies, ensuring consistency and type safety.
"""

from typing import NewType, TypedDict, Any, Dict

# === Core Value Objects ===

# Using NewType for semantic clarity, although they are strings at runtime.
EndpointClass = NewType("EndpointClass", str)  # Upstream service category sharing one throttle/circuit
PromptText = NewType("PromptText", str)        # User's text prompt
ReplyText = NewType("ReplyText", str)          # Reply shown to the user (real or degraded)
MessageRole = NewType("MessageRole", str)      # 'user', 'assistant', 'system'

# Known endpoint classes
CHAT = EndpointClass("chat")
GEOCODE = EndpointClass("geocode")
MAP = EndpointClass("map")  # Live map control
STATIC_MAP = EndpointClass("static_map")  # First-party static images
OSM = EndpointClass("osm")  # Third-party static map service

ENDPOINT_CLASSES = (CHAT, GEOCODE, MAP, STATIC_MAP, OSM)

# === Map Context ===
AuthOptions = NewType("AuthOptions", Dict[str, Any])  # {'authType': ..., 'subscriptionKey': ...}


# --- Structured Data ---
class EndpointPolicy(TypedDict):
    """Value Object representing throttle and retry backoff configuration for one endpoint class."""
    min_interval: float
    max_retries: int
    initial_delay: float
    max_delay: float


class CooldownPolicy(TypedDict):
    """Value Object representing circuit breaker configuration."""
    threshold: int
    window: float
