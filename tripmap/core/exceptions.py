"""Failure taxonomy for upstream calls.

Every definitive failure of an orchestrated call is one of these. Only
`RateLimited` (and its `CircuitOpen` subclass) is meant to reach the UI;
the other kinds are absorbed by the gateway, the pipeline or the map chain.
"""

from typing import Optional


class UpstreamError(Exception):
    """Base class for definitive upstream call failures."""

    #: Whether waiting and calling again may succeed.
    recoverable = False

    def __init__(
        self,
        message: str,
        endpoint_class: Optional[str] = None,
        status_code: Optional[int] = None,
        attempts: int = 0,
    ):
        self.endpoint_class = endpoint_class
        self.status_code = status_code
        self.attempts = attempts
        super().__init__(message)


class RateLimited(UpstreamError):
    """The service answered 429 and the retry budget is exhausted."""
    recoverable = True


class CircuitOpen(RateLimited):
    """The endpoint class is cooling down; no network call was made."""

    def __init__(self, message: str, endpoint_class: Optional[str] = None, retry_after: float = 0.0):
        self.retry_after = retry_after
        super().__init__(message, endpoint_class=endpoint_class, status_code=None, attempts=0)


class UpstreamUnavailable(UpstreamError):
    """5xx, network failure or missing server credential."""
    recoverable = True


class BadRequest(UpstreamError):
    """4xx other than 429. Caller bug or invalid input; never retried."""


class MalformedResponse(UpstreamError):
    """A success status whose body could not be interpreted; never retried."""
