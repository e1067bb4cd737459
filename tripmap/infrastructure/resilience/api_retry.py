"""Service for executing upstream calls with throttling, retries and circuit breaking.

Implements exponential backoff for handling transient errors like rate
limits (429) or temporary server issues (5xx). Each attempt is dispatched
through the Throttle, every 429 is reported to the CooldownTracker, and an
open circuit refuses the call before anything is sent.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx
import openai

from tripmap.core.exceptions import (
    BadRequest,
    CircuitOpen,
    MalformedResponse,
    RateLimited,
    UpstreamError,
    UpstreamUnavailable,
)
from tripmap.domain.events.api_events import (
    ApiCallDeferred,
    ApiCallFailed,
    ApiCallInitiated,
    ApiCallSucceeded,
    EventSink,
    RetryScheduled,
)
from tripmap.domain.models.common import EndpointClass, EndpointPolicy
from tripmap.domain.models.resilience import RetryState
from tripmap.infrastructure.resilience.cooldown import CooldownTracker
from tripmap.infrastructure.resilience.throttle import Throttle

logger = logging.getLogger(__name__)

DEFAULT_POLICY = EndpointPolicy(min_interval=1.0, max_retries=2, initial_delay=1.0, max_delay=10.0)

# Failure kinds returned by _classify_status / _classify_exception
RATE_LIMITED = "rate_limited"
UNAVAILABLE = "unavailable"
BAD_REQUEST = "bad_request"
MALFORMED = "malformed"

# Errors raised while interpreting a success body
PARSE_EXCEPTIONS = (ValueError, KeyError, TypeError, IndexError, AttributeError, openai.APIResponseValidationError)

# Transport level failures (no HTTP status available)
NETWORK_EXCEPTIONS = (httpx.TransportError, openai.APIConnectionError)

# Raised by the call itself: a bug, not an upstream failure
NON_RETRYABLE_EXCEPTIONS = (ValueError, TypeError, KeyError, AttributeError)


def _classify_status(status_code: int) -> Optional[str]:
    """Maps an HTTP status to a failure kind (None for success)."""
    if status_code == 429:
        return RATE_LIMITED
    if status_code >= 500:
        return UNAVAILABLE
    if status_code >= 400:
        return BAD_REQUEST
    return None


def _classify_exception(e: BaseException) -> Tuple[str, Optional[int]]:
    """Maps an exception raised by a call to (failure kind, HTTP status if known)."""
    if isinstance(e, openai.APIResponseValidationError):
        return MALFORMED, getattr(e, "status_code", None)
    if isinstance(e, openai.APIStatusError):
        return _classify_status(e.status_code) or UNAVAILABLE, e.status_code
    if isinstance(e, httpx.HTTPStatusError):
        status = e.response.status_code
        return _classify_status(status) or UNAVAILABLE, status
    if isinstance(e, NETWORK_EXCEPTIONS):
        return UNAVAILABLE, None
    # Anything else unexpected is treated like a transient failure and retried
    return UNAVAILABLE, None


def _default_parse(result: Any) -> Any:
    if isinstance(result, httpx.Response):
        return result.json()
    return result


class RetryOrchestrator:
    """Handles upstream call execution with throttling, retries and circuit breaking."""

    def __init__(
        self,
        throttle: Throttle,
        cooldown: CooldownTracker,
        policies: Optional[Dict[EndpointClass, EndpointPolicy]] = None,
        default_policy: EndpointPolicy = DEFAULT_POLICY,
        event_sink: Optional[EventSink] = None,
    ):
        """Initializes the RetryOrchestrator.

        Args:
            throttle: Per-class throttle; every attempt is dispatched inside its slot.
            cooldown: Per-class circuit breaker fed with rate-limit and success signals.
            policies: Retry/backoff policy per endpoint class.
            default_policy: Policy for classes missing from `policies`.
            event_sink: Receives the domain events of each call (default: debug log).
        """
        self.throttle = throttle
        self.cooldown = cooldown
        self.policies = dict(policies or {})
        self.default_policy = default_policy
        self._event_sink = event_sink
        logger.info(f"RetryOrchestrator initialized: policies={self.policies}")

    def dispatch_event(self, event: Any) -> None:
        logger.debug(f"EVENT: {event}")
        if self._event_sink:
            self._event_sink(event)

    def policy(self, endpoint_class: EndpointClass) -> EndpointPolicy:
        return self.policies.get(endpoint_class, self.default_policy)

    async def execute(
        self,
        call: Callable[[], Awaitable[Any]],
        endpoint_class: EndpointClass,
        parse: Optional[Callable[[Any], Any]] = None,
        max_retries: Optional[int] = None,
        initial_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
    ) -> Any:
        """Executes an upstream call with circuit check, throttling and retries.

        Args:
            call: Zero-argument coroutine function performing ONE attempt. It returns
                an `httpx.Response` (its status is checked here) or an SDK object.
            endpoint_class: Class whose throttle and circuit govern the call.
            parse: Turns a successful result into the returned body
                (default: JSON for `httpx.Response`, identity otherwise).
            max_retries: Retries after the first attempt (default: class policy).
            initial_delay: Delay before the first retry in seconds (default: class policy).
            max_delay: Cap of the doubling delay (default: class policy).

        Returns:
            The parsed body of the first successful attempt.

        Raises:
            CircuitOpen: The class is cooling down; nothing was sent.
            RateLimited: 429 on the last allowed attempt.
            UpstreamUnavailable: 5xx or network failure on the last allowed attempt.
            BadRequest: Any other 4xx (never retried).
            MalformedResponse: The success body could not be parsed (never retried).
            UpstreamError: Raised by `call` itself; propagated unchanged.
            ValueError, TypeError, KeyError, AttributeError: Raised by `call` itself;
                propagated on the first attempt without retrying.
        """
        policy = self.policy(endpoint_class)
        retries = policy["max_retries"] if max_retries is None else max_retries
        retry_state = RetryState(
            attempts_remaining=retries,
            next_delay=policy["initial_delay"] if initial_delay is None else initial_delay,
            max_delay=policy["max_delay"] if max_delay is None else max_delay,
        )
        parse = parse or _default_parse

        # 1. Refuse immediately while the circuit is open
        if self.cooldown.is_open(endpoint_class):
            remaining = self.cooldown.remaining(endpoint_class)
            logger.info(f"Circuit open for '{endpoint_class}', refusing call ({remaining:.0f}s left).")
            self.dispatch_event(ApiCallDeferred(endpoint_class=endpoint_class, wait_time_seconds=remaining))
            raise CircuitOpen(
                f"Circuit open for '{endpoint_class}', retry in {remaining:.0f}s",
                endpoint_class=endpoint_class,
                retry_after=remaining,
            )

        while True:
            retry_state.attempts_made += 1
            attempt = retry_state.attempts_made
            status: Optional[int] = None
            kind: Optional[str] = None
            error: Optional[BaseException] = None

            # 2. Dispatch one attempt inside the throttle slot
            self.dispatch_event(ApiCallInitiated(endpoint_class=endpoint_class, attempt_number=attempt))
            start_time = time.perf_counter()
            try:
                async with self.throttle.slot(endpoint_class):
                    result = await call()
                if isinstance(result, httpx.Response):
                    status = result.status_code
                    kind = _classify_status(status)
            except asyncio.CancelledError:
                logger.debug(f"Call to '{endpoint_class}' cancelled on attempt {attempt}.")
                raise
            except UpstreamError:
                raise
            except NON_RETRYABLE_EXCEPTIONS as e:
                logger.error(f"Non-retryable error calling '{endpoint_class}' on attempt {attempt}: {e}", exc_info=True)
                self._fail(endpoint_class, type(e).__name__, str(e), attempt)
                raise
            except Exception as e:
                error = e
                kind, status = _classify_exception(e)
                if not isinstance(e, (openai.APIError, httpx.HTTPError)):
                    logger.error(f"Unexpected error calling '{endpoint_class}' on attempt {attempt}: {e}", exc_info=True)
            latency_ms = (time.perf_counter() - start_time) * 1000

            # 3. Success: close the circuit, then interpret the body
            if kind is None:
                self.cooldown.report_success(endpoint_class)
                try:
                    body = parse(result)
                except PARSE_EXCEPTIONS as e:
                    logger.error(f"Malformed response from '{endpoint_class}': {e}")
                    self._fail(endpoint_class, "MalformedResponse", str(e), attempt)
                    raise MalformedResponse(
                        f"Malformed response from '{endpoint_class}': {e}",
                        endpoint_class=endpoint_class, status_code=status, attempts=attempt,
                    ) from e
                self.dispatch_event(ApiCallSucceeded(endpoint_class=endpoint_class, attempt_number=attempt, latency_ms=latency_ms))
                logger.debug(f"Call to '{endpoint_class}' succeeded on attempt {attempt} in {latency_ms:.0f}ms.")
                return body

            # 4. Failures that retrying cannot fix
            if kind == MALFORMED:
                self._fail(endpoint_class, "MalformedResponse", str(error), attempt)
                raise MalformedResponse(
                    f"Malformed response from '{endpoint_class}': {error}",
                    endpoint_class=endpoint_class, status_code=status, attempts=attempt,
                ) from error
            if kind == BAD_REQUEST:
                logger.error(f"Non-retryable status {status} from '{endpoint_class}' on attempt {attempt}.")
                self._fail(endpoint_class, "BadRequest", f"HTTP {status}", attempt)
                raise BadRequest(
                    f"'{endpoint_class}' rejected the request with HTTP {status}",
                    endpoint_class=endpoint_class, status_code=status, attempts=attempt,
                ) from error

            # 5. Retryable failures: 429, 5xx, network
            if kind == RATE_LIMITED:
                self.cooldown.report_rate_limited(endpoint_class)

            if retry_state.attempts_remaining > 0:
                delay = retry_state.consume_delay()
                logger.warning(
                    f"Retryable failure ({kind}, status={status}) calling '{endpoint_class}' on attempt "
                    f"{attempt}/{retries + 1}. Waiting {delay:.2f}s..."
                )
                self.dispatch_event(RetryScheduled(
                    endpoint_class=endpoint_class, attempt_number=attempt, delay_seconds=delay, reason=kind,
                ))
                await self.throttle.clock.sleep(delay)
                continue

            logger.error(f"Max retries ({retries}) reached for '{endpoint_class}'. Last failure: {kind}, status={status}")
            if kind == RATE_LIMITED:
                self._fail(endpoint_class, "RateLimited", f"HTTP {status}", attempt)
                raise RateLimited(
                    f"'{endpoint_class}' is rate limiting requests",
                    endpoint_class=endpoint_class, status_code=status, attempts=attempt,
                ) from error
            self._fail(endpoint_class, "UpstreamUnavailable", str(error) if error else f"HTTP {status}", attempt)
            raise UpstreamUnavailable(
                f"'{endpoint_class}' is unavailable (status={status})",
                endpoint_class=endpoint_class, status_code=status, attempts=attempt,
            ) from error

    def _fail(self, endpoint_class: EndpointClass, error_type: str, message: str, attempts: int) -> None:
        self.dispatch_event(ApiCallFailed(
            endpoint_class=endpoint_class, error_type=error_type, error_message=message, attempts=attempts,
        ))
