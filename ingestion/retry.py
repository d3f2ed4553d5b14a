"""
Single logical HTTP request with failure classification and backoff.

Each attempt produces an AttemptOutcome (a response or a transport error).
The outcome is classified into a FailureKind first, and the retry loop then
decides what to do from that classification:

    RATE_LIMITED  HTTP 429          wait Retry-After (default 60s), retry
    TRANSIENT     5xx, 408, timeout, connection error
                                    exponential backoff, retry
    NOT_FOUND     HTTP 404          return None, never retried
    PERMANENT     any other 4xx, unexpected status, undecodable body
                                    raise immediately
"""

import asyncio
import enum
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional
import httpx
import logging

from ingestion.transport import RateLimitedTransport
from core.exceptions import (
    FetchError,
    PermanentError,
    RateLimitError,
    RetriesExhaustedError,
    TransientError,
)

logger = logging.getLogger(__name__)


class FailureKind(str, enum.Enum):
    """Failure classification of one attempt"""
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    NOT_FOUND = "not_found"
    PERMANENT = "permanent"


@dataclass(frozen=True)
class AttemptOutcome:
    """What came back from one attempt: a response, or a transport-level error"""
    response: Optional[httpx.Response] = None
    error: Optional[httpx.HTTPError] = None


@dataclass(frozen=True)
class Classification:
    """
    Verdict on one attempt. ``kind`` is None for success.

    ``wait`` is only set for RATE_LIMITED and holds the server-requested delay.
    """
    kind: Optional[FailureKind]
    detail: str = ""
    status_code: Optional[int] = None
    wait: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.kind is None

    @property
    def retryable(self) -> bool:
        return self.kind in (FailureKind.RATE_LIMITED, FailureKind.TRANSIENT)


@dataclass(frozen=True)
class RequesterStats:
    """Point-in-time counters for one requester and its transport"""
    request_count: int
    error_count: int
    retry_count: int
    queue_size: int
    in_flight: int


def parse_retry_after(value: Optional[str], default: float) -> float:
    """Seconds from a Retry-After header; ``default`` when absent, negative or not a finite number."""
    if value is None:
        return default
    try:
        seconds = float(value.strip())
    except ValueError:
        return default
    if not math.isfinite(seconds) or seconds < 0:
        return default
    return seconds


def classify(outcome: AttemptOutcome, default_rate_limit_wait: float = 60.0) -> Classification:
    """Map an attempt outcome to exactly one failure kind (or success)."""
    if outcome.error is not None:
        error = outcome.error
        if isinstance(error, httpx.UnsupportedProtocol):
            return Classification(FailureKind.PERMANENT, detail=f"Unsupported protocol: {error}")
        if isinstance(error, httpx.TimeoutException):
            return Classification(FailureKind.TRANSIENT, detail=f"Timeout: {type(error).__name__}")
        if isinstance(error, httpx.TransportError):
            return Classification(FailureKind.TRANSIENT, detail=f"Connection error: {type(error).__name__}: {error}")
        return Classification(FailureKind.PERMANENT, detail=f"{type(error).__name__}: {error}")

    response = outcome.response
    status = response.status_code

    if 200 <= status < 300:
        return Classification(None, status_code=status)
    if status == 429:
        wait = parse_retry_after(response.headers.get("Retry-After"), default_rate_limit_wait)
        return Classification(FailureKind.RATE_LIMITED, detail="Rate limited (429)", status_code=status, wait=wait)
    if status >= 500 or status == 408:
        return Classification(FailureKind.TRANSIENT, detail=f"Server error ({status})", status_code=status)
    if status == 404:
        return Classification(FailureKind.NOT_FOUND, detail="Resource not found (404)", status_code=status)
    return Classification(
        FailureKind.PERMANENT,
        detail=f"Client error ({status}): {_error_messages(response)}",
        status_code=status
    )


def _error_messages(response: httpx.Response) -> str:
    """Jira puts human-readable errors in errorMessages; fall back to the raw body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict) and body.get("errorMessages"):
        return "; ".join(str(m) for m in body["errorMessages"])
    return response.text[:500]


class RetryingRequester:
    """
    Performs GET requests through a RateLimitedTransport with classified retries.

    Attributes:
        max_retries: Retries after the first attempt (default: 5)
        base_delay: Backoff for the first retry in seconds (default: 1.0)
        max_delay: Upper bound for a single backoff (default: 10.0)
        default_rate_limit_wait: Wait on 429 without Retry-After (default: 60.0)
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        transport: RateLimitedTransport,
        max_retries: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        default_rate_limit_wait: float = 60.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.client = client
        self.transport = transport
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.default_rate_limit_wait = default_rate_limit_wait
        self._sleep = sleep

        self._request_count = 0
        self._error_count = 0
        self._retry_count = 0

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retrying after the zero-based ``attempt``."""
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    def stats(self) -> RequesterStats:
        return RequesterStats(
            request_count=self._request_count,
            error_count=self._error_count,
            retry_count=self._retry_count,
            queue_size=self.transport.queue_size,
            in_flight=self.transport.in_flight
        )

    async def request(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        """
        Fetch ``endpoint`` and return the decoded JSON body.

        Returns:
            Decoded payload, or None when the resource does not exist (404)

        Raises:
            PermanentError: Non-retryable client-side failure
            RetriesExhaustedError: Every retry failed with a retryable error
        """
        params = params or {}
        attempts = self.max_retries + 1
        last: Optional[Classification] = None

        for attempt in range(attempts):
            logger.debug(f"Request attempt {attempt + 1}/{attempts} to {endpoint}", extra={"params": params})

            outcome = await self.transport.submit(lambda: self._send(endpoint, params))
            self._request_count += 1
            verdict = classify(outcome, self.default_rate_limit_wait)

            if verdict.ok:
                return self._decode(endpoint, outcome.response)

            self._error_count += 1
            logger.debug(f"Attempt {attempt + 1} to {endpoint} classified as {verdict.kind.value}: {verdict.detail}")

            if verdict.kind == FailureKind.NOT_FOUND:
                logger.warning(f"Resource not found (404): {endpoint}")
                return None

            if verdict.kind == FailureKind.PERMANENT:
                logger.error(f"{verdict.detail} for {endpoint}. Not retrying")
                raise PermanentError(
                    verdict.detail,
                    context={
                        "endpoint": endpoint,
                        "status_code": verdict.status_code,
                        "attempts": attempt + 1
                    },
                    original_exception=outcome.error
                )

            last = verdict
            retries_left = attempts - attempt - 1
            logger.warning(
                f"Request attempt {attempt + 1} failed ({verdict.detail}). "
                f"{retries_left} retries left."
            )
            if retries_left == 0:
                break

            if verdict.kind == FailureKind.RATE_LIMITED:
                delay = verdict.wait
                logger.warning(f"Rate limited (429). Waiting {delay}s before retry")
            else:
                delay = self.backoff_delay(attempt)
                logger.warning(f"{verdict.detail}. Retrying in {delay}s")

            self._retry_count += 1
            await self._sleep(delay)

        context = {"endpoint": endpoint, "status_code": last.status_code, "attempts": attempts}
        if last.kind == FailureKind.RATE_LIMITED:
            final: FetchError = RateLimitError(last.detail, context=dict(context), retry_after=last.wait)
        else:
            final = TransientError(last.detail, context=dict(context))

        logger.error(f"Giving up on {endpoint} after {attempts} attempts: {last.detail}")
        raise RetriesExhaustedError(
            f"Request to {endpoint} failed after {attempts} attempts",
            last_error=final,
            context=context
        )

    async def _send(self, endpoint: str, params: Dict[str, Any]) -> AttemptOutcome:
        try:
            response = await self.client.get(endpoint, params=params)
        except httpx.HTTPError as e:
            return AttemptOutcome(error=e)
        return AttemptOutcome(response=response)

    def _decode(self, endpoint: str, response: httpx.Response) -> Any:
        try:
            data = response.json()
        except ValueError as e:
            raise PermanentError(
                "Failed to parse JSON response",
                context={
                    "endpoint": endpoint,
                    "status_code": response.status_code,
                    "response_body": response.text[:500]
                },
                original_exception=e
            )
        logger.debug(f"Response received for {endpoint}", extra={"status": response.status_code})
        return data
