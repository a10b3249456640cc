"""GET a JSON document with per-attempt timeouts and bounded exponential backoff."""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Tuple

import requests

from weather_svg.errors import FetchError
from utils.logging_utils import get_tagged_logger, mask_url

logger = get_tagged_logger(__name__, tag="weather_svg/fetcher")

USER_AGENT = "weather-svg/1.0"

session = requests.Session()
session.headers.update({"User-Agent": USER_AGENT, "Accept": "application/json"})

BackoffPolicy = Callable[[int], int]


def exponential_backoff(base_ms: int = 1_000, cap_ms: int = 30_000) -> BackoffPolicy:
    """Return `attempt -> delay_ms` with delay = min(base_ms * 2 ** (attempt - 1), cap_ms).

    `attempt` is the 1-based number of the attempt that just failed, so the
    wait before attempt k is min(base_ms * 2 ** (k - 2), cap_ms).
    """
    if base_ms < 0 or cap_ms < 0:
        raise ValueError("backoff base and cap must be non-negative")

    def policy(attempt: int) -> int:
        return min(base_ms * 2 ** (attempt - 1), cap_ms)

    return policy


@dataclass(frozen=True)
class FetchRequest:
    """One JSON GET with its retry budget."""
    url: str
    timeout_ms: int = 10_000
    max_attempts: int = 5
    backoff: BackoffPolicy = field(default_factory=exponential_backoff)
    name: str = "request"
    secrets: Tuple[str, ...] = ()  # substrings of url that must never be logged

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be > 0, got {self.timeout_ms}")

    @property
    def display_url(self) -> str:
        return mask_url(self.url, self.secrets)


def fetch_json(
    request: FetchRequest,
    *,
    http: Optional[requests.Session] = None,
    sleep: Optional[Callable[[float], None]] = None,
    cancel_event: Optional[threading.Event] = None,
    deadline: Optional[float] = None,
) -> Any:
    """
    GET `request.url` and return the decoded JSON body.

    An attempt succeeds only on HTTP 200 with a body that parses as JSON.
    Non-200 statuses, parse errors, connection errors and timeouts are all
    retried until `request.max_attempts` is used up, sleeping
    `request.backoff(attempt)` milliseconds in between.

    `cancel_event` and `deadline` (a `time.monotonic()` value) are checked
    between attempts. When the event is given the backoff waits on it, so a
    cancellation interrupts the delay.

    Raises FetchError carrying the attempt count and the last failure reason.
    """
    http = http or session
    sleep = sleep or time.sleep
    url = request.display_url

    kind = "network"
    reason = "no attempt made"
    last_exc: Optional[BaseException] = None

    for attempt in range(1, request.max_attempts + 1):
        if cancel_event is not None and cancel_event.is_set():
            raise FetchError(kind="cancelled", attempts=attempt - 1,
                             last_reason="cancelled before attempt", url=url) from last_exc
        start = time.monotonic()
        try:
            resp = http.get(request.url, timeout=request.timeout_ms / 1000)
        except requests.exceptions.Timeout as exc:
            kind, reason, last_exc = "timeout", _strip_secrets(str(exc), request), exc
        except requests.exceptions.RequestException as exc:
            kind, reason, last_exc = "network", _strip_secrets(str(exc), request), exc
        else:
            if resp.status_code != 200:
                kind, reason, last_exc = "status", f"HTTP {resp.status_code}", None
            else:
                try:
                    payload = resp.json()
                except ValueError as exc:
                    kind, reason, last_exc = "parse", f"invalid JSON: {exc}", exc
                else:
                    logger.info(
                        "Fetched %s on attempt %d/%d in %.2fs",
                        request.name, attempt, request.max_attempts, time.monotonic() - start,
                    )
                    return payload

        if attempt == request.max_attempts:
            logger.error("Attempt %d/%d for %s failed (%s): %s; giving up",
                         attempt, request.max_attempts, request.name, kind, reason)
            break

        delay_s = request.backoff(attempt) / 1000
        logger.warning(
            "Attempt %d/%d for %s failed (%s): %s; retrying in %.1fs",
            attempt, request.max_attempts, request.name, kind, reason, delay_s,
        )

        if deadline is not None and time.monotonic() + delay_s > deadline:
            raise FetchError(
                kind="deadline", attempts=attempt,
                last_reason=f"run deadline reached after {kind}: {reason}", url=url,
            ) from last_exc
        if cancel_event is not None:
            if cancel_event.wait(delay_s):
                raise FetchError(
                    kind="cancelled", attempts=attempt,
                    last_reason=f"cancelled after {kind}: {reason}", url=url,
                ) from last_exc
        else:
            sleep(delay_s)

    raise FetchError(kind=kind, attempts=request.max_attempts, last_reason=reason, url=url) from last_exc


def _strip_secrets(message: str, request: FetchRequest) -> str:
    """requests puts the full URL in its exception text; keep the key out of logs."""
    for secret in request.secrets:
        if secret:
            message = message.replace(secret, "***")
    return message
