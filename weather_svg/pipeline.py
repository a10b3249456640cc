"""One build run: fetch weather (and time), extract display fields, render, write."""
from __future__ import annotations

import threading
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from weather_svg import config
from weather_svg.errors import ConfigurationError
from weather_svg.fetcher import FetchRequest, exponential_backoff, fetch_json
from weather_svg.providers import DisplayFields, ProviderKind, extract
from weather_svg.renderer import load_template, render, write_atomic
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="weather_svg/pipeline")

PIRATE_WEATHER_URL = "https://api.pirateweather.net/forecast/{api_key}/{latitude},{longitude}?units=si&lang=en"
OPENWEATHERMAP_URL = (
    "https://api.openweathermap.org/data/2.5/weather"
    "?lat={latitude}&lon={longitude}&units=metric&appid={api_key}"
)

Fetch = Callable[..., Any]


@dataclass(frozen=True)
class BuildResult:
    """What a successful run produced."""
    fields: DisplayFields
    output_path: Path


def require_api_key(settings: config.Settings) -> str:
    """Return the API key or fail before any network traffic happens."""
    if not settings.api_key:
        raise ConfigurationError(
            "No weather API key configured; set WEATHER_SVG_API_KEY "
            "(or PIRATE_WEATHER_API_KEY / OPENWEATHER_API_KEY)"
        )
    return settings.api_key


def build_requests(settings: config.Settings, api_key: str) -> Dict[str, FetchRequest]:
    """FetchRequests for this run keyed by role ("weather", "time")."""
    provider = ProviderKind(settings.provider)
    backoff = exponential_backoff(settings.backoff_base_ms, settings.backoff_cap_ms)
    common = dict(timeout_ms=settings.timeout_ms, max_attempts=settings.max_attempts, backoff=backoff)

    template = PIRATE_WEATHER_URL if provider is ProviderKind.PIRATE_WEATHER else OPENWEATHERMAP_URL
    requests_by_role = {
        "weather": FetchRequest(
            url=template.format(api_key=api_key, latitude=settings.latitude, longitude=settings.longitude),
            name=f"{provider.value} weather",
            secrets=(api_key,),
            **common,
        )
    }
    if provider.needs_time_source:
        requests_by_role["time"] = FetchRequest(url=settings.time_api_url, name="world time", **common)
    return requests_by_role


def fetch_all(
    requests_by_role: Dict[str, FetchRequest],
    *,
    fetch: Fetch = fetch_json,
    deadline: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Run every request and return payloads keyed by role.

    Independent requests run on a small thread pool. The first failure sets a
    shared cancel event so the other request stops at its next backoff, then
    the failure is re-raised.
    """
    cancel_event = threading.Event()
    if len(requests_by_role) == 1:
        role, request = next(iter(requests_by_role.items()))
        return {role: fetch(request, cancel_event=cancel_event, deadline=deadline)}

    with ThreadPoolExecutor(max_workers=len(requests_by_role), thread_name_prefix="fetch") as pool:
        futures = {
            role: pool.submit(fetch, request, cancel_event=cancel_event, deadline=deadline)
            for role, request in requests_by_role.items()
        }
        done, _ = wait(futures.values(), return_when=FIRST_EXCEPTION)
        failed = next((f for f in done if f.exception() is not None), None)
        if failed is not None:
            cancel_event.set()
            raise failed.exception()
        payloads = {role: future.result() for role, future in futures.items()}
    return payloads


def run_build(settings: Optional[config.Settings] = None, *, fetch: Fetch = fetch_json) -> BuildResult:
    """
    Execute one build.

    Order: credential check, fetches, extraction, template read, render, atomic
    write. Any failure raises a WeatherSvgError subclass and leaves the
    previous output file untouched.
    """
    settings = settings or config.get_settings()
    api_key = require_api_key(settings)
    provider = ProviderKind(settings.provider)

    deadline = None
    if settings.run_timeout_ms:
        deadline = time.monotonic() + settings.run_timeout_ms / 1000

    logger.info("🌍 Fetching %s data...", "weather and time" if provider.needs_time_source else "weather")
    payloads = fetch_all(build_requests(settings, api_key), fetch=fetch, deadline=deadline)

    fields = extract(
        payloads["weather"],
        provider,
        time_payload=payloads.get("time"),
        timezone=settings.timezone,
    )

    logger.info("📄 Reading template %s", settings.template_path)
    template = load_template(settings.template_path)
    svg = render(template, fields, strict=settings.strict_placeholders)

    output_path = Path(settings.output_path)
    logger.info("💾 Writing %s", output_path)
    write_atomic(output_path, svg)
    return BuildResult(fields=fields, output_path=output_path)
