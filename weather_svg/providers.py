"""Map weather/time provider payloads onto the fields shown in the SVG card."""
from __future__ import annotations

import datetime as dt
import enum
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from weather_svg.errors import ConfigurationError, ExtractionError
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="weather_svg/providers")

DEFAULT_ICON = "🌤️"
DEFAULT_TIMEZONE = "Asia/Kolkata"

# Index 0 is Sunday, matching the day_of_week field of the World Time API.
DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")
MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

PIRATE_WEATHER_ICONS = {
    "clear-day": "☀️",
    "clear-night": "🌙",
    "rain": "🌧️",
    "snow": "❄️",
    "sleet": "🌨️",
    "wind": "💨",
    "fog": "🌫️",
    "cloudy": "☁️",
    "partly-cloudy-day": "⛅",
    "partly-cloudy-night": "☁️",
}

# OpenWeatherMap icon ids, without the trailing d/n except where day and night differ.
OPENWEATHERMAP_ICONS = {
    "01d": "☀️",
    "01n": "🌙",
    "02d": "⛅",
    "02n": "☁️",
    "03": "☁️",
    "04": "☁️",
    "09": "🌧️",
    "10": "🌦️",
    "11": "⛈️",
    "13": "❄️",
    "50": "🌫️",
}


class ProviderKind(enum.Enum):
    """Supported payload shapes."""
    PIRATE_WEATHER = "pirate_weather"  # weather only; time comes from a separate call
    OPENWEATHERMAP = "openweathermap"  # weather plus UTC timestamp and offset

    @property
    def needs_time_source(self) -> bool:
        return self is ProviderKind.PIRATE_WEATHER


@dataclass(frozen=True)
class DisplayFields:
    """Values substituted into the template for one run."""
    temperature_celsius: int
    summary_text: str
    icon_glyph: str
    day_name: str
    formatted_timestamp: str

    def placeholders(self) -> Dict[str, str]:
        """Placeholder name -> replacement text."""
        return {
            "TEMPERATURE": str(self.temperature_celsius),
            "WEATHER_SUMMARY": self.summary_text,
            "WEATHER_ICON": self.icon_glyph,
            "DAY_NAME": self.day_name,
            "UPDATE_TIME": self.formatted_timestamp,
        }


def extract(
    payload: Mapping[str, Any],
    provider: ProviderKind,
    *,
    time_payload: Optional[Mapping[str, Any]] = None,
    timezone: str = DEFAULT_TIMEZONE,
) -> DisplayFields:
    """
    Build DisplayFields from a provider payload.

    Pirate Weather needs `time_payload` (a World Time API document); the
    card's time is shown in `timezone`. OpenWeatherMap carries its own
    timestamp and UTC offset, so `timezone` is not used for it.

    Raises ExtractionError naming the first missing field.
    """
    if provider is ProviderKind.PIRATE_WEATHER:
        return _extract_pirate_weather(payload, time_payload, timezone)
    if provider is ProviderKind.OPENWEATHERMAP:
        return _extract_openweathermap(payload)
    raise ValueError(f"Unsupported provider {provider!r}")


def _extract_pirate_weather(
    payload: Mapping[str, Any],
    time_payload: Optional[Mapping[str, Any]],
    timezone: str,
) -> DisplayFields:
    temperature = _require(payload, "currently.temperature")
    summary = _require(payload, "currently.summary")
    icon_code = _require(payload, "currently.icon")

    if time_payload is None:
        raise ExtractionError("time", "Pirate Weather needs a time-service payload")
    raw_datetime = _require(time_payload, "datetime")
    day_index = _require(time_payload, "day_of_week")

    try:
        instant = dt.datetime.fromisoformat(str(raw_datetime))
    except ValueError as exc:
        raise ExtractionError("datetime", f"not an ISO 8601 timestamp: {raw_datetime!r}") from exc
    if instant.tzinfo is None:
        raise ExtractionError("datetime", f"timestamp has no UTC offset: {raw_datetime!r}")

    local = instant.astimezone(_zone(timezone))
    return DisplayFields(
        temperature_celsius=round_temperature(temperature),
        summary_text=capitalize_summary(str(summary)),
        icon_glyph=PIRATE_WEATHER_ICONS.get(str(icon_code), DEFAULT_ICON),
        day_name=day_name(day_index),
        formatted_timestamp=format_timestamp(local),
    )


def _extract_openweathermap(payload: Mapping[str, Any]) -> DisplayFields:
    temperature = _require(payload, "main.temp")
    summary = _require(payload, "weather.0.description")
    icon_code = _require(payload, "weather.0.icon")
    epoch = _require(payload, "dt")
    offset = _require(payload, "timezone")

    try:
        utc = dt.datetime.fromtimestamp(int(epoch), tz=dt.timezone.utc)
        local = utc.astimezone(dt.timezone(dt.timedelta(seconds=int(offset))))
    except (TypeError, ValueError, OverflowError) as exc:
        raise ExtractionError("dt", f"bad timestamp/offset {epoch!r}/{offset!r}") from exc

    # Python weekday(): Monday=0; the day table starts on Sunday.
    return DisplayFields(
        temperature_celsius=round_temperature(temperature),
        summary_text=capitalize_summary(str(summary)),
        icon_glyph=openweathermap_icon(str(icon_code)),
        day_name=DAY_NAMES[(local.weekday() + 1) % 7],
        formatted_timestamp=format_timestamp(local),
    )


def round_temperature(value: Any) -> int:
    """Round half away from zero: 23.5 -> 24, -2.5 -> -3."""
    try:
        return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except (InvalidOperation, ValueError) as exc:
        raise ExtractionError("temperature", f"not a number: {value!r}") from exc


def capitalize_summary(text: str) -> str:
    """Title-case an all-lowercase summary; leave provider casing alone otherwise."""
    if text != text.lower():
        return text
    return " ".join(word[:1].upper() + word[1:] for word in text.split(" "))


def day_name(index: Any) -> str:
    try:
        position = int(index)
    except (TypeError, ValueError) as exc:
        raise ExtractionError("day_of_week", f"not an integer: {index!r}") from exc
    if not 0 <= position < len(DAY_NAMES):
        raise ExtractionError("day_of_week", f"out of range 0-6: {position}")
    return DAY_NAMES[position]


def openweathermap_icon(code: str) -> str:
    if code in OPENWEATHERMAP_ICONS:
        return OPENWEATHERMAP_ICONS[code]
    return OPENWEATHERMAP_ICONS.get(code[:2], DEFAULT_ICON)


def format_timestamp(moment: dt.datetime) -> str:
    """'18 Oct 2026, 14:05', independent of the process locale."""
    return f"{moment.day} {MONTH_ABBR[moment.month - 1]} {moment.year}, {moment:%H:%M}"


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(f"Unknown timezone {name!r}") from exc


def _require(payload: Any, path: str) -> Any:
    """Walk a dotted path through dicts and lists; a None leaf counts as missing."""
    node = payload
    for part in path.split("."):
        if isinstance(node, Mapping) and part in node:
            node = node[part]
        elif isinstance(node, list) and part.isdigit() and int(part) < len(node):
            node = node[int(part)]
        else:
            logger.debug("Missing %s in provider payload", path)
            raise ExtractionError(path)
    if node is None:
        raise ExtractionError(path)
    return node
