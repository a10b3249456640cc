"""Console entry points; each returns a process exit code."""
from __future__ import annotations

from typing import Optional

from weather_svg import config
from weather_svg.dependency_report import run_report
from weather_svg.errors import FetchError, WeatherSvgError
from weather_svg.pipeline import run_build
from utils.logging_utils import get_tagged_logger, setup_logging

logger = get_tagged_logger(__name__, tag="weather_svg/cli")


def _load_settings(settings: Optional[config.Settings]) -> config.Settings:
    if settings is not None:
        return settings
    return config.load_settings()


def build_main(settings: Optional[config.Settings] = None) -> int:
    """Build the weather SVG once. 0 on success, 1 on any unrecoverable error."""
    setup_logging(level="INFO", job_name="build_svg")
    try:
        settings = _load_settings(settings)
        setup_logging(level=settings.log_level.upper(), job_name="build_svg", override_existing=True)
        result = run_build(settings)
    except FetchError as exc:
        logger.error("❌ Error building SVG: could not fetch %s after %d attempt(s): %s",
                     exc.url, exc.attempts, exc.last_reason)
        return 1
    except WeatherSvgError as exc:
        logger.error("❌ Error building SVG: %s", exc)
        return 1

    fields = result.fields
    logger.info("✅ SVG generated successfully: %s", result.output_path)
    logger.info("   Temperature: %s°C", fields.temperature_celsius)
    logger.info("   Weather: %s %s", fields.icon_glyph, fields.summary_text)
    logger.info("   Day: %s", fields.day_name)
    logger.info("   Updated: %s", fields.formatted_timestamp)
    return 0


def report_main(settings: Optional[config.Settings] = None) -> int:
    """Write the dependency report. Exit 0 whether or not updates exist."""
    setup_logging(level="INFO", job_name="dependency_report")
    try:
        settings = _load_settings(settings)
        setup_logging(level=settings.log_level.upper(), job_name="dependency_report", override_existing=True)
        has_updates = run_report(settings)
    except WeatherSvgError as exc:
        logger.error("Fatal error: %s", exc)
        return 1
    if has_updates:
        logger.info("📦 Updates available; see %s", settings.report_path)
    return 0
