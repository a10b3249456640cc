"""Exceptions raised by the build pipeline; all of them end the run with exit code 1."""

from __future__ import annotations


class WeatherSvgError(Exception):
    """Base class for every unrecoverable error of a build or report run."""


class ConfigurationError(WeatherSvgError):
    """Required configuration (e.g. the API key) is missing or invalid."""


class FetchError(WeatherSvgError):
    """All attempts to fetch a JSON document failed.

    `kind` is the class of the last failure: "status", "parse", "network",
    "timeout", or "cancelled"/"deadline" when the run was stopped between
    attempts.
    """

    def __init__(self, *, kind: str, attempts: int, last_reason: str, url: str):
        self.kind = kind
        self.attempts = attempts
        self.last_reason = last_reason
        self.url = url
        super().__init__(
            f"GET {url} failed after {attempts} attempt(s) ({kind}): {last_reason}"
        )


class ExtractionError(WeatherSvgError):
    """The provider payload lacks a field needed for display."""

    def __init__(self, missing_field: str, detail: str | None = None):
        self.missing_field = missing_field
        message = f"Payload is missing required field '{missing_field}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class TemplateError(WeatherSvgError):
    """The template could not be read, or (strict mode) left placeholders unresolved."""


class OutputWriteError(WeatherSvgError):
    """The rendered output could not be written."""
