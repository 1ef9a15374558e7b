"""Lightweight conversion telemetry.

Events carry scalar attributes only. Article text and rendered documents never
leave the process: their keys are redacted, raw bytes are reduced to a length
and URLs lose their query string and fragment.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import PurePath
from typing import Any, Literal, Protocol
from urllib.parse import urlsplit, urlunsplit

import structlog

from backend.app.logging_config import TELEMETRY_LOGGER_NAME

TelemetryValue = bool | int | float | str | None

REDACTED = "[redacted]"
_REDACTED_KEY_FRAGMENTS: tuple[str, ...] = (
    "api_key",
    "authorization",
    "body",
    "content",
    "cookie",
    "html",
    "markdown",
    "secret",
    "text",
    "token",
)
_MAX_TEXT_LENGTH = 160


class TelemetrySink(Protocol):
    def emit(self, *, event_name: str, attributes: Mapping[str, TelemetryValue]) -> None:
        ...


class DiscardingSink:
    def emit(self, *, event_name: str, attributes: Mapping[str, TelemetryValue]) -> None:
        _ = (event_name, attributes)


class TelemetryLogSink:
    """Writes each event as one structured record on the telemetry logger."""

    def __init__(self, logger_name: str = TELEMETRY_LOGGER_NAME) -> None:
        self._logger = structlog.get_logger(logger_name)

    def emit(self, *, event_name: str, attributes: Mapping[str, TelemetryValue]) -> None:
        self._logger.info("telemetry", telemetry_event=event_name, **dict(attributes))


@dataclass(frozen=True)
class TelemetryClient:
    enabled: bool
    sink: TelemetrySink

    @classmethod
    def disabled(cls) -> TelemetryClient:
        return cls(enabled=False, sink=DiscardingSink())

    def emit(self, event_name: str, **attributes: Any) -> None:
        if not self.enabled:
            return
        self.sink.emit(event_name=event_name, attributes=scrub_attributes(attributes))


def build_telemetry_client(*, enabled: bool, sink: Literal["none", "log"]) -> TelemetryClient:
    if enabled and sink == "log":
        return TelemetryClient(enabled=True, sink=TelemetryLogSink())
    if enabled and sink != "none":
        logging.getLogger(TELEMETRY_LOGGER_NAME).warning(
            "unsupported telemetry sink requested; disabling telemetry sink=%s",
            sink,
        )
    return TelemetryClient.disabled()


def scrub_attributes(attributes: Mapping[str, Any]) -> dict[str, TelemetryValue]:
    scrubbed: dict[str, TelemetryValue] = {}
    for raw_key, raw_value in attributes.items():
        key = str(raw_key).strip().lower()
        if not key:
            continue
        if any(fragment in key for fragment in _REDACTED_KEY_FRAGMENTS):
            scrubbed[key] = REDACTED
        elif key.endswith("url") and isinstance(raw_value, str):
            scrubbed[key] = _clip(strip_url_query(raw_value))
        else:
            scrubbed[key] = _scalar(raw_value)
    return scrubbed


def strip_url_query(url: str) -> str:
    # Article links routinely carry session or tracking tokens in the query.
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.query and not parts.fragment:
        return url
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def _scalar(value: Any) -> TelemetryValue:
    if value is None or isinstance(value, bool | int | float):
        return value
    if isinstance(value, str):
        return _clip(value)
    if isinstance(value, bytes | bytearray | memoryview):
        return len(value)
    if isinstance(value, PurePath):
        return value.name
    return type(value).__name__


def _clip(text: str) -> str:
    compact = " ".join(text.split())
    if len(compact) <= _MAX_TEXT_LENGTH:
        return compact
    return f"{compact[:_MAX_TEXT_LENGTH]}..."
