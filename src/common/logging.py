"""
Structured Logging with Context
================================
Handler selection and process-wide setup for the structlog pipeline.

- production: one JSON object per line, always with a `time` key
- anything else: one logfmt line per record, without `time`

Level filtering happens in the bound logger class itself
(make_filtering_bound_logger), so a call below the minimum level is a no-op
and none of the processors below ever run for it.

Writes go synchronously to the stream. A slow consumer blocks the caller;
there is no buffering and no async dispatch.
"""

from __future__ import annotations

import logging
import sys
from datetime import timedelta
from typing import IO, TYPE_CHECKING, Any, Optional, Union

import structlog

if TYPE_CHECKING:
    from .config import Settings
    from .logger import Logger

PRODUCTION = "production"

_LEVEL_NAMES = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

_RENDERED_LEVELS = {"warning": "WARN"}

# structlog reserves "event" for the message; a caller's own "event"
# attribute travels under this key and is restored by EventRenamer.
EVENT_KEY = "event"
ESCAPED_EVENT_KEY = "_event"


def escape_attrs(attrs: dict) -> dict:
    """Move a caller `event` attribute out of structlog's message slot."""
    if EVENT_KEY not in attrs:
        return attrs
    escaped = dict(attrs)
    escaped[ESCAPED_EVENT_KEY] = escaped.pop(EVENT_KEY)
    return escaped


def unescape_attrs(attrs: dict) -> dict:
    if ESCAPED_EVENT_KEY not in attrs:
        return attrs
    restored = dict(attrs)
    restored[EVENT_KEY] = restored.pop(ESCAPED_EVENT_KEY)
    return restored


def parse_level(level: Union[int, str]) -> int:
    """Resolve a level name or number; unknown names fall back to INFO."""
    if isinstance(level, int):
        return level
    return _LEVEL_NAMES.get(level.strip().lower(), logging.INFO)


class _SafePrintLogger(structlog.PrintLogger):
    """PrintLogger that drops the record when the stream cannot be written."""

    def msg(self, message: str) -> None:
        try:
            super().msg(message)
        except (OSError, ValueError):
            # Logging never fails the caller; the record is dropped.
            return

    log = debug = info = warn = warning = msg
    fatal = failure = err = error = critical = exception = msg


# =============================================================================
# Attribute rewriting
# =============================================================================

def _format_duration(value: timedelta) -> str:
    seconds = value.total_seconds()
    for unit, scale in (("s", 1.0), ("ms", 1e-3), ("µs", 1e-6)):
        if abs(seconds) >= scale:
            return f"{seconds / scale:.3f}".rstrip("0").rstrip(".") + unit
    return "0s"


def _uppercase_level(_, __, event_dict: dict) -> dict:
    level = event_dict.get("level")
    if isinstance(level, str):
        event_dict["level"] = _RENDERED_LEVELS.get(level, level.upper())
    return event_dict


def _durations_as_nanoseconds(_, __, event_dict: dict) -> dict:
    for key, value in event_dict.items():
        if isinstance(value, timedelta):
            event_dict[key] = (value // timedelta(microseconds=1)) * 1000
    return event_dict


def _durations_as_text(_, __, event_dict: dict) -> dict:
    for key, value in event_dict.items():
        if isinstance(value, timedelta):
            event_dict[key] = _format_duration(value)
    return event_dict


def _single_line(_, __, line: str) -> str:
    return line.replace("\r", "\\r").replace("\n", "\\n")


def build_processors(environment: str) -> list:
    """Processor chain for the given environment tag."""
    if environment == PRODUCTION:
        return [
            structlog.processors.add_log_level,
            _uppercase_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="time"),
            _durations_as_nanoseconds,
            structlog.processors.EventRenamer("msg", replace_by=ESCAPED_EVENT_KEY),
            structlog.processors.JSONRenderer(),
        ]

    # No timestamp in text output
    return [
        structlog.processors.add_log_level,
        _uppercase_level,
        _durations_as_text,
        structlog.processors.EventRenamer("msg", replace_by=ESCAPED_EVENT_KEY),
        structlog.processors.LogfmtRenderer(
            key_order=["level", "msg"],
            drop_missing=True,
            bool_as_flag=False,
        ),
        _single_line,
    ]


def build_handler(
    environment: str,
    min_level: Union[int, str],
    stream: Optional[IO[str]] = None,
) -> Any:
    """
    Build the level-filtering structlog bound logger that backs a Logger.

    Args:
        environment: deployment tag; "production" selects JSON
        min_level: stdlib level number or name; lower records are suppressed
        stream: destination, stdout by default
    """
    wrapper_class = structlog.make_filtering_bound_logger(parse_level(min_level))
    return wrapper_class(
        _SafePrintLogger(stream if stream is not None else sys.stdout),
        processors=build_processors(environment),
        context={},
    )


def setup_logging(settings: Optional["Settings"] = None) -> "Logger":
    """
    Configure structured logging for the application.

    Returns the process-wide base Logger. Module-level loggers from
    get_logger() share the same encoding and minimum level.
    """
    from .config import get_settings
    from .logger import new_logger

    settings = settings or get_settings()
    level = settings.min_level

    structlog.configure(
        processors=build_processors(settings.environment),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=lambda *args: _SafePrintLogger(sys.stdout),
        cache_logger_on_first_use=True,
    )

    # Also configure standard logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    return new_logger(settings.environment, level)


def get_logger(name: str = __name__) -> structlog.typing.FilteringBoundLogger:
    """
    Get a logger instance with the given name bound as `logger`.

    Unlike Logger, this is structlog's own bound logger: a caller attribute
    named `event` must be passed as `_event`.
    """
    return structlog.get_logger().bind(logger=name)
