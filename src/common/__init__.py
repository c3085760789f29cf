"""Shared configuration and structured logging."""

from .config import Settings, get_settings
from .logger import Logger, capture_stack, new_logger
from .logging import build_handler, get_logger, parse_level, setup_logging
from .request_context import (
    IDProvider,
    UUIDProvider,
    bind_request_id,
    get_request_id,
    reset_request_id,
)

__all__ = [
    "IDProvider",
    "Logger",
    "Settings",
    "UUIDProvider",
    "bind_request_id",
    "build_handler",
    "capture_stack",
    "get_logger",
    "get_request_id",
    "get_settings",
    "new_logger",
    "parse_level",
    "reset_request_id",
    "setup_logging",
]
