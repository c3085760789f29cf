"""
Logger Wrapper
==============
Immutable facade over a level-filtering structlog bound logger.

Every with_* call returns a new Logger; the receiver keeps its attributes,
so a Logger can be shared freely across threads and request tasks.

    log = setup_logging(settings)
    ctx, req_log = log.with_request_id()
    upload_log = req_log.with_component("uploader").with_operation("put")
    upload_log.log_error("upload failed", err)

log_error and fatal use no request context: whether a record is emitted
depends only on the minimum level and the bound attributes.
"""

from __future__ import annotations

import logging
import os
import sys
import time
import traceback
from contextlib import contextmanager
from contextvars import Context
from datetime import timedelta
from typing import IO, Any, Callable, Dict, Iterator, NoReturn, Optional, Tuple, Union

import structlog

from .logging import build_handler, escape_attrs, parse_level, unescape_attrs
from .request_context import IDProvider, UUIDProvider, new_request_context

STACK_LIMIT = 4096
FATAL_EXIT_CODE = 1


def capture_stack(limit: int = STACK_LIMIT, skip: int = 1) -> str:
    """
    Text of the caller's stack, oldest frame first.

    Innermost frames are kept when the text exceeds `limit` bytes.
    """
    frames = traceback.format_stack(sys._getframe(skip + 1))
    kept = []
    size = 0
    for frame in reversed(frames):
        size += len(frame.encode("utf-8"))
        if size > limit:
            break
        kept.append(frame)
    if not kept and frames:
        return frames[-1].encode("utf-8")[:limit].decode("utf-8", errors="ignore")
    return "".join(reversed(kept))


class Logger:
    """Leveled structured logger with immutable bound attributes."""

    __slots__ = ("_log", "_min_level", "_ids", "_exit")

    def __init__(
        self,
        handler: Any,
        min_level: int,
        id_provider: Optional[IDProvider] = None,
        exit_func: Optional[Callable[[int], Any]] = None,
    ):
        self._log = handler
        self._min_level = min_level
        self._ids = id_provider or UUIDProvider()
        self._exit = exit_func or os._exit

    def _derive(self, **attrs: Any) -> "Logger":
        return Logger(
            self._log.bind(**escape_attrs(attrs)), self._min_level, self._ids, self._exit
        )

    # --- Derivation ---

    def bind(self, **attrs: Any) -> "Logger":
        return self._derive(**attrs)

    def with_component(self, component: str) -> "Logger":
        return self._derive(component=component)

    def with_operation(self, operation: str) -> "Logger":
        return self._derive(operation=operation)

    def with_request_id(self, ctx: Optional[Context] = None) -> Tuple[Context, "Logger"]:
        """
        Start a request scope.

        Returns a copy of `ctx` (or of the running context) holding a fresh
        correlation id, and a Logger that carries it as `request_id`.
        """
        derived, request_id = new_request_context(self._ids, ctx)
        return derived, self._derive(request_id=request_id)

    @property
    def attributes(self) -> Dict[str, Any]:
        return dict(unescape_attrs(structlog.get_context(self._log)))

    def is_enabled_for(self, level: Union[int, str]) -> bool:
        return parse_level(level) >= self._min_level

    # --- Emission ---

    def debug(self, msg: str, **attrs: Any) -> None:
        self._log.debug(msg, **escape_attrs(attrs))

    def info(self, msg: str, **attrs: Any) -> None:
        self._log.info(msg, **escape_attrs(attrs))

    def warning(self, msg: str, **attrs: Any) -> None:
        self._log.warning(msg, **escape_attrs(attrs))

    def error(self, msg: str, **attrs: Any) -> None:
        self._log.error(msg, **escape_attrs(attrs))

    def log_error(self, msg: str, err: Optional[BaseException] = None, **attrs: Any) -> None:
        """
        Emit an error record.

        With `err`, adds its text as `error`; when debug is enabled, also
        adds a `stack` snapshot of the caller.
        """
        if err is not None:
            attrs["error"] = str(err)
            # Level check must precede capture
            if self.is_enabled_for(logging.DEBUG):
                attrs["stack"] = capture_stack(skip=1)
        self._log.error(msg, **escape_attrs(attrs))

    def fatal(self, msg: str, err: Optional[BaseException] = None, **attrs: Any) -> NoReturn:
        """
        Log like log_error, then terminate the process with status 1.

        Only for conditions that are unrecoverable for the whole process,
        never for a failed request.
        """
        self.log_error(msg, err, **attrs)
        self._exit(FATAL_EXIT_CODE)
        # exit_func returned (a test hook); still never hand control back
        raise SystemExit(FATAL_EXIT_CODE)

    # --- Timing ---

    def time_track(self, start: float, name: str, **attrs: Any) -> None:
        """Emit "<name> completed" at debug with the time since `start` (a perf_counter reading)."""
        attrs["duration"] = timedelta(seconds=time.perf_counter() - start)
        self._log.debug(f"{name} completed", **escape_attrs(attrs))

    @contextmanager
    def timed(self, name: str, **attrs: Any) -> Iterator[None]:
        """
        Usage:
            with log.timed("resize", width=640):
                image = resize(image)
        """
        start = time.perf_counter()
        try:
            yield
        finally:
            self.time_track(start, name, **attrs)

    def __repr__(self) -> str:
        return f"Logger({self.attributes!r})"


def new_logger(
    environment: str,
    min_level: Union[int, str],
    stream: Optional[IO[str]] = None,
    id_provider: Optional[IDProvider] = None,
    exit_func: Optional[Callable[[int], Any]] = None,
) -> Logger:
    """Base Logger for an environment tag and minimum level."""
    level = parse_level(min_level)
    return Logger(
        build_handler(environment, level, stream),
        level,
        id_provider=id_provider,
        exit_func=exit_func,
    )
