"""Centralized logging helpers.

Provides one-shot logging configuration, structured ``extra`` payloads for
DEBUG traces, and a small timer used to report durations of subprocess and
registry calls.
"""
from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, Iterable, Optional

from common.errors import OutputWriteError
from constants import Constants

_CONTEXT_KEYS = ("event", "component", "action", "outcome", "target", "duration_ms")


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Configure the root logger once.

    Level precedence: explicit argument, then the LAZYPIN_LOG_LEVEL
    environment variable, then INFO.

    Args:
        level: Optional level name (e.g. "DEBUG").
        log_file: Optional path for an additional file handler; a path
            that already has one is not added twice.

    Raises:
        OutputWriteError: The log file cannot be opened.
    """
    level_name = (level or os.environ.get(Constants.ENV_LOG_LEVEL) or "INFO").upper()
    level_value = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    if not any(getattr(h, "_lazypin", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
        handler._lazypin = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(level_value)

    if not log_file:
        return
    path = os.path.abspath(log_file)
    if any(getattr(h, "_lazypin_file", None) == path for h in root.handlers):
        return
    try:
        file_handler = logging.FileHandler(path, encoding="utf-8")
    except OSError as exc:
        raise OutputWriteError(f"Cannot open log file {log_file}: {exc}") from exc
    file_handler.setFormatter(logging.Formatter(Constants.LOG_FILE_FORMAT))
    file_handler._lazypin = True  # type: ignore[attr-defined]
    file_handler._lazypin_file = path  # type: ignore[attr-defined]
    root.addHandler(file_handler)


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records would be emitted by ``logger``."""
    return logger.isEnabledFor(logging.DEBUG)


def extra_context(**kwargs: Any) -> Dict[str, Any]:
    """Build an ``extra`` mapping for structured log records.

    None values are dropped; well-known keys are kept at top level and
    everything else is nested under ``context`` so it never collides with
    LogRecord attributes.
    """
    payload: Dict[str, Any] = {}
    context: Dict[str, Any] = {}
    for key, value in kwargs.items():
        if value is None:
            continue
        if key in _CONTEXT_KEYS:
            payload[key] = value
        else:
            context[key] = value
    if context:
        payload["context"] = context
    return payload


def log_discovered_files(logger: logging.Logger, component: str, discovered: Dict[str, Iterable[str]]) -> None:
    """DEBUG-log the files a scanner discovered, grouped by kind."""
    if not is_debug_enabled(logger):
        return
    for kind, paths in discovered.items():
        paths = list(paths)
        logger.debug(
            "Discovered %d %s file(s)",
            len(paths),
            kind,
            extra=extra_context(event="discover", component=component, action=kind, count=len(paths)),
        )


def short_ref(ref: Optional[str]) -> str:
    """Shorten a ref for progress lines: full SHAs become 8 chars, empty becomes HEAD."""
    if not ref:
        return "HEAD"
    if len(ref) >= 12 and all(c in "0123456789abcdef" for c in ref):
        return ref[:8]
    return ref


class Timer:
    """Context manager measuring wall-clock duration."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.monotonic()
        self._end = None
        return self

    def __exit__(self, *exc: Any) -> None:
        self._end = time.monotonic()

    def duration_ms(self) -> int:
        """Elapsed milliseconds, live while inside the block."""
        end = self._end if self._end is not None else time.monotonic()
        return int((end - self._start) * 1000)
