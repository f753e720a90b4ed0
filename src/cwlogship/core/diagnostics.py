"""
Structured internal diagnostics.

All pipeline components report through ``debug``, ``warn`` and ``error``.
Records go to the stdlib logger ``cwlogship`` as compact JSON objects so they
stay greppable next to the shipped application's own output. ``debug`` output
is gated by the debug flag, which is read from settings on first use and
cached; ``configure`` overrides it explicitly.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import orjson

LOGGER_NAME = "cwlogship"

_logger = logging.getLogger(LOGGER_NAME)

# Cached debug flag; None means "not resolved yet"
_debug_enabled: bool | None = None


def configure(*, debug: bool) -> None:
    """Set the debug flag explicitly, bypassing settings lookup."""
    global _debug_enabled
    _debug_enabled = bool(debug)


def is_debug_enabled() -> bool:
    global _debug_enabled
    if _debug_enabled is None:
        try:
            from .settings import Settings

            _debug_enabled = bool(Settings().debug)
        except Exception:
            _debug_enabled = False
    return _debug_enabled


def _render(component: str, message: str, fields: dict[str, Any]) -> str:
    payload: dict[str, Any] = {"component": component, "message": message}
    payload.update(fields)
    try:
        return orjson.dumps(payload, default=str).decode("utf-8")
    except TypeError:
        return f"{component}: {message} {fields!r}"


def _emit(level: int, component: str, message: str, fields: dict[str, Any]) -> None:
    if not _logger.isEnabledFor(level):
        return
    _logger.log(level, _render(component, message, fields))


def debug(component: str, message: str, **fields: Any) -> None:
    """Emit a protocol-level trace line when debug logging is on."""
    if not is_debug_enabled():
        return
    _emit(logging.DEBUG, component, message, fields)


def warn(component: str, message: str, **fields: Any) -> None:
    _emit(logging.WARNING, component, message, fields)


def error(component: str, message: str, **fields: Any) -> None:
    _emit(logging.ERROR, component, message, fields)


def install_stderr_handler(*, debug: bool = False) -> logging.Handler:
    """Attach a stderr handler to the ``cwlogship`` logger.

    Used by the CLI; library users are expected to configure logging
    themselves. Calling it again replaces the previously installed handler.
    """
    for existing in list(_logger.handlers):
        if getattr(existing, "_cwlogship_owned", False):
            _logger.removeHandler(existing)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    handler._cwlogship_owned = True  # type: ignore[attr-defined]
    _logger.addHandler(handler)
    _logger.setLevel(logging.DEBUG if debug else logging.WARNING)
    _logger.propagate = False
    configure(debug=debug)
    return handler


__all__ = [
    "LOGGER_NAME",
    "configure",
    "debug",
    "error",
    "install_stderr_handler",
    "is_debug_enabled",
    "warn",
]
