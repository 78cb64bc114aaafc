"""
Construction-time checks for injected collaborators and configuration.

Every service validates its inputs in ``__init__`` and fails fast with a
:class:`DiagnosticsConfigError` naming the offending field, so a misconfigured
service can never be half-built and fail later during analysis.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Sequence

from expression_diagnostics.errors import DiagnosticsConfigError

logger = logging.getLogger(__name__)

LOGGER_METHODS = ("debug", "info", "warning", "error")


def _has_methods(obj: Any, methods: Iterable[str]) -> bool:
    return all(callable(getattr(obj, name, None)) for name in methods)


def validate_logger(candidate: Any, default: logging.Logger) -> Any:
    """
    Return ``candidate`` if it is a usable logger, ``default`` when it is None.

    Raises:
        DiagnosticsConfigError: when a logger is supplied but lacks one of
            debug/info/warning/error.
    """
    if candidate is None:
        return default
    missing = [name for name in LOGGER_METHODS if not callable(getattr(candidate, name, None))]
    if missing:
        raise DiagnosticsConfigError(
            f"logger is missing required method(s): {', '.join(missing)}"
        )
    return candidate


def require_collaborator(obj: Any, name: str, methods: Sequence[str]) -> Any:
    """Ensure a collaborator is present and exposes ``methods``."""
    if obj is None:
        raise DiagnosticsConfigError(f"{name} is required")
    if not _has_methods(obj, methods):
        missing = [m for m in methods if not callable(getattr(obj, m, None))]
        raise DiagnosticsConfigError(
            f"{name} is missing required method(s): {', '.join(missing)}"
        )
    return obj


def optional_collaborator(obj: Any, name: str, methods: Sequence[str]) -> Optional[Any]:
    if obj is None:
        return None
    return require_collaborator(obj, name, methods)


def require_config(config: Any, owner: str) -> Any:
    if config is None:
        raise DiagnosticsConfigError(f"{owner}: config is required")
    return config


def require_numeric(config: Any, fields: Iterable[str], owner: str, log: Any = None) -> None:
    """
    Check that every named config field holds a real number.

    The failure is logged before raising so it also shows up in run logs.
    """
    log = log or logger
    for field_name in fields:
        value = getattr(config, field_name, None)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            message = f"{owner}: config.{field_name} must be a number (got {value!r})"
            log.error(message)
            raise DiagnosticsConfigError(message)
