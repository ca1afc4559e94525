"""Logging configuration utilities."""

from __future__ import annotations

import hashlib
import logging
import sys
from collections.abc import Mapping
from typing import Any, Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_JSON_PRIMITIVES = (str, int, float, bool, type(None))


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure application wide logging handlers."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def fingerprint(secret: str) -> str:
    """Return a short, non-reversible tag for a secret suitable for log lines."""

    digest = hashlib.sha256(secret.encode("utf-8")).hexdigest()
    return digest[:12]


def _validate_flat_value(name: str, value: Any) -> None:
    if isinstance(value, _JSON_PRIMITIVES):
        return
    raise TypeError(f"Field '{name}' must be a flat JSON-compatible value")


def log_event(
    logger: logging.Logger,
    event: str,
    /,
    *,
    level: int = logging.INFO,
    meta: Mapping[str, Any] | None = None,
    **fields: Any,
) -> None:
    """Emit a structured log record whose ``extra`` carries ``event`` and ``fields``."""

    if not isinstance(event, str) or not event.strip():
        raise ValueError("event must be a non-empty string")

    extra: dict[str, Any] = {"event": event}
    for name, value in fields.items():
        _validate_flat_value(name, value)
        extra[name] = value
    if meta is not None:
        if not isinstance(meta, Mapping):
            raise TypeError("meta must be a mapping if provided")
        for name, value in meta.items():
            _validate_flat_value(f"meta.{name}", value)
        extra["meta"] = dict(meta)

    logger.log(level, event, extra=extra)


__all__ = ["LOG_FORMAT", "configure_logging", "fingerprint", "get_logger", "log_event"]
