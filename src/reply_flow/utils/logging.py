"""Logging setup shared by the engine, the CLI and the tests."""

from __future__ import annotations

import logging
from logging import Logger
from typing import Iterable, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def configure_logging(
    level: int | str = logging.INFO,
    *,
    name: str = "reply_flow",
    propagate: bool = False,
    extra_loggers: Optional[Iterable[str]] = None,
) -> Logger:
    """Attach one stream handler to ``name`` (and ``extra_loggers``) and return it.

    Module loggers under ``reply_flow.*`` inherit the handler attached to the
    package logger. Calling this again only updates the level.
    """

    numeric = resolve_level(level)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    targets = [name, *(extra_loggers or ())]
    for target_name in targets:
        target = logging.getLogger(target_name)
        if not any(isinstance(existing, logging.StreamHandler) for existing in target.handlers):
            target.addHandler(handler)
        target.setLevel(numeric)
        target.propagate = propagate
    return logging.getLogger(name)


__all__ = ["LOG_FORMAT", "configure_logging", "resolve_level"]
