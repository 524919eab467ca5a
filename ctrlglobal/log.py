"""Process-wide logger facade.

Library components log through ``getLogger()`` unless a logger is passed to
them explicitly. ``initialize()`` replaces the shared logger (CLI, apps).
"""
from __future__ import annotations

import logging
from typing import Any, Mapping

from ctrlglobal.logging_setup import createLogger

DEFAULT_NAME = "ctrlglobal"

_instance: logging.Logger | None = None


def initialize(name: str = DEFAULT_NAME, config: Mapping[str, Any] | None = None) -> logging.Logger:
    global _instance
    _instance = createLogger(name, config)
    return _instance


def getLogger() -> logging.Logger:
    global _instance
    if _instance is None:
        _instance = createLogger(DEFAULT_NAME)
    return _instance


def debug(message: str) -> None:
    getLogger().debug(message)


def info(message: str) -> None:
    getLogger().info(message)


def warning(message: str) -> None:
    getLogger().warning(message)


def error(message: str) -> None:
    getLogger().error(message)


def fatal(message: str) -> None:
    getLogger().critical(message)
