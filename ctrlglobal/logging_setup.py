from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

from ctrlglobal.domain.error_codes import ErrorCode
from ctrlglobal.errors import ConfigurationError

LINE_FORMAT = "%(asctime)s %(levelname)s comp=%(component)s msg=%(message)s"
LINE_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"


class EnsureFieldsFilter(logging.Filter):
    """
    Назначение:
        Гарантирует наличие полей component и runId в LogRecord,
        чтобы форматтер не падал KeyError.
    """

    def __init__(self, defaultComponent: str = "core", runId: str | None = None):
        super().__init__()
        self.defaultComponent = defaultComponent
        self.runId = runId

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "component"):
            record.component = self.defaultComponent
        if not hasattr(record, "runId"):
            record.runId = self.runId
        return True


class JsonFormatter(logging.Formatter):
    """Одна JSON-строка на запись: ts, level, logger, component, msg (+ runId, exc)."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "component": getattr(record, "component", None),
            "msg": record.getMessage(),
        }
        runId = getattr(record, "runId", None)
        if runId:
            payload["runId"] = runId
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def mapLogLevel(levelName: str) -> int:
    """
    Назначение:
        Преобразует строковый уровень логирования в logging level.

    Входные данные:
        levelName: str
            debug|info|warn|warning|error|fatal (без учёта регистра)
    """
    value = (levelName or "").strip().upper()
    if value == "DEBUG":
        return logging.DEBUG
    if value == "INFO":
        return logging.INFO
    if value in ("WARN", "WARNING"):
        return logging.WARNING
    if value == "ERROR":
        return logging.ERROR
    if value in ("FATAL", "CRITICAL"):
        return logging.CRITICAL
    raise ValueError(f"Unsupported log level: {levelName}")


def buildFormatter(formatName: str | None) -> logging.Formatter:
    if (formatName or "json").lower() == "line":
        return logging.Formatter(fmt=LINE_FORMAT, datefmt=LINE_DATEFMT)
    return JsonFormatter()


def createLogger(name: str = "ctrlglobal", config: Mapping[str, Any] | None = None) -> logging.Logger:
    """
    Назначение:
        Создаёт (пересоздаёт) именованный логгер по конфигу.

    Входные данные:
        name: str
        config: {
            "format": "json" | "line",
            "handlers": [{"type": "console" | "file", "level": str, "path": str | None}],
        }
            По умолчанию один console-хендлер уровня info в формате json.

    Поведение:
        - Существующие хендлеры логгера удаляются, propagate выключается.
        - type=file без path и неизвестный type -> ConfigurationError.
    """
    config = config or {}
    handlers = config.get("handlers") or [{"type": "console", "level": "info"}]
    formatter = buildFormatter(config.get("format"))

    logger = logging.getLogger(name)
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    logger.propagate = False

    minLevel = logging.CRITICAL
    for spec in handlers:
        handlerType = spec.get("type", "console")
        try:
            level = mapLogLevel(spec.get("level") or "info")
        except ValueError as exc:
            raise ConfigurationError(str(exc), code=ErrorCode.INVALID_CONFIG) from exc

        if handlerType == "console":
            handler: logging.Handler = logging.StreamHandler(sys.stderr)
        elif handlerType == "file":
            path = spec.get("path")
            if not path:
                raise ConfigurationError("Handler type is file but path is empty")
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(path, encoding="utf-8")
        else:
            raise ConfigurationError(f"Invalid handler type: {handlerType}")

        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(EnsureFieldsFilter())
        logger.addHandler(handler)
        minLevel = min(minLevel, level)

    logger.setLevel(minLevel)
    return logger


def logEvent(logger: logging.Logger, level: int, component: str, message: str, runId: str | None = None) -> None:
    """
    Назначение:
        Унифицированная запись событий с component (и runId, если есть).
    """
    extra: dict[str, Any] = {"component": component}
    if runId:
        extra["runId"] = runId
    logger.log(level, message, extra=extra)
