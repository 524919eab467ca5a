from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from ctrlglobal.domain.error_codes import ErrorCode


@dataclass
class AppError(Exception):
    """
    Унифицированная ошибка библиотеки.
    """

    category: str
    code: str
    message: str
    retryable: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if isinstance(self.code, ErrorCode):
            self.code = self.code.value
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details or {},
        }

    def to_result(self) -> Dict[str, Any]:
        """
        Назначение:
            Ошибка в виде значения (а не исключения) для методов интегратора.
        Контракт:
            - ключ "error" всегда содержит человекочитаемое сообщение;
            - category/code/details повторяют to_dict().
        """
        return {
            "error": self.message,
            "category": self.category,
            "code": self.code,
            "details": self.details or {},
        }


class ConfigurationError(AppError):
    """Неверная конфигурация подключения: драйвер, DSN, параметры."""

    def __init__(self, message: str, code: str = ErrorCode.INVALID_CONFIG, details: dict | None = None):
        super().__init__(category="config", code=code, message=message, details=details or {})


class DbConnectionError(AppError):
    """Драйвер отклонил подключение (сеть, аутентификация, отсутствующий модуль)."""

    def __init__(self, message: str, code: str = ErrorCode.CONNECTION_FAILED, details: dict | None = None):
        super().__init__(category="connection", code=code, message=message, retryable=True, details=details or {})


class StatementError(AppError):
    """Ошибка подготовки/выполнения SQL или некорректный запрос к фасаду."""

    def __init__(self, message: str, code: str = ErrorCode.STATEMENT_FAILED, details: dict | None = None):
        super().__init__(category="statement", code=code, message=message, details=details or {})


class ValidationError(AppError):
    """
    Назначение:
        Не пройдена проверка обязательных полей интегратора.
    Ограничения:
        - Наружу не бросается: методы интегратора возвращают to_result().
    """

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(category="validation", code=ErrorCode.VALIDATION_ERROR, message=message, details=details or {})


class TransportError(AppError):
    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body_snippet: str | None = None,
        code: str | None = None,
    ):
        """
        Назначение:
            Ошибка HTTP-уровня: сеть недоступна или статус ответа >= 400.
        Контракт:
            - code: NETWORK_ERROR или HTTP_<status>.
        """
        super().__init__(
            category="transport",
            code=code or ErrorCode.from_status(status_code),
            message=message,
            retryable=status_code is None or status_code == 429 or status_code >= 500,
            details={"status_code": status_code, "body_snippet": body_snippet},
        )
        self.status_code = status_code
        self.body_snippet = body_snippet


class DecodeError(AppError):
    def __init__(self, message: str = "Unable to decode value"):
        super().__init__(category="crypto", code=ErrorCode.DECODE_ERROR, message=message)


__all__ = [
    "AppError",
    "ConfigurationError",
    "DbConnectionError",
    "StatementError",
    "ValidationError",
    "TransportError",
    "DecodeError",
]
