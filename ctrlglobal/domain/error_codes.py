from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """
    Назначение:
        Единая таксономия кодов ошибок для AppError и error-результатов интегратора.
    """

    # config
    INVALID_CONFIG = "INVALID_CONFIG"
    INVALID_DSN = "INVALID_DSN"
    UNSUPPORTED_DRIVER = "UNSUPPORTED_DRIVER"

    # connection
    CONNECTION_FAILED = "CONNECTION_FAILED"
    DRIVER_MISSING = "DRIVER_MISSING"

    # statement
    STATEMENT_FAILED = "STATEMENT_FAILED"
    NESTED_TRANSACTION = "NESTED_TRANSACTION"
    HETEROGENEOUS_ROWS = "HETEROGENEOUS_ROWS"
    EMPTY_FIELDS = "EMPTY_FIELDS"
    INVALID_IDENTIFIER = "INVALID_IDENTIFIER"

    # integrator / transport
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    HTTP_ERROR = "HTTP_ERROR"

    # crypto
    DECODE_ERROR = "DECODE_ERROR"

    @classmethod
    def from_status(cls, status_code: int | None) -> str:
        """
        Назначение:
            Код ошибки по HTTP-статусу: HTTP_<status> или общий HTTP_ERROR.
        """
        if status_code:
            return f"HTTP_{status_code}"
        return cls.HTTP_ERROR.value
