from __future__ import annotations

import re
from typing import Any, Mapping

_DSN_SECRET_RE = re.compile(r"(?i)\b(password|pwd)=([^;]*)")

MASK = "***"
SENSITIVE_KEYS = frozenset({"password", "token", "authorization", "encryption_key", "secret"})


def maskSecret(value: str | None) -> str | None:
    """
    Назначение:
        Скрывает значение секрета в заголовке запуска и логах.
        None остаётся None, любое заданное значение (даже "") -> MASK.
    """
    return None if value is None else MASK


def maskDsn(dsn: str) -> str:
    """Скрывает password=/pwd= внутри DSN перед записью в лог."""
    return _DSN_SECRET_RE.sub(lambda m: f"{m.group(1)}={MASK}", dsn)


def truncateText(value: str | None, limit: int = 500) -> str | None:
    """SQL и тела ответов в details/логах обрезаются до limit символов."""
    if value is None or len(value) <= limit:
        return value
    if limit <= 3:
        return value[:limit]
    return value[: limit - 3] + "..."


def maskSecretsInObject(obj: Any, sensitive_keys: frozenset[str] = SENSITIVE_KEYS) -> Any:
    """
    Назначение:
        Копия параметров запроса (mapping/list/tuple, рекурсивно), где значения
        чувствительных ключей (token, password, ...) заменены на MASK.
    """
    if isinstance(obj, Mapping):
        return {
            k: (maskSecret(None if v is None else str(v)) if str(k).lower() in sensitive_keys
                else maskSecretsInObject(v, sensitive_keys))
            for k, v in obj.items()
        }
    if isinstance(obj, (list, tuple)):
        return [maskSecretsInObject(item, sensitive_keys) for item in obj]
    return obj
