from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SaveResult:
    """
    Назначение:
        Итог best-effort записи: успех либо сохранённая причина отказа.
    Инварианты/гарантии:
        - bool(result) == result.ok, поэтому результат можно проверять как флаг.
        - error задан тогда и только тогда, когда ok is False.
    """

    ok: bool
    error: Exception | None = None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls) -> "SaveResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, error: Exception) -> "SaveResult":
        return cls(ok=False, error=error)
