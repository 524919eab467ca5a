from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, ClassVar, Iterator, Mapping, Sequence, TypeVar

from ctrlglobal import log
from ctrlglobal.common.sanitize import maskDsn, truncateText
from ctrlglobal.domain.error_codes import ErrorCode
from ctrlglobal.errors import AppError, ConfigurationError, DbConnectionError, StatementError
from ctrlglobal.infra.db.drivers import DriverKind, buildDsn, getAdapter, parseDriverKind, parseDsn
from ctrlglobal.infra.db.statements import normalizeNamedParams, toPyformat
from ctrlglobal.logging_setup import logEvent

T = TypeVar("T")

Params = Sequence[Any] | Mapping[str, Any] | None

DEFAULT_ATTRIBUTES: dict[str, Any] = {
    "errmode": "raise",
    "fetch_mode": "assoc",
    "emulate_prepares": False,
    "persistent": False,
}

_SUPPORTED_ATTRIBUTE_VALUES: dict[str, tuple[Any, ...]] = {
    "errmode": ("raise",),
    "fetch_mode": ("assoc",),
    "emulate_prepares": (False, True),
    "persistent": (False,),
}


@dataclass
class QueryResult:
    rows: list[dict[str, Any]] = field(default_factory=list)
    rowcount: int = 0


def _splitOptions(options: Mapping[str, Any] | None) -> tuple[dict[str, Any], dict[str, Any]]:
    """
    Делит options на поведенческие атрибуты (поверх DEFAULT_ATTRIBUTES)
    и kwargs для connect() драйвера.
    """
    attributes = dict(DEFAULT_ATTRIBUTES)
    driverKwargs: dict[str, Any] = {}
    for key, value in (options or {}).items():
        if key in DEFAULT_ATTRIBUTES:
            if value not in _SUPPORTED_ATTRIBUTE_VALUES[key]:
                raise ConfigurationError(
                    f"Unsupported value for option '{key}': {value!r}",
                    code=ErrorCode.INVALID_CONFIG,
                    details={"option": key, "value": value},
                )
            attributes[key] = value
        else:
            driverKwargs[key] = value
    return attributes, driverKwargs


class Connection:
    """
    Назначение/ответственность:
        Одна живая DB-API сессия (MySQL, PostgreSQL или SQLite) с единым API:
        execute/fetchall/fetchone/executemany, транзакция, quote литерала.

    Инварианты/гарантии:
        - attributes фиксируются в конструкторе и далее не меняются.
        - Вне transaction() соединение работает в autocommit.
        - Ошибки драйвера при выполнении SQL поднимаются как StatementError.

    Ограничения:
        - Внутренних блокировок нет: общий экземпляр (get_instance) нельзя
          использовать из нескольких потоков без внешней синхронизации.
        - transaction() не реентерабелен.
    """

    _instance: ClassVar["Connection | None"] = None

    def __init__(
        self,
        dsn: str,
        username: str = "",
        password: str = "",
        options: Mapping[str, Any] | None = None,
        logger: logging.Logger | None = None,
    ):
        parsed = parseDsn(dsn)
        attributes, driverKwargs = _splitOptions(options)

        self._adapter = getAdapter(parsed.driver)
        self._attributes = MappingProxyType(attributes)
        self._inTransaction = False
        self.logger = logger or log.getLogger()
        self.dsn = dsn

        try:
            self._raw = self._adapter.connect(parsed, username, password, driverKwargs)
        except AppError:
            raise
        except Exception as exc:
            raise DbConnectionError(
                f"Unable to connect ({parsed.driver.value}): {exc}",
                details={"driver": parsed.driver.value, "dsn": maskDsn(dsn)},
            ) from exc

        logEvent(self.logger, logging.DEBUG, "db", f"connected driver={parsed.driver.value} dsn={maskDsn(dsn)}")

    # Factories

    @classmethod
    def from_config(cls, config: Mapping[str, Any], logger: logging.Logger | None = None) -> "Connection":
        """
        Назначение:
            Создаёт подключение из структурированного конфига.

        Входные данные:
            config: driver (mysql), host (127.0.0.1), port (по драйверу),
                name | dbname, charset (utf8mb4), username | user, password, options.

        Поведение:
            - Неизвестный driver -> ConfigurationError с этим значением.
            - Не заданный/пустой port заменяется портом драйвера по умолчанию.
        """
        driver = parseDriverKind(config.get("driver") or DriverKind.MYSQL.value)
        name = config.get("name", config.get("dbname", "")) or ""
        dsn = buildDsn(
            driver,
            host=config.get("host") or "127.0.0.1",
            port=config.get("port"),
            name=name,
            charset=config.get("charset") or "utf8mb4",
        )
        return cls(
            dsn,
            username=config.get("username", config.get("user", "")) or "",
            password=config.get("password") or "",
            options=config.get("options") or {},
            logger=logger,
        )

    @classmethod
    def from_env(cls, logger: logging.Logger | None = None) -> "Connection":
        """Читает DB_DRIVER/DB_HOST/DB_PORT/DB_NAME/DB_CHARSET/DB_USER/DB_PASSWORD."""
        return cls.from_config(
            {
                "driver": os.getenv("DB_DRIVER") or DriverKind.MYSQL.value,
                "host": os.getenv("DB_HOST") or "127.0.0.1",
                "port": os.getenv("DB_PORT") or None,
                "name": os.getenv("DB_NAME") or "",
                "charset": os.getenv("DB_CHARSET") or "utf8mb4",
                "username": os.getenv("DB_USER") or "",
                "password": os.getenv("DB_PASSWORD") or "",
            },
            logger=logger,
        )

    @classmethod
    def get_instance(
        cls,
        dsn: str = "",
        username: str = "",
        password: str = "",
        options: Mapping[str, Any] | None = None,
    ) -> "Connection":
        """Первый вызов создаёт общий экземпляр, последующие возвращают его независимо от аргументов."""
        if Connection._instance is None:
            Connection._instance = cls(dsn, username, password, options)
        return Connection._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Только для тестов: забывает общий экземпляр."""
        Connection._instance = None

    # Properties

    @property
    def driver(self) -> DriverKind:
        return self._adapter.kind

    @property
    def attributes(self) -> Mapping[str, Any]:
        return self._attributes

    @property
    def in_transaction(self) -> bool:
        return self._inTransaction

    # SQL

    def _bind(self, sql: str, params: Params) -> tuple[str, Any]:
        if not params:
            return sql, None
        if isinstance(params, Mapping):
            bound: Any = normalizeNamedParams(params)
        elif isinstance(params, (str, bytes)):
            raise StatementError("params must be a sequence or a mapping, not a string")
        else:
            bound = tuple(params)
        if self._adapter.paramstyle == "pyformat":
            sql = toPyformat(sql)
        return sql, bound

    def _statementError(self, sql: str, exc: Exception) -> StatementError:
        return StatementError(
            f"Statement failed: {exc}",
            details={"sql": truncateText(sql), "driver": self.driver.value},
        )

    def execute(self, sql: str, params: Params = None) -> QueryResult:
        """
        Контракт (вход/выход):
            Вход: SQL с плейсхолдерами '?' или ':name' и params (или пусто).
            Выход: QueryResult(rows, rowcount); rows пуст для не-SELECT.
        """
        boundSql, bound = self._bind(sql, params)
        cur = self._raw.cursor()
        try:
            if bound is None:
                cur.execute(boundSql)
            else:
                cur.execute(boundSql, bound)
            rows = [dict(row) for row in cur.fetchall()] if cur.description else []
            return QueryResult(rows=rows, rowcount=cur.rowcount)
        except self._adapter.errorTypes() as exc:
            raise self._statementError(sql, exc) from exc
        finally:
            cur.close()

    def executemany(self, sql: str, seq_of_params: Sequence[Sequence[Any]] | Sequence[Mapping[str, Any]]) -> int:
        if not seq_of_params:
            return 0
        boundSql, _ = self._bind(sql, seq_of_params[0])
        bound = [self._bind(sql, p)[1] for p in seq_of_params]
        cur = self._raw.cursor()
        try:
            cur.executemany(boundSql, bound)
            return cur.rowcount
        except self._adapter.errorTypes() as exc:
            raise self._statementError(sql, exc) from exc
        finally:
            cur.close()

    def fetchall(self, sql: str, params: Params = None) -> list[dict[str, Any]]:
        return self.execute(sql, params).rows

    def fetchone(self, sql: str, params: Params = None) -> dict[str, Any] | None:
        rows = self.execute(sql, params).rows
        return rows[0] if rows else None

    def quote(self, value: Any) -> str:
        """Литерал в форме драйвера, вместе с кавычками."""
        try:
            return self._adapter.quote(self._raw, value)
        except self._adapter.errorTypes() as exc:
            raise self._statementError("<quote>", exc) from exc

    # Transactions

    @contextmanager
    def transaction_scope(self) -> Iterator["Connection"]:
        """
        Алгоритм:
            - BEGIN; вложенный вызов -> StatementError(NESTED_TRANSACTION) без обращения к БД.
            - Нормальный выход -> COMMIT.
            - Исключение -> ROLLBACK и проброс исходного исключения как есть.
        """
        if self._inTransaction:
            raise StatementError(
                "Nested transactions are not supported on the same connection",
                code=ErrorCode.NESTED_TRANSACTION,
            )
        errorTypes = self._adapter.errorTypes()
        try:
            self._adapter.begin(self._raw)
        except errorTypes as exc:
            raise self._statementError("BEGIN", exc) from exc
        self._inTransaction = True
        try:
            yield self
        except BaseException as exc:
            self._inTransaction = False
            try:
                self._adapter.rollback(self._raw)
            except errorTypes as rollbackExc:
                logEvent(self.logger, logging.ERROR, "db", f"rollback failed: {rollbackExc}")
            logEvent(self.logger, logging.WARNING, "db", f"transaction rolled back: {type(exc).__name__}: {exc}")
            raise
        self._inTransaction = False
        try:
            self._adapter.commit(self._raw)
        except errorTypes as exc:
            raise self._statementError("COMMIT", exc) from exc

    def transaction(self, callback: Callable[["Connection"], T]) -> T:
        """Выполняет callback(self) в транзакции и возвращает его результат без изменений."""
        with self.transaction_scope():
            return callback(self)

    def close(self) -> None:
        self._raw.close()
