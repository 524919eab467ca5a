from __future__ import annotations

import importlib
import sqlite3
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping

from ctrlglobal.domain.error_codes import ErrorCode
from ctrlglobal.errors import ConfigurationError, DbConnectionError

MEMORY_DSN_PATH = ":memory:"


class DriverKind(str, Enum):
    MYSQL = "mysql"
    PGSQL = "pgsql"
    SQLITE = "sqlite"


DEFAULT_PORTS: dict[DriverKind, int] = {
    DriverKind.MYSQL: 3306,
    DriverKind.PGSQL: 5432,
}


def parseDriverKind(value: Any) -> DriverKind:
    """Нормализует имя драйвера; неизвестное значение -> ConfigurationError."""
    try:
        return DriverKind(str(value).strip().lower())
    except ValueError:
        raise ConfigurationError(
            f"Unsupported driver: {value}",
            code=ErrorCode.UNSUPPORTED_DRIVER,
            details={"driver": value, "supported": [k.value for k in DriverKind]},
        ) from None


@dataclass(frozen=True)
class ParsedDsn:
    driver: DriverKind
    params: dict[str, str] = field(default_factory=dict)
    path: str | None = None


def parseDsn(dsn: str) -> ParsedDsn:
    """
    Назначение:
        Разбирает DSN вида "<driver>:<body>".

    Контракт:
        - mysql/pgsql: body = "key=value;key=value" (host, port, dbname, charset, ...).
        - sqlite: body = путь к файлу либо ":memory:".
        - Пустой/безпрефиксный DSN или неизвестный драйвер -> ConfigurationError.
    """
    if not dsn or ":" not in dsn:
        raise ConfigurationError(f"Malformed DSN: {dsn!r}", code=ErrorCode.INVALID_DSN)
    prefix, body = dsn.split(":", 1)
    driver = parseDriverKind(prefix)

    if driver is DriverKind.SQLITE:
        if not body:
            raise ConfigurationError("sqlite DSN requires a path or :memory:", code=ErrorCode.INVALID_DSN)
        return ParsedDsn(driver=driver, path=body)

    params: dict[str, str] = {}
    for part in body.split(";"):
        part = part.strip()
        if not part:
            continue
        if "=" not in part:
            raise ConfigurationError(f"Malformed DSN segment: {part!r}", code=ErrorCode.INVALID_DSN)
        key, value = part.split("=", 1)
        params[key.strip().lower()] = value.strip()
    return ParsedDsn(driver=driver, params=params)


def _resolvePort(driver: DriverKind, port: Any) -> int:
    if port is None or (isinstance(port, str) and not port.strip()):
        return DEFAULT_PORTS[driver]
    try:
        return int(port)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"Invalid port: {port}", code=ErrorCode.INVALID_CONFIG, details={"port": port}
        ) from None


def buildDsn(
    driver: DriverKind,
    host: str,
    port: Any,
    name: str,
    charset: str | None = None,
) -> str:
    """
    Назначение:
        Строит DSN под конкретный драйвер.
    Контракт:
        - Порт по умолчанию подставляется, если он не задан или пуст.
        - sqlite использует только name (путь).
    """
    if driver is DriverKind.SQLITE:
        return f"sqlite:{name}"
    resolved = _resolvePort(driver, port)
    if driver is DriverKind.MYSQL:
        return f"mysql:host={host};port={resolved};dbname={name};charset={charset or 'utf8mb4'}"
    return f"pgsql:host={host};port={resolved};dbname={name}"


def _importDriver(moduleName: str, driver: DriverKind):
    try:
        return importlib.import_module(moduleName)
    except ImportError as exc:
        raise DbConnectionError(
            f"Driver module '{moduleName}' is not installed (required for {driver.value})",
            code=ErrorCode.DRIVER_MISSING,
            details={"driver": driver.value, "module": moduleName},
        ) from exc


@dataclass(frozen=True)
class DriverAdapter:
    """
    Назначение/ответственность:
        Различия DB-API драйверов за единым интерфейсом:
        подключение в autocommit, BEGIN/COMMIT/ROLLBACK, quote литерала,
        стиль плейсхолдеров и базовый класс ошибок драйвера.
    """

    kind: DriverKind
    paramstyle: str
    connect: Callable[[ParsedDsn, str, str, Mapping[str, Any]], Any]
    begin: Callable[[Any], None]
    commit: Callable[[Any], None]
    rollback: Callable[[Any], None]
    quote: Callable[[Any, Any], str]
    errorTypes: Callable[[], tuple[type[BaseException], ...]]


# sqlite3


def _sqliteConnect(parsed: ParsedDsn, _username: str, _password: str, extra: Mapping[str, Any]):
    kwargs = dict(extra)
    kwargs.setdefault("timeout", 5.0)
    kwargs.setdefault("isolation_level", None)
    conn = sqlite3.connect(parsed.path or MEMORY_DSN_PATH, **kwargs)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def _sqliteBegin(conn) -> None:
    conn.execute("BEGIN")


def _sqliteQuote(conn, value: Any) -> str:
    return str(conn.execute("SELECT quote(?)", (value,)).fetchone()[0])


# PyMySQL


def _mysqlConnect(parsed: ParsedDsn, username: str, password: str, extra: Mapping[str, Any]):
    pymysql = _importDriver("pymysql", DriverKind.MYSQL)
    kwargs: dict[str, Any] = {
        "host": parsed.params.get("host", "127.0.0.1"),
        "port": int(parsed.params.get("port") or DEFAULT_PORTS[DriverKind.MYSQL]),
        "database": parsed.params.get("dbname") or None,
        "charset": parsed.params.get("charset", "utf8mb4"),
        "user": username or None,
        "password": password or "",
        "cursorclass": pymysql.cursors.DictCursor,
        "autocommit": True,
    }
    kwargs.update(extra)
    return pymysql.connect(**kwargs)


def _mysqlQuote(conn, value: Any) -> str:
    return str(conn.escape(value))


def _mysqlErrors() -> tuple[type[BaseException], ...]:
    return (_importDriver("pymysql", DriverKind.MYSQL).Error,)


# psycopg2


def _pgsqlConnect(parsed: ParsedDsn, username: str, password: str, extra: Mapping[str, Any]):
    psycopg2 = _importDriver("psycopg2", DriverKind.PGSQL)
    extras = _importDriver("psycopg2.extras", DriverKind.PGSQL)
    kwargs: dict[str, Any] = {
        "host": parsed.params.get("host", "127.0.0.1"),
        "port": int(parsed.params.get("port") or DEFAULT_PORTS[DriverKind.PGSQL]),
        "dbname": parsed.params.get("dbname") or None,
        "user": username or None,
        "password": password or None,
        "cursor_factory": extras.RealDictCursor,
    }
    kwargs.update(extra)
    conn = psycopg2.connect(**kwargs)
    conn.autocommit = True
    return conn


def _pgsqlBegin(conn) -> None:
    # psycopg2 открывает транзакцию сам на первом запросе вне autocommit
    conn.autocommit = False


def _pgsqlCommit(conn) -> None:
    try:
        conn.commit()
    finally:
        conn.autocommit = True


def _pgsqlRollback(conn) -> None:
    try:
        conn.rollback()
    finally:
        conn.autocommit = True


def _pgsqlQuote(conn, value: Any) -> str:
    with conn.cursor() as cur:
        quoted = cur.mogrify("%s", (value,))
    return quoted.decode("utf-8") if isinstance(quoted, bytes) else str(quoted)


def _pgsqlErrors() -> tuple[type[BaseException], ...]:
    return (_importDriver("psycopg2", DriverKind.PGSQL).Error,)


ADAPTERS: dict[DriverKind, DriverAdapter] = {
    DriverKind.SQLITE: DriverAdapter(
        kind=DriverKind.SQLITE,
        paramstyle="qmark",
        connect=_sqliteConnect,
        begin=_sqliteBegin,
        commit=lambda conn: conn.commit(),
        rollback=lambda conn: conn.rollback(),
        quote=_sqliteQuote,
        errorTypes=lambda: (sqlite3.Error,),
    ),
    DriverKind.MYSQL: DriverAdapter(
        kind=DriverKind.MYSQL,
        paramstyle="pyformat",
        connect=_mysqlConnect,
        begin=lambda conn: conn.begin(),
        commit=lambda conn: conn.commit(),
        rollback=lambda conn: conn.rollback(),
        quote=_mysqlQuote,
        errorTypes=_mysqlErrors,
    ),
    DriverKind.PGSQL: DriverAdapter(
        kind=DriverKind.PGSQL,
        paramstyle="pyformat",
        connect=_pgsqlConnect,
        begin=_pgsqlBegin,
        commit=_pgsqlCommit,
        rollback=_pgsqlRollback,
        quote=_pgsqlQuote,
        errorTypes=_pgsqlErrors,
    ),
}


def getAdapter(driver: DriverKind) -> DriverAdapter:
    return ADAPTERS[driver]
