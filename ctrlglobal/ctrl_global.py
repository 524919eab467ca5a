from __future__ import annotations

import logging
import os
import warnings
from typing import Any, Callable, ClassVar, Mapping, Sequence, TypeVar

import httpx

from ctrlglobal import log
from ctrlglobal.crypto import StringCipher
from ctrlglobal.infra.db import statements
from ctrlglobal.infra.db.connection import Connection, Params
from ctrlglobal.infra.http.http_client import HttpClient
from ctrlglobal.logging_setup import logEvent

T = TypeVar("T")

SUCCESS = "success"
DEFAULT_ENCRYPTION_KEY = "secret"


class CtrlGlobal:
    """
    Назначение/ответственность:
        Фасад доступа к данным: INSERT/UPDATE/DELETE по картам колонка->значение
        (всегда через связанные параметры), SELECT по сырому SQL,
        обратимое кодирование строк и общий HTTP-клиент.

    Контракт:
        - DML-методы возвращают SUCCESS; отсутствие исключения означает,
          что операция применена целиком.
        - Порядок ключей карты задаёт порядок колонок и связывания.
    """

    _instance: ClassVar["CtrlGlobal | None"] = None
    _sharedHttpClient: ClassVar[HttpClient | None] = None

    def __init__(
        self,
        connection: Connection | Mapping[str, Any] | None = None,
        encryption_key: str | None = None,
        http_client: HttpClient | None = None,
        logger: logging.Logger | None = None,
    ):
        """
        Входные данные:
            connection:
                Connection -> используется как есть;
                mapping    -> Connection.from_config();
                None       -> Connection.from_env().
            encryption_key:
                Секрет для encode/decode; иначе ENCRYPTION_KEY, иначе "secret".
        """
        self.logger = logger or log.getLogger()
        if isinstance(connection, Connection):
            self.db = connection
        elif isinstance(connection, Mapping):
            self.db = Connection.from_config(connection, logger=self.logger)
        else:
            self.db = Connection.from_env(logger=self.logger)

        self._cipher = StringCipher(encryption_key or os.getenv("ENCRYPTION_KEY") or DEFAULT_ENCRYPTION_KEY)
        self._httpClient = http_client

    @classmethod
    def get_instance(
        cls,
        connection: Connection | Mapping[str, Any] | None = None,
        encryption_key: str | None = None,
    ) -> "CtrlGlobal":
        if CtrlGlobal._instance is None:
            CtrlGlobal._instance = cls(connection, encryption_key)
        return CtrlGlobal._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Только для тестов: сбрасывает общий фасад и общий HTTP-клиент."""
        CtrlGlobal._instance = None
        if CtrlGlobal._sharedHttpClient is not None:
            CtrlGlobal._sharedHttpClient.close()
        CtrlGlobal._sharedHttpClient = None

    def _run(self, sql: str, params: list[Any]) -> int:
        logEvent(self.logger, logging.DEBUG, "db", f"{sql} ({len(params)} params)")
        return self.db.execute(sql, params).rowcount

    # DML

    def insert(self, table: str, fields: Mapping[str, Any]) -> str:
        self._run(*statements.buildInsert(table, fields))
        return SUCCESS

    def insert_many(self, table: str, rows: Sequence[Mapping[str, Any]]) -> str:
        """Одна INSERT-инструкция на все строки; пустой список - no-op."""
        if not rows:
            return SUCCESS
        self._run(*statements.buildInsertMany(table, rows))
        return SUCCESS

    def update(self, table: str, fields: Mapping[str, Any], conditions: Mapping[str, Any]) -> str:
        self._run(*statements.buildUpdate(table, fields, conditions))
        return SUCCESS

    def delete(self, table: str, conditions: Mapping[str, Any]) -> str:
        self._run(*statements.buildDelete(table, conditions))
        return SUCCESS

    def delete_many(self, table: str, groups: Sequence[Mapping[str, Any]]) -> str:
        """Группы условий (AND внутри) объединяются через OR; пустой список - no-op."""
        if not groups:
            return SUCCESS
        self._run(*statements.buildDeleteMany(table, groups))
        return SUCCESS

    # SELECT

    def query(self, sql: str, params: Params = None) -> list[dict[str, Any]]:
        """
        Выполняет SQL и возвращает все строки.
        params: пусто -> SQL как есть; последовательность -> '?'; mapping -> ':name'.
        """
        if not params:
            return self.db.fetchall(sql)
        if isinstance(params, Mapping):
            return self.query_named(sql, params)
        return self.query_positional(sql, params)

    def query_positional(self, sql: str, params: Sequence[Any]) -> list[dict[str, Any]]:
        return self.db.fetchall(sql, list(params))

    def query_named(self, sql: str, params: Mapping[str, Any]) -> list[dict[str, Any]]:
        return self.db.fetchall(sql, dict(params))

    run_sql = query

    def query_first_name(self, sql: str, params: Params = None) -> str:
        rows = self.query(sql, params)
        if not rows or rows[0].get("name") is None:
            return ""
        return str(rows[0]["name"])

    def execute(self, sql: str, params: Params = None) -> int:
        """Выполняет не-SELECT инструкцию и возвращает число затронутых строк."""
        return self.db.execute(sql, params).rowcount

    def escape_literal(self, value: Any) -> str:
        """
        Назначение:
            Экранированный драйвером литерал без внешних кавычек.

        Ограничения:
            - Устаревший путь для ручной склейки SQL; склейка может быть сломана
              соседним синтаксисом. Используйте связывание параметров.
        """
        warnings.warn(
            "escape_literal() is discouraged; bind parameters instead",
            DeprecationWarning,
            stacklevel=2,
        )
        quoted = self.db.quote(value)
        if quoted[:2] in ("E'", "e'"):
            quoted = quoted[1:]
        if len(quoted) >= 2 and quoted[0] == quoted[-1] == "'":
            return quoted[1:-1]
        return quoted

    def transaction(self, callback: Callable[[Connection], T]) -> T:
        return self.db.transaction(callback)

    # Crypto

    def encode(self, plaintext: str) -> str:
        return self._cipher.encode(plaintext)

    def decode(self, text: str) -> str:
        return self._cipher.decode(text)

    # HTTP

    def get_http_client(self) -> HttpClient:
        if self._httpClient is not None:
            return self._httpClient
        if CtrlGlobal._sharedHttpClient is None:
            CtrlGlobal._sharedHttpClient = HttpClient(logger=self.logger)
        return CtrlGlobal._sharedHttpClient

    def http_get(self, url: str, params: dict[str, Any] | None = None) -> httpx.Response:
        return self.get_http_client().get(url, params=params)

    def http_post(self, url: str, json: Any | None = None, data: Any | None = None) -> httpx.Response:
        return self.get_http_client().post(url, json=json, data=data)

    def http_put(self, url: str, json: Any | None = None, data: Any | None = None) -> httpx.Response:
        return self.get_http_client().put(url, json=json, data=data)

    def http_patch(self, url: str, json: Any | None = None, data: Any | None = None) -> httpx.Response:
        return self.get_http_client().patch(url, json=json, data=data)

    def http_delete(self, url: str) -> httpx.Response:
        return self.get_http_client().delete(url)
