from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Callable, Mapping, Sequence
from urllib.parse import quote_plus

import httpx

from ctrlglobal.common.sanitize import maskSecretsInObject
from ctrlglobal.ctrl_global import CtrlGlobal
from ctrlglobal.domain.results import SaveResult
from ctrlglobal.errors import AppError, TransportError, ValidationError
from ctrlglobal.logging_setup import logEvent

POS_USER_PATH = "/server/svr_pos_user.php"
GROUP_POS_PATH = "/server/svr_group_pos.php"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

Result = dict[str, Any] | list[Any]


def isEmpty(value: Any) -> bool:
    """None, пустая строка и пустые коллекции считаются незаполненными."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def toQueryParams(params: Mapping[str, Any]) -> dict[str, Any]:
    """
    Параметры act=-запроса в форме, которую ждёт сервер:
    None-значения не отправляются, bool уходит как "1"/"0".
    """
    query: dict[str, Any] = {}
    for key, value in params.items():
        if value is None:
            continue
        query[key] = ("1" if value else "0") if isinstance(value, bool) else value
    return query


def parseBody(body: str) -> Result:
    """JSON-объект или массив возвращается как есть, всё прочее - {"response": body}."""
    try:
        data = json.loads(body)
    except ValueError:
        return {"response": body}
    if isinstance(data, (dict, list)):
        return data
    return {"response": body}


class CtrlGroupPos:
    """
    Назначение/ответственность:
        Клиент сервиса интегратора POS-групп: проверяет обязательные поля,
        отправляет GET/POST через HTTP-хелперы CtrlGlobal и нормализует ответ.

    Контракт:
        - Ошибки валидации и транспорта возвращаются значением
          {"error": ..., "category": ..., "code": ..., "details": ...},
          исключения наружу не выходят.
        - При ошибке валидации запрос не отправляется.
    """

    def __init__(
        self,
        pc_location: str,
        integrator_url: str,
        ctrl_global: CtrlGlobal | None = None,
        clock: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ):
        self.pc_location = pc_location
        self.integrator_url = integrator_url.rstrip("/")
        self.ctrl_global = ctrl_global or CtrlGlobal.get_instance()
        self.clock = clock or datetime.now
        self.logger = logger or self.ctrl_global.logger

    def _invalid(self, message: str, **details: Any) -> dict[str, Any]:
        logEvent(self.logger, logging.WARNING, "integrator", f"validation failed: {message}")
        return ValidationError(message, details=details).to_result()

    def _transportFailure(self, err: AppError) -> dict[str, Any]:
        logEvent(self.logger, logging.ERROR, "integrator", f"request failed: {err.code} {err.message}")
        return err.to_result()

    def _getPosUser(self, params: Mapping[str, Any]) -> Result:
        url = self.integrator_url + POS_USER_PATH
        query = toQueryParams(params)
        logEvent(
            self.logger,
            logging.DEBUG,
            "integrator",
            f"GET {POS_USER_PATH} params={maskSecretsInObject(query)}",
        )
        try:
            response: httpx.Response = self.ctrl_global.http_get(url, params=query)
        except TransportError as err:
            return self._transportFailure(err)
        return parseBody(response.text)

    def get_group_pos(self, params: Mapping[str, Any]) -> Result:
        if not isinstance(params, Mapping):
            return self._invalid("Params must be a mapping")

        for key in ("group_pos", "browser", "waktu"):
            if isEmpty(params.get(key)):
                return self._invalid(f"`{key}` must not be empty", field=key)

        query = dict(params)
        if query.get("pc_location") is None:
            query["pc_location"] = self.pc_location
        return self._getPosUser(query)

    def update_login_process(self, id: Any, status: Any) -> Result:
        if isEmpty(id) or isEmpty(status):
            return self._invalid("`id` or `status` cant be empty")
        return self._getPosUser({"act": "updateLogin", "id": id, "status": status})

    def update_last_date(self, id: Any, last_data: Any) -> Result:
        """
        Поведение:
            - last_data и last_pool (текущее время) кодируются quote_plus до
              кодирования query-строки: сервер ожидает двойное кодирование.
        """
        if isEmpty(last_data):
            return self._invalid("`last_data` must not be empty", field="last_data")
        params = {
            "act": "updatePosLastDate",
            "id": id,
            "last_data": quote_plus(str(last_data)),
            "last_pool": quote_plus(self.clock().strftime(TIMESTAMP_FORMAT)),
        }
        return self._getPosUser(params)

    def update_pos_last_date(self, items: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
        """
        Назначение:
            Пакетное обновление: весь список уходит JSON-телом одним POST.

        Поведение:
            - Каждый элемент обязан иметь непустые status и data;
              в ошибке указывается индекс первого неверного элемента.
            - Успех: {"success": True, "response": <сырое тело>}.
        """
        if isinstance(items, (str, bytes, Mapping)) or not isinstance(items, Sequence):
            return self._invalid("`items` must be a list of mappings")

        for idx, item in enumerate(items):
            if not isinstance(item, Mapping):
                return self._invalid(f"item at index {idx} must be a mapping", index=idx)
            for field in ("status", "data"):
                if isEmpty(item.get(field)):
                    return self._invalid(f"`{field}` is empty in index: {idx}", field=field, index=idx)

        url = f"{self.integrator_url}{GROUP_POS_PATH}?act=updatePos"
        try:
            response = self.ctrl_global.http_post(url, json=[dict(item) for item in items])
        except TransportError as err:
            return self._transportFailure(err)
        return {"success": True, "response": response.text}

    def update_pos_token(self, token: Any, id: Any, status: Any) -> Result:
        for key, value in (("id", id), ("status", status)):
            if isEmpty(value):
                return self._invalid(f"updatePosToken error: '{key}' must not be empty", field=key)

        params = {
            "act": "updatePosToken",
            "token": token,
            "id": id,
            "pc_location": self.pc_location,
            "status": status,
        }
        return self._getPosUser(params)

    def update_branch_id(self, branch_id: Any, id: Any) -> Result:
        for key, value in (("id", id), ("branchID", branch_id)):
            if isEmpty(value):
                return self._invalid(f"updateBranchId error: '{key}' must not be empty", field=key)

        return self._getPosUser({"act": "updateBranchID", "branchID": branch_id, "id": id})

    def save_to_local(self, table: str, rows: Sequence[Mapping[str, Any]]) -> SaveResult:
        """
        Назначение:
            Best-effort зеркалирование строк в локальную таблицу через insert_many.
        Поведение:
            - Любой отказ логируется и возвращается в SaveResult.error, не бросается.
        """
        try:
            self.ctrl_global.insert_many(table, rows)
        except Exception as exc:
            logEvent(self.logger, logging.ERROR, "integrator", f"save_to_local({table}) failed: {exc}")
            return SaveResult.failure(exc)
        return SaveResult.success()
