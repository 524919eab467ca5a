from __future__ import annotations

import logging
from typing import Any

import httpx

from ctrlglobal import log
from ctrlglobal.domain.error_codes import ErrorCode
from ctrlglobal.errors import TransportError
from ctrlglobal.logging_setup import logEvent


class HttpClient:
    def __init__(
        self,
        timeoutSeconds: float = 20.0,
        tlsSkipVerify: bool = False,
        caFile: str | None = None,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
        logger: logging.Logger | None = None,
    ):
        """
        Назначение:
            Тонкий синхронный HTTP-клиент поверх httpx.Client.
        Контракт:
            - Одна попытка на запрос, без ретраев.
            - Сетевая ошибка или статус >= 400 -> TransportError.
            - transport подменяется в тестах (httpx.MockTransport).
        """
        verify: bool | str = True
        if tlsSkipVerify:
            verify = False
        elif caFile:
            verify = caFile

        self.timeoutSeconds = timeoutSeconds
        self.logger = logger or log.getLogger()
        self.client = httpx.Client(
            timeout=timeoutSeconds,
            verify=verify,
            headers=headers or {"accept": "application/json"},
            transport=transport,
        )

    def request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json: Any | None = None,
        data: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Выполняет запрос и возвращает httpx.Response либо бросает TransportError."""
        logEvent(self.logger, logging.DEBUG, "http", f"{method} {url}")
        try:
            resp = self.client.request(method, url, params=params, json=json, data=data, headers=headers)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            logEvent(self.logger, logging.ERROR, "http", f"{method} {url} failed: {exc}")
            raise TransportError(f"Network error: {exc}", code=ErrorCode.NETWORK_ERROR) from exc

        if resp.status_code >= 400:
            body_snippet = resp.text[:200] if resp.text else None
            logEvent(self.logger, logging.WARNING, "http", f"{method} {url} -> HTTP {resp.status_code}")
            raise TransportError(
                f"HTTP {resp.status_code}",
                status_code=resp.status_code,
                body_snippet=body_snippet,
            )
        return resp

    def get(self, url: str, params: dict[str, Any] | None = None) -> httpx.Response:
        return self.request("GET", url, params=params)

    def post(self, url: str, json: Any | None = None, data: Any | None = None) -> httpx.Response:
        return self.request("POST", url, json=json, data=data)

    def put(self, url: str, json: Any | None = None, data: Any | None = None) -> httpx.Response:
        return self.request("PUT", url, json=json, data=data)

    def patch(self, url: str, json: Any | None = None, data: Any | None = None) -> httpx.Response:
        return self.request("PATCH", url, json=json, data=data)

    def delete(self, url: str) -> httpx.Response:
        return self.request("DELETE", url)

    def close(self) -> None:
        self.client.close()
