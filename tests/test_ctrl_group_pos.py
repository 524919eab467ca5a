from __future__ import annotations

import json
from datetime import datetime
from urllib.parse import quote_plus

import httpx
import pytest

from ctrlglobal.ctrl_global import CtrlGlobal
from ctrlglobal.ctrl_group_pos import CtrlGroupPos, isEmpty, parseBody, toQueryParams
from ctrlglobal.errors import StatementError
from ctrlglobal.infra.db.connection import Connection
from ctrlglobal.infra.http.http_client import HttpClient

BASE_URL = "https://integrator.local"
FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5)


def make_client(responder, *, pc_location: str = "PC-01") -> tuple[CtrlGroupPos, list[httpx.Request]]:
    calls: list[httpx.Request] = []

    def recording(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return responder(request)

    conn = Connection("sqlite::memory:")
    conn.execute("CREATE TABLE pos_cache (id INTEGER, status TEXT)")
    http = HttpClient(timeoutSeconds=1.0, transport=httpx.MockTransport(recording))
    ctrl = CtrlGlobal(conn, "test-key", http_client=http)
    client = CtrlGroupPos(pc_location, BASE_URL + "/", ctrl_global=ctrl, clock=lambda: FIXED_NOW)
    return client, calls


def ok_json(payload):
    return lambda request: httpx.Response(200, json=payload)


def test_is_empty():
    assert isEmpty(None)
    assert isEmpty("")
    assert isEmpty([])
    assert isEmpty({})
    assert not isEmpty(0)
    assert not isEmpty(False)
    assert not isEmpty("0")


def test_parse_body():
    assert parseBody('{"a": 1}') == {"a": 1}
    assert parseBody("[1, 2]") == [1, 2]
    assert parseBody("plain text") == {"response": "plain text"}
    assert parseBody("42") == {"response": "42"}


def test_get_group_pos_sends_params_and_default_location():
    client, calls = make_client(ok_json({"status": "ok"}))

    result = client.get_group_pos({"group_pos": "G1", "browser": "firefox", "waktu": "10:00"})

    assert result == {"status": "ok"}
    assert len(calls) == 1
    request = calls[0]
    assert request.method == "GET"
    assert request.url.path == "/server/svr_pos_user.php"
    assert dict(request.url.params) == {
        "group_pos": "G1",
        "browser": "firefox",
        "waktu": "10:00",
        "pc_location": "PC-01",
    }


def test_get_group_pos_keeps_explicit_location():
    client, calls = make_client(ok_json([]))

    result = client.get_group_pos({"group_pos": "G1", "browser": "b", "waktu": "w", "pc_location": "OTHER"})

    assert result == []
    assert calls[0].url.params["pc_location"] == "OTHER"


@pytest.mark.parametrize("missing", ["group_pos", "browser", "waktu"])
def test_get_group_pos_missing_field_makes_no_request(missing):
    client, calls = make_client(ok_json({}))
    params = {"group_pos": "G1", "browser": "b", "waktu": "w"}
    params[missing] = ""

    result = client.get_group_pos(params)

    assert result["error"] == f"`{missing}` must not be empty"
    assert result["code"] == "VALIDATION_ERROR"
    assert calls == []


def test_get_group_pos_rejects_non_mapping():
    client, calls = make_client(ok_json({}))

    result = client.get_group_pos(["group_pos"])  # type: ignore[arg-type]

    assert "error" in result
    assert calls == []


def test_non_json_response_is_wrapped():
    client, _ = make_client(lambda request: httpx.Response(200, text="OK"))

    assert client.update_login_process(5, "online") == {"response": "OK"}


def test_update_login_process():
    client, calls = make_client(ok_json({"updated": 1}))

    assert client.update_login_process(5, "online") == {"updated": 1}
    assert dict(calls[0].url.params) == {"act": "updateLogin", "id": "5", "status": "online"}

    assert "error" in client.update_login_process("", "online")
    assert "error" in client.update_login_process(5, None)
    assert len(calls) == 1


def test_update_last_date_double_encodes_values():
    client, calls = make_client(ok_json({"updated": 1}))

    client.update_last_date(9, "2024-01-01 00:00:00")

    params = calls[0].url.params
    assert params["act"] == "updatePosLastDate"
    assert params["id"] == "9"
    assert params["last_data"] == quote_plus("2024-01-01 00:00:00")
    assert params["last_pool"] == "2024-01-02+03%3A04%3A05"


def test_update_last_date_requires_last_data():
    client, calls = make_client(ok_json({}))

    assert client.update_last_date(9, "")["details"] == {"field": "last_data"}
    assert calls == []


def test_update_pos_token_includes_location():
    client, calls = make_client(ok_json({"ok": True}))

    client.update_pos_token("tok", 3, "active")

    assert dict(calls[0].url.params) == {
        "act": "updatePosToken",
        "token": "tok",
        "id": "3",
        "pc_location": "PC-01",
        "status": "active",
    }


def test_update_pos_token_requires_id_and_status():
    client, calls = make_client(ok_json({}))

    assert client.update_pos_token("tok", "", "active")["details"] == {"field": "id"}
    assert client.update_pos_token("tok", 3, "")["details"] == {"field": "status"}
    assert calls == []


def test_update_branch_id():
    client, calls = make_client(ok_json({"ok": True}))

    assert client.update_branch_id("BR-7", 3) == {"ok": True}
    assert dict(calls[0].url.params) == {"act": "updateBranchID", "branchID": "BR-7", "id": "3"}

    result = client.update_branch_id("", 3)
    assert result["error"] == "updateBranchId error: 'branchID' must not be empty"
    assert len(calls) == 1


def test_update_pos_last_date_posts_json_list():
    items = [{"status": "1", "data": "a"}, {"status": "0", "data": "b", "id": 4}]
    client, calls = make_client(lambda request: httpx.Response(200, text="saved"))

    result = client.update_pos_last_date(items)

    assert result == {"success": True, "response": "saved"}
    request = calls[0]
    assert request.method == "POST"
    assert request.url.path == "/server/svr_group_pos.php"
    assert request.url.params["act"] == "updatePos"
    assert json.loads(request.content.decode("utf-8")) == items


def test_update_pos_last_date_reports_bad_item_index():
    client, calls = make_client(ok_json({}))

    result = client.update_pos_last_date([{"status": "1", "data": "a"}, {"status": "1", "data": ""}])

    assert result["error"] == "`data` is empty in index: 1"
    assert result["details"] == {"field": "data", "index": 1}
    assert calls == []


def test_update_pos_last_date_rejects_non_list():
    client, calls = make_client(ok_json({}))

    assert "error" in client.update_pos_last_date({"status": "1", "data": "a"})  # type: ignore[arg-type]
    assert "error" in client.update_pos_last_date([1, 2])  # type: ignore[list-item]
    assert calls == []


def test_transport_failures_are_returned_as_values():
    client, _ = make_client(lambda request: httpx.Response(503, text="down"))

    result = client.get_group_pos({"group_pos": "G1", "browser": "b", "waktu": "w"})

    assert result["code"] == "HTTP_503"
    assert result["category"] == "transport"
    assert result["details"]["body_snippet"] == "down"

    bulk = client.update_pos_last_date([{"status": "1", "data": "a"}])
    assert bulk["code"] == "HTTP_503"


def test_network_failure_is_returned_as_value():
    def responder(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    client, _ = make_client(responder)

    result = client.update_login_process(1, "x")

    assert result["code"] == "NETWORK_ERROR"
    assert result["error"].startswith("Network error")


def test_save_to_local_success_and_failure():
    client, calls = make_client(ok_json({}))

    saved = client.save_to_local("pos_cache", [{"id": 1, "status": "a"}, {"id": 2, "status": "b"}])

    assert saved
    assert saved.error is None
    rows = client.ctrl_global.query("SELECT id FROM pos_cache ORDER BY id")
    assert rows == [{"id": 1}, {"id": 2}]

    failed = client.save_to_local("missing_table", [{"id": 1}])

    assert not failed
    assert isinstance(failed.error, StatementError)
    assert calls == []


def test_integrator_url_trailing_slash_is_trimmed():
    client, calls = make_client(ok_json({}))

    client.update_branch_id("B", 1)

    assert str(calls[0].url).startswith(BASE_URL + "/server/svr_pos_user.php?")


def test_query_params_drop_none_and_send_booleans_as_digits():
    client, calls = make_client(ok_json({}))

    client.update_login_process(5, True)
    client.update_pos_token(None, 3, "a")
    client.update_login_process(6, False)

    assert str(calls[0].url.query, "ascii") == "act=updateLogin&id=5&status=1"
    assert dict(calls[1].url.params) == {"act": "updatePosToken", "id": "3", "pc_location": "PC-01", "status": "a"}
    assert calls[2].url.params["status"] == "0"


def test_to_query_params():
    assert toQueryParams({"a": None, "b": True, "c": False, "d": 0, "e": ""}) == {"b": "1", "c": "0", "d": 0, "e": ""}


def test_get_group_pos_fills_location_given_as_none():
    client, calls = make_client(ok_json({}))

    client.get_group_pos({"group_pos": "G1", "browser": "b", "waktu": "w", "pc_location": None})

    assert calls[0].url.params["pc_location"] == "PC-01"
