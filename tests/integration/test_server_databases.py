"""MySQL / PostgreSQL round trips.

Skipped unless MYSQL_NAME / PGSQL_NAME point at a reachable scratch database.
Optional: *_HOST, *_PORT, *_USER, *_PASSWORD.
"""
from __future__ import annotations

import os

import pytest

from ctrlglobal.ctrl_global import SUCCESS, CtrlGlobal
from ctrlglobal.errors import DbConnectionError
from ctrlglobal.infra.db.connection import DEFAULT_ATTRIBUTES, Connection
from ctrlglobal.infra.db.drivers import DEFAULT_PORTS, DriverKind

TABLE = "ctrlglobal_it_users"

SERVERS = {
    "mysql": {"prefix": "MYSQL", "module": "pymysql", "user": "root"},
    "pgsql": {"prefix": "PGSQL", "module": "psycopg2", "user": "postgres"},
}

DDL = {
    "mysql": (
        f"CREATE TABLE {TABLE} (id INT AUTO_INCREMENT PRIMARY KEY, name VARCHAR(100) NOT NULL, "
        "role VARCHAR(50) NOT NULL DEFAULT 'user', age INT NULL)"
    ),
    "pgsql": (
        f"CREATE TABLE {TABLE} (id SERIAL PRIMARY KEY, name VARCHAR(100) NOT NULL, "
        "role VARCHAR(50) NOT NULL DEFAULT 'user', age INT NULL)"
    ),
}


def _server_config(driver: str) -> dict:
    prefix = SERVERS[driver]["prefix"]
    return {
        "driver": driver,
        "host": os.getenv(f"{prefix}_HOST") or "127.0.0.1",
        "port": os.getenv(f"{prefix}_PORT") or DEFAULT_PORTS[DriverKind(driver)],
        "name": os.getenv(f"{prefix}_NAME") or "",
        "username": os.getenv(f"{prefix}_USER") or SERVERS[driver]["user"],
        "password": os.getenv(f"{prefix}_PASSWORD") or "",
    }


@pytest.fixture(params=sorted(SERVERS))
def server(request):
    driver = request.param
    config = _server_config(driver)
    if not config["name"]:
        pytest.skip(f"{SERVERS[driver]['prefix']}_NAME is not set")
    pytest.importorskip(SERVERS[driver]["module"])
    try:
        conn = Connection.from_config(config)
    except DbConnectionError as exc:
        pytest.skip(f"Could not connect to {driver}: {exc}")

    conn.execute(f"DROP TABLE IF EXISTS {TABLE}")
    conn.execute(DDL[driver])
    yield config, conn
    conn.execute(f"DROP TABLE IF EXISTS {TABLE}")
    conn.close()


def _names(ctrl: CtrlGlobal) -> list[str]:
    return [row["name"] for row in ctrl.query(f"SELECT name FROM {TABLE} ORDER BY id")]


def test_connection_has_fixed_attributes(server):
    config, conn = server

    assert dict(conn.attributes) == DEFAULT_ATTRIBUTES
    assert conn.driver.value == config["driver"]


def test_from_env_connects_with_same_settings(server, monkeypatch):
    config, _ = server
    monkeypatch.setenv("DB_DRIVER", config["driver"])
    monkeypatch.setenv("DB_HOST", config["host"])
    monkeypatch.setenv("DB_PORT", str(config["port"]))
    monkeypatch.setenv("DB_NAME", config["name"])
    monkeypatch.setenv("DB_USER", config["username"])
    monkeypatch.setenv("DB_PASSWORD", config["password"])

    conn = Connection.from_env()
    try:
        assert conn.fetchone("SELECT 1 AS ok") == {"ok": 1}
    finally:
        conn.close()


def test_transaction_commits_and_rolls_back(server):
    _, conn = server

    conn.transaction(lambda c: c.execute(f"INSERT INTO {TABLE} (name) VALUES (?)", ["kept"]))

    def failing(c):
        c.execute(f"INSERT INTO {TABLE} (name) VALUES (?)", ["dropped"])
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        conn.transaction(failing)

    assert conn.transaction(lambda c: 7) == 7
    rows = conn.fetchall(f"SELECT name FROM {TABLE}")
    assert rows == [{"name": "kept"}]


def test_facade_dml_and_queries(server):
    _, conn = server
    ctrl = CtrlGlobal(conn, "it-key")

    assert ctrl.insert(TABLE, {"name": "Ned", "role": "admin", "age": 30}) == SUCCESS
    ctrl.insert_many(TABLE, [{"name": "Olivia", "age": 25}, {"name": "Pat", "age": 50}])
    ctrl.insert_many(TABLE, [])
    ctrl.update(TABLE, {"age": 31}, {"name": "Ned"})
    ctrl.delete_many(TABLE, [{"name": "Pat"}])

    assert _names(ctrl) == ["Ned", "Olivia"]
    assert ctrl.query(f"SELECT age FROM {TABLE} WHERE name = ?", ["Ned"]) == [{"age": 31}]
    assert ctrl.query(f"SELECT name FROM {TABLE} WHERE role = :role", {":role": "user"}) == [{"name": "Olivia"}]
    assert ctrl.query_first_name(f"SELECT name FROM {TABLE} ORDER BY id") == "Ned"
    assert ctrl.query_first_name(f"SELECT name FROM {TABLE} WHERE name = ?", ["nobody"]) == ""

    ctrl.delete(TABLE, {"name": "Olivia"})
    assert _names(ctrl) == ["Ned"]


def test_literal_percent_survives_placeholder_rewrite(server):
    _, conn = server
    ctrl = CtrlGlobal(conn, "it-key")
    ctrl.insert_many(TABLE, [{"name": "alpha"}, {"name": "beta"}])

    rows = ctrl.query(f"SELECT name FROM {TABLE} WHERE name LIKE 'a%' AND role = ?", ["user"])

    assert rows == [{"name": "alpha"}]


def test_escape_literal_and_cipher(server):
    _, conn = server
    ctrl = CtrlGlobal(conn, "it-key")

    with pytest.warns(DeprecationWarning):
        escaped = ctrl.escape_literal("O'Brien")

    assert escaped in ("O''Brien", "O\\'Brien")
    assert ctrl.decode(ctrl.encode("round trip")) == "round trip"
