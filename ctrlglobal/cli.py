from __future__ import annotations

import json
import logging
import time
import uuid

import typer

from ctrlglobal import log
from ctrlglobal.common.sanitize import maskSecret
from ctrlglobal.config import Settings, load_settings
from ctrlglobal.crypto import StringCipher
from ctrlglobal.ctrl_global import CtrlGlobal
from ctrlglobal.ctrl_group_pos import CtrlGroupPos
from ctrlglobal.errors import AppError, DecodeError
from ctrlglobal.infra.db.connection import Connection
from ctrlglobal.infra.http.http_client import HttpClient
from ctrlglobal.logging_setup import logEvent

app = typer.Typer(no_args_is_help=True, add_completion=False)


def printRunHeader(runId: str, command: str, settings: Settings, sources: list[str]) -> None:
    """
    Назначение:
        Печатает безопасную сводку параметров запуска (без секретов).
    """
    typer.echo(
        f"run_id={runId} command={command} "
        f"db_driver={settings.db_driver} db_host={settings.db_host} db_name={settings.db_name} "
        f"db_user={settings.db_user} db_password={maskSecret(settings.db_password)} sources={sources}"
    )


def openConnection(settings: Settings, logger: logging.Logger) -> Connection:
    return Connection.from_config(settings.db_config(), logger=logger)


def runCheckDbCommand(ctx: typer.Context) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]
    logger = log.getLogger()
    printRunHeader(runId, "check-db", settings, ctx.obj["sources"])

    try:
        start = time.monotonic()
        conn = openConnection(settings, logger)
        try:
            conn.fetchone("SELECT 1 AS ok")
        finally:
            conn.close()
        latency_ms = int((time.monotonic() - start) * 1000)
    except AppError as exc:
        logEvent(logger, logging.ERROR, "db", f"DB check failed: {exc}", runId=runId)
        typer.echo(f"ERROR: DB check failed: {exc.code}", err=True)
        raise typer.Exit(code=2)

    typer.echo(f"db ok driver={settings.db_driver} latency_ms={latency_ms}")


def runGroupPosCommand(ctx: typer.Context, groupPos: str, browser: str, waktu: str) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]
    logger = log.getLogger()

    if not settings.integrator_url:
        typer.echo("ERROR: missing integrator_url (--integrator-url or INTEGRATOR_URL)", err=True)
        raise typer.Exit(code=2)

    try:
        conn = openConnection(settings, logger)
    except AppError as exc:
        typer.echo(f"ERROR: {exc}", err=True)
        raise typer.Exit(code=2)

    httpClient = HttpClient(
        timeoutSeconds=settings.http_timeout_seconds,
        tlsSkipVerify=settings.tls_skip_verify,
        caFile=settings.ca_file,
        logger=logger,
    )
    try:
        ctrl = CtrlGlobal(conn, settings.encryption_key, http_client=httpClient, logger=logger)
        client = CtrlGroupPos(settings.pc_location, settings.integrator_url, ctrl_global=ctrl)
        result = client.get_group_pos({"group_pos": groupPos, "browser": browser, "waktu": waktu})
    finally:
        httpClient.close()
        conn.close()

    typer.echo(json.dumps(result, ensure_ascii=False))
    if isinstance(result, dict) and "error" in result:
        logEvent(logger, logging.ERROR, "integrator", f"group-pos failed: {result['error']}", runId=runId)
        raise typer.Exit(code=2)


@app.callback()
def main(
    ctx: typer.Context,
    config: str | None = typer.Option(None, "--config", help="Path to config.yml"),
    runId: str | None = typer.Option(None, "--run-id", help="Run identifier (UUID). If omitted, generated."),
    logLevel: str | None = typer.Option(None, "--log-level", help="Log level: debug|info|warning|error|fatal"),
    logFormat: str | None = typer.Option(None, "--log-format", help="Log format: json|line"),
    logFile: str | None = typer.Option(None, "--log-file", help="Also write logs to this file"),
    dbDriver: str | None = typer.Option(None, "--db-driver", help="mysql|pgsql|sqlite"),
    dbHost: str | None = typer.Option(None, "--db-host", help="Database host"),
    dbPort: int | None = typer.Option(None, "--db-port", help="Database port"),
    dbName: str | None = typer.Option(None, "--db-name", help="Database name (sqlite: file path or :memory:)"),
    dbUser: str | None = typer.Option(None, "--db-user", help="Database user"),
    dbPassword: str | None = typer.Option(None, "--db-password", help="Database password (avoid; use env/file)"),
    integratorUrl: str | None = typer.Option(None, "--integrator-url", help="POS integrator base URL"),
    pcLocation: str | None = typer.Option(None, "--pc-location", help="Default pc_location"),
):
    """
    Назначение:
        Глобальная инициализация CLI:
        - генерирует/принимает run_id
        - загружает настройки (CLI > ENV > config > defaults)
        - настраивает общий логгер
        - сохраняет всё в ctx.obj для подкоманд
    """
    if not runId:
        runId = str(uuid.uuid4())

    cliOverrides = {
        "log_level": logLevel,
        "log_format": logFormat,
        "log_file": logFile,
        "db_driver": dbDriver,
        "db_host": dbHost,
        "db_port": dbPort,
        "db_name": dbName,
        "db_user": dbUser,
        "db_password": dbPassword,
        "integrator_url": integratorUrl,
        "pc_location": pcLocation,
    }
    try:
        loaded = load_settings(config_path=config, cli_overrides=cliOverrides)
        log.initialize("ctrlglobal", loaded.settings.logger_config())
    except AppError as exc:
        typer.echo(f"ERROR: {exc}", err=True)
        raise typer.Exit(code=2)

    ctx.obj = {
        "runId": runId,
        "settings": loaded.settings,
        "sources": loaded.sources_used,
    }


@app.command("check-db")
def check_db(ctx: typer.Context):
    runCheckDbCommand(ctx)


@app.command()
def encode(ctx: typer.Context, text: str = typer.Argument(..., help="Plain text to encode")):
    settings: Settings = ctx.obj["settings"]
    typer.echo(StringCipher(settings.encryption_key).encode(text))


@app.command()
def decode(ctx: typer.Context, text: str = typer.Argument(..., help="Encoded text")):
    settings: Settings = ctx.obj["settings"]
    try:
        typer.echo(StringCipher(settings.encryption_key).decode(text))
    except DecodeError as exc:
        typer.echo(f"ERROR: {exc}", err=True)
        raise typer.Exit(code=2)


@app.command("group-pos")
def group_pos(
    ctx: typer.Context,
    groupPos: str = typer.Option(..., "--group-pos", help="POS group code"),
    browser: str = typer.Option(..., "--browser", help="Browser identifier"),
    waktu: str = typer.Option(..., "--waktu", help="Request time"),
):
    runGroupPosCommand(ctx, groupPos, browser, waktu)


if __name__ == "__main__":
    app()
