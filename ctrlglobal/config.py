from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from pathlib import Path
import os
from typing import Any

import yaml

from ctrlglobal.domain.error_codes import ErrorCode
from ctrlglobal.errors import ConfigurationError


@dataclass(frozen=True)
class Settings:
    # Database
    db_driver: str = "mysql"
    db_host: str = "127.0.0.1"
    db_port: int | None = None
    db_name: str = ""
    db_charset: str = "utf8mb4"
    db_user: str = ""
    db_password: str = ""

    # Crypto
    encryption_key: str = "secret"

    # Integrator
    integrator_url: str | None = None
    pc_location: str = ""
    http_timeout_seconds: float = 20.0
    tls_skip_verify: bool = False
    ca_file: str | None = None

    # Logging
    log_level: str = "info"
    log_format: str = "json"
    log_file: str | None = None

    def db_config(self) -> dict[str, Any]:
        """Конфиг для Connection.from_config()."""
        return {
            "driver": self.db_driver,
            "host": self.db_host,
            "port": self.db_port,
            "name": self.db_name,
            "charset": self.db_charset,
            "username": self.db_user,
            "password": self.db_password,
        }

    def logger_config(self) -> dict[str, Any]:
        """Конфиг для createLogger(): console всегда, file - если задан log_file."""
        handlers: list[dict[str, Any]] = [{"type": "console", "level": self.log_level}]
        if self.log_file:
            handlers.append({"type": "file", "level": self.log_level, "path": self.log_file})
        return {"format": self.log_format, "handlers": handlers}


@dataclass(frozen=True)
class LoadedSettings:
    settings: Settings
    sources_used: list[str]


ENV_NAMES: dict[str, str] = {
    "db_driver": "DB_DRIVER",
    "db_host": "DB_HOST",
    "db_port": "DB_PORT",
    "db_name": "DB_NAME",
    "db_charset": "DB_CHARSET",
    "db_user": "DB_USER",
    "db_password": "DB_PASSWORD",
    "encryption_key": "ENCRYPTION_KEY",
    "integrator_url": "INTEGRATOR_URL",
    "pc_location": "PC_LOCATION",
    "http_timeout_seconds": "HTTP_TIMEOUT_SECONDS",
    "tls_skip_verify": "HTTP_TLS_SKIP_VERIFY",
    "ca_file": "HTTP_CA_FILE",
    "log_level": "LOG_LEVEL",
    "log_format": "LOG_FORMAT",
    "log_file": "LOG_FILE",
}

_INT_FIELDS = {"db_port"}
_FLOAT_FIELDS = {"http_timeout_seconds"}
_BOOL_FIELDS = {"tls_skip_verify"}


def _read_yaml_config(path: Path) -> dict:
    if not path.exists():
        return {}
    if not path.is_file():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            return {}
        return data


def _env_get(name: str) -> str | None:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return None
    return v.strip()


def _parse_bool(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    vv = str(v).strip().lower()
    if vv in ("1", "true", "yes", "y"):
        return True
    if vv in ("0", "false", "no", "n"):
        return False
    raise ConfigurationError(f"Invalid boolean value: {v}", code=ErrorCode.INVALID_CONFIG)


def _coerce(key: str, value: Any) -> Any:
    if value is None:
        return None
    try:
        if key in _INT_FIELDS:
            return int(value)
        if key in _FLOAT_FIELDS:
            return float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"Invalid value for {key}: {value}", code=ErrorCode.INVALID_CONFIG, details={key: value}
        ) from None
    if key in _BOOL_FIELDS:
        return _parse_bool(value)
    # YAML отдаёт скаляры типизированными (encryption_key: 12345 -> int)
    return str(value)


def load_settings(
    config_path: str | None,
    cli_overrides: dict,
) -> LoadedSettings:
    """
    Priority: CLI > ENV > config > defaults
    """
    sources: list[str] = []
    known = {f.name for f in fields(Settings)}
    merged: dict[str, Any] = asdict(Settings())

    # 1) config file
    if config_path:
        cfg = _read_yaml_config(Path(config_path))
        if cfg:
            sources.append("config")
        for k, v in cfg.items():
            if k in known and v is not None:
                merged[k] = _coerce(k, v)

    # 2) env
    env = {k: _env_get(name) for k, name in ENV_NAMES.items()}
    if any(v is not None for v in env.values()):
        sources.append("env")
    for k, v in env.items():
        if v is not None:
            merged[k] = _coerce(k, v)

    # 3) CLI overrides (only those explicitly passed)
    if any(v is not None for v in cli_overrides.values()):
        sources.append("cli")
    for k, v in cli_overrides.items():
        if v is None or k not in known:
            continue
        merged[k] = _coerce(k, v)

    return LoadedSettings(settings=Settings(**merged), sources_used=sources)
