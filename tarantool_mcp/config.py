"""Server configuration loading helpers."""

from __future__ import annotations

import os
from pathlib import Path

import tomllib

from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field

from .errors import ConfigurationError

CONFIG_FILE = Path.home() / ".config" / "tarantool-mcp" / "config.toml"

ENV_CONFIG_FILE = "TARANTOOL_MCP_CONFIG"
ENV_LOG_LEVEL = "TARANTOOL_MCP_LOG_LEVEL"
ENV_HOST = "TARANTOOL_HOST"
ENV_PORT = "TARANTOOL_PORT"
ENV_USERNAME = "TARANTOOL_USERNAME"
ENV_PASSWORD = "TARANTOOL_PASSWORD"


class ConnectionConfig(BaseModel):
    """Endpoint and credentials of the Tarantool instance."""

    model_config = ConfigDict(frozen=True)

    host: str = "localhost"
    port: int = 3301
    username: str | None = None
    password: str | None = None
    connect_timeout: float = 3.0
    request_timeout: float | None = None


class AppConfig(BaseModel):
    """Shape of the server configuration file."""

    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    server_name: str = "tarantool-mcp"
    log_level: str = "INFO"
    connect_on_startup: bool = True
    name_cache_size: int = 0


def load_config(environ: Mapping[str, str] | None = None) -> AppConfig:
    """Load configuration from disk, then apply environment overrides."""

    env = os.environ if environ is None else environ
    path = Path(env[ENV_CONFIG_FILE]) if env.get(ENV_CONFIG_FILE) else CONFIG_FILE
    try:
        data = _read_config_file(path)
    except FileNotFoundError:
        data = {}
    except (tomllib.TOMLDecodeError, OSError):
        data = {}

    connection = dict(data.get("connection", {}))  # type: ignore[call-overload]
    connection.update(_connection_overrides(env))
    level = env.get(ENV_LOG_LEVEL)
    if level:
        data["log_level"] = level.upper()

    return AppConfig(
        connection=ConnectionConfig(**connection),
        server_name=data.get("server_name", AppConfig.model_fields["server_name"].default),
        log_level=data.get("log_level", AppConfig.model_fields["log_level"].default),
        connect_on_startup=data.get(
            "connect_on_startup", AppConfig.model_fields["connect_on_startup"].default
        ),
        name_cache_size=data.get("name_cache_size", AppConfig.model_fields["name_cache_size"].default),
    )


def _connection_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    host = env.get(ENV_HOST)
    if host:
        overrides["host"] = host
    port = env.get(ENV_PORT)
    if port:
        try:
            overrides["port"] = int(port, 10)
        except ValueError as exc:
            raise ConfigurationError(f"{ENV_PORT} must be an integer, got '{port}'") from exc
    username = env.get(ENV_USERNAME)
    if username:
        overrides["username"] = username
    password = env.get(ENV_PASSWORD)
    if password:
        overrides["password"] = password
    return overrides


def _read_config_file(path: Path) -> dict[str, object]:
    with path.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    if isinstance(raw, dict):
        server_name = raw.get("server_name")
        if isinstance(server_name, str):
            data["server_name"] = server_name
        log_level = raw.get("log_level")
        if isinstance(log_level, str):
            data["log_level"] = log_level.upper()
        connect_on_startup = raw.get("connect_on_startup")
        if isinstance(connect_on_startup, bool):
            data["connect_on_startup"] = connect_on_startup
        cache_size = raw.get("name_cache_size")
        if isinstance(cache_size, int) and not isinstance(cache_size, bool) and cache_size >= 0:
            data["name_cache_size"] = cache_size
        connection = raw.get("connection")
        if isinstance(connection, dict):
            parsed: dict[str, object] = {}
            for key in ("host", "username", "password"):
                value = connection.get(key)
                if isinstance(value, str):
                    parsed[key] = value
            port = connection.get("port")
            if isinstance(port, int) and not isinstance(port, bool):
                parsed["port"] = port
            for key in ("connect_timeout", "request_timeout"):
                value = connection.get(key)
                if isinstance(value, (int, float)) and not isinstance(value, bool):
                    parsed[key] = float(value)
            data["connection"] = parsed
    return data


__all__ = ["AppConfig", "CONFIG_FILE", "ConnectionConfig", "load_config"]
