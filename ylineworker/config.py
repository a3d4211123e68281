"""Reading the worker's TOML configuration file."""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

from .appdata import get_executable_path
from .logger import level_from_name

log = logging.getLogger(__name__)

CONFIG_FILE_NAME = "YLineWorker_Config.toml"

_REGISTER_FIELD = "register_secret"
_EMPTY = ""

_T = TypeVar("_T")


class ConfigError(Exception):
    """Raised when the configuration file cannot be read or is invalid."""


@dataclass(frozen=True)
class Config:
    worker_ip: str
    worker_port: int
    register_secret: str
    server_ip: str
    server_port: int
    intranet_ip_filter: bool
    local_host_filter: bool
    log_level: int


def get_table(name: str, table: dict[str, Any]) -> dict[str, Any]:
    """Return the sub-table ``name``; raises ConfigError if missing or not a table."""
    if name not in table:
        log.error("Table %s not found in config file 配置文件中没有找到 %s 项", name, name)
        raise ConfigError("Table not found in config file")
    value = table[name]
    if not isinstance(value, dict):
        log.error("Table %s is not a table 不是一个表", name)
        raise ConfigError("Table is not a table")
    return value


def _value(table: dict[str, Any], key: str, default: _T) -> _T:
    value = table.get(key)
    if value is None or type(value) is not type(default):
        return default
    return value


def parse_config_text(text: str) -> Config:
    """Build a Config from TOML text; raises ConfigError on any problem."""
    try:
        document = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(str(exc)) from exc

    worker_section = get_table("YLineWorker", document)
    worker_ip = _value(worker_section, "ip", "0.0.0.0")
    worker_port = _value(worker_section, "port", 33393)

    worker = get_table("worker", document)
    register_secret = _value(worker, _REGISTER_FIELD, _EMPTY)
    if not register_secret:
        log.error("Worker Register secret is empty 工作机注册密钥为空")
        raise ConfigError("Register secret is empty")

    server = get_table("YLineServer", document)
    server_ip = _value(server, "ip", "0.0.0.0")
    server_port = _value(server, "port", 33383)

    middleware = get_table("middleware", document)
    intranet_ip_filter = _value(middleware, "IntranetIpFilter", False)
    local_host_filter = _value(middleware, "LocalHostFilter", False)

    logger_table = get_table("logger", document)
    level_str = _value(logger_table, "level", "debug")
    try:
        log_level = level_from_name(level_str)
    except ValueError:
        log.warning("Invalid log level 无效的日志等级: %s", level_str)
        log.warning("Using default log level 使用默认日志等级: info")
        log_level = logging.INFO

    return Config(
        worker_ip=worker_ip,
        worker_port=worker_port,
        register_secret=register_secret,
        server_ip=server_ip,
        server_port=server_port,
        intranet_ip_filter=intranet_ip_filter,
        local_host_filter=local_host_filter,
        log_level=log_level,
    )


def parse_config(path: Path | str | None = None) -> Config:
    """Read the configuration file, by default the one next to the executable."""
    config_path = Path(path) if path is not None else get_executable_path() / CONFIG_FILE_NAME
    log.info("Config file path 配置文件路径: %s", config_path)
    try:
        text = config_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Failed to read config file {config_path}: {exc}") from exc
    return parse_config_text(text)