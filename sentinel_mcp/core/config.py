"""
Configuration models and loading logic for the SentinelOne MCP server.

The goal of this module is to provide a single place where runtime
configuration (console URL, API token, timeouts, search budgets, logging
settings) is defined and loaded from the environment or a JSON file.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .errors import ConfigError


@dataclass
class SentinelOneConfig:
    """
    Connection settings for the SentinelOne management console.
    """

    api_base: str
    api_key: str
    timeout_seconds: float = 30
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        self.api_base = self.api_base.rstrip("/")


@dataclass
class SearchConfig:
    """
    Budgets for Deep Visibility search jobs.

    Creation and fetch retries guard against two unrelated platform limits
    (concurrent query quota, and results lagging behind a FINISHED status),
    so each has its own attempt count and delay.
    """

    create_max_attempts: int = 6
    create_retry_delay_seconds: float = 3.0
    poll_interval_seconds: float = 1.0
    max_polls: int = 30
    fetch_max_attempts: int = 5
    fetch_retry_delay_seconds: float = 2.0
    page_size: int = 50


@dataclass
class LoggingConfig:
    """
    Logging-related configuration.
    """

    log_dir: str = "logs"
    log_level: str = "INFO"


@dataclass
class AppConfig:
    """
    Top-level configuration.
    """

    sentinelone: SentinelOneConfig
    search: SearchConfig = field(default_factory=SearchConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _require_env(name: str) -> str:
    """
    Read a required environment variable or raise ConfigError if missing.
    """

    value = os.getenv(name)
    if not value:
        raise ConfigError(f"Required environment variable {name!r} is not set")
    return value


def _parse_bool(name: str, raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    value = str(raw).strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def _parse_timeout(name: str, raw: Any) -> float:
    try:
        timeout = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a number") from exc
    if timeout <= 0:
        raise ConfigError(f"{name} must be positive")
    return timeout


def load_config() -> AppConfig:
    """
    Load configuration from environment variables.

    Environment variables:
        SENTINELONE_API_BASE: Console URL, e.g. https://usea1.sentinelone.net (required).
        SENTINELONE_API_KEY: API token (required).
        SENTINELONE_TIMEOUT_SECONDS: Per-request wall-clock bound (default: 30).
        SENTINELONE_VERIFY_SSL: Verify TLS certificates (default: true).

        S1MCP_LOG_DIR: Directory for log files (default: "logs").
        S1MCP_LOG_LEVEL: Root log level (default: "INFO").
    """

    api_base = _require_env("SENTINELONE_API_BASE")
    api_key = _require_env("SENTINELONE_API_KEY")
    timeout_seconds = _parse_timeout(
        "SENTINELONE_TIMEOUT_SECONDS",
        os.getenv("SENTINELONE_TIMEOUT_SECONDS", "30"),
    )
    verify_ssl = _parse_bool(
        "SENTINELONE_VERIFY_SSL",
        os.getenv("SENTINELONE_VERIFY_SSL", "true"),
    )

    logging_cfg = LoggingConfig(
        log_dir=os.getenv("S1MCP_LOG_DIR", "logs"),
        log_level=os.getenv("S1MCP_LOG_LEVEL", "INFO"),
    )

    return AppConfig(
        sentinelone=SentinelOneConfig(
            api_base=api_base,
            api_key=api_key,
            timeout_seconds=timeout_seconds,
            verify_ssl=verify_ssl,
        ),
        logging=logging_cfg,
    )


def config_from_dict(data: Dict[str, Any]) -> AppConfig:
    """
    Build an ``AppConfig`` from a parsed JSON document.

    Expected shape::

        {
          "sentinelone": {"api_base": "...", "api_key": "...", "timeout_seconds": 30},
          "search": {"max_polls": 30},
          "logging": {"log_dir": "logs", "log_level": "INFO"}
        }
    """

    s1_data = data.get("sentinelone") or {}
    if not s1_data.get("api_base"):
        raise ConfigError("sentinelone.api_base is required")
    if not s1_data.get("api_key"):
        raise ConfigError("sentinelone.api_key is required")

    s1_cfg = SentinelOneConfig(
        api_base=s1_data["api_base"],
        api_key=s1_data["api_key"],
        timeout_seconds=_parse_timeout(
            "sentinelone.timeout_seconds", s1_data.get("timeout_seconds", 30)
        ),
        verify_ssl=_parse_bool(
            "sentinelone.verify_ssl", s1_data.get("verify_ssl", True)
        ),
    )

    search_data = data.get("search") or {}
    try:
        search_cfg = SearchConfig(**search_data)
    except TypeError as exc:
        raise ConfigError(f"Invalid search configuration: {exc}") from exc

    logging_data = data.get("logging") or {}
    logging_cfg = LoggingConfig(
        log_dir=logging_data.get("log_dir", "logs"),
        log_level=logging_data.get("log_level", "INFO"),
    )

    return AppConfig(sentinelone=s1_cfg, search=search_cfg, logging=logging_cfg)


def load_config_from_file(config_path: str) -> AppConfig:
    """
    Load configuration from a JSON file.

    Raises:
        ConfigError: If the file is missing, not valid JSON, or incomplete.
    """

    try:
        with open(config_path, "r") as f:
            data = json.load(f)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {config_path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {config_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a JSON object")
    return config_from_dict(data)


def resolve_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load configuration from ``config_path`` (or ``S1MCP_CONFIG_FILE``) when
    given, otherwise from the environment.
    """

    path = config_path or os.getenv("S1MCP_CONFIG_FILE")
    if path:
        return load_config_from_file(path)
    return load_config()
