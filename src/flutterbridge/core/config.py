"""FlutterBridge configuration: Pydantic model, load, save, env overlays."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from flutterbridge.core.constants import (
    CLEANUP_TIMEOUT_S,
    CONFIG_FILENAME,
    DEFAULT_ALLOWED_PATH_PREFIX,
    DEFAULT_HOST,
    DEFAULT_MAX_LOG_LINES,
    DEFAULT_MAX_SESSIONS,
    DEFAULT_PORT,
    DEFAULT_TEST_TIMEOUT_MINUTES,
    HOT_RELOAD_REVERT_S,
    _default_data_dir,
)
from flutterbridge.core.exceptions import ConfigError, ConfigNotFoundError


def flutterbridge_dir() -> Path:
    """Return the FlutterBridge data directory, creating it if needed."""
    d = _default_data_dir()
    d.mkdir(mode=0o700, parents=True, exist_ok=True)
    return d


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class ServerConfig(BaseModel):
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not (1 <= v <= 65535):
            raise ValueError("port must be between 1 and 65535")
        return v


class SessionsConfig(BaseModel):
    allow_only: str = DEFAULT_ALLOWED_PATH_PREFIX
    base_path: str | None = None
    max_sessions: int = DEFAULT_MAX_SESSIONS
    session_timeout_minutes: int | None = None
    pre_build_script: str | None = None
    post_build_script: str | None = None

    @field_validator("max_sessions")
    @classmethod
    def validate_max_sessions(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_sessions must be at least 1")
        return v

    @field_validator("session_timeout_minutes")
    @classmethod
    def validate_timeout(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError("session_timeout_minutes must be at least 1")
        return v

    @field_validator("base_path", "pre_build_script", "post_build_script", mode="before")
    @classmethod
    def blank_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class FlutterConfig(BaseModel):
    max_log_lines: int = DEFAULT_MAX_LOG_LINES
    cleanup_timeout_s: float = CLEANUP_TIMEOUT_S
    reload_revert_s: float = HOT_RELOAD_REVERT_S
    default_test_timeout_minutes: int = DEFAULT_TEST_TIMEOUT_MINUTES

    @field_validator("max_log_lines")
    @classmethod
    def validate_max_log_lines(cls, v: int) -> int:
        if not (1 <= v <= 1_000_000):
            raise ValueError("max_log_lines must be between 1 and 1000000")
        return v

    @field_validator("cleanup_timeout_s")
    @classmethod
    def validate_cleanup_timeout(cls, v: float) -> float:
        if not (0.1 <= v <= 120.0):
            raise ValueError("cleanup_timeout_s must be between 0.1 and 120.0")
        return v


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "text"  # "text" | "json"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        # "warn" is accepted as an alias
        normalized = "WARNING" if v.upper() == "WARN" else v.upper()
        if normalized not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return normalized

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v not in ("text", "json"):
            raise ValueError("Log format must be 'text' or 'json'")
        return v


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------


class FlutterBridgeConfig(BaseModel):
    """Root FlutterBridge configuration model."""

    model_config = {"extra": "forbid"}

    server: ServerConfig = Field(default_factory=ServerConfig)
    sessions: SessionsConfig = Field(default_factory=SessionsConfig)
    flutter: FlutterConfig = Field(default_factory=FlutterConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# ---------------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------------


def _config_file_path() -> Path:
    if env_path := os.environ.get("FLUTTERBRIDGE_CONFIG"):
        return Path(env_path)
    return _default_data_dir() / CONFIG_FILENAME


def load_config(path: Path | str | None = None) -> FlutterBridgeConfig:
    """
    Load FlutterBridgeConfig from a TOML file, overlaid with environment variables.

    Priority (highest to lowest):
      1. Environment variables (FLUTTERBRIDGE_* or the plain legacy names)
      2. Config file
      3. Built-in defaults

    A missing default config file is not an error: the server runs on
    defaults.  An explicitly requested file that does not exist is.
    """
    import tomllib

    explicit = path is not None or bool(os.environ.get("FLUTTERBRIDGE_CONFIG"))
    cfg_path = Path(path) if path is not None else _config_file_path()

    data: dict[str, Any] = {}
    if cfg_path.exists():
        try:
            with open(cfg_path, "rb") as f:
                data = tomllib.load(f)
        except Exception as exc:
            raise ConfigError(f"Cannot read config file {cfg_path}: {exc}") from exc
    elif explicit:
        raise ConfigNotFoundError(f"Config file not found: {cfg_path}")

    _apply_env_overrides(data)

    try:
        return FlutterBridgeConfig.model_validate(data)
    except Exception as exc:
        raise ConfigError(f"Invalid config at {cfg_path}: {exc}") from exc


def _apply_env_overrides(data: dict[str, Any]) -> None:
    """Overlay FLUTTERBRIDGE_* (or legacy plain) environment variables onto parsed TOML."""

    def _env(*names: str) -> str:
        for name in names:
            v = os.environ.get(name, "")
            if v:
                return v
        return ""

    def _int(value: str, name: str) -> int:
        try:
            return int(value)
        except ValueError:
            raise ConfigError(f"{name} must be an integer, got {value!r}") from None

    # Server
    if host := _env("FLUTTERBRIDGE_HOST", "HOST"):
        data.setdefault("server", {})["host"] = host
    if port := _env("FLUTTERBRIDGE_PORT", "PORT"):
        data.setdefault("server", {})["port"] = _int(port, "PORT")

    # Sessions
    sessions = data.setdefault("sessions", {})
    if allow_only := _env("FLUTTERBRIDGE_ALLOW_ONLY", "ALLOW_ONLY"):
        sessions["allow_only"] = allow_only
    if base_path := _env("FLUTTERBRIDGE_BASE_PATH", "BASE_PATH"):
        sessions["base_path"] = base_path
    if max_sessions := _env("FLUTTERBRIDGE_MAX_SESSIONS", "MAX_SESSIONS"):
        sessions["max_sessions"] = _int(max_sessions, "MAX_SESSIONS")
    if timeout := _env("FLUTTERBRIDGE_SESSION_TIMEOUT", "SESSION_TIMEOUT"):
        sessions["session_timeout_minutes"] = _int(timeout, "SESSION_TIMEOUT")
    if pre := _env("FLUTTERBRIDGE_PRE_BUILD_SCRIPT", "PRE_BUILD_SCRIPT"):
        sessions["pre_build_script"] = pre
    if post := _env("FLUTTERBRIDGE_POST_BUILD_SCRIPT", "POST_BUILD_SCRIPT"):
        sessions["post_build_script"] = post

    # Logging
    if level := _env("FLUTTERBRIDGE_LOG_LEVEL", "LOG_LEVEL"):
        data.setdefault("logging", {})["level"] = level
    if fmt := _env("FLUTTERBRIDGE_LOG_FORMAT"):
        data.setdefault("logging", {})["format"] = fmt


def save_config(config: FlutterBridgeConfig, path: Path | None = None) -> Path:
    """Write *config* to a TOML file atomically and return its path."""
    import tomli_w

    cfg_path = path or _config_file_path()
    cfg_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    # TOML has no null
    write_data = config.model_dump(mode="json", exclude_none=True)

    tmp_path = cfg_path.with_suffix(".tmp")
    try:
        with open(tmp_path, "wb") as f:
            tomli_w.dump(write_data, f)
        tmp_path.rename(cfg_path)
    except Exception as exc:
        tmp_path.unlink(missing_ok=True)
        raise ConfigError(f"Cannot write config to {cfg_path}: {exc}") from exc

    cfg_path.chmod(0o600)
    return cfg_path
