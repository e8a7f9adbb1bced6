"""Configuration management for the HLB client."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, model_validator

_config_logger = logging.getLogger(__name__)

DEFAULT_CREDENTIALS_PATH = "~/.hlb/credentials"


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Python logging level name")
    file: str | None = Field(default=None, description="Optional log file path")


class HLBSettings(BaseModel):
    api_key: str | None = Field(default=None, repr=False)
    partition: str = Field(default="aws", min_length=1)
    endpoint_hostname: str | None = Field(
        default=None,
        description="Overrides the hostname derived from region and partition.",
    )


class AWSSettings(BaseModel):
    region: str | None = Field(default=None)
    profile: str | None = Field(default=None)


class TransportSettings(BaseModel):
    max_retries: int = Field(default=5, ge=0, le=20)
    retry_wait_min_seconds: float = Field(default=1.0, ge=0)
    retry_wait_max_seconds: float = Field(default=30.0, ge=0)
    request_timeout_seconds: float = Field(default=30.0, gt=0)

    @model_validator(mode="after")
    def _check_wait_bounds(self) -> "TransportSettings":
        if self.retry_wait_min_seconds > self.retry_wait_max_seconds:
            raise ValueError("retry_wait_min_seconds must not exceed retry_wait_max_seconds")
        return self


class ReconcileSettings(BaseModel):
    create_timeout_seconds: float = Field(default=30 * 60, gt=0)
    update_timeout_seconds: float = Field(default=30 * 60, gt=0)
    delete_timeout_seconds: float = Field(default=30 * 60, gt=0)
    poll_interval_min_seconds: float = Field(default=0.5, ge=0)
    poll_interval_max_seconds: float = Field(default=10.0, ge=0)

    @model_validator(mode="after")
    def _check_poll_bounds(self) -> "ReconcileSettings":
        if self.poll_interval_min_seconds > self.poll_interval_max_seconds:
            raise ValueError(
                "poll_interval_min_seconds must not exceed poll_interval_max_seconds"
            )
        return self


class CredentialSettings(BaseModel):
    path: str = Field(default=DEFAULT_CREDENTIALS_PATH)
    validity_seconds: int = Field(default=15 * 60, ge=60, le=3600)
    role_session_name: str = Field(default="HLBClientSession", min_length=2, max_length=64)


class Settings(BaseModel):
    hlb: HLBSettings = Field(default_factory=HLBSettings)
    aws: AWSSettings = Field(default_factory=AWSSettings)
    transport: TransportSettings = Field(default_factory=TransportSettings)
    reconcile: ReconcileSettings = Field(default_factory=ReconcileSettings)
    credentials: CredentialSettings = Field(default_factory=CredentialSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


ENV_KEYS = {
    "api_key": "HLB_API_KEY",
    "partition": "HLB_PARTITION",
    "endpoint_hostname": "HLB_ENDPOINT_HOSTNAME",
    "aws_region": "AWS_DEFAULT_REGION",
    "aws_profile": "AWS_PROFILE",
    "max_retries": "HLB_MAX_RETRIES",
    "retry_wait_min": "HLB_RETRY_WAIT_MIN",
    "retry_wait_max": "HLB_RETRY_WAIT_MAX",
    "request_timeout": "HLB_REQUEST_TIMEOUT",
    "create_timeout": "HLB_CREATE_TIMEOUT",
    "update_timeout": "HLB_UPDATE_TIMEOUT",
    "delete_timeout": "HLB_DELETE_TIMEOUT",
    "poll_interval_min": "HLB_POLL_INTERVAL_MIN",
    "poll_interval_max": "HLB_POLL_INTERVAL_MAX",
    "credentials_path": "HLB_CREDENTIALS_PATH",
    "credential_validity": "HLB_CREDENTIAL_VALIDITY",
    "role_session_name": "HLB_ROLE_SESSION_NAME",
    "log_level": "LOG_LEVEL",
    "log_file": "LOG_FILE",
}


def _env_str(key: str) -> str | None:
    value = os.getenv(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        _config_logger.warning(
            "Invalid integer value for %s: %r, using default %d", key, value, default
        )
        return default


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        _config_logger.warning(
            "Invalid float value for %s: %r, using default %s", key, value, default
        )
        return default


def expand_path(path: str) -> Path:
    return Path(os.path.expandvars(path)).expanduser()


def load_settings() -> Settings:
    """Load configuration and cache the result."""

    return _load_settings_cached()


@lru_cache(maxsize=1)
def _load_settings_cached() -> Settings:
    load_dotenv(dotenv_path=Path.cwd() / ".env")

    transport = TransportSettings()
    reconcile = ReconcileSettings()
    credentials = CredentialSettings()

    settings_data: dict[str, object] = {
        "hlb": {
            "api_key": _env_str(ENV_KEYS["api_key"]),
            "partition": _env_str(ENV_KEYS["partition"]) or HLBSettings().partition,
            "endpoint_hostname": _env_str(ENV_KEYS["endpoint_hostname"]),
        },
        "aws": {
            "region": _env_str("AWS_REGION") or _env_str(ENV_KEYS["aws_region"]),
            "profile": _env_str(ENV_KEYS["aws_profile"]),
        },
        "transport": {
            "max_retries": _env_int(ENV_KEYS["max_retries"], transport.max_retries),
            "retry_wait_min_seconds": _env_float(
                ENV_KEYS["retry_wait_min"], transport.retry_wait_min_seconds
            ),
            "retry_wait_max_seconds": _env_float(
                ENV_KEYS["retry_wait_max"], transport.retry_wait_max_seconds
            ),
            "request_timeout_seconds": _env_float(
                ENV_KEYS["request_timeout"], transport.request_timeout_seconds
            ),
        },
        "reconcile": {
            "create_timeout_seconds": _env_float(
                ENV_KEYS["create_timeout"], reconcile.create_timeout_seconds
            ),
            "update_timeout_seconds": _env_float(
                ENV_KEYS["update_timeout"], reconcile.update_timeout_seconds
            ),
            "delete_timeout_seconds": _env_float(
                ENV_KEYS["delete_timeout"], reconcile.delete_timeout_seconds
            ),
            "poll_interval_min_seconds": _env_float(
                ENV_KEYS["poll_interval_min"], reconcile.poll_interval_min_seconds
            ),
            "poll_interval_max_seconds": _env_float(
                ENV_KEYS["poll_interval_max"], reconcile.poll_interval_max_seconds
            ),
        },
        "credentials": {
            "path": _env_str(ENV_KEYS["credentials_path"]) or credentials.path,
            "validity_seconds": _env_int(
                ENV_KEYS["credential_validity"], credentials.validity_seconds
            ),
            "role_session_name": (
                _env_str(ENV_KEYS["role_session_name"]) or credentials.role_session_name
            ),
        },
        "logging": {
            "level": _env_str(ENV_KEYS["log_level"]) or LoggingSettings().level,
            "file": _env_str(ENV_KEYS["log_file"]),
        },
    }

    try:
        return Settings.model_validate(settings_data)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc
