"""Configuration loader for the library authentication backend."""
from __future__ import annotations

import logging
import os
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

LOGGER = logging.getLogger(__name__)

REPO_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_ENV_FILE = REPO_ROOT / ".env"

# Environment variable -> (section path, caster)
ENVIRONMENT_OVERRIDES = {
    "LIBRARY_AUTH_DATABASE_URL": (("auth", "database_url"), str),
    "LIBRARY_AUTH_JWT_SECRET": (("auth", "jwt", "secret_key"), str),
    "LIBRARY_AUTH_SMTP_HOST": (("auth", "smtp", "host"), str),
    "LIBRARY_AUTH_SMTP_PORT": (("auth", "smtp", "port"), int),
    "LIBRARY_AUTH_SMTP_USERNAME": (("auth", "smtp", "username"), str),
    "LIBRARY_AUTH_SMTP_PASSWORD": (("auth", "smtp", "password"), str),
    "LIBRARY_AUTH_CONFIRMATION_RECIPIENT": (("auth", "confirmation", "recipient_override"), str),
}


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded."""


class _FrozenModel(BaseModel):
    """Base model enforcing immutability for config sections."""

    model_config = ConfigDict(frozen=True)


class ServiceConfig(_FrozenModel):
    """Service identity reported by the health endpoint."""

    name: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)


class LoggingConfig(_FrozenModel):
    """Logging verbosity for the backend logger hierarchy."""

    level: str = Field("INFO", min_length=1)

    @field_validator("level")
    @classmethod
    def _validate_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in logging.getLevelNamesMapping():
            msg = f"Unknown logging level: {value}"
            raise ValueError(msg)
        return normalized


class AuthJWTConfig(_FrozenModel):
    """JWT signing settings."""

    secret_key: str = Field(..., min_length=32)
    algorithm: str = Field("HS256", min_length=1)
    access_token_expires_minutes: int = Field(..., ge=1)
    refresh_token_expires_minutes: int = Field(..., ge=1)

    @model_validator(mode="after")
    def _validate_lifetimes(self) -> "AuthJWTConfig":
        if self.refresh_token_expires_minutes <= self.access_token_expires_minutes:
            msg = "refresh_token_expires_minutes must exceed access_token_expires_minutes"
            raise ValueError(msg)
        return self

    @property
    def access_token_ttl(self) -> timedelta:
        """Return the configured access token lifetime."""

        return timedelta(minutes=self.access_token_expires_minutes)

    @property
    def refresh_token_ttl(self) -> timedelta:
        """Return the configured refresh token lifetime."""

        return timedelta(minutes=self.refresh_token_expires_minutes)


class AuthConfirmationConfig(_FrozenModel):
    """Registration confirmation email settings."""

    link_base_url: str = Field(..., min_length=1)
    recipient_override: Optional[str] = Field(default=None)

    @field_validator("recipient_override")
    @classmethod
    def _normalize_override(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None


class AuthSMTPConfig(_FrozenModel):
    """SMTP credentials for transactional email delivery."""

    host: str = Field(..., min_length=1)
    port: int = Field(..., ge=1, le=65535)
    username: str = Field(default="")
    password: str = Field(default="")
    use_tls: bool = False
    from_email: str = Field(..., min_length=3)
    timeout_seconds: float = Field(10.0, gt=0)


class AuthConfig(_FrozenModel):
    """Top-level authentication configuration."""

    database_url: str = Field(..., min_length=1)
    jwt: AuthJWTConfig
    confirmation: AuthConfirmationConfig
    smtp: AuthSMTPConfig


class AppConfig(_FrozenModel):
    """Top-level application configuration composed from config.yaml."""

    service: ServiceConfig
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    auth: AuthConfig

    @staticmethod
    def default_path() -> Path:
        """Return the default location of the configuration file.

        Returns:
            Path: Absolute path to config.yaml at the repository root.
        """
        return REPO_ROOT / "config.yaml"


def _env_file_path() -> Optional[Path]:
    """Return the ``.env`` file to load, honouring ``LIBRARY_AUTH_ENV_FILE``."""

    override = os.getenv("LIBRARY_AUTH_ENV_FILE")
    candidate = Path(override).expanduser() if override else DEFAULT_ENV_FILE
    if candidate.is_file():
        return candidate
    if override:
        LOGGER.warning("Configured environment file override does not exist: %s", candidate)
    return None


def _load_env_file(path: Path) -> None:
    """Copy ``KEY=value`` lines into ``os.environ`` without replacing set variables.

    Blank lines and ``#`` comments are skipped; one pair of surrounding quotes
    is removed from values.
    """

    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        LOGGER.warning("Unable to read environment file at %s", path)
        return
    for line in lines:
        key, sep, value = line.strip().partition("=")
        key = key.strip()
        if not sep or not key or key.startswith("#"):
            continue
        if os.environ.get(key, "").strip():
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] in {'"', "'"} and value[-1] == value[0]:
            value = value[1:-1]
        os.environ[key] = value


def _apply_environment_overrides(raw_content: Dict[str, Any]) -> Dict[str, Any]:
    """Merge environment-based overrides into the raw configuration mapping.

    Args:
        raw_content: Parsed YAML configuration prior to Pydantic validation.

    Returns:
        Dict[str, Any]: Configuration mapping with environment overrides applied.

    Raises:
        ConfigError: If an override cannot be converted to the expected type.
    """

    env_file_path = _env_file_path()
    if env_file_path is not None:
        _load_env_file(env_file_path)

    for env_key, (section_path, caster) in ENVIRONMENT_OVERRIDES.items():
        raw = os.getenv(env_key)
        if raw is None or raw.strip() == "":
            continue
        try:
            value = caster(raw.strip())
        except ValueError as exc:
            LOGGER.error("Invalid value for environment override %s", env_key)
            raise ConfigError(f"Invalid value for {env_key}") from exc
        section = raw_content
        for key in section_path[:-1]:
            section = section.setdefault(key, {})
        section[section_path[-1]] = value
        LOGGER.info("Configuration value %s overridden from environment", ".".join(section_path))
    return raw_content


def _read_yaml(path: Path) -> Dict[str, Any]:
    """Read YAML content from disk.

    Args:
        path: Location of the YAML file.

    Returns:
        Dict[str, Any]: Parsed YAML content.

    Raises:
        ConfigError: If the file cannot be read or parsed.
    """
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except FileNotFoundError as exc:
        LOGGER.error("Configuration file missing at %s", path)
        raise ConfigError("Configuration file not found") from exc
    except yaml.YAMLError as exc:
        LOGGER.error("Invalid YAML syntax in %s", path)
        raise ConfigError("Invalid YAML syntax") from exc
    if not isinstance(data, dict):
        LOGGER.error("Configuration root must be a mapping: %s", path)
        raise ConfigError("Configuration root must be a mapping")
    return data


@lru_cache(maxsize=1)
def load_config(path: Optional[Path] = None) -> AppConfig:
    """Load application configuration from YAML.

    Args:
        path: Optional override path to the YAML file.

    Returns:
        AppConfig: Parsed configuration object.

    Raises:
        ConfigError: If the configuration cannot be loaded or validated.
    """
    config_path = path or AppConfig.default_path()
    raw_content = _read_yaml(config_path)
    raw_content = _apply_environment_overrides(raw_content)
    try:
        return AppConfig(**raw_content)
    except ValidationError as exc:
        LOGGER.error("Invalid configuration values: %s", exc)
        raise ConfigError("Configuration validation failed") from exc
