import json
import logging
import os
from pathlib import Path
from typing import Any, Literal, Optional
from urllib.parse import urlparse

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sqsworker.main.exceptions import ConfigurationError

DEFAULT_HANDLER = "sqsworker.worker.handlers:LoggingHandler"


def validate_queue_url(queue_url: str) -> str:
    """
    Validate and normalize an SQS queue URL.

    Rules:
    - Must be http(s) (http is allowed for LocalStack style endpoints)
    - Must have a hostname
    - Must have a path ending in the queue name

    Args:
        queue_url: Raw queue url, e.g. "https://sqs.us-east-1.amazonaws.com/1234/jobs/"

    Returns:
        str: Queue url with surrounding whitespace and trailing slash removed

    Raises:
        ValueError: Invalid queue url format
    """
    queue_url = queue_url.strip().rstrip("/")
    if not queue_url:
        raise ValueError("queue_url cannot be an empty string")

    parsed = urlparse(queue_url)
    if parsed.scheme not in ("http", "https"):
        raise ValueError(f"queue_url must use http:// or https://, got: {queue_url}")

    if not parsed.hostname:
        raise ValueError(f"queue_url missing hostname: {queue_url}")

    if not parsed.path.strip("/"):
        raise ValueError(f"queue_url missing queue name: {queue_url}")

    return queue_url


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SQS_WORKER_",
        extra="ignore",
        frozen=True,
    )

    # Queue
    queue_url: str
    endpoint_url: Optional[str] = None  # LocalStack or other SQS-compatible endpoint
    region: Optional[str] = None
    receive_wait_seconds: int = Field(default=1, ge=0, le=20)

    # Polling and concurrency
    max_children: int = Field(default=5, ge=1)
    poll_interval: float = Field(default=2, gt=0)
    max_sleep_period: float = Field(default=30, gt=0)
    visibility_timeout: int = Field(default=60, ge=0, le=43200)
    retry_visibility_timeout: Optional[int] = Field(default=None, ge=0, le=43200)

    # Idempotency store (optional)
    redis_server: Optional[str] = None
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None
    redis_ssl: bool = False
    redis_ssl_cert_reqs: Literal["required", "optional", "none"] = "required"
    redis_socket_timeout: float = 5
    idempotency_key_prefix: str = ""

    # Workers
    worker: str = DEFAULT_HANDLER
    worker_start_method: Literal["spawn", "fork"] = "spawn"

    # Logging
    log_level: Optional[str] = None
    log_path: Optional[str] = None

    config_file: Optional[str] = None

    @field_validator("queue_url")
    @classmethod
    def validate_queue_url_format(cls, value: str) -> str:
        return validate_queue_url(value)

    @model_validator(mode="before")
    @classmethod
    def default_retry_visibility_timeout(cls, data: Any) -> Any:
        # Claim TTL and deferral window share this value
        if isinstance(data, dict) and data.get("retry_visibility_timeout") is None:
            data = {
                **data,
                "retry_visibility_timeout": data.get(
                    "visibility_timeout", cls.model_fields["visibility_timeout"].default
                ),
            }
        return data

    @model_validator(mode="after")
    def validate_timing(self):
        if self.max_sleep_period < self.poll_interval:
            raise ValueError(
                f"max_sleep_period ({self.max_sleep_period}) must be >= "
                f"poll_interval ({self.poll_interval})"
            )

        if self.retry_visibility_timeout > self.visibility_timeout:
            logging.getLogger(__name__).warning(
                "retry_visibility_timeout (%s) exceeds visibility_timeout (%s); "
                "messages left to expire may reappear while their idempotency "
                "claim is still held",
                self.retry_visibility_timeout,
                self.visibility_timeout,
            )

        return self

    @property
    def queue_name(self) -> str:
        return self.queue_url.rsplit("/", 1)[-1]

    @property
    def idempotency_enabled(self) -> bool:
        return bool(self.redis_server)


_settings: Optional[Settings] = None


def fetch_config(config_file: str | Path | None) -> dict[str, Any]:
    """Read a JSON configuration file.

    Keys may use dashes or underscores (``max-children`` or ``max_children``).

    Args:
        config_file: Path to the file, or None.

    Returns:
        dict: The decoded configuration, empty when no file was given.

    Raises:
        ConfigurationError: File missing, unreadable or not a JSON object.
    """
    if not config_file:
        return {}

    try:
        with open(config_file) as f:
            config = json.load(f)
    except OSError as exc:
        raise ConfigurationError(f"could not open {config_file} for reading: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"invalid JSON in {config_file}: {exc}") from exc

    if not isinstance(config, dict):
        raise ConfigurationError(f"{config_file} must contain a JSON object")

    return {key.replace("-", "_"): value for key, value in config.items()}


def load_settings(
    config_file: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Build a settings snapshot.

    Precedence: overrides (CLI flags) > config file > environment > defaults.

    Raises:
        ConfigurationError: Config file or resulting values are invalid.
    """
    overrides = {k: v for k, v in (overrides or {}).items() if v is not None}
    config_file = config_file or overrides.get("config_file")

    values = fetch_config(config_file)
    values.update(overrides)
    if config_file:
        values["config_file"] = str(config_file)

    try:
        return Settings(**values)
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc


def get_settings() -> Settings:
    """Get settings singleton, creating it if needed.

    Returns:
        Settings: The application settings instance.
    """
    global _settings
    if _settings is None:
        _settings = load_settings(os.getenv("SQS_WORKER_CONFIG_FILE"))
    return _settings


def set_settings(settings: Settings) -> None:
    """Replace the settings snapshot (reload and tests).

    Args:
        settings: The Settings instance to use.
    """
    global _settings
    _settings = settings


def reset_settings() -> None:
    """Reset settings to None (for test cleanup)."""
    global _settings
    _settings = None


def get_loglevel(level: str | None = None):
    loglevel = (level or os.getenv("LOGLEVEL", "INFO")).upper()

    match loglevel:
        case "INFO":
            return logging.INFO
        case "WARNING" | "WARN":
            return logging.WARNING
        case "ERROR":
            return logging.ERROR
        case "CRITICAL":
            return logging.CRITICAL
        case "DEBUG" | "TRACE":
            return logging.DEBUG
        case _:
            return logging.INFO
