"""Configuration for telemetry delivery."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from typing import Any


ENV_PREFIX = "PIPELINE_TELEMETRY_"

DEFAULT_ENVIRONMENT_DIR = ".pipeline/commonPipelineEnvironment"


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class DeliveryConfig:
    """
    Connection settings for the remote collector.

    Set once before the step runs; the delivery treats it as read-only
    afterwards. An empty destination disables delivery entirely.
    """
    # Collector endpoint (e.g. https://splunk:8088/services/collector)
    destination: str = ""

    # Collector token, with or without the "Splunk " scheme prefix
    token: str = ""

    # Target index (optional if the token has a default index)
    index: str = ""

    # Identifies the pipeline run; sent as the event host
    correlation_id: str = ""

    # Ship the full log output when a step fails
    send_logs: bool = False

    # Optional event source
    source: str = ""

    # Maximum number of log messages per request
    batch_size: int = 20000

    # Transport
    max_request_duration: float = 5.0  # seconds
    max_retries: int = -1  # negative disables retries
    retry_backoff_seconds: float = 0.5
    skip_tls_verification: bool = True

    # Directory holding the git context files of the pipeline
    environment_dir: str = DEFAULT_ENVIRONMENT_DIR

    @property
    def enabled(self) -> bool:
        """Delivery only happens when a destination is configured."""
        return bool(self.destination)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeliveryConfig:
        """Create config from dictionary, ignoring unknown keys."""
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> DeliveryConfig:
        """Create config from PIPELINE_TELEMETRY_* environment variables."""
        environ = os.environ if environ is None else environ
        data: dict[str, Any] = {}

        for name in ("destination", "token", "index", "correlation_id", "source"):
            value = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if value is not None:
                data[name] = value

        send_logs = environ.get(f"{ENV_PREFIX}SEND_LOGS")
        if send_logs is not None:
            data["send_logs"] = _env_bool(send_logs)

        batch_size = environ.get(f"{ENV_PREFIX}BATCH_SIZE")
        if batch_size:
            data["batch_size"] = int(batch_size)

        return cls.from_dict(data)


@dataclass
class LoggingConfig:
    """Local logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class Config:
    """Main configuration container."""
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict) -> Config:
        """Create config from dictionary."""
        return cls(
            delivery=DeliveryConfig.from_dict(data.get("delivery") or {}),
            logging=LoggingConfig(**(data.get("logging") or {})),
        )

    @classmethod
    def from_yaml(cls, path: str) -> Config:
        """Load config from YAML file."""
        import yaml
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_json(cls, path: str) -> Config:
        """Load config from JSON file."""
        import json
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)
