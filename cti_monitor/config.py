"""
Configuration for the CTI Event Monitor.

Settings are grouped per component and read from the environment (or a
``.env`` file). The classifier and routing tables can additionally be
overridden from a YAML rules file so new deployments can teach the monitor
their vendor event names without code changes.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError


class RetentionBasis(str, Enum):
    """Timestamp a session's age is measured from."""

    STARTED_AT = "started_at"
    LAST_UPDATED = "last_updated"


class PublisherSettings(BaseSettings):
    """Contact-tracking publisher configuration."""

    model_config = SettingsConfigDict(env_prefix="CTI_PUBLISHER_")

    enabled: bool = Field(
        default=True,
        description="Forward eligible events to the contact-tracking system",
    )
    endpoint_url: Optional[str] = Field(
        default=None,
        description="Function URL of the contact-tracking system; unset runs the simulated client",
    )
    api_key: Optional[str] = Field(
        default=None,
        description="Bearer token sent with every request",
    )
    connect_timeout_seconds: float = Field(default=30.0, gt=0)
    read_timeout_seconds: float = Field(default=60.0, gt=0)
    max_attempts: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Total delivery attempts per event, including the first",
    )
    retry_base_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Delay before attempt n+1 is base * n",
    )
    heartbeat_interval_seconds: float = Field(default=30.0, gt=0)
    max_concurrent_publishes: int = Field(default=50, ge=1)
    call_id_attribute: str = Field(
        default="source_call_id",
        description="Attribute key carrying the originating call id on every request",
    )
    simulated_failure_rate: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Failure injection for the simulated client",
    )


class RetentionSettings(BaseSettings):
    """Retention sweeper configuration."""

    model_config = SettingsConfigDict(env_prefix="CTI_RETENTION_")

    sweep_interval_seconds: float = Field(default=900.0, gt=0)
    retention_window_seconds: float = Field(default=3600.0, ge=0)
    measure_from: RetentionBasis = Field(default=RetentionBasis.STARTED_AT)


class DiscoverySettings(BaseSettings):
    """Classifier and discovered event-type table configuration."""

    model_config = SettingsConfigDict(env_prefix="CTI_DISCOVERY_")

    max_event_types: int = Field(default=1000, ge=1)
    max_call_ids_per_type: int = Field(default=500, ge=0)
    sample_length: int = Field(default=500, ge=0)
    rules_file: Optional[Path] = Field(
        default=None,
        description="YAML file overriding classifier rules and the category table",
    )


class MonitorSettings(BaseSettings):
    """Main monitor settings."""

    model_config = SettingsConfigDict(
        env_prefix="CTI_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    service_name: str = Field(default="cti-monitor")
    workers: int = Field(
        default=5,
        ge=1,
        le=256,
        description="Ingestion worker tasks",
    )
    queue_size: int = Field(default=10000, ge=0)
    shutdown_grace_seconds: float = Field(
        default=10.0,
        ge=0,
        description="Time in-flight publishes get to finish on shutdown",
    )
    status_report_interval_seconds: float = Field(default=1800.0, gt=0)
    log_level: str = Field(default="info")
    log_format: str = Field(default="pretty")

    publisher: PublisherSettings = Field(default_factory=PublisherSettings)
    retention: RetentionSettings = Field(default_factory=RetentionSettings)
    discovery: DiscoverySettings = Field(default_factory=DiscoverySettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"debug", "info", "warning", "error", "critical"}
        if v.lower() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.lower()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = {"json", "pretty", "simple"}
        if v.lower() not in valid_formats:
            raise ValueError(f"Invalid log format: {v}. Must be one of {valid_formats}")
        return v.lower()


def load_rules_file(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load a YAML rules file.

    Recognised top-level keys are ``event_type_rules``, ``call_id_rules``,
    ``metadata_fields``, ``categories`` and ``correlation_markers``. Missing
    keys fall back to the built-in defaults of the component that reads them.

    Raises:
        ConfigurationError: If the file is unreadable or not a mapping
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot load rules file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Rules file {path} must contain a mapping")
    return data


@lru_cache
def get_settings() -> MonitorSettings:
    """Get cached settings instance."""
    return MonitorSettings()
