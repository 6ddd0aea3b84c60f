"""
Process configuration.

Values come from environment variables, optionally seeded from a `.env`
file in the working directory. Invalid values fail fast at startup with
ConfigurationError instead of surfacing later as sampling errors.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator


class ConfigurationError(RuntimeError):
    """Raised when the process configuration is missing or out of range."""


# env var -> Config field
ENV_FIELDS: Dict[str, str] = {
    "SAMPLE_APP_HOST": "host",
    "SAMPLE_APP_PORT": "port",
    "TIME_INTERVAL": "time_interval",
    "RANDOM_TIME_ALIVE_INCREMENTER": "time_alive_increment",
    "RANDOM_CPU_USAGE_UPPER_BOUND": "cpu_usage_upper_bound",
    "RANDOM_TOTAL_HEAP_SIZE_UPPER_BOUND": "total_heap_size_upper_bound",
    "RANDOM_THREADS_ACTIVE_UPPER_BOUND": "threads_active_upper_bound",
    "SAMPLE_APP_PORTS": "sample_app_ports",
    "SAMPLE_APP_PEER_HOST": "peer_host",
    "OUTBOUND_TIMEOUT": "outbound_timeout",
    "MONGO_URL": "mongo_url",
    "DB_NAME": "db_name",
    "OTEL_EXPORTER_OTLP_ENDPOINT": "otlp_endpoint",
    "OTEL_SERVICE_NAME": "service_name",
    "INSTANCE_ID": "instance_id",
    "LOG_LEVEL": "log_level",
}

_FIELD_ENV = {v: k for k, v in ENV_FIELDS.items()}


class Config(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)

    # Synthetic metric generator
    time_interval: float = Field(default=1, gt=0)
    time_alive_increment: int = Field(default=1, ge=0)
    cpu_usage_upper_bound: int = Field(default=100, gt=0)
    total_heap_size_upper_bound: int = Field(default=100, gt=0)
    threads_active_upper_bound: int = Field(default=10, ge=0)

    # Chained sample app calls
    sample_app_ports: List[str] = Field(default_factory=list)
    peer_host: str = "0.0.0.0"
    outbound_timeout: float = Field(default=10, gt=0)

    mongo_url: str = "mongodb://localhost:27017"
    db_name: str = "sampleapp"

    otlp_endpoint: str = "localhost:4317"
    service_name: str = "python-sampleapp"
    # suffixed onto instrument names, so it must be a valid name fragment
    instance_id: Optional[str] = Field(default=None, pattern=r"^[-_./A-Za-z0-9]*$")
    log_level: str = "INFO"

    @field_validator("sample_app_ports", mode="before")
    @classmethod
    def _split_ports(cls, v):
        if isinstance(v, str):
            return [p.strip() for p in v.split(",") if p.strip()]
        return v

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.strip().upper()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """Build a Config from `environ` (defaults to os.environ plus ./.env)."""
        if environ is None:
            load_dotenv(Path.cwd() / ".env")
            environ = os.environ

        values = {
            field: environ[name]
            for name, field in ENV_FIELDS.items()
            if environ.get(name) not in (None, "")
        }
        try:
            return cls(**values)
        except ValidationError as e:
            problems = []
            for err in e.errors():
                field = str(err["loc"][0]) if err["loc"] else "?"
                problems.append(f"{_FIELD_ENV.get(field, field)}: {err['msg']}")
            raise ConfigurationError("Invalid configuration: " + "; ".join(problems)) from e
