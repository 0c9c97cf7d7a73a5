"""
Service configuration loaded from environment variables / .env file.

All keys use the ``JOBSCHEDULER_`` prefix, e.g. ``JOBSCHEDULER_DEFAULT_NAMESPACE``.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .jobs.base import JobDefaults

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="JOBSCHEDULER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server
    host: str = "0.0.0.0"
    port: int = 50054
    api_key: str = "dev-key"

    # Kubernetes
    default_namespace: str = "default"
    in_cluster: bool = True
    kubeconfig_path: Optional[str] = None
    job_ttl_seconds: int = 86400
    cluster_timeout_seconds: float = 10.0

    # Job defaults
    default_cpu_request: str = "100m"
    default_memory_request: str = "64Mi"
    default_cpu_limit: str = "200m"
    default_memory_limit: str = "128Mi"
    default_registry: str = ""
    backoff_limit: int = 3
    parallelism: int = 1
    completions: int = 1

    # Timer jobs
    timer_image: str = "timer-service:latest"
    timer_log_level: str = "info"

    # Logging
    log_level: str = "info"
    log_format: Literal["text", "json"] = "json"

    @field_validator("port")
    @classmethod
    def _check_port(cls, value: int) -> int:
        if value <= 0 or value > 65535:
            raise ValueError(f"invalid server port: {value}")
        return value

    @field_validator("default_namespace")
    @classmethod
    def _check_namespace(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("kubernetes default namespace cannot be empty")
        return value.strip()

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            level = value.strip().lower()
            if level == "warn":
                level = "warning"
            if level not in LOG_LEVELS:
                raise ValueError(f"invalid log level: {value}")
            return level
        return value

    def job_defaults(self) -> JobDefaults:
        return JobDefaults(
            namespace=self.default_namespace,
            cpu_request=self.default_cpu_request,
            memory_request=self.default_memory_request,
            cpu_limit=self.default_cpu_limit,
            memory_limit=self.default_memory_limit,
            registry=self.default_registry,
            ttl_seconds=self.job_ttl_seconds,
            backoff_limit=self.backoff_limit,
            parallelism=self.parallelism,
            completions=self.completions,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
