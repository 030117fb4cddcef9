"""Client configuration models."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from comx_api.errors import ConfigError

MIN_REFRESH_INTERVAL = 1.0


class ConfigModel(BaseModel):
    """Base for config models; rejects bad values with ConfigError."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except PydanticValidationError as e:
            raise ConfigError(f"Invalid {type(self).__name__}: {e}") from e


class RetryPolicy(ConfigModel):
    """
    Retry behavior for one logical call.

    Parameters
    ----------
    max_retries : int
        Retries after the first attempt (total attempts = max_retries + 1)
    base_delay : float
        Delay in seconds before the first retry
    multiplier : float
        Exponential backoff multiplier
    max_delay : float
        Upper bound for any single delay

    """

    max_retries: int = Field(default=3, ge=0)
    base_delay: float = Field(default=0.1, gt=0)
    multiplier: float = Field(default=2.0, ge=1.0)
    max_delay: float = Field(default=30.0, gt=0)

    def get_delay(self, attempt: int) -> float:
        """
        Calculate delay for a given retry using exponential backoff.

        Parameters
        ----------
        attempt : int
            Retry number (0-indexed, 0 = delay before the second attempt)

        Returns
        -------
        float
            Delay in seconds

        """
        delay = self.base_delay * (self.multiplier**attempt)
        return min(delay, self.max_delay)


class RpcClientConfig(ConfigModel):
    """Settings for the plain JSON-RPC client."""

    url: str = "http://127.0.0.1:9944"
    timeout: float = Field(default=30.0, gt=0)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    max_batch_size: int = Field(default=100, ge=1)


class ModuleClientConfig(ConfigModel):
    """
    Settings for authenticated module calls.

    A ``port`` of 0 means the host already carries the port (or none is
    needed) and it is left out of built URLs.

    """

    host: str = "http://127.0.0.1"
    port: int = Field(default=5555, ge=0, le=65535)
    timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=0)
    base_delay: float = Field(default=0.1, gt=0)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_retries=self.max_retries, base_delay=self.base_delay)


class CacheConfig(ConfigModel):
    """TTL, refresh cadence, and capacity of a ResponseCache."""

    ttl: float = Field(default=60.0, gt=0)
    refresh_interval: float = Field(default=300.0, gt=0)
    max_entries: int = Field(default=1000, ge=1)


class QueryMapConfig(ConfigModel):
    """Refresh cadence and freshness window for cached queries."""

    refresh_interval: float = 300.0
    cache_duration: float = 600.0
    max_entries: int = Field(default=1000, ge=1)

    @model_validator(mode="after")
    def _check_intervals(self) -> "QueryMapConfig":
        if self.refresh_interval < MIN_REFRESH_INTERVAL:
            msg = "Refresh interval must be at least 1 second"
            raise ValueError(msg)
        if self.cache_duration <= self.refresh_interval:
            msg = "Cache duration must be longer than refresh interval"
            raise ValueError(msg)
        return self

    def cache_config(self) -> CacheConfig:
        return CacheConfig(
            ttl=self.cache_duration,
            refresh_interval=self.refresh_interval,
            max_entries=self.max_entries,
        )


def read_yaml(path: str | Path) -> dict:
    """
    Read a YAML mapping from disk.

    Raises
    ------
    ConfigError
        If the file cannot be read, is not valid YAML, or is not a mapping

    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        msg = f"Cannot read settings file {path}: {e}"
        raise ConfigError(msg) from e
    except yaml.YAMLError as e:
        msg = f"Invalid YAML in {path}: {e}"
        raise ConfigError(msg) from e

    if not isinstance(data, dict):
        msg = f"Settings file {path} must contain a mapping"
        raise ConfigError(msg)
    return data
