"""Endpoint configuration and the per-client endpoint registry."""

from enum import StrEnum
from pathlib import Path

from pydantic import Field

from comx_api.config import ConfigModel, read_yaml
from comx_api.errors import ConfigError


class AccessLevel(StrEnum):
    """Access control level for module endpoints."""

    PUBLIC = "public"
    PROTECTED = "protected"
    PRIVATE = "private"


class RateLimit(ConfigModel):
    """
    Rate limit advertised for an endpoint.

    Attributes
    ----------
    max_requests : int
        Maximum number of requests allowed in the window
    window_seconds : int
        Window length in seconds

    """

    max_requests: int = Field(ge=1)
    window_seconds: int = Field(ge=1)


class EndpointConfig(ConfigModel):
    """
    Configuration for a named module endpoint.

    Attributes
    ----------
    name : str
        Endpoint name; calls are matched against it by method name
    path : str
        Path relative to the module base URL
    access_level : AccessLevel
        Required access level
    rate_limit : RateLimit | None
        Rate limit configuration, if any
    timeout : float | None
        Request timeout override in seconds
    allow_retries : bool
        Whether failed calls to this endpoint may be retried
    metadata : dict[str, str]
        Additional endpoint-specific configuration

    """

    name: str = Field(min_length=1)
    path: str
    access_level: AccessLevel = AccessLevel.PUBLIC
    rate_limit: RateLimit | None = None
    timeout: float | None = Field(default=None, gt=0)
    allow_retries: bool = True
    metadata: dict[str, str] = Field(default_factory=dict)


class EndpointRegistry:
    """
    Registry of module endpoints keyed by name.

    Each client owns its own registry; registering an endpoint whose name
    already exists replaces the previous configuration.

    """

    def __init__(self) -> None:
        self._endpoints: dict[str, EndpointConfig] = {}

    @classmethod
    def load(cls, path: str | Path) -> "EndpointRegistry":
        """
        Build a registry from the ``endpoints`` list of a YAML file.

        Parameters
        ----------
        path : str | Path
            YAML file with a top-level ``endpoints`` list

        Returns
        -------
        EndpointRegistry
            Registry holding every listed endpoint; empty if the list is absent

        Raises
        ------
        ConfigError
            If the file is unreadable, ``endpoints`` is not a list of
            mappings, or an endpoint is invalid

        """
        endpoints = read_yaml(path).get("endpoints") or []
        if not isinstance(endpoints, list):
            msg = f"'endpoints' in {path} must be a list"
            raise ConfigError(msg)

        registry = cls()
        for item in endpoints:
            if not isinstance(item, dict):
                msg = f"Endpoint entry in {path} must be a mapping, got {item!r}"
                raise ConfigError(msg)
            registry.register(EndpointConfig(**item))
        return registry

    def register(self, config: EndpointConfig) -> EndpointConfig:
        """
        Register an endpoint configuration.

        Parameters
        ----------
        config : EndpointConfig
            Endpoint to register

        Returns
        -------
        EndpointConfig
            The registered configuration

        """
        self._endpoints[config.name] = config
        return config

    def get(self, name: str) -> EndpointConfig | None:
        """
        Get an endpoint configuration by name.

        Parameters
        ----------
        name : str
            Endpoint name

        Returns
        -------
        EndpointConfig | None
            Configuration or None if not registered

        """
        return self._endpoints.get(name)

    def unregister(self, name: str) -> EndpointConfig | None:
        """Remove an endpoint, returning its configuration if it was registered."""
        return self._endpoints.pop(name, None)

    def list(self) -> list[EndpointConfig]:
        """List all registered endpoints in registration order."""
        return list(self._endpoints.values())

    def exists(self, name: str) -> bool:
        return name in self._endpoints

    def clear(self) -> None:
        """Remove all registered endpoints."""
        self._endpoints.clear()

    def __contains__(self, name: object) -> bool:
        return name in self._endpoints

    def __len__(self) -> int:
        return len(self._endpoints)
