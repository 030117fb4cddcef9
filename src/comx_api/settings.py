"""YAML settings file loader."""

from pathlib import Path

from pydantic import Field
from pydantic import ValidationError as PydanticValidationError

from comx_api.config import ConfigModel, ModuleClientConfig, QueryMapConfig, RpcClientConfig, read_yaml
from comx_api.errors import ConfigError
from comx_api.modules.endpoint import EndpointConfig, EndpointRegistry


class Settings(ConfigModel):
    """
    Top-level layout of a settings file.

    Attributes
    ----------
    rpc : RpcClientConfig
        Plain JSON-RPC client settings
    module : ModuleClientConfig
        Authenticated module client settings
    query_map : QueryMapConfig
        Cached query layer settings
    endpoints : list[EndpointConfig]
        Endpoints to register on the module client

    """

    rpc: RpcClientConfig = Field(default_factory=RpcClientConfig)
    module: ModuleClientConfig = Field(default_factory=ModuleClientConfig)
    query_map: QueryMapConfig = Field(default_factory=QueryMapConfig)
    endpoints: list[EndpointConfig] = Field(default_factory=list)

    def endpoint_registry(self) -> EndpointRegistry:
        """Build a registry holding every configured endpoint."""
        registry = EndpointRegistry()
        for endpoint in self.endpoints:
            registry.register(endpoint)
        return registry


def load_settings(path: str | Path) -> Settings:
    """
    Load client settings from a YAML file.

    Parameters
    ----------
    path : str | Path
        Path to the settings file

    Returns
    -------
    Settings
        Parsed settings; missing sections fall back to defaults

    Raises
    ------
    ConfigError
        If the file is unreadable or fails validation

    """
    data = read_yaml(path)
    try:
        return Settings.model_validate(data)
    except PydanticValidationError as e:
        msg = f"Invalid settings in {path}: {e}"
        raise ConfigError(msg) from e
