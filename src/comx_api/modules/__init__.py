"""Signed calls to module servers and endpoint configuration."""

from comx_api.modules.client import ModuleClient
from comx_api.modules.endpoint import AccessLevel, EndpointConfig, EndpointRegistry, RateLimit
from comx_api.modules.request import AuthenticatedRequest, ModuleRequest, RequestBuilder, canonical_json

__all__ = [
    "AccessLevel",
    "AuthenticatedRequest",
    "EndpointConfig",
    "EndpointRegistry",
    "ModuleClient",
    "ModuleRequest",
    "RateLimit",
    "RequestBuilder",
    "canonical_json",
]
