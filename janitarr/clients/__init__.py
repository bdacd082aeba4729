"""API Clients for Radarr and Sonarr."""

from .base import (
    BaseClient, APIError, AuthenticationError, NotFoundError,
    RateLimitedError, TransportError, MalformedResponseError,
)
from .sonarr import SonarrClient
from .radarr import RadarrClient
from ..models import SONARR


def create_client(server, timeout: float = 15) -> BaseClient:
    """Build the API client matching a configured server's kind."""
    cls = SonarrClient if server.kind == SONARR else RadarrClient
    return cls(server.url, server.api_key, server.name, timeout=timeout)


__all__ = [
    'BaseClient', 'SonarrClient', 'RadarrClient', 'create_client',
    'APIError', 'AuthenticationError', 'NotFoundError', 'RateLimitedError',
    'TransportError', 'MalformedResponseError',
]
