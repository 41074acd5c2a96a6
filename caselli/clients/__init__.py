"""HTTP clients for the services the agent core depends on."""

from .anthropic import AnthropicStreamingClient
from .auth import AuthenticatedUser, AuthError, SupabaseAuthClient
from .http import RetryConfig, TimeoutConfig, create_http_client
from .property_data import EnrichmentError, PropertyDataClient
from .storage import StorageClient, StorageError

__all__ = [
    "AnthropicStreamingClient",
    "AuthenticatedUser",
    "AuthError",
    "SupabaseAuthClient",
    "RetryConfig",
    "TimeoutConfig",
    "create_http_client",
    "EnrichmentError",
    "PropertyDataClient",
    "StorageClient",
    "StorageError",
]
