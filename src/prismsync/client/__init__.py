"""Prism Element API client."""

from prismsync.client.api import ApiError, ApiResult, AuthError, PrismApiClient, TransportError

__all__ = [
    "ApiError",
    "ApiResult",
    "AuthError",
    "PrismApiClient",
    "TransportError",
]
