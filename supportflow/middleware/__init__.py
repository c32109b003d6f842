"""
Middleware modules
"""
from .auth import IdentityProvider, get_current_identity, get_identity_provider, verify_webhook_secret
from .logging_middleware import LoggingMiddleware

__all__ = [
    "IdentityProvider",
    "LoggingMiddleware",
    "get_current_identity",
    "get_identity_provider",
    "verify_webhook_secret",
]
