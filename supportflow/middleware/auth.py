"""
Authentication dependencies

- Bearer tokens are resolved to an Identity through Supabase auth
- Database webhooks carry a shared secret in ``X-Webhook-Secret``

Author: AI Assistant POC
Date: 2025-11-05
"""
import hmac
from functools import lru_cache
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status

from supportflow.config import get_settings
from supportflow.models.schemas import Identity, UserRole
from supportflow.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()


class IdentityProvider:
    """Resolve access tokens to identities via Supabase auth"""

    def __init__(self, supabase_client=None):
        self.client = supabase_client

    async def _get_client(self):
        if self.client is None:
            from supabase import acreate_client  # Lazy import for tests

            self.client = await acreate_client(settings.supabase_url, settings.supabase_key)
        return self.client

    async def resolve(self, token: Optional[str]) -> Optional[Identity]:
        """
        Resolve a JWT to the signed-in identity

        Returns:
            Identity, or None if the token is missing or rejected
        """
        if not token:
            return None

        try:
            client = await self._get_client()
            response = await client.auth.get_user(token)
        except Exception as e:
            logger.warning(f"Token verification failed: {e}")
            return None

        user = getattr(response, "user", None)
        if user is None:
            return None

        metadata = getattr(user, "user_metadata", None) or {}
        role = metadata.get("role")
        return Identity(
            id=user.id,
            email=getattr(user, "email", None),
            display_name=metadata.get("display_name") or metadata.get("full_name"),
            role=role if role in {r.value for r in UserRole} else None
        )


@lru_cache()
def get_identity_provider() -> IdentityProvider:
    return IdentityProvider()


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_identity(
    authorization: Annotated[Optional[str], Header()] = None,
    provider: IdentityProvider = Depends(get_identity_provider)
) -> Optional[Identity]:
    """Caller identity, None when unauthenticated"""
    return await provider.resolve(extract_bearer_token(authorization))


def verify_webhook_secret(
    webhook_secret: Annotated[Optional[str], Header(alias="X-Webhook-Secret")] = None
) -> bool:
    """
    Verify the shared secret sent by the database webhook.

    Raises:
        HTTPException: 401 if missing, 403 if invalid, 500 if not configured
    """
    expected = settings.webhook_secret
    if not expected:
        logger.error("WEBHOOK_SECRET not configured! Rejecting webhook.")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook authentication not configured"
        )

    if not webhook_secret:
        logger.warning("Webhook request missing secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing webhook secret"
        )

    # Constant-time comparison to prevent timing attacks
    if not hmac.compare_digest(webhook_secret, expected):
        logger.warning("Invalid webhook secret")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid webhook secret"
        )

    return True
