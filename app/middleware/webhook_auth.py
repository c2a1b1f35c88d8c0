"""
Gateway Authentication

The WhatsApp gateway calls /webhook/* with a shared key in X-API-Key.
"""
from typing import Optional
from fastapi import HTTPException, status, Header
import hmac
import logging

from app.config import settings

logger = logging.getLogger(__name__)


def verify_gateway_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key", description="Shared key of the WhatsApp gateway")
) -> str:
    """
    Dependency guarding gateway webhooks.

    Returns:
        The accepted key

    Raises:
        HTTPException: 500 when no key is configured, 401 when the key is missing or wrong
    """
    expected = settings.WEBHOOK_SECRET_KEY
    if not expected:
        logger.error("❌ WEBHOOK_SECRET_KEY is not configured, refusing gateway call")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook authentication is not configured"
        )

    if not x_api_key or not hmac.compare_digest(x_api_key.encode(), expected.encode()):
        logger.warning("🔒 Gateway call with missing or invalid X-API-Key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing X-API-Key"
        )

    return x_api_key
