"""
Operator Token Handling

Verifies Supabase access tokens with python-jose. The REST endpoints read the
token from the Authorization header, the inbox WebSocket from the query string;
both end up in authenticate_token().
"""
import logging
from typing import Any, Dict

from jose import ExpiredSignatureError, JWTError, jwt

from app.config import settings
from app.models.operator import Operator

logger = logging.getLogger(__name__)

JWT_ALGORITHMS = ["HS256"]
JWT_AUDIENCE = "authenticated"


class OperatorTokenError(Exception):
    """Access token missing, malformed, expired or signed with another secret"""
    pass


def decode_operator_token(token: str) -> Dict[str, Any]:
    """
    Verify signature, expiry and audience of an access token.

    Returns:
        The token claims

    Raises:
        OperatorTokenError: If the token cannot be trusted
    """
    if not token:
        raise OperatorTokenError("Token is required")
    if not settings.is_auth_configured:
        logger.error("❌ SUPABASE_JWT_SECRET is not configured, rejecting operator token")
        raise OperatorTokenError("Authentication service is not configured")

    try:
        return jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=JWT_ALGORITHMS,
            audience=JWT_AUDIENCE
        )
    except ExpiredSignatureError:
        raise OperatorTokenError("Token has expired")
    except JWTError as e:
        logger.warning(f"Token verification failed: {e}")
        raise OperatorTokenError("Invalid token")


def operator_from_claims(claims: Dict[str, Any]) -> Operator:
    """Build the operator identity; the sub claim is mandatory"""
    operator_id = claims.get("sub")
    if not operator_id:
        raise OperatorTokenError("Token has no subject")

    metadata = claims.get("user_metadata") or {}
    return Operator(
        operator_id=operator_id,
        email=claims.get("email") or "",
        display_name=metadata.get("full_name") or metadata.get("name") or "",
        role=claims.get("role"),
        expires_at=claims.get("exp")
    )


def authenticate_token(token: str) -> Operator:
    operator = operator_from_claims(decode_operator_token(token))
    logger.debug(f"Operator authenticated: {operator.label} ({operator.operator_id})")
    return operator
