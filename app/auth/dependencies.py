"""
FastAPI dependencies for operator authentication
"""
import logging
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.auth.jwt_handler import authenticate_token, OperatorTokenError
from app.models.operator import Operator

logger = logging.getLogger(__name__)

# scheme_name matches the BearerAuth entry of the OpenAPI schema in main.py
bearer_scheme = HTTPBearer(
    scheme_name="BearerAuth",
    description="Supabase access token of the clinic operator"
)


async def get_current_operator(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)
) -> Operator:
    """
    Resolve the operator behind the Bearer token.

    Raises:
        HTTPException: 401 when the token is not accepted
    """
    try:
        return authenticate_token(credentials.credentials)
    except OperatorTokenError as e:
        logger.warning(f"🔒 Operator request rejected: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"}
        )
