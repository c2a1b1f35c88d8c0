"""
API error mapping
Translates inbox service errors into HTTP responses
"""
from fastapi import HTTPException

from app.services.errors import InboxError


def http_error(error: InboxError) -> HTTPException:
    """Build the HTTPException matching an inbox error's status code"""
    return HTTPException(status_code=error.status_code, detail=str(error))
