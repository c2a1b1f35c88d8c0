"""Operator authentication (Supabase access tokens)"""
from app.auth.jwt_handler import authenticate_token, OperatorTokenError
from app.auth.dependencies import get_current_operator

__all__ = [
    "authenticate_token",
    "OperatorTokenError",
    "get_current_operator",
]
