"""Request guards"""
from app.middleware.webhook_auth import verify_gateway_key

__all__ = ["verify_gateway_key"]
