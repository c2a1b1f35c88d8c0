"""
Inbox Errors
Exception hierarchy shared by the inbox services and mapped to HTTP codes by the routers
"""


class InboxError(Exception):
    """Base class for every per-operation inbox failure"""
    status_code: int = 500


class InboxValidationError(InboxError):
    """Input rejected before any store call (empty content, missing field)"""
    status_code = 400


class NotFoundError(InboxError):
    """Referenced contact, message or prompt does not exist"""
    status_code = 404


class DraftStateError(InboxError):
    """Draft operation attempted on a message that is not a draft"""
    status_code = 409


class StoreError(InboxError):
    """Table store insert/update/delete/select failed"""
    status_code = 503


class ResponderError(InboxError):
    """AI responder could not produce a reply"""
    status_code = 502


class DeliveryError(InboxError):
    """WhatsApp gateway rejected or failed an outbound message"""
    status_code = 502
