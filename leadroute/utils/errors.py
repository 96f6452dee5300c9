"""Error handling utilities."""

from typing import Optional


class LeadRouteError(Exception):
    """Base exception for the lead routing backend."""
    pass


class NotFoundError(LeadRouteError):
    """Referenced lead, realtor, user account or assignment does not exist."""

    def __init__(self, entity: str, identifier: Optional[str] = None, message: Optional[str] = None):
        self.entity = entity
        self.identifier = identifier
        super().__init__(message or f"{entity} not found: {identifier}")


class UnauthorizedError(LeadRouteError):
    """Caller does not own the record it tried to mutate."""
    pass


class ValidationError(LeadRouteError):
    """Malformed input or a transition the state machine does not allow."""
    pass


class ConflictError(LeadRouteError):
    """Concurrent write collided with another writer."""
    pass


class TransientStoreError(LeadRouteError):
    """Persistent store unavailable or failed mid-operation."""
    pass


class SupabaseError(TransientStoreError):
    """Supabase operation error."""
    pass


def http_status_for(error: Exception) -> int:
    """HTTP status code for an error raised by a routing operation."""
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, UnauthorizedError):
        return 403
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, ConflictError):
        return 409
    if isinstance(error, TransientStoreError):
        return 503
    return 500
