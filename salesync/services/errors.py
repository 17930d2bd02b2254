"""
errors.py - Exception taxonomy

Every failure surfaced by the sync client derives from SaleSyncError.
The code/status_code pair is what the local API reports to the UI.
"""

from typing import Optional


class SaleSyncError(Exception):
    code = "error"
    status_code = 500
    default_message = "Unexpected error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(SaleSyncError):
    """Bad input; never reaches the remote service."""
    code = "validation_error"
    status_code = 400
    default_message = "Invalid input"


class AuthRequired(SaleSyncError):
    """No active session, or the remote service no longer accepts it."""
    code = "auth_required"
    status_code = 401
    default_message = "Please log in first"


class SessionExpired(AuthRequired):
    code = "session_expired"
    default_message = "Session expired, please log in again"


class InvalidCredentials(SaleSyncError):
    # Same message for unknown user and wrong password.
    code = "invalid_credentials"
    status_code = 401
    default_message = "Invalid username or password"


class RemoteUnavailable(SaleSyncError):
    """Network failure, timeout or 5xx."""
    code = "remote_unavailable"
    status_code = 503
    default_message = "Remote service unavailable"


class RemoteRejected(SaleSyncError):
    """The remote service refused the request (non-auth 4xx)."""
    code = "remote_rejected"
    status_code = 400
    default_message = "Request rejected by remote service"


class IdentityTaken(RemoteRejected):
    code = "identity_taken"
    status_code = 409
    default_message = "Username already exists"


class RecordNotFound(RemoteRejected):
    code = "record_not_found"
    status_code = 404
    default_message = "Record not found"


class NotAuthorizedForResource(SaleSyncError):
    code = "not_authorized_for_resource"
    status_code = 403
    default_message = "Not allowed to modify this record"


class OfflineNoCache(SaleSyncError):
    code = "offline_no_cache"
    status_code = 503
    default_message = "Offline and no cached data available"


class SessionEnded(SaleSyncError):
    """The session that started an operation ended while it was in flight."""
    code = "session_ended"
    status_code = 401
    default_message = "Session ended before the operation completed"
