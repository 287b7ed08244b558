# =======================================================================================
# keytrack/utils/exceptions.py - Custom Exceptions
# =======================================================================================
from typing import Dict, Optional, Type


class KeyTrackError(Exception):
    """Base exception for the key management core.

    Every subclass carries a stable ``code`` (sent to clients so the UI can tell
    failure categories apart) and the HTTP status the API maps it to.
    """

    code = "KEYTRACK_ERROR"
    status_code = 500
    default_message = "Key management error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# ---------- precondition violations (expected, recoverable) ----------

class PreconditionError(KeyTrackError):
    """A transition was rejected because the key is not in the required state."""
    status_code = 409


class KeyNotAvailable(PreconditionError):
    code = "KEY_NOT_AVAILABLE"
    default_message = "Key is already taken"


class KeyNotTaken(PreconditionError):
    code = "KEY_NOT_TAKEN"
    default_message = "Key is already available"


class HolderMismatch(KeyNotTaken):
    """The key is taken, but not by the user named in the handoff token."""
    code = "HOLDER_MISMATCH"
    default_message = "Key is not currently taken by the specified user"


# ---------- malformed input ----------

class MalformedToken(KeyTrackError):
    code = "MALFORMED_TOKEN"
    status_code = 400
    default_message = "Invalid QR code format"


class InvalidRequest(KeyTrackError):
    code = "INVALID_REQUEST"
    status_code = 400
    default_message = "Invalid request"


# ---------- authorization ----------

class Forbidden(KeyTrackError):
    code = "FORBIDDEN"
    status_code = 403
    default_message = "Access denied"


class AuthenticationFailed(KeyTrackError):
    code = "AUTHENTICATION_FAILED"
    status_code = 401
    default_message = "Authentication required"


# ---------- lookups ----------

class NotFoundError(KeyTrackError):
    status_code = 404


class KeyNotFound(NotFoundError):
    code = "KEY_NOT_FOUND"
    default_message = "Key not found"


class UserNotFound(NotFoundError):
    code = "USER_NOT_FOUND"
    default_message = "User not found"


# ---------- provisioning conflicts ----------

class DuplicateKeyNumber(KeyTrackError):
    code = "DUPLICATE_KEY_NUMBER"
    status_code = 409
    default_message = "Key number already exists"


class KeyInUse(KeyTrackError):
    code = "KEY_IN_USE"
    status_code = 409
    default_message = "Cannot delete a key that is currently taken"


class DuplicateUser(KeyTrackError):
    code = "DUPLICATE_USER"
    status_code = 409
    default_message = "Email already registered"


_ERRORS_BY_CODE: Dict[str, Type[KeyTrackError]] = {
    cls.code: cls
    for cls in (
        KeyNotAvailable, KeyNotTaken, HolderMismatch, MalformedToken, InvalidRequest,
        Forbidden, AuthenticationFailed, KeyNotFound, UserNotFound,
        DuplicateKeyNumber, KeyInUse, DuplicateUser,
    )
}


def error_from_code(code: Optional[str], message: Optional[str] = None) -> KeyTrackError:
    """Rebuild the exception an API error body describes (used by the client)."""
    cls = _ERRORS_BY_CODE.get(code or "", KeyTrackError)
    return cls(message)
