# =======================================================================================
# keytrack/utils/__init__.py - Utils Package
# =======================================================================================
from .exceptions import *
from .validators import *

__all__ = [
    "KeyTrackError", "PreconditionError", "KeyNotAvailable", "KeyNotTaken",
    "HolderMismatch", "MalformedToken", "InvalidRequest", "Forbidden",
    "AuthenticationFailed", "KeyNotFound", "UserNotFound", "DuplicateKeyNumber",
    "KeyInUse", "DuplicateUser", "error_from_code", "PermissionValidator",
    "normalize_key_ids",
]
