# =======================================================================================
# keytrack/models/enums.py - Enums and Constants
# =======================================================================================
from enum import Enum
from typing import Literal

# Type aliases for better type hints
KeyCategory = Literal["classroom", "lab", "office", "storage", "other"]
TokenKindName = Literal["request", "return", "batch-return"]


class KeyStatus(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class Role(str, Enum):
    FACULTY = "faculty"
    SECURITY = "security"
    ADMIN = "admin"


class KeyAction(str, Enum):
    """Actions carried by transition events."""
    TAKE = "take"
    RETURN = "return"
    COLLECTIVE_RETURN = "collective-return"
    QR_REQUEST = "qr-request"
    QR_RETURN = "qr-return"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    TOGGLE_FREQUENT = "toggle-frequent"


class Transition(Enum):
    """Mutations the key store knows how to apply atomically."""
    TAKE = "take"
    RETURN = "return"
    TOGGLE_FREQUENT = "toggle-frequent"


# Actions whose event concerns a particular user (holder, scanner or collector)
USER_SCOPED_ACTIONS = frozenset({
    KeyAction.TAKE,
    KeyAction.RETURN,
    KeyAction.COLLECTIVE_RETURN,
    KeyAction.QR_REQUEST,
    KeyAction.QR_RETURN,
})

TAKE_ACTIONS = frozenset({KeyAction.TAKE, KeyAction.QR_REQUEST})
RETURN_ACTIONS = frozenset({KeyAction.RETURN, KeyAction.COLLECTIVE_RETURN, KeyAction.QR_RETURN})

# Fan-out room names
KEYS_ROOM = "keys-updates"


def user_room(user_id: str) -> str:
    return f"user-{user_id}"


def role_room(role: str) -> str:
    return f"{role}-room"

# Fan-out event names
KEY_UPDATED = "key-updated"
USER_KEY_UPDATED = "user-key-updated"
