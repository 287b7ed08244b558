# =======================================================================================
# keytrack/utils/validators.py - Validation Helpers
# =======================================================================================
from typing import Any, Iterable, List

from .exceptions import Forbidden, InvalidRequest
from ..models.enums import Role


class PermissionValidator:
    """Role policy for every key operation."""

    TAKE = frozenset({Role.FACULTY, Role.ADMIN})
    RETURN_ANY = frozenset({Role.SECURITY, Role.ADMIN})
    COLLECTIVE_RETURN = frozenset({Role.SECURITY, Role.FACULTY, Role.ADMIN})
    SCAN = frozenset({Role.SECURITY, Role.ADMIN})
    PROVISION = frozenset({Role.SECURITY, Role.ADMIN})
    VIEW_ALL_TAKEN = frozenset({Role.SECURITY, Role.FACULTY, Role.ADMIN})

    @staticmethod
    def require_role(role: Role, allowed: Iterable[Role], action: str) -> None:
        allowed = frozenset(allowed)
        if role not in allowed:
            names = ", ".join(sorted(r.value for r in allowed))
            raise Forbidden(f"Forbidden - {action} requires one of the following roles: {names}")

    @staticmethod
    def can_return_any(role: Role) -> bool:
        return role in PermissionValidator.RETURN_ANY


def normalize_key_ids(key_ids: Iterable[Any]) -> List[str]:
    """
    Accept key ids as plain strings or as key-like dicts ({"id": ...} or
    {"_id": ...}) and return de-duplicated strings in their original order.
    """
    result: List[str] = []
    for index, item in enumerate(key_ids or []):
        if isinstance(item, dict):
            item = item.get("id") or item.get("_id")
        if not isinstance(item, str) or not item.strip():
            raise InvalidRequest(f"Invalid key ID format at index {index}: {item!r}")
        item = item.strip()
        if item not in result:
            result.append(item)
    return result
