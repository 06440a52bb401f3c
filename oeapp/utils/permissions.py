"""Form-level permission checks for session users"""
from typing import Any, Dict, Iterable, Mapping, Optional

# Form codes used by the extra cleaning workflow
FORM_STORE_EXTRA_CLEANING = "STORE_EXTRA_CLEANING"   # store side: submit and see own requests
FORM_OP_EXTRA_CLEANING = "OP_EXTRA_CLEANING"         # operations side: see every request

# Holders of this role pass every form check
SYSTEM_ADMINISTRATOR = "System Administrator"

_ACTION_FLAGS = {
    "view": "can_view",
    "create": "can_create",
    "edit": "can_edit",
    "delete": "can_delete",
}


def _flag(perm: Mapping[str, Any], key: str) -> bool:
    # Accept both snake_case and the camelCase written by the login service
    camel = "can" + key[len("can_"):].capitalize()
    return bool(perm.get(key, perm.get(camel, False)))


class PermissionChecker:
    """Answers ``can_access(form_code, action)`` and ``has_role(role)`` for one user"""

    def __init__(self, permissions: Optional[Mapping[str, Mapping[str, Any]]] = None, roles: Iterable[str] = ()):
        self.permissions: Dict[str, Mapping[str, Any]] = dict(permissions or {})
        self.roles = frozenset(roles)

    def can_access(self, form_code: str, action: str = "view") -> bool:
        if self.has_role(SYSTEM_ADMINISTRATOR):
            return True
        perm = self.permissions.get(form_code)
        if not perm:
            return False
        key = _ACTION_FLAGS.get((action or "").lower())
        if key is None:
            return False
        return _flag(perm, key)

    def has_role(self, role: str) -> bool:
        return role in self.roles
