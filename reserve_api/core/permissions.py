"""Role -> permission table and the permission evaluator.

This is the only copy of the table. Route guards, the CLI and the
``/auth/permissions`` endpoint all read it from here.
"""

import enum
from typing import Dict, FrozenSet, Optional

PERMISSION_TABLE_VERSION = "3"


class Role(str, enum.Enum):
    reservist = "reservist"
    staff = "staff"
    administrator = "administrator"
    director = "director"

    @classmethod
    def parse(cls, raw) -> Optional["Role"]:
        """Parse a role name, accepting the legacy ``admin`` alias."""
        if isinstance(raw, Role):
            return raw
        if not isinstance(raw, str):
            return None
        name = raw.strip().lower()
        if name == "admin":
            name = "administrator"
        try:
            return cls(name)
        except ValueError:
            return None


ROLE_HIERARCHY: Dict[Role, int] = {
    Role.reservist: 1,
    Role.staff: 2,
    Role.administrator: 3,
    Role.director: 4,
}

_RESERVIST = frozenset({
    "view_personnel",
})

_STAFF = _RESERVIST | {
    "view_company_personnel",
    "manage_company_personnel",
    "update_personnel_records",
    "update_personnel_status",
    "approve_reservist_accounts",
    "post_announcements",
    "manage_announcements",
    "manage_trainings",
    "manage_documents",
    "upload_policy",
}

_ADMINISTRATOR = _STAFF | {
    "edit_policy",
    "delete_policy",
    "delete_personnel_records",
    "run_reports",
    "export_data",
    "view_audit_logs",
}

_DIRECTOR = _ADMINISTRATOR | {
    "create_admin_accounts",
    "manage_admin_accounts",
    "access_system_settings",
}

ROLE_PERMISSIONS: Dict[Role, FrozenSet[str]] = {
    Role.reservist: _RESERVIST,
    Role.staff: frozenset(_STAFF),
    Role.administrator: frozenset(_ADMINISTRATOR),
    Role.director: frozenset(_DIRECTOR),
}

ALL_PERMISSIONS: FrozenSet[str] = frozenset().union(*ROLE_PERMISSIONS.values())


def has_permission(role, permission) -> bool:
    """True iff ``role`` is a known role whose set contains ``permission``."""
    parsed = Role.parse(role)
    if parsed is None or not isinstance(permission, str):
        return False
    return permission in ROLE_PERMISSIONS[parsed]


def has_minimum_role(user_role, required_role) -> bool:
    """Order: director > administrator > staff > reservist."""
    user_level = ROLE_HIERARCHY.get(Role.parse(user_role), 0)
    required_level = ROLE_HIERARCHY.get(Role.parse(required_role), 0)
    return user_level > 0 and user_level >= required_level


class PermissionEvaluator:
    """Answers permission questions for one user in one session.

    A simulated role only changes what this evaluator reports. Server-side
    guards build a fresh evaluator from the database user and never call
    ``simulate_role``.
    """

    def __init__(self, user=None):
        self.user = user
        self._simulated: Optional[Role] = None

    @property
    def actual_role(self) -> Optional[Role]:
        if self.user is None:
            return None
        return Role.parse(getattr(self.user, "role", None))

    @property
    def is_simulating(self) -> bool:
        return self._simulated is not None

    def effective_role(self) -> Optional[Role]:
        if self.user is None:
            return None
        return self._simulated or self.actual_role

    def simulate_role(self, role) -> None:
        parsed = Role.parse(role)
        if parsed is None:
            raise ValueError(f"Unknown role: {role!r}")
        self._simulated = parsed

    def clear_simulation(self) -> None:
        self._simulated = None

    def has_permission(self, permission) -> bool:
        role = self.effective_role()
        if role is None:
            return False
        return has_permission(role, permission)

    def permissions(self) -> FrozenSet[str]:
        role = self.effective_role()
        if role is None:
            return frozenset()
        return ROLE_PERMISSIONS[role]
