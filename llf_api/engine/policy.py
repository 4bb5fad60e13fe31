from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List

from .entities import UserRole


@dataclass(frozen=True)
class CapabilityDefinition:
    key: str
    name: str
    description: str


APPROVE_ENGINEERS = "approve_engineers"
CLOSE_ABNORMALITIES = "close_abnormalities"
MANAGE_MACHINES = "manage_machines"
VIEW_ALL_ABNORMALITIES = "view_all_abnormalities"

CAPABILITIES: List[CapabilityDefinition] = [
    CapabilityDefinition(APPROVE_ENGINEERS, "Approve Engineers", "Approve or reject pending engineer accounts."),
    CapabilityDefinition(CLOSE_ABNORMALITIES, "Close Abnormalities", "Move abnormalities through resolution states."),
    CapabilityDefinition(MANAGE_MACHINES, "Manage Machines", "Create, edit and delete machines."),
    CapabilityDefinition(VIEW_ALL_ABNORMALITIES, "View All Abnormalities", "See open abnormalities across every section."),
]

ADMIN_ROLES: FrozenSet[UserRole] = frozenset(
    {UserRole.MANAGEMENT, UserRole.DEPARTMENT_HEAD, UserRole.SECTION_HEAD, UserRole.AREA_HEAD}
)

ROLE_CAPABILITY_MAP: Dict[UserRole, FrozenSet[str]] = {
    UserRole.MANAGEMENT: frozenset(
        {APPROVE_ENGINEERS, CLOSE_ABNORMALITIES, MANAGE_MACHINES, VIEW_ALL_ABNORMALITIES}
    ),
    UserRole.DEPARTMENT_HEAD: frozenset({APPROVE_ENGINEERS, MANAGE_MACHINES, VIEW_ALL_ABNORMALITIES}),
    UserRole.SECTION_HEAD: frozenset({APPROVE_ENGINEERS, MANAGE_MACHINES, VIEW_ALL_ABNORMALITIES}),
    UserRole.AREA_HEAD: frozenset({APPROVE_ENGINEERS, MANAGE_MACHINES, VIEW_ALL_ABNORMALITIES}),
    UserRole.ENGINEER: frozenset({CLOSE_ABNORMALITIES, MANAGE_MACHINES}),
    UserRole.WORKMAN: frozenset({MANAGE_MACHINES}),
}


def _role(subject: Any) -> UserRole:
    return UserRole(getattr(subject, "role", subject))


def has_capability(subject: Any, capability: str) -> bool:
    """Accepts a User, a Principal or a bare role."""
    return capability in ROLE_CAPABILITY_MAP.get(_role(subject), frozenset())


def is_admin(subject: Any) -> bool:
    return _role(subject) in ADMIN_ROLES


def can_approve_engineers(subject: Any) -> bool:
    return has_capability(subject, APPROVE_ENGINEERS)


def can_close_abnormalities(subject: Any) -> bool:
    return has_capability(subject, CLOSE_ABNORMALITIES)


def can_manage_machines(subject: Any) -> bool:
    return has_capability(subject, MANAGE_MACHINES)


def is_active_account(user: Any) -> bool:
    return bool(getattr(user, "is_approved", False))


def describe_role(role: UserRole) -> Dict[str, Any]:
    role = UserRole(role)
    return {
        "role": role.value,
        "is_admin": role in ADMIN_ROLES,
        "capabilities": sorted(ROLE_CAPABILITY_MAP.get(role, frozenset())),
    }
