"""
Role constants for the Interex portal.

Every user holds one of four roles. The capability table below is the single
place that says how far each role can see and what it may manage; the scope
filters in app.core.scope are keyed off RoleScope.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Iterable


class Role(str, Enum):
    # Platform operators - manage customers, no customer scoping
    SYSTEM_ADMIN = "system-admin"

    # Administers one customer organization
    CUSTOMER_ADMIN = "customer-admin"

    # Administers one provider group inside a customer
    PROVIDER_GROUP_ADMIN = "provider-group-admin"

    # Works on submissions for the NPIs assigned to them
    BASIC_USER = "basic-user"


class RoleScope(str, Enum):
    SYSTEM = "system"
    CUSTOMER = "customer"
    PROVIDER_GROUP = "provider-group"
    USER = "user"


# Lower number = more authority
ROLE_LEVELS: dict[Role, int] = {
    Role.SYSTEM_ADMIN: 0,
    Role.CUSTOMER_ADMIN: 1,
    Role.PROVIDER_GROUP_ADMIN: 2,
    Role.BASIC_USER: 3,
}

ROLE_DISPLAY_NAMES: dict[Role, str] = {
    Role.SYSTEM_ADMIN: "System Administrator",
    Role.CUSTOMER_ADMIN: "Customer Administrator",
    Role.PROVIDER_GROUP_ADMIN: "Provider Group Administrator",
    Role.BASIC_USER: "Basic User",
}


@dataclass(frozen=True)
class Capability:
    scope: RoleScope
    dashboard_path: str
    assignable_roles: frozenset[Role]
    manages_customers: bool = False
    manages_provider_groups: bool = False
    manages_providers: bool = False
    manages_users: bool = False


CAPABILITIES: dict[Role, Capability] = {
    Role.SYSTEM_ADMIN: Capability(
        scope=RoleScope.SYSTEM,
        dashboard_path="/admin/dashboard",
        assignable_roles=frozenset({Role.CUSTOMER_ADMIN, Role.PROVIDER_GROUP_ADMIN, Role.BASIC_USER}),
        manages_customers=True,
        manages_provider_groups=True,
        manages_providers=True,
        manages_users=True,
    ),
    Role.CUSTOMER_ADMIN: Capability(
        scope=RoleScope.CUSTOMER,
        dashboard_path="/customer",
        assignable_roles=frozenset({Role.PROVIDER_GROUP_ADMIN, Role.BASIC_USER}),
        manages_provider_groups=True,
        manages_providers=True,
        manages_users=True,
    ),
    Role.PROVIDER_GROUP_ADMIN: Capability(
        scope=RoleScope.PROVIDER_GROUP,
        dashboard_path="/provider",
        assignable_roles=frozenset({Role.PROVIDER_GROUP_ADMIN, Role.BASIC_USER}),
        manages_providers=True,
        manages_users=True,
    ),
    Role.BASIC_USER: Capability(
        scope=RoleScope.USER,
        dashboard_path="/customer/submissions",
        assignable_roles=frozenset(),
    ),
}


def parse_roles(role_names: Iterable[str]) -> list[Role]:
    """Known roles from a list of names; unknown names are dropped."""
    known = []
    for name in role_names:
        try:
            known.append(Role(name))
        except ValueError:
            continue
    return known


def primary_role(role_names: Iterable[str]) -> Role | None:
    """The role with the most authority, or None when no role is known."""
    roles = parse_roles(role_names)
    if not roles:
        return None
    return min(roles, key=lambda role: ROLE_LEVELS[role])


def role_level(role_names: Iterable[str]) -> int | None:
    role = primary_role(role_names)
    return ROLE_LEVELS[role] if role is not None else None


def can_manage_user(manager_roles: Iterable[str], target_roles: Iterable[str]) -> bool:
    """A manager may act on users with strictly less authority than themselves."""
    manager_level = role_level(manager_roles)
    target_level = role_level(target_roles)
    if manager_level is None or target_level is None:
        return False
    return manager_level < target_level


def dashboard_path(role_names: Iterable[str]) -> str:
    role = primary_role(role_names)
    if role is None:
        return "/"
    return CAPABILITIES[role].dashboard_path


def display_name(role: Role | str) -> str:
    return ROLE_DISPLAY_NAMES.get(Role(role), str(role))
