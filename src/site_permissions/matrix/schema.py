"""Closed vocabularies and value types for the site permission matrix.

Roles are ordered from least to most privileged; the order defines the
hierarchy used by "minimum role" checks.  Resources come in two kinds:

- *Flat* resources (``assignments``, ``users``, ``tasks``) map a role to a
  single list of allowed actions.
- *Nested* resources (``groups``, ``admins``) map a role to a second-level
  sub-resource, each with its own list of allowed actions.

Example
-------
::

    user = User(uid="u1", email="a@example.org", roles=[UserRole("s1", "admin")])
    requires_sub_resource("groups")   # True
    role_index("site_admin")          # 3
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    """User roles, declared in ascending privilege order."""

    PARTICIPANT = "participant"
    RESEARCH_ASSISTANT = "research_assistant"
    ADMIN = "admin"
    SITE_ADMIN = "site_admin"
    SUPER_ADMIN = "super_admin"


class Resource(str, Enum):
    """Resources a permission can be granted on."""

    GROUPS = "groups"
    ASSIGNMENTS = "assignments"
    USERS = "users"
    ADMINS = "admins"
    TASKS = "tasks"


class Action(str, Enum):
    """Actions that can be performed on a resource."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    EXCLUDE = "exclude"


class GroupSubResource(str, Enum):
    """Sub-resources of :attr:`Resource.GROUPS`."""

    SITES = "sites"
    SCHOOLS = "schools"
    CLASSES = "classes"
    COHORTS = "cohorts"


class AdminSubResource(str, Enum):
    """Sub-resources of :attr:`Resource.ADMINS`."""

    SITE_ADMIN = "site_admin"
    ADMIN = "admin"
    RESEARCH_ASSISTANT = "research_assistant"


# ---------------------------------------------------------------------------
# Vocabulary constants (plain strings, declaration order)
# ---------------------------------------------------------------------------

ROLE_HIERARCHY: tuple[str, ...] = tuple(r.value for r in Role)
ALL_RESOURCES: tuple[str, ...] = tuple(r.value for r in Resource)
ALL_ACTIONS: tuple[str, ...] = tuple(a.value for a in Action)
ALL_GROUP_SUB_RESOURCES: tuple[str, ...] = tuple(s.value for s in GroupSubResource)
ALL_ADMIN_SUB_RESOURCES: tuple[str, ...] = tuple(s.value for s in AdminSubResource)

FLAT_RESOURCES: tuple[str, ...] = (
    Resource.ASSIGNMENTS.value,
    Resource.USERS.value,
    Resource.TASKS.value,
)
NESTED_RESOURCES: tuple[str, ...] = (
    Resource.GROUPS.value,
    Resource.ADMINS.value,
)

SUB_RESOURCES_BY_RESOURCE: dict[str, tuple[str, ...]] = {
    Resource.GROUPS.value: ALL_GROUP_SUB_RESOURCES,
    Resource.ADMINS.value: ALL_ADMIN_SUB_RESOURCES,
}

ALL_SITES: str = "*"

# A permission matrix is role -> resource -> (actions | sub-resource -> actions).
FlatPermissions = list[str]
NestedPermissions = dict[str, list[str]]
RolePermissions = dict[str, object]
PermissionMatrixData = dict[str, RolePermissions]


def _value(item: object) -> object:
    """Normalise an enum member to its string value."""
    return item.value if isinstance(item, Enum) else item


def role_index(role: object) -> int:
    """Return the hierarchy index of *role*, or ``-1`` when it is unknown."""
    try:
        return ROLE_HIERARCHY.index(_value(role))  # type: ignore[arg-type]
    except ValueError:
        return -1


def requires_sub_resource(resource: object) -> bool:
    """Return True for nested resources, which must be queried with a sub-resource."""
    return _value(resource) in NESTED_RESOURCES


def is_valid_sub_resource(resource: object, sub_resource: object) -> bool:
    """Return True when *sub_resource* belongs to the nested *resource*."""
    allowed = SUB_RESOURCES_BY_RESOURCE.get(_value(resource))  # type: ignore[arg-type]
    if allowed is None:
        return False
    return _value(sub_resource) in allowed


# ---------------------------------------------------------------------------
# Caller-supplied value types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UserRole:
    """A single ``(site_id, role)`` assignment."""

    site_id: str
    role: str


@dataclass
class User:
    """A user and their per-site role assignments.

    The engine reads users but never mutates or stores them.

    Attributes
    ----------
    uid:
        Stable user identifier; used as the cache-key prefix.
    email:
        Contact address.  Not used in evaluation.
    roles:
        Role assignments, scanned in order.
    """

    uid: str
    email: str = ""
    roles: list[UserRole] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> User:
        """Build a User from a ``{uid, email, roles: [{siteId, role}]}`` mapping."""
        raw_roles = data.get("roles", [])
        roles = [
            UserRole(
                site_id=str(item.get("siteId", item.get("site_id", ""))),
                role=str(item.get("role", "")),
            )
            for item in raw_roles  # type: ignore[union-attr]
        ]
        return cls(
            uid=str(data.get("uid", "")),
            email=str(data.get("email", "")),
            roles=roles,
        )


@dataclass(frozen=True)
class PermissionCheck:
    """One entry of a bulk permission check."""

    resource: str
    action: str
    sub_resource: str | None = None

    def signature(self) -> str:
        """Return the ``resource[:sub_resource]:action`` string used for batch hashing."""
        sub = f":{_value(self.sub_resource)}" if self.sub_resource else ""
        return f"{_value(self.resource)}{sub}:{_value(self.action)}"


@dataclass(frozen=True)
class BulkPermissionResult:
    """Outcome of one :class:`PermissionCheck` in a bulk check."""

    resource: str
    action: str
    allowed: bool
    sub_resource: str | None = None


@dataclass(frozen=True)
class PermissionDocument:
    """Versioned envelope around a permission matrix.

    Attributes
    ----------
    permissions:
        The raw role -> resource matrix.
    version:
        Semantic version of the matrix format.
    updated_at:
        ISO-8601 timestamp of the last change.
    """

    permissions: PermissionMatrixData
    version: str
    updated_at: str

    def to_dict(self) -> dict[str, object]:
        """Return the wire representation accepted by the validator."""
        return {
            "permissions": self.permissions,
            "version": self.version,
            "updatedAt": self.updated_at,
        }
