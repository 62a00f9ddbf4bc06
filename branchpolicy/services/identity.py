"""
Engine input types: the acting principal and the resource being acted on.

Both are immutable snapshots.  Persistence models convert themselves with
``to_principal()`` / ``to_resource()`` so the engine never touches a session.
"""

from dataclasses import dataclass, field
from enum import Enum

from branchpolicy.core.exceptions import PolicyInputError
from branchpolicy.services.role_hierarchy import Role, role_name


class ResourceKind(str, Enum):
    GOAL = "Goal"
    REPORT = "Report"
    LIBRARY = "Library"
    FILE = "File"
    USER = "User"
    DEPARTMENT = "Department"
    SUCURSAL = "Sucursal"


# Kinds whose visibility for non-admins hangs off the principal's department.
DEPARTMENT_SCOPED_KINDS = frozenset({ResourceKind.GOAL})


def coerce_kind(kind) -> ResourceKind:
    if isinstance(kind, ResourceKind):
        return kind
    try:
        return ResourceKind(kind)
    except ValueError:
        raise PolicyInputError(f"Unknown resource kind: {kind!r}") from None


def _require_id(value, label: str) -> int:
    if value is None or isinstance(value, bool) or not isinstance(value, int):
        raise PolicyInputError(f"{label} must be an integer, got {value!r}")
    return value


@dataclass(frozen=True)
class Principal:
    """The authenticated actor: who they are, what rank, where they sit."""

    id: int
    role: str
    branch_id: int
    department_id: int | None = None

    def __post_init__(self):
        _require_id(self.id, "Principal.id")
        _require_id(self.branch_id, "Principal.branch_id")
        if self.department_id is not None:
            _require_id(self.department_id, "Principal.department_id")
        # Known roles are normalised to the enum; names added to a custom
        # rank table stay plain strings.
        name = role_name(self.role)
        try:
            object.__setattr__(self, "role", Role(name))
        except ValueError:
            object.__setattr__(self, "role", name)

    @property
    def has_department(self) -> bool:
        return self.department_id is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "role": role_name(self.role),
            "branch_id": self.branch_id,
            "department_id": self.department_id,
        }


@dataclass(frozen=True, kw_only=True)
class Resource:
    """A branch-owned record as the policy engine sees it.

    ``owner_id`` is the creator (or, for user records, the user themself).
    ``assignee_ids`` holds the principals the record is addressed to: goal
    assignees, report recipients, a department's supervisor.
    """

    kind: ResourceKind
    branch_id: int
    owner_id: int | None = None
    id: int | None = None
    department_id: int | None = None
    assignee_ids: frozenset = field(default_factory=frozenset)

    def __post_init__(self):
        object.__setattr__(self, "kind", coerce_kind(self.kind))
        _require_id(self.branch_id, f"{self.kind.value}.branch_id")
        if self.owner_id is not None:
            _require_id(self.owner_id, f"{self.kind.value}.owner_id")
        if self.department_id is not None:
            _require_id(self.department_id, f"{self.kind.value}.department_id")
        object.__setattr__(self, "assignee_ids", frozenset(self.assignee_ids or ()))

    def is_owned_by(self, principal_id: int) -> bool:
        return self.owner_id is not None and self.owner_id == principal_id

    def is_assigned_to(self, principal_id: int) -> bool:
        return principal_id in self.assignee_ids


def prospective(kind, principal: Principal, *, department_id: int | None = None,
                assignee_ids=()) -> Resource:
    """Describe a record that does not exist yet, owned by its would-be creator."""
    return Resource(
        kind=kind,
        branch_id=principal.branch_id,
        owner_id=principal.id,
        department_id=department_id,
        assignee_ids=frozenset(assignee_ids),
    )


@dataclass(frozen=True)
class DepartmentRef:
    """Just enough of a department to route requests to its supervisor."""

    id: int
    branch_id: int
    supervisor_id: int | None = None
