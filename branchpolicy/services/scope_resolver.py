"""
Scope Resolver — which records of a kind a principal may see.

Resolution is branch-first: whatever the role, a scope never reaches outside
the principal's own branch.  Within the branch:

    role >= ADMIN                        → ALL_IN_BRANCH
    SUPERVISOR with a department         → DEPARTMENT_IN_BRANCH
    no department, department-scoped kind → NONE (profile incomplete)
    otherwise                            → OWNED_OR_ASSIGNED

NONE still lets a principal see what they created or were assigned; the flag
tells the UI to send them to complete their profile.  The same ``ScopeSpec``
answers single-record membership (``contains``) and is translated into SQL by
``services.helpers.scoped_queries.apply_scope``.
"""

from dataclasses import dataclass
from enum import Enum

from branchpolicy.services.identity import DEPARTMENT_SCOPED_KINDS, Principal, ResourceKind, coerce_kind
from branchpolicy.services.role_hierarchy import DEFAULT_HIERARCHY, Role, RoleHierarchy


class ScopeKind(str, Enum):
    ALL_IN_BRANCH = "ALL_IN_BRANCH"
    DEPARTMENT_IN_BRANCH = "DEPARTMENT_IN_BRANCH"
    OWNED_OR_ASSIGNED = "OWNED_OR_ASSIGNED"
    NONE = "NONE"


@dataclass(frozen=True)
class ScopeSpec:
    kind: ScopeKind
    branch_id: int
    principal_id: int
    department_id: int | None = None

    @property
    def profile_incomplete(self) -> bool:
        return self.kind == ScopeKind.NONE

    def contains(self, resource) -> bool:
        if resource.branch_id != self.branch_id:
            return False
        if self.kind == ScopeKind.ALL_IN_BRANCH:
            return True
        if (
            self.kind == ScopeKind.DEPARTMENT_IN_BRANCH
            and resource.department_id is not None
            and resource.department_id == self.department_id
        ):
            return True
        return resource.is_owned_by(self.principal_id) or resource.is_assigned_to(self.principal_id)

    def filter(self, resources) -> list:
        return [r for r in resources if self.contains(r)]

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "branch_id": self.branch_id,
            "department_id": self.department_id,
            "profile_incomplete": self.profile_incomplete,
        }


def resolve_scope(
    principal: Principal,
    resource_kind: ResourceKind,
    *,
    hierarchy: RoleHierarchy = DEFAULT_HIERARCHY,
) -> ScopeSpec:
    """Return the visibility scope of ``principal`` over ``resource_kind``."""
    resource_kind = coerce_kind(resource_kind)

    def _spec(kind: ScopeKind) -> ScopeSpec:
        return ScopeSpec(kind, principal.branch_id, principal.id, principal.department_id)

    if hierarchy.satisfies(principal.role, Role.ADMIN):
        return _spec(ScopeKind.ALL_IN_BRANCH)

    if not principal.has_department and resource_kind in DEPARTMENT_SCOPED_KINDS:
        return _spec(ScopeKind.NONE)

    if principal.has_department and hierarchy.satisfies(principal.role, Role.SUPERVISOR):
        return _spec(ScopeKind.DEPARTMENT_IN_BRANCH)

    return _spec(ScopeKind.OWNED_OR_ASSIGNED)
