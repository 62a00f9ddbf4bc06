"""
Action rule table — the single auditable source of who may do what.

Each ``ActionRule`` binds one (resource kind, action) pair to its
requirement.  The evaluator reads the table; it carries no per-action
branches of its own.  ``RuleTable.matrix()`` expands the table into every
(role, kind, action) triple so the whole surface can be reviewed and tested
row by row.

Rule flags:
    min_role              minimum rank; None means any in-scope principal
    owner_satisfies       the record's owner passes the role check regardless of rank
    home_department_only  department-scoped principals may act only inside
                          their own department (membership via assignment is
                          not enough)
    scope_check           False for actions judged on role alone (still branch-bound)
    completion_guard      entering COMPLETED; GoalLifecycle decides
    candidate_min_role    a second principal (e.g. a supervisor candidate)
                          must meet this rank and sit in the record's department
    grant_ceiling         the target role must not outrank the acting principal
    excluded_roles        roles refused even when their rank would satisfy
"""

from dataclasses import dataclass, field, replace
from enum import Enum

from branchpolicy.core.exceptions import PolicyInputError
from branchpolicy.services.identity import ResourceKind
from branchpolicy.services.role_hierarchy import DEFAULT_HIERARCHY, Role, RoleHierarchy, role_name


class Action(str, Enum):
    VIEW = "view"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ASSIGN = "assign"
    UPDATE_PROGRESS = "update_progress"
    CHANGE_STATUS = "change_status"
    COMPLETE = "complete"
    SUBMIT_REPORT = "submit_report"
    RESPOND = "respond"
    ASSIGN_SUPERVISOR = "assign_supervisor"
    CHANGE_ROLE = "change_role"
    REASSIGN_DEPARTMENT = "reassign_department"
    APPROVE_REQUEST = "approve_request"


@dataclass(frozen=True)
class ActionRule:
    kind: ResourceKind
    action: Action
    min_role: Role | None = None
    owner_satisfies: bool = False
    home_department_only: bool = False
    scope_check: bool = True
    completion_guard: bool = False
    candidate_min_role: Role | None = None
    grant_ceiling: bool = False
    excluded_roles: frozenset = field(default_factory=frozenset)
    description: str = ""

    @property
    def key(self) -> tuple:
        return (self.kind, self.action)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "action": self.action.value,
            "min_role": self.min_role.value if self.min_role else None,
            "owner_satisfies": self.owner_satisfies,
            "home_department_only": self.home_department_only,
            "scope_check": self.scope_check,
            "completion_guard": self.completion_guard,
            "candidate_min_role": self.candidate_min_role.value if self.candidate_min_role else None,
            "grant_ceiling": self.grant_ceiling,
            "excluded_roles": sorted(role_name(r) for r in self.excluded_roles),
            "description": self.description,
        }


_K = ResourceKind
_A = Action

DEFAULT_RULES: tuple[ActionRule, ...] = (
    # ── Goals ──
    ActionRule(_K.GOAL, _A.VIEW, description="Anyone whose scope contains the goal"),
    ActionRule(_K.GOAL, _A.CREATE, Role.SUPERVISOR, home_department_only=True,
               description="Supervisors create goals in their own department; admins anywhere in branch"),
    ActionRule(_K.GOAL, _A.UPDATE, Role.SUPERVISOR, owner_satisfies=True, home_department_only=True,
               description="Edit title, description, due date, report requirement"),
    ActionRule(_K.GOAL, _A.DELETE, Role.SUPERVISOR, home_department_only=True),
    ActionRule(_K.GOAL, _A.ASSIGN, Role.SUPERVISOR, home_department_only=True),
    ActionRule(_K.GOAL, _A.UPDATE_PROGRESS, description="Owner, assignees and anyone with the goal in scope"),
    ActionRule(_K.GOAL, _A.CHANGE_STATUS, Role.SUPERVISOR, owner_satisfies=True,
               description="Move between non-terminal statuses"),
    ActionRule(_K.GOAL, _A.COMPLETE, completion_guard=True,
               description="Anyone in scope, once the completion guard passes"),
    ActionRule(_K.GOAL, _A.SUBMIT_REPORT, description="Progress or completion report on a goal in scope"),

    # ── Reports ──
    ActionRule(_K.REPORT, _A.VIEW),
    ActionRule(_K.REPORT, _A.CREATE),
    ActionRule(_K.REPORT, _A.UPDATE, Role.SUPERVISOR, owner_satisfies=True),
    ActionRule(_K.REPORT, _A.DELETE, Role.SUPERVISOR, owner_satisfies=True),
    ActionRule(_K.REPORT, _A.RESPOND, Role.SUPERVISOR,
               description="Addressed supervisors, department supervisors and branch admins"),

    # ── Libraries & files ──
    ActionRule(_K.LIBRARY, _A.VIEW),
    ActionRule(_K.LIBRARY, _A.CREATE),
    ActionRule(_K.LIBRARY, _A.UPDATE, Role.SUPERVISOR, owner_satisfies=True),
    ActionRule(_K.LIBRARY, _A.DELETE, Role.SUPERVISOR, owner_satisfies=True),
    ActionRule(_K.LIBRARY, _A.ASSIGN, Role.SUPERVISOR, owner_satisfies=True,
               description="Share a library with other principals"),
    ActionRule(_K.FILE, _A.VIEW),
    ActionRule(_K.FILE, _A.CREATE, description="Upload"),
    ActionRule(_K.FILE, _A.UPDATE, Role.SUPERVISOR, owner_satisfies=True),
    ActionRule(_K.FILE, _A.DELETE, Role.SUPERVISOR, owner_satisfies=True),

    # ── Users ──
    ActionRule(_K.USER, _A.VIEW),
    ActionRule(_K.USER, _A.CREATE, Role.ADMIN),
    ActionRule(_K.USER, _A.UPDATE, Role.ADMIN, owner_satisfies=True, description="Profile edits; self or admin"),
    ActionRule(_K.USER, _A.DELETE, Role.SUPER_ADMIN, scope_check=False,
               description="Soft-deactivate; role-gated regardless of scope"),
    ActionRule(_K.USER, _A.CHANGE_ROLE, Role.ADMIN, grant_ceiling=True),
    ActionRule(_K.USER, _A.REASSIGN_DEPARTMENT, Role.ADMIN),
    ActionRule(_K.USER, _A.APPROVE_REQUEST, Role.ADMIN, description="Approve or reject an account request"),

    # ── Departments ──
    ActionRule(_K.DEPARTMENT, _A.VIEW, scope_check=False, description="Department list is branch-wide"),
    ActionRule(_K.DEPARTMENT, _A.CREATE, Role.ADMIN),
    ActionRule(_K.DEPARTMENT, _A.UPDATE, Role.ADMIN),
    ActionRule(_K.DEPARTMENT, _A.DELETE, Role.ADMIN, description="Members are detached, not deleted"),
    ActionRule(_K.DEPARTMENT, _A.ASSIGN_SUPERVISOR, Role.ADMIN, candidate_min_role=Role.SUPERVISOR),

    # ── Sucursal registry ──
    ActionRule(_K.SUCURSAL, _A.VIEW, Role.SUPER_ADMIN),
    ActionRule(_K.SUCURSAL, _A.CREATE, Role.SUPER_ADMIN),
    ActionRule(_K.SUCURSAL, _A.UPDATE, Role.SUPER_ADMIN),
    ActionRule(_K.SUCURSAL, _A.DELETE, Role.SUPER_ADMIN, description="Deactivate a registry entry"),
)


class RuleTable:
    """Index over ``ActionRule`` rows keyed by (kind, action)."""

    def __init__(self, rules):
        self._rules: dict[tuple, ActionRule] = {}
        for rule in rules:
            if rule.key in self._rules:
                raise PolicyInputError(f"Duplicate rule for {rule.kind.value}.{rule.action.value}")
            self._rules[rule.key] = rule

    def __iter__(self):
        return iter(self._rules.values())

    def __len__(self):
        return len(self._rules)

    def __contains__(self, key) -> bool:
        return key in self._rules

    def get(self, kind, action) -> ActionRule:
        try:
            return self._rules[(ResourceKind(kind), Action(action))]
        except (KeyError, ValueError):
            raise PolicyInputError(f"No policy rule for {kind!r}.{action!r}") from None

    def actions_for(self, kind) -> list[Action]:
        kind = ResourceKind(kind)
        return [rule.action for rule in self._rules.values() if rule.kind == kind]

    def role_passes(self, rule: ActionRule, role, hierarchy: RoleHierarchy = DEFAULT_HIERARCHY) -> bool:
        """Role half of a rule in isolation, ignoring branch, scope and ownership."""
        if role_name(role) in {role_name(r) for r in rule.excluded_roles}:
            return False
        return rule.min_role is None or hierarchy.satisfies(role, rule.min_role)

    def matrix(self, hierarchy: RoleHierarchy = DEFAULT_HIERARCHY) -> list[dict]:
        """Every (role, kind, action) triple with its role-level outcome."""
        rows = []
        for rule in self._rules.values():
            for role in hierarchy.ordered():
                rows.append({
                    "role": role,
                    "kind": rule.kind.value,
                    "action": rule.action.value,
                    "role_allowed": self.role_passes(rule, role, hierarchy),
                    "owner_satisfies": rule.owner_satisfies,
                    "scope_check": rule.scope_check,
                })
        return rows

    def to_list(self) -> list[dict]:
        return [rule.to_dict() for rule in self._rules.values()]


def build_rule_table(*, developer_manages_branches: bool = True, rules=DEFAULT_RULES) -> RuleTable:
    """Build the table, optionally carving DEVELOPER out of sucursal management."""
    rows = list(rules)
    if not developer_manages_branches:
        rows = [
            replace(rule, excluded_roles=rule.excluded_roles | {Role.DEVELOPER})
            if rule.kind == ResourceKind.SUCURSAL and rule.action != Action.VIEW else rule
            for rule in rows
        ]
    return RuleTable(rows)


DEFAULT_RULE_TABLE = build_rule_table()
