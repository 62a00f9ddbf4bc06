"""
Policy Evaluator — single decision point for every authorization question.

    evaluate(principal, action, resource) -> Decision

Steps, in order (first failure wins):
  1. Branch      principal.branch_id must equal resource.branch_id. No role is
                 exempt, DEVELOPER included.                   → CROSS_BRANCH
  2. Scope       the principal's ScopeSpec must contain the resource, unless
                 the rule turns scope checking off.            → OUT_OF_SCOPE
  3. Role        rule.min_role via RoleHierarchy.satisfies, or ownership
                 where the rule allows it.                     → INSUFFICIENT_ROLE
  4. Department  department-scoped principals confined to their own
                 department for home_department_only rules.    → OUT_OF_SCOPE
  5. Candidate   second-principal checks (supervisor assignment).
  6. Ceiling     a role grant may not outrank the grantor.     → INSUFFICIENT_ROLE
  7. Lifecycle   completion guard, delegated to GoalLifecycle.
                                        → COMPLETION_REPORT_REQUIRED / INVALID_TRANSITION

The evaluator is pure: same inputs, same Decision; no I/O and no session.
Denials are return values.  Malformed input (unknown role, missing branch,
no rule for the pair) raises ``PolicyInputError``.

Usage:
    from branchpolicy.services.policy_evaluator import evaluate
    from branchpolicy.services.policy_rules import Action

    decision = evaluate(principal, Action.UPDATE_PROGRESS, goal_snapshot)
    if not decision.allow:
        ...  # decision.reason
"""

from flask import current_app, has_app_context

from branchpolicy.core.decisions import Decision, ReasonCode
from branchpolicy.core.exceptions import PolicyInputError
from branchpolicy.services.goal_lifecycle import (
    GoalSnapshot,
    GoalStatus,
    TERMINAL_STATUSES,
    check_transition,
)
from branchpolicy.services.identity import Principal, Resource
from branchpolicy.services.policy_rules import DEFAULT_RULE_TABLE, Action, RuleTable
from branchpolicy.services.role_hierarchy import DEFAULT_HIERARCHY, RoleHierarchy, role_name
from branchpolicy.services.scope_resolver import ScopeKind, resolve_scope


class PolicyEvaluator:
    """Evaluates actions against a rank table and an action-rule table."""

    def __init__(self, hierarchy: RoleHierarchy = DEFAULT_HIERARCHY, rules: RuleTable = DEFAULT_RULE_TABLE):
        self.hierarchy = hierarchy
        self.rules = rules

    # ── Public API ───────────────────────────────────────────────────────

    def evaluate(
        self,
        principal: Principal,
        action,
        resource: Resource,
        *,
        candidate: Principal | None = None,
        target_role=None,
    ) -> Decision:
        self._check_inputs(principal, resource)
        rule = self.rules.get(resource.kind, action)
        kind, act = rule.kind.value, rule.action.value

        def deny(reason: ReasonCode, detail: str = "") -> Decision:
            return Decision.denied(reason, kind, act, detail)

        # 1. Branch
        if principal.branch_id != resource.branch_id:
            return deny(ReasonCode.CROSS_BRANCH, "Resource belongs to another branch")

        # 2. Scope
        scope = resolve_scope(principal, resource.kind, hierarchy=self.hierarchy)
        if rule.scope_check and not scope.contains(resource):
            return deny(ReasonCode.OUT_OF_SCOPE, f"Not visible under {scope.kind.value} scope")

        # 3. Role
        excluded = {role_name(r) for r in rule.excluded_roles}
        if role_name(principal.role) in excluded:
            return deny(ReasonCode.INSUFFICIENT_ROLE, f"{role_name(principal.role)} is excluded from this action")
        if rule.min_role is not None and not self.hierarchy.satisfies(principal.role, rule.min_role):
            if not (rule.owner_satisfies and resource.is_owned_by(principal.id)):
                return deny(ReasonCode.INSUFFICIENT_ROLE, f"Requires {rule.min_role.value} or higher")

        # 4. Home department
        if rule.home_department_only and scope.kind in (ScopeKind.DEPARTMENT_IN_BRANCH, ScopeKind.NONE):
            if resource.department_id is None or resource.department_id != principal.department_id:
                return deny(ReasonCode.OUT_OF_SCOPE, "Outside the principal's department")

        # 5. Candidate
        if rule.candidate_min_role is not None:
            decision = self._check_candidate(rule, resource, candidate, deny)
            if decision is not None:
                return decision

        # 6. Grant ceiling
        if rule.grant_ceiling:
            if target_role is None:
                raise PolicyInputError(f"{kind}.{act} requires a target_role")
            self.hierarchy.rank(target_role)
            if not self.hierarchy.satisfies(principal.role, target_role):
                return deny(ReasonCode.INSUFFICIENT_ROLE,
                            f"Cannot grant {role_name(target_role)} above own role")
            if isinstance(candidate, Principal) and not self.hierarchy.satisfies(principal.role, candidate.role):
                return deny(ReasonCode.INSUFFICIENT_ROLE,
                            f"Cannot change the role of a {role_name(candidate.role)}")

        # 7. Completion guard
        if rule.completion_guard:
            if not isinstance(resource, GoalSnapshot):
                raise PolicyInputError(f"{kind}.{act} requires a GoalSnapshot")
            check = check_transition(resource, GoalStatus.COMPLETED)
            if not check.valid:
                return deny(check.reason, check.message or "")

        return Decision.allowed(kind, act)

    def evaluate_transition(self, principal: Principal, goal: GoalSnapshot, target_status) -> Decision:
        """Combined permission and lifecycle check for a goal status change.

        Entering COMPLETED is judged by the ``complete`` rule (any in-scope
        principal plus the guard); every other target by ``change_status``.
        """
        if not isinstance(goal, GoalSnapshot):
            raise PolicyInputError("evaluate_transition requires a GoalSnapshot")
        check = check_transition(goal, target_status)
        entering_terminal = check.to_status is not None and GoalStatus(check.to_status) in TERMINAL_STATUSES
        action = Action.COMPLETE if entering_terminal else Action.CHANGE_STATUS

        decision = self.evaluate(principal, action, goal)
        if not decision.allow:
            return decision
        if not check.valid:
            return Decision.denied(check.reason, decision.kind, decision.action, check.message or "")
        return decision

    def explain(self, principal: Principal, resource: Resource) -> dict:
        """Every action on ``resource``'s kind with its decision, for UI affordances.

        Actions that need extra context (a candidate or a target role) are
        reported on their role requirement alone.
        """
        out = {}
        for action in self.rules.actions_for(resource.kind):
            rule = self.rules.get(resource.kind, action)
            if rule.candidate_min_role is not None or rule.grant_ceiling:
                passes = self.rules.role_passes(rule, principal.role, self.hierarchy)
                out[action.value] = passes and principal.branch_id == resource.branch_id
                continue
            if rule.completion_guard and not isinstance(resource, GoalSnapshot):
                out[action.value] = False
                continue
            out[action.value] = self.evaluate(principal, action, resource).allow
        return out

    # ── Internals ────────────────────────────────────────────────────────

    def _check_inputs(self, principal, resource):
        if not isinstance(principal, Principal):
            raise PolicyInputError(f"Expected Principal, got {type(principal).__name__}")
        if not isinstance(resource, Resource):
            raise PolicyInputError(f"Expected Resource, got {type(resource).__name__}")
        self.hierarchy.rank(principal.role)

    def _check_candidate(self, rule, resource, candidate, deny) -> Decision | None:
        if not isinstance(candidate, Principal):
            raise PolicyInputError(f"{rule.kind.value}.{rule.action.value} requires a candidate Principal")
        self.hierarchy.rank(candidate.role)
        if candidate.branch_id != resource.branch_id:
            return deny(ReasonCode.CROSS_BRANCH, "Candidate belongs to another branch")
        if not self.hierarchy.satisfies(candidate.role, rule.candidate_min_role):
            return deny(ReasonCode.INSUFFICIENT_ROLE,
                        f"Candidate must be {rule.candidate_min_role.value} or higher")
        target_department = resource.department_id if resource.department_id is not None else resource.id
        if candidate.department_id is None or candidate.department_id != target_department:
            return deny(ReasonCode.OUT_OF_SCOPE, "Candidate is not a member of the department")
        return None


DEFAULT_EVALUATOR = PolicyEvaluator()


def get_policy_evaluator() -> PolicyEvaluator:
    """The evaluator configured on the running app, or the default outside one."""
    if has_app_context():
        evaluator = current_app.extensions.get("policy_evaluator")
        if evaluator is not None:
            return evaluator
    return DEFAULT_EVALUATOR


def evaluate(principal: Principal, action, resource: Resource, **context) -> Decision:
    return get_policy_evaluator().evaluate(principal, action, resource, **context)


def evaluate_transition(principal: Principal, goal: GoalSnapshot, target_status) -> Decision:
    return get_policy_evaluator().evaluate_transition(principal, goal, target_status)
