"""
Policy guard — turns a denying Decision into ``PolicyDenied``.

Services call ``enforce`` at the top of every mutating operation.  The
evaluator stays pure; logging the denial and leaving the call stack happen
here.
"""

import logging

from branchpolicy.core.decisions import Decision
from branchpolicy.core.exceptions import PolicyDenied
from branchpolicy.services.goal_lifecycle import GoalSnapshot
from branchpolicy.services.identity import Principal, Resource
from branchpolicy.services.policy_evaluator import get_policy_evaluator

logger = logging.getLogger(__name__)


def _raise_if_denied(principal: Principal, decision: Decision, resource: Resource) -> Decision:
    if not decision.allow:
        logger.warning(
            "Principal %s denied %s.%s on id=%s: %s",
            principal.id, decision.kind, decision.action, resource.id, decision.reason.value,
            extra={
                "principal_id": principal.id,
                "branch_id": principal.branch_id,
                "reason_code": decision.reason.value,
            },
        )
        raise PolicyDenied(decision, principal_id=principal.id)
    return decision


def enforce(principal: Principal, action, resource: Resource, **context) -> Decision:
    decision = get_policy_evaluator().evaluate(principal, action, resource, **context)
    return _raise_if_denied(principal, decision, resource)


def enforce_transition(principal: Principal, goal: GoalSnapshot, target_status) -> Decision:
    decision = get_policy_evaluator().evaluate_transition(principal, goal, target_status)
    return _raise_if_denied(principal, decision, goal)
