"""
Branch Policy Engine
Policy Blueprint — read-only views of the policy engine.

    GET  /policy/rules            rule table, role matrix and rank table
    GET  /policy/scope?kind=Goal  the caller's scope for a resource kind
    POST /policy/check            advisory decision for one action

``/policy/check`` always answers 200 with the Decision; it is for UI
affordances and never mutates anything.  The services enforce the same
decisions on the real routes.
"""

from flask import Blueprint, jsonify, request

from branchpolicy.core.exceptions import PolicyInputError
from branchpolicy.middleware.principal_required import require_principal
from branchpolicy.models.goal import Goal
from branchpolicy.models.org import Branch, Department, User
from branchpolicy.models.report import Report
from branchpolicy.services.helpers.scoped_queries import get_record
from branchpolicy.services.identity import ResourceKind, coerce_kind, prospective
from branchpolicy.services.policy_evaluator import get_policy_evaluator
from branchpolicy.services.scope_resolver import resolve_scope
from branchpolicy.utils.errors import E, api_error

policy_bp = Blueprint("policy_bp", __name__, url_prefix="/api/v1")

# Resource kinds backed by a table, with the model that loads them.
_LOADERS = {
    ResourceKind.GOAL: Goal,
    ResourceKind.REPORT: Report,
    ResourceKind.USER: User,
    ResourceKind.DEPARTMENT: Department,
    ResourceKind.SUCURSAL: Branch,
}


def _load_resource(kind, resource_id, principal, data):
    if resource_id is None:
        return prospective(kind, principal, department_id=data.get("department_id"))
    if not isinstance(resource_id, int) or isinstance(resource_id, bool):
        raise PolicyInputError(f"resource_id must be an integer, got {resource_id!r}")
    model = _LOADERS.get(kind)
    if model is None:
        raise PolicyInputError(f"{kind.value} records cannot be looked up by id")
    record = get_record(model, resource_id)
    if kind == ResourceKind.GOAL:
        return record.to_resource(with_history=True)
    return record.to_resource()


@policy_bp.route("/policy/rules", methods=["GET"])
@require_principal
def list_rules(principal):
    evaluator = get_policy_evaluator()
    return jsonify({
        "hierarchy": evaluator.hierarchy.to_dict(),
        "rules": evaluator.rules.to_list(),
        "matrix": evaluator.rules.matrix(evaluator.hierarchy),
    })


@policy_bp.route("/policy/scope", methods=["GET"])
@require_principal
def my_scope(principal):
    try:
        kind = coerce_kind(request.args.get("kind", ResourceKind.GOAL.value))
    except PolicyInputError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc))
    scope = resolve_scope(principal, kind, hierarchy=get_policy_evaluator().hierarchy)
    return jsonify({"kind": kind.value, **scope.to_dict()})


@policy_bp.route("/policy/check", methods=["POST"])
@require_principal
def check(principal):
    """Advisory decision.

    Body:
        kind           "Goal", "Report", ...
        action         "update", "complete", ...  (or target_status for goals)
        resource_id    optional; omitted means a prospective new record
        department_id  optional, for prospective records
        target_status  optional, Goal only: evaluate a status change
        candidate_id   optional, for supervisor assignment and role changes
        target_role    optional, for role changes
    """
    data = request.get_json(silent=True) or {}
    evaluator = get_policy_evaluator()
    try:
        kind = coerce_kind(data.get("kind"))
        resource = _load_resource(kind, data.get("resource_id"), principal, data)

        if data.get("target_status") is not None:
            if kind != ResourceKind.GOAL or data.get("resource_id") is None:
                return api_error(E.VALIDATION_INVALID, "target_status needs an existing Goal")
            decision = evaluator.evaluate_transition(principal, resource, data["target_status"])
            return jsonify(decision.to_dict())

        if not data.get("action"):
            return api_error(E.VALIDATION_REQUIRED, "action is required")
        context = {}
        if data.get("candidate_id") is not None:
            context["candidate"] = get_record(User, data["candidate_id"]).to_principal()
        if data.get("target_role") is not None:
            context["target_role"] = data["target_role"]
        decision = evaluator.evaluate(principal, data["action"], resource, **context)
    except PolicyInputError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc))
    return jsonify(decision.to_dict())
