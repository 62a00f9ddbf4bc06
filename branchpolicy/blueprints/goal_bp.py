"""
Branch Policy Engine
Goal Blueprint — goals, assignees, progress, status and goal reports.

Every route is authenticated; every decision is made by the service layer
through the policy guard.  Denials come back as 403 (access) or 409
(lifecycle) with a ``reason`` field, see ``utils.errors``.
"""

import logging

from flask import Blueprint, jsonify, request

from branchpolicy.blueprints import bool_arg, int_arg
from branchpolicy.middleware.principal_required import require_principal
from branchpolicy.services import goal_service
from branchpolicy.utils.errors import E, api_error

logger = logging.getLogger(__name__)

goal_bp = Blueprint("goal_bp", __name__, url_prefix="/api/v1")


# ═════════════════════════════════════════════════════════════════════════════
#  GOALS
# ═════════════════════════════════════════════════════════════════════════════


@goal_bp.route("/goals", methods=["GET"])
@require_principal
def list_goals(principal):
    """List goals visible to the caller.

    Query params:
        status, department_id, assigned_to_me
    """
    result = goal_service.list_goals(
        principal,
        status=request.args.get("status"),
        department_id=int_arg("department_id"),
        assigned_to_me=bool_arg("assigned_to_me"),
    )
    return jsonify({
        "scope": result["scope"],
        "items": [g.to_dict() for g in result["items"]],
        "total": result["total"],
    })


@goal_bp.route("/goals/summary", methods=["GET"])
@require_principal
def goal_summary(principal):
    return jsonify(goal_service.completion_summary(principal))


@goal_bp.route("/goals", methods=["POST"])
@require_principal
def create_goal(principal):
    goal_service.ensure_can_create(principal)
    data = request.get_json(silent=True) or {}
    if not (data.get("title") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "title is required")
    if data.get("department_id") is None:
        return api_error(E.VALIDATION_REQUIRED, "department_id is required")
    if not isinstance(data.get("assignee_ids") or [], list):
        return api_error(E.VALIDATION_INVALID, "assignee_ids must be a list")

    goal = goal_service.create_goal(
        principal,
        title=data["title"],
        department_id=data["department_id"],
        description=data.get("description", ""),
        priority=data.get("priority", "medium"),
        due_date=data.get("due_date"),
        requires_report_on_completion=data.get("requires_report_on_completion", False),
        assignee_ids=data.get("assignee_ids") or [],
    )
    return jsonify(goal.to_dict()), 201


@goal_bp.route("/goals/<int:goal_id>", methods=["GET"])
@require_principal
def get_goal(principal, goal_id):
    """Goal with its reports, completion label, warnings and the caller's permissions."""
    return jsonify(goal_service.get_goal_detail(principal, goal_id))


@goal_bp.route("/goals/<int:goal_id>", methods=["PUT"])
@require_principal
def update_goal(principal, goal_id):
    data = request.get_json(silent=True) or {}
    goal = goal_service.update_goal(principal, goal_id, data)
    return jsonify(goal.to_dict())


@goal_bp.route("/goals/<int:goal_id>", methods=["DELETE"])
@require_principal
def delete_goal(principal, goal_id):
    return jsonify(goal_service.delete_goal(principal, goal_id))


# ═════════════════════════════════════════════════════════════════════════════
#  ASSIGNEES
# ═════════════════════════════════════════════════════════════════════════════


@goal_bp.route("/goals/<int:goal_id>/assign", methods=["POST"])
@require_principal
def assign_goal(principal, goal_id):
    data = request.get_json(silent=True) or {}
    user_ids = data.get("user_ids")
    if not isinstance(user_ids, list) or not user_ids:
        return api_error(E.VALIDATION_REQUIRED, "user_ids must be a non-empty list")
    goal = goal_service.assign_users(principal, goal_id, user_ids)
    return jsonify(goal.to_dict())


@goal_bp.route("/goals/<int:goal_id>/assign/<int:user_id>", methods=["DELETE"])
@require_principal
def unassign_goal(principal, goal_id, user_id):
    goal = goal_service.unassign_user(principal, goal_id, user_id)
    return jsonify(goal.to_dict())


# ═════════════════════════════════════════════════════════════════════════════
#  PROGRESS & STATUS
# ═════════════════════════════════════════════════════════════════════════════


@goal_bp.route("/goals/<int:goal_id>/progress", methods=["PUT"])
@require_principal
def update_progress(principal, goal_id):
    data = request.get_json(silent=True) or {}
    if "progress" not in data:
        return api_error(E.VALIDATION_REQUIRED, "progress is required")
    return jsonify(goal_service.update_progress(principal, goal_id, data["progress"]))


@goal_bp.route("/goals/<int:goal_id>/status", methods=["POST"])
@require_principal
def transition_goal(principal, goal_id):
    """Change a goal's status.

    Body: {"status": "completed"}

    409 with reason COMPLETION_REPORT_REQUIRED when the goal is not ready,
    409 with reason INVALID_TRANSITION for unknown or terminal moves.
    """
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if not status:
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    return jsonify(goal_service.transition_goal(principal, goal_id, status))


# ═════════════════════════════════════════════════════════════════════════════
#  GOAL REPORTS
# ═════════════════════════════════════════════════════════════════════════════


@goal_bp.route("/goals/<int:goal_id>/reports", methods=["GET"])
@require_principal
def list_goal_reports(principal, goal_id):
    goal = goal_service.get_goal(principal, goal_id)
    return jsonify([r.to_dict() for r in goal.reports.all()])


@goal_bp.route("/goals/<int:goal_id>/reports", methods=["POST"])
@require_principal
def submit_goal_report(principal, goal_id):
    data = request.get_json(silent=True) or {}
    if not (data.get("title") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "title is required")
    report = goal_service.submit_goal_report(
        principal,
        goal_id,
        title=data["title"],
        description=data.get("description", ""),
        report_type=data.get("report_type", "progress"),
        is_completion_report=bool(data.get("is_completion_report", False)),
    )
    return jsonify(report.to_dict()), 201
