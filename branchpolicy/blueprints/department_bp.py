"""
Branch Policy Engine
Department Blueprint — department CRUD and supervisor assignment.
"""

from flask import Blueprint, jsonify, request

from branchpolicy.blueprints import bool_arg
from branchpolicy.middleware.principal_required import require_principal
from branchpolicy.services import department_service
from branchpolicy.utils.errors import E, api_error

department_bp = Blueprint("department_bp", __name__, url_prefix="/api/v1")


@department_bp.route("/departments", methods=["GET"])
@require_principal
def list_departments(principal):
    return jsonify(department_service.list_departments(principal, with_counts=bool_arg("with_counts")))


@department_bp.route("/departments", methods=["POST"])
@require_principal
def create_department(principal):
    data = request.get_json(silent=True) or {}
    department = department_service.create_department(
        principal,
        name=data.get("name", ""),
        description=data.get("description", ""),
    )
    return jsonify(department.to_dict()), 201


@department_bp.route("/departments/<int:department_id>", methods=["GET"])
@require_principal
def get_department(principal, department_id):
    department = department_service.get_department(principal, department_id)
    return jsonify(department.to_dict(include_counts=True))


@department_bp.route("/departments/<int:department_id>", methods=["PUT"])
@require_principal
def update_department(principal, department_id):
    data = request.get_json(silent=True) or {}
    department = department_service.update_department(
        principal,
        department_id,
        name=data.get("name"),
        description=data.get("description"),
    )
    return jsonify(department.to_dict())


@department_bp.route("/departments/<int:department_id>/supervisor", methods=["PUT"])
@require_principal
def assign_supervisor(principal, department_id):
    """Body: {"user_id": 12} to assign, {"user_id": null} to clear."""
    data = request.get_json(silent=True) or {}
    if "user_id" not in data:
        return api_error(E.VALIDATION_REQUIRED, "user_id is required (null clears the supervisor)")
    user_id = data["user_id"]
    if user_id is not None and not isinstance(user_id, int):
        return api_error(E.VALIDATION_INVALID, "user_id must be an integer or null")
    department = department_service.assign_supervisor(principal, department_id, user_id)
    return jsonify(department.to_dict())


@department_bp.route("/departments/<int:department_id>", methods=["DELETE"])
@require_principal
def delete_department(principal, department_id):
    return jsonify(department_service.delete_department(principal, department_id))
