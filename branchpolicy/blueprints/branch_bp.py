"""
Branch Policy Engine
Branch Blueprint — the sucursal registry.
"""

from flask import Blueprint, jsonify, request

from branchpolicy.blueprints import bool_arg
from branchpolicy.middleware.principal_required import require_principal
from branchpolicy.services import branch_service
from branchpolicy.utils.errors import E, api_error

branch_bp = Blueprint("branch_bp", __name__, url_prefix="/api/v1")


@branch_bp.route("/branches", methods=["GET"])
@require_principal
def list_branches(principal):
    branches = branch_service.list_branches(principal, include_inactive=bool_arg("include_inactive"))
    return jsonify([b.to_dict() for b in branches])


@branch_bp.route("/branches", methods=["POST"])
@require_principal
def register_branch(principal):
    data = request.get_json(silent=True) or {}
    if not (data.get("name") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    branch = branch_service.register_branch(
        principal,
        name=data["name"],
        code=data.get("code"),
        server_url=data.get("server_url"),
        description=data.get("description", ""),
    )
    return jsonify(branch.to_dict()), 201


@branch_bp.route("/branches/<int:branch_id>", methods=["PUT"])
@require_principal
def update_branch(principal, branch_id):
    data = request.get_json(silent=True) or {}
    return jsonify(branch_service.update_branch(principal, branch_id, data).to_dict())


@branch_bp.route("/branches/<int:branch_id>", methods=["DELETE"])
@require_principal
def deactivate_branch(principal, branch_id):
    branch = branch_service.deactivate_branch(principal, branch_id)
    return jsonify({"deactivated": True, "id": branch.id})
