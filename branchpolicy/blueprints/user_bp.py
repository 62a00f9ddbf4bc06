"""
Branch Policy Engine
User Blueprint — user administration and account requests.

``POST /account-requests`` is the only unauthenticated route: it files a
PENDING account that an ADMIN of the branch approves or rejects.
"""

from flask import Blueprint, jsonify, request

from branchpolicy.blueprints import int_arg
from branchpolicy.middleware.principal_required import require_principal
from branchpolicy.services import user_service
from branchpolicy.utils.errors import E, api_error

user_bp = Blueprint("user_bp", __name__, url_prefix="/api/v1")


# ═════════════════════════════════════════════════════════════════════════════
#  USERS
# ═════════════════════════════════════════════════════════════════════════════


@user_bp.route("/users/me", methods=["GET"])
@require_principal
def me(principal):
    """The caller's principal as the policy engine sees it."""
    return jsonify(principal.to_dict())


@user_bp.route("/users", methods=["GET"])
@require_principal
def list_users(principal):
    users = user_service.list_users(
        principal,
        status=request.args.get("status"),
        department_id=int_arg("department_id"),
        role=request.args.get("role"),
    )
    return jsonify({"items": [u.to_dict() for u in users], "total": len(users)})


@user_bp.route("/users", methods=["POST"])
@require_principal
def create_user(principal):
    data = request.get_json(silent=True) or {}
    if not (data.get("email") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "email is required")
    user = user_service.create_user(
        principal,
        email=data["email"],
        full_name=data.get("full_name") or "",
        role=data.get("role", "USER"),
        department_id=data.get("department_id"),
    )
    return jsonify(user.to_dict()), 201


@user_bp.route("/users/<int:user_id>", methods=["GET"])
@require_principal
def get_user(principal, user_id):
    return jsonify(user_service.get_user(principal, user_id).to_dict())


@user_bp.route("/users/<int:user_id>", methods=["PUT"])
@require_principal
def update_user(principal, user_id):
    data = request.get_json(silent=True) or {}
    user = user_service.update_profile(
        principal, user_id,
        full_name=data.get("full_name"),
        email=data.get("email"),
    )
    return jsonify(user.to_dict())


@user_bp.route("/users/<int:user_id>/role", methods=["PUT"])
@require_principal
def change_role(principal, user_id):
    data = request.get_json(silent=True) or {}
    role = data.get("role")
    if not role:
        return api_error(E.VALIDATION_REQUIRED, "role is required")
    return jsonify(user_service.change_role(principal, user_id, role).to_dict())


@user_bp.route("/users/<int:user_id>/department", methods=["PUT"])
@require_principal
def reassign_department(principal, user_id):
    """Body: {"department_id": 3}, or null to detach."""
    data = request.get_json(silent=True) or {}
    if "department_id" not in data:
        return api_error(E.VALIDATION_REQUIRED, "department_id is required (null detaches)")
    user = user_service.reassign_department(principal, user_id, data["department_id"])
    return jsonify(user.to_dict())


@user_bp.route("/users/<int:user_id>", methods=["DELETE"])
@require_principal
def deactivate_user(principal, user_id):
    user = user_service.deactivate_user(principal, user_id)
    return jsonify({"deactivated": True, "id": user.id, "status": user.status})


# ═════════════════════════════════════════════════════════════════════════════
#  ACCOUNT REQUESTS
# ═════════════════════════════════════════════════════════════════════════════


@user_bp.route("/account-requests", methods=["POST"])
def register_account():
    data = request.get_json(silent=True) or {}
    branch_id = data.get("branch_id")
    if not isinstance(branch_id, int):
        return api_error(E.VALIDATION_REQUIRED, "branch_id is required")
    if not (data.get("email") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "email is required")
    user = user_service.register_account(
        branch_id=branch_id,
        email=data["email"],
        full_name=data.get("full_name") or "",
        department_id=data.get("department_id"),
    )
    return jsonify({"id": user.id, "status": user.status}), 201


@user_bp.route("/account-requests", methods=["GET"])
@require_principal
def list_account_requests(principal):
    users = user_service.list_users(principal, status="PENDING")
    return jsonify({"items": [u.to_dict() for u in users], "total": len(users)})


@user_bp.route("/account-requests/<int:user_id>/approve", methods=["POST"])
@require_principal
def approve_request(principal, user_id):
    return jsonify(user_service.approve_request(principal, user_id).to_dict())


@user_bp.route("/account-requests/<int:user_id>/reject", methods=["POST"])
@require_principal
def reject_request(principal, user_id):
    return jsonify(user_service.reject_request(principal, user_id).to_dict())
