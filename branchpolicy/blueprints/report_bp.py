"""
Branch Policy Engine
Report Blueprint — reports addressed to supervisors and their responses.
"""

from flask import Blueprint, jsonify, request

from branchpolicy.blueprints import bool_arg
from branchpolicy.middleware.principal_required import require_principal
from branchpolicy.services import report_service
from branchpolicy.utils.errors import E, api_error

report_bp = Blueprint("report_bp", __name__, url_prefix="/api/v1")


@report_bp.route("/reports", methods=["GET"])
@require_principal
def list_reports(principal):
    reports = report_service.list_reports(
        principal,
        status=request.args.get("status"),
        mine=bool_arg("mine"),
    )
    return jsonify({"items": [r.to_dict() for r in reports], "total": len(reports)})


@report_bp.route("/reports", methods=["POST"])
@require_principal
def submit_report(principal):
    data = request.get_json(silent=True) or {}
    if not (data.get("title") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "title is required")
    submitted_to = data.get("submitted_to_ids")
    if not isinstance(submitted_to, list) or not submitted_to:
        return api_error(E.VALIDATION_REQUIRED, "submitted_to_ids must be a non-empty list")

    report = report_service.submit_report(
        principal,
        title=data["title"],
        description=data.get("description", ""),
        report_type=data.get("report_type", "general"),
        submitted_to_ids=submitted_to,
    )
    return jsonify(report.to_dict()), 201


@report_bp.route("/reports/<int:report_id>", methods=["GET"])
@require_principal
def get_report(principal, report_id):
    return jsonify(report_service.get_report(principal, report_id).to_dict())


@report_bp.route("/reports/<int:report_id>/respond", methods=["POST"])
@require_principal
def respond_report(principal, report_id):
    data = request.get_json(silent=True) or {}
    report = report_service.respond_report(principal, report_id, data.get("response", ""))
    return jsonify(report.to_dict())


@report_bp.route("/reports/<int:report_id>", methods=["DELETE"])
@require_principal
def delete_report(principal, report_id):
    return jsonify(report_service.delete_report(principal, report_id))
