"""
Branch Policy Engine
Notification Blueprint — the caller's own in-app notifications.

Notifications are written by the domain services through
``NotificationService.publish``; this blueprint only reads and updates
the caller's rows.
"""

from flask import Blueprint, jsonify, request

from branchpolicy.blueprints import bool_arg, page_params
from branchpolicy.middleware.principal_required import require_principal
from branchpolicy.services.notification_service import NotificationService

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1")


@notification_bp.route("/notifications", methods=["GET"])
@require_principal
def list_notifications(principal):
    """List the caller's notifications, newest first.

    Query params:
        unread_only, event_type, limit, offset
    """
    limit, offset = page_params()
    items, total = NotificationService.list_for_recipient(
        principal,
        unread_only=bool_arg("unread_only"),
        event_type=request.args.get("event_type"),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(principal),
    })


@notification_bp.route("/notifications/unread-count", methods=["GET"])
@require_principal
def unread_count(principal):
    return jsonify({"unread_count": NotificationService.unread_count(principal)})


@notification_bp.route("/notifications/<int:nid>/read", methods=["PATCH"])
@require_principal
def mark_read(principal, nid):
    return jsonify(NotificationService.mark_read(principal, nid).to_dict())


@notification_bp.route("/notifications/read-all", methods=["POST"])
@require_principal
def mark_all_read(principal):
    return jsonify({"marked_read": NotificationService.mark_all_read(principal)})


@notification_bp.route("/notifications/<int:nid>", methods=["DELETE"])
@require_principal
def delete_notification(principal, nid):
    NotificationService.delete(principal, nid)
    return jsonify({"deleted": True, "id": nid})
