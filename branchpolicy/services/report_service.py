"""
Branch Policy Engine
Report Service — free-standing reports addressed to supervisors.

Addressees must be active users of the submitter's branch holding
SUPERVISOR or higher.  Submitting notifies the addressees and the branch's
admins; responding notifies the submitter.
"""

import logging

from branchpolicy.core.exceptions import ValidationError
from branchpolicy.models import db
from branchpolicy.models.base import utcnow
from branchpolicy.models.org import User
from branchpolicy.models.report import REPORT_TYPES, Report, ReportRecipient
from branchpolicy.services.helpers.policy_guard import enforce
from branchpolicy.services.helpers.scoped_queries import apply_scope, get_record
from branchpolicy.services.identity import Principal, Resource, ResourceKind
from branchpolicy.services.notification_router import EventType, NotificationEvent
from branchpolicy.services.notification_service import NotificationService
from branchpolicy.services.policy_evaluator import get_policy_evaluator
from branchpolicy.services.policy_rules import Action
from branchpolicy.services.role_hierarchy import Role
from branchpolicy.services.scope_resolver import resolve_scope
from branchpolicy.services.user_service import branch_directory

logger = logging.getLogger(__name__)


def _validate_recipients(principal: Principal, user_ids) -> list[int]:
    if user_ids is None:
        user_ids = []
    if not isinstance(user_ids, (list, tuple, set, frozenset)):
        raise ValidationError("submitted_to_ids must be a list", details={"submitted_to_ids": user_ids})
    try:
        ids = sorted({int(uid) for uid in user_ids})
    except (TypeError, ValueError):
        raise ValidationError(
            "submitted_to_ids must be integers", details={"submitted_to_ids": list(user_ids)},
        ) from None
    if not ids:
        raise ValidationError("At least one recipient is required", details={"submitted_to_ids": "required"})
    hierarchy = get_policy_evaluator().hierarchy
    users = {
        u.id: u for u in User.query.filter(
            User.id.in_(ids), User.branch_id == principal.branch_id, User.status == "ACTIVE",
        ).all()
    }
    invalid = [
        uid for uid in ids
        if uid not in users or not hierarchy.satisfies(users[uid].role, Role.SUPERVISOR)
    ]
    if invalid:
        raise ValidationError(
            "Reports can only be addressed to active supervisors or admins of this branch",
            details={"submitted_to_ids": invalid},
        )
    return ids


def submit_report(principal: Principal, *, title: str, description: str = "",
                  report_type: str = "general", submitted_to_ids=()) -> Report:
    title = (title or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"})
    if report_type not in REPORT_TYPES:
        raise ValidationError(f"report_type must be one of {sorted(REPORT_TYPES)}",
                              details={"report_type": report_type})
    ids = _validate_recipients(principal, submitted_to_ids)
    enforce(principal, Action.CREATE, Resource(
        kind=ResourceKind.REPORT,
        branch_id=principal.branch_id,
        owner_id=principal.id,
        department_id=principal.department_id,
        assignee_ids=frozenset(ids),
    ))

    report = Report(
        branch_id=principal.branch_id,
        submitted_by_id=principal.id,
        department_id=principal.department_id,
        title=title,
        description=description or "",
        report_type=report_type,
    )
    report.recipients = [ReportRecipient(user_id=uid) for uid in ids]
    db.session.add(report)
    db.session.flush()

    NotificationService.publish(
        NotificationEvent(EventType.REPORT_SUBMITTED, report.to_resource(),
                          actor_id=principal.id, subject=report.title),
        branch_directory(principal.branch_id),
    )
    db.session.commit()
    logger.info("Report %s submitted by %s to %s", report.id, principal.id, ids)
    return report


def list_reports(principal: Principal, *, status=None, mine=False) -> list[Report]:
    scope = resolve_scope(principal, ResourceKind.REPORT, hierarchy=get_policy_evaluator().hierarchy)
    q = apply_scope(Report.query, Report, scope)
    if status:
        q = q.filter(Report.status == status)
    if mine:
        q = q.filter(Report.submitted_by_id == principal.id)
    return q.order_by(Report.submitted_at.desc(), Report.id.desc()).all()


def get_report(principal: Principal, report_id: int) -> Report:
    report = get_record(Report, report_id)
    enforce(principal, Action.VIEW, report.to_resource())
    return report


def respond_report(principal: Principal, report_id: int, response: str) -> Report:
    response = (response or "").strip()
    if not response:
        raise ValidationError("response is required", details={"response": "required"})
    report = get_record(Report, report_id)
    enforce(principal, Action.RESPOND, report.to_resource())
    if report.status == "archived":
        raise ValidationError("Archived reports cannot be answered")

    report.response = response
    report.status = "responded"
    report.responded_by_id = principal.id
    report.responded_at = utcnow()

    submitter = db.session.get(User, report.submitted_by_id)
    NotificationService.publish(
        NotificationEvent(EventType.REPORT_RESPONDED, report.to_resource(),
                          actor_id=principal.id, subject=report.title),
        branch_directory(report.branch_id, include=[submitter] if submitter else None),
    )
    db.session.commit()
    return report


def delete_report(principal: Principal, report_id: int) -> dict:
    report = get_record(Report, report_id)
    enforce(principal, Action.DELETE, report.to_resource())
    db.session.delete(report)
    db.session.commit()
    return {"deleted": True, "id": report_id}
