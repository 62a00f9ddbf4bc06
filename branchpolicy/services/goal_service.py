"""
Branch Policy Engine
Goal Service — goals, assignments, progress, status and goal reports.

Every operation follows the same sequence:
  1. load the row (``get_for_update`` where a check-then-act follows)
  2. snapshot it and ask the policy guard
  3. mutate, stage notifications, commit once

Transitions return a summary dict in the same shape for every caller:

    {"goal_id", "previous_status", "new_status", "completed_at"}

Raises:
    NotFoundError, ValidationError, PolicyDenied
"""

import logging
from datetime import date

from sqlalchemy import func

from branchpolicy.core.exceptions import NotFoundError, ValidationError
from branchpolicy.models import db
from branchpolicy.models.base import utcnow
from branchpolicy.models.goal import GOAL_PRIORITIES, Goal, GoalAssignment, GoalReport
from branchpolicy.models.org import Department, User
from branchpolicy.services import goal_lifecycle
from branchpolicy.services.goal_lifecycle import GoalSnapshot, GoalStatus
from branchpolicy.services.helpers.policy_guard import enforce, enforce_transition
from branchpolicy.services.helpers.scoped_queries import apply_scope, get_for_update, get_record, get_scoped
from branchpolicy.services.identity import Principal, Resource, ResourceKind, prospective
from branchpolicy.services.notification_router import EventType, NotificationEvent
from branchpolicy.services.notification_service import NotificationService
from branchpolicy.services.policy_evaluator import get_policy_evaluator
from branchpolicy.services.policy_rules import Action
from branchpolicy.services.scope_resolver import resolve_scope
from branchpolicy.services.user_service import branch_directory

logger = logging.getLogger(__name__)


# ── Helpers ──────────────────────────────────────────────────────────────


def _load_for_update(goal_id: int) -> Goal:
    goal = get_for_update(Goal, goal_id)
    if goal is None:
        raise NotFoundError(resource="Goal", resource_id=goal_id)
    return goal


def _parse_due_date(value):
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError("due_date must be an ISO date (YYYY-MM-DD)", details={"due_date": value}) from None


def _validate_assignees(branch_id: int, user_ids) -> list[int]:
    if user_ids is None:
        user_ids = []
    if not isinstance(user_ids, (list, tuple, set, frozenset)):
        raise ValidationError("user_ids must be a list of user ids", details={"user_ids": user_ids})
    try:
        ids = sorted({int(uid) for uid in user_ids})
    except (TypeError, ValueError):
        raise ValidationError("user_ids must be integers", details={"user_ids": list(user_ids)}) from None
    if not ids:
        return []
    found = {
        u.id for u in User.query.filter(
            User.id.in_(ids), User.branch_id == branch_id, User.status == "ACTIVE",
        ).all()
    }
    missing = [uid for uid in ids if uid not in found]
    if missing:
        raise ValidationError(
            "Assignees must be active users of the same branch",
            details={"user_ids": missing},
        )
    return ids


def _publish(event_type: EventType, goal: Goal, actor: Principal, *, source: Resource | None = None,
             target_ids=()) -> None:
    NotificationService.publish(
        NotificationEvent(
            event_type,
            source or goal.to_resource(),
            actor_id=actor.id,
            subject=goal.title,
            target_ids=frozenset(target_ids),
        ),
        branch_directory(goal.branch_id),
    )


# ── Queries ──────────────────────────────────────────────────────────────


def get_goal(principal: Principal, goal_id: int) -> Goal:
    goal = get_record(Goal, goal_id)
    enforce(principal, Action.VIEW, goal.to_resource())
    return goal


def list_goals(principal: Principal, *, status=None, department_id=None, assigned_to_me=False) -> dict:
    """Goals visible to ``principal``, plus the scope that produced them."""
    scope = resolve_scope(principal, ResourceKind.GOAL, hierarchy=get_policy_evaluator().hierarchy)
    q = apply_scope(Goal.query, Goal, scope)
    if status:
        parsed = goal_lifecycle.parse_status(status)
        if parsed is None:
            raise ValidationError(f"Unknown goal status: {status}", details={"status": status})
        q = q.filter(Goal.status == parsed.value)
    if department_id is not None:
        q = q.filter(Goal.department_id == department_id)
    if assigned_to_me:
        q = q.filter(Goal.id.in_(Goal.assigned_ids_select(principal.id)))
    goals = q.order_by(Goal.created_at.desc(), Goal.id.desc()).all()
    return {"scope": scope.to_dict(), "items": goals, "total": len(goals)}


def get_goal_detail(principal: Principal, goal_id: int) -> dict:
    goal = get_goal(principal, goal_id)
    snapshot = goal.to_resource(with_history=True)
    reports = [r.to_dict() for r in goal.reports.all()]
    return {
        **goal.to_dict(),
        "reports": reports,
        "completion_label": goal_lifecycle.completion_status_label(snapshot),
        "can_complete": goal_lifecycle.can_complete(snapshot),
        "warnings": goal_lifecycle.goal_warnings(snapshot),
        "latest_completion_report": goal_lifecycle.latest_completion_report(reports),
        "available_statuses": goal_lifecycle.allowed_targets(goal.status),
        "permissions": get_policy_evaluator().explain(principal, snapshot),
    }


def completion_summary(principal: Principal) -> dict:
    goals = list_goals(principal)["items"]
    return goal_lifecycle.completion_stats([g.to_resource() for g in goals])


# ── Mutations ────────────────────────────────────────────────────────────


def ensure_can_create(principal: Principal) -> None:
    """Role gate for goal creation, judged before the request body is read."""
    enforce(principal, Action.CREATE,
            prospective(ResourceKind.GOAL, principal, department_id=principal.department_id))


def create_goal(
    principal: Principal,
    *,
    title: str,
    department_id: int,
    description: str = "",
    priority: str = "medium",
    due_date=None,
    requires_report_on_completion: bool = False,
    assignee_ids=(),
) -> Goal:
    ensure_can_create(principal)
    title = (title or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"})
    if priority not in GOAL_PRIORITIES:
        raise ValidationError(f"priority must be one of {sorted(GOAL_PRIORITIES)}", details={"priority": priority})
    if department_id is None:
        raise ValidationError("department_id is required", details={"department_id": "required"})
    try:
        department = get_scoped(Department, department_id, branch_id=principal.branch_id)
    except NotFoundError:
        raise ValidationError(
            "department_id does not exist in this branch", details={"department_id": department_id},
        ) from None

    ids = _validate_assignees(principal.branch_id, assignee_ids)
    enforce(principal, Action.CREATE, GoalSnapshot(
        branch_id=principal.branch_id,
        owner_id=principal.id,
        department_id=department.id,
        assignee_ids=frozenset(ids),
    ))

    goal = Goal(
        branch_id=principal.branch_id,
        department_id=department.id,
        created_by_id=principal.id,
        title=title,
        description=description or "",
        priority=priority,
        due_date=_parse_due_date(due_date),
        requires_report_on_completion=bool(requires_report_on_completion),
    )
    goal.assignments = [GoalAssignment(user_id=uid, assigned_by_id=principal.id) for uid in ids]
    db.session.add(goal)
    db.session.flush()

    if ids:
        _publish(EventType.GOAL_ASSIGNED, goal, principal, target_ids=ids)
    db.session.commit()
    logger.info("Goal %s created by %s in department %s", goal.id, principal.id, department.id)
    return goal


_EDITABLE_FIELDS = ("title", "description", "priority", "due_date", "requires_report_on_completion")


def update_goal(principal: Principal, goal_id: int, data: dict) -> Goal:
    goal = _load_for_update(goal_id)
    snapshot = goal.to_resource()
    enforce(principal, Action.UPDATE, snapshot)
    if snapshot.is_completed and any(field in data for field in _EDITABLE_FIELDS):
        raise ValidationError("Completed goals cannot be edited")

    if "title" in data:
        title = (data["title"] or "").strip()
        if not title:
            raise ValidationError("title cannot be empty", details={"title": "required"})
        goal.title = title
    if "description" in data:
        goal.description = data["description"] or ""
    if "priority" in data:
        if data["priority"] not in GOAL_PRIORITIES:
            raise ValidationError(f"priority must be one of {sorted(GOAL_PRIORITIES)}")
        goal.priority = data["priority"]
    if "due_date" in data:
        goal.due_date = _parse_due_date(data["due_date"])
    if "requires_report_on_completion" in data:
        goal.requires_report_on_completion = bool(data["requires_report_on_completion"])

    if any(field in data for field in _EDITABLE_FIELDS):
        _publish(EventType.GOAL_UPDATED, goal, principal)
    db.session.commit()
    return goal


def assign_users(principal: Principal, goal_id: int, user_ids) -> Goal:
    """Add assignees to a goal. Already-assigned users are left as they are."""
    goal = _load_for_update(goal_id)
    enforce(principal, Action.ASSIGN, goal.to_resource())
    ids = _validate_assignees(goal.branch_id, user_ids)

    current = set(goal.assignee_ids)
    new_ids = [uid for uid in ids if uid not in current]
    for uid in new_ids:
        goal.assignments.append(GoalAssignment(user_id=uid, assigned_by_id=principal.id))
    db.session.flush()

    if new_ids:
        _publish(EventType.GOAL_ASSIGNED, goal, principal, target_ids=new_ids)
    db.session.commit()
    return goal


def unassign_user(principal: Principal, goal_id: int, user_id: int) -> Goal:
    goal = _load_for_update(goal_id)
    enforce(principal, Action.ASSIGN, goal.to_resource())
    goal.assignments = [a for a in goal.assignments if a.user_id != user_id]
    db.session.commit()
    return goal


def delete_goal(principal: Principal, goal_id: int) -> dict:
    goal = _load_for_update(goal_id)
    enforce(principal, Action.DELETE, goal.to_resource())
    db.session.delete(goal)
    db.session.commit()
    logger.info("Goal %s deleted by %s", goal_id, principal.id)
    return {"deleted": True, "id": goal_id}


def update_progress(principal: Principal, goal_id: int, progress) -> dict:
    """Record progress 0..100. Reaching 100 never completes the goal by itself."""
    try:
        value = int(progress)
    except (TypeError, ValueError):
        raise ValidationError("progress must be an integer", details={"progress": progress}) from None
    if not 0 <= value <= 100:
        raise ValidationError("progress must be between 0 and 100", details={"progress": value})

    goal = _load_for_update(goal_id)
    snapshot = goal.to_resource()
    enforce(principal, Action.UPDATE_PROGRESS, snapshot)
    if snapshot.is_completed:
        raise ValidationError("Completed goals cannot change progress")

    previous = goal.progress
    goal.progress = value
    _publish(EventType.GOAL_UPDATED, goal, principal)
    db.session.commit()
    return {
        "goal_id": goal.id,
        "previous_progress": previous,
        "progress": value,
        "prompt_completion_report": goal_lifecycle.should_prompt_completion_report(snapshot, value),
    }


def transition_goal(principal: Principal, goal_id: int, target_status) -> dict:
    """Move a goal to ``target_status`` under the policy and lifecycle guards."""
    goal = _load_for_update(goal_id)
    snapshot = goal.to_resource()
    enforce_transition(principal, snapshot, target_status)

    new_status = goal_lifecycle.parse_status(target_status)
    previous = goal.status
    goal.status = new_status.value
    if new_status == GoalStatus.COMPLETED:
        goal.completed_at = utcnow()

    if previous != goal.status:
        _publish(EventType.GOAL_UPDATED, goal, principal)
    db.session.commit()
    logger.info("Goal %s: %s → %s by %s", goal.id, previous, goal.status, principal.id)
    return {
        "goal_id": goal.id,
        "previous_status": previous,
        "new_status": goal.status,
        "completed_at": goal.completed_at.isoformat() if goal.completed_at else None,
    }


def submit_goal_report(
    principal: Principal,
    goal_id: int,
    *,
    title: str,
    description: str = "",
    report_type: str = "progress",
    is_completion_report: bool = False,
) -> GoalReport:
    """Append a versioned report to a goal.

    A completion report flips ``completion_report_submitted``; the goal's
    status is never changed here.
    """
    title = (title or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"})

    goal = _load_for_update(goal_id)
    snapshot = goal.to_resource()
    enforce(principal, Action.SUBMIT_REPORT, snapshot)
    if snapshot.is_completed:
        raise ValidationError("Completed goals do not accept new reports")

    existing = db.session.query(func.max(GoalReport.version)).filter(GoalReport.goal_id == goal.id).scalar()
    version = goal_lifecycle.next_report_version([existing])
    report = GoalReport(
        goal_id=goal.id,
        submitted_by_id=principal.id,
        version=version,
        title=title,
        description=description or "",
        report_type="completion" if is_completion_report else report_type,
        is_completion_report=bool(is_completion_report),
        progress_at_submission=goal.progress,
    )
    db.session.add(report)
    if is_completion_report:
        updated = goal_lifecycle.record_completion_report(snapshot)
        goal.completion_report_submitted = updated.completion_report_submitted
    db.session.flush()

    _publish(
        EventType.REPORT_SUBMITTED, goal, principal,
        source=Resource(
            kind=ResourceKind.REPORT,
            id=report.id,
            branch_id=goal.branch_id,
            owner_id=principal.id,
            department_id=goal.department_id,
            assignee_ids=frozenset({goal.created_by_id}),
        ),
    )
    db.session.commit()
    logger.info("Goal %s report v%s submitted by %s", goal.id, version, principal.id)
    return report
