"""
Branch Policy Engine
Department Service — create, edit, supervise and delete departments.

Invariant: a department's supervisor, when set, belongs to the same branch,
is a member of the department and holds SUPERVISOR or higher.  The policy
evaluator checks the candidate (``Department.assign_supervisor``); this
module only persists an allowed assignment.

Deleting a department detaches its members and goals; nothing else is
deleted with it.
"""

import logging

from sqlalchemy import func

from branchpolicy.core.exceptions import ConflictError, ValidationError
from branchpolicy.models import db
from branchpolicy.models.goal import Goal
from branchpolicy.models.org import Department, User
from branchpolicy.models.report import Report
from branchpolicy.services.helpers.policy_guard import enforce
from branchpolicy.services.helpers.scoped_queries import get_record
from branchpolicy.services.identity import Principal, ResourceKind, prospective
from branchpolicy.services.policy_rules import Action

logger = logging.getLogger(__name__)


def list_departments(principal: Principal, *, with_counts=False) -> list[dict]:
    enforce(principal, Action.VIEW, prospective(ResourceKind.DEPARTMENT, principal))
    departments = Department.query_for_branch(principal.branch_id).order_by(Department.name).all()
    return [d.to_dict(include_counts=with_counts) for d in departments]


def get_department(principal: Principal, department_id: int) -> Department:
    department = get_record(Department, department_id)
    enforce(principal, Action.VIEW, department.to_resource())
    return department


def _check_unique_name(branch_id: int, name: str, exclude_id: int | None = None) -> None:
    q = Department.query.filter(Department.branch_id == branch_id, func.lower(Department.name) == name.lower())
    if exclude_id is not None:
        q = q.filter(Department.id != exclude_id)
    if q.first():
        raise ConflictError("Department", "name", name)


def create_department(principal: Principal, *, name: str, description: str = "") -> Department:
    enforce(principal, Action.CREATE, prospective(ResourceKind.DEPARTMENT, principal))
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    _check_unique_name(principal.branch_id, name)

    department = Department(
        branch_id=principal.branch_id,
        name=name,
        description=description or "",
        created_by_id=principal.id,
    )
    db.session.add(department)
    db.session.commit()
    logger.info("Department %s created in branch %s", department.id, principal.branch_id)
    return department


def update_department(principal: Principal, department_id: int, *, name=None, description=None) -> Department:
    department = get_record(Department, department_id)
    enforce(principal, Action.UPDATE, department.to_resource())
    if name is not None:
        name = name.strip()
        if not name:
            raise ValidationError("name cannot be empty", details={"name": "required"})
        _check_unique_name(department.branch_id, name, exclude_id=department.id)
        department.name = name
    if description is not None:
        department.description = description
    db.session.commit()
    return department


def assign_supervisor(principal: Principal, department_id: int, user_id: int | None) -> Department:
    """Set (or clear, with ``user_id=None``) the department's supervisor."""
    department = get_record(Department, department_id)

    if user_id is None:
        enforce(principal, Action.UPDATE, department.to_resource())
        department.supervisor_id = None
        db.session.commit()
        return department

    candidate = get_record(User, user_id)
    if candidate.status != "ACTIVE":
        raise ValidationError("Supervisor must be an active user", details={"user_id": user_id})
    enforce(
        principal, Action.ASSIGN_SUPERVISOR, department.to_resource(),
        candidate=candidate.to_principal(),
    )
    department.supervisor_id = candidate.id
    db.session.commit()
    logger.info("Department %s supervisor set to %s by %s", department.id, candidate.id, principal.id)
    return department


def delete_department(principal: Principal, department_id: int) -> dict:
    """Delete a department; members, goals and reports are detached, not removed."""
    department = get_record(Department, department_id)
    enforce(principal, Action.DELETE, department.to_resource())

    detached_users = User.query.filter_by(department_id=department.id).update(
        {"department_id": None}, synchronize_session="fetch",
    )
    detached_goals = Goal.query.filter_by(department_id=department.id).update(
        {"department_id": None}, synchronize_session="fetch",
    )
    Report.query.filter_by(department_id=department.id).update(
        {"department_id": None}, synchronize_session="fetch",
    )
    db.session.delete(department)
    db.session.commit()
    logger.info(
        "Department %s deleted by %s: %d member(s), %d goal(s) detached",
        department_id, principal.id, detached_users, detached_goals,
    )
    return {"deleted": True, "id": department_id,
            "detached_users": detached_users, "detached_goals": detached_goals}
