"""
Branch Policy Engine
User Service — account requests, role changes, department moves, deactivation.

Users are never hard-deleted: ``deactivate_user`` (the ``User.delete``
action) and request rejection both set status INACTIVE so history that
references them stays intact.

A department's supervisor pointer is kept consistent here: demoting a
supervisor below SUPERVISOR, or moving them to another department, clears
the pointer on the department they supervised.
"""

import logging

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func

from branchpolicy.core.exceptions import ConflictError, NotFoundError, ValidationError
from branchpolicy.models import db
from branchpolicy.models.base import utcnow
from branchpolicy.models.org import Branch, Department, User
from branchpolicy.services.helpers.policy_guard import enforce
from branchpolicy.services.helpers.scoped_queries import apply_scope, get_record, get_scoped
from branchpolicy.services.identity import Principal, ResourceKind, prospective
from branchpolicy.services.notification_router import EventType, NotificationEvent
from branchpolicy.services.notification_service import NotificationService
from branchpolicy.services.policy_evaluator import get_policy_evaluator
from branchpolicy.services.policy_rules import Action
from branchpolicy.services.role_hierarchy import Role
from branchpolicy.services.scope_resolver import resolve_scope

logger = logging.getLogger(__name__)


# ── Directory ────────────────────────────────────────────────────────────


def branch_directory(branch_id: int, *, include: list[User] | None = None) -> list[Principal]:
    """Active principals of ``branch_id``, plus any extra users passed in."""
    users = User.query.filter_by(branch_id=branch_id, status="ACTIVE").all()
    seen = {u.id for u in users}
    for extra in include or []:
        if extra.id not in seen:
            users.append(extra)
    return [u.to_principal() for u in users]


def get_user(principal: Principal, user_id: int) -> User:
    user = get_record(User, user_id)
    enforce(principal, Action.VIEW, user.to_resource())
    return user


def list_users(principal: Principal, *, status=None, department_id=None, role=None) -> list[User]:
    scope = resolve_scope(principal, ResourceKind.USER, hierarchy=get_policy_evaluator().hierarchy)
    q = apply_scope(User.query, User, scope)
    if status:
        q = q.filter(User.status == status)
    if department_id is not None:
        q = q.filter(User.department_id == department_id)
    if role:
        q = q.filter(User.role == role)
    return q.order_by(User.full_name, User.id).all()


def _normalize_email(email) -> str:
    email = (email or "").strip()
    if not email:
        raise ValidationError("email is required", details={"email": "required"})
    try:
        valid = validate_email(email, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": "invalid"}) from None
    return valid.normalized.lower()


def _validate_role(role) -> str:
    hierarchy = get_policy_evaluator().hierarchy
    if not hierarchy.is_known(role):
        raise ValidationError(f"Unknown role: {role}", details={"role": "unknown"})
    return role.value if isinstance(role, Role) else role


def _department_in_branch(branch_id: int, department_id: int | None) -> Department | None:
    if department_id is None:
        return None
    try:
        return get_scoped(Department, department_id, branch_id=branch_id)
    except NotFoundError:
        raise ValidationError(
            "department_id does not exist in this branch",
            details={"department_id": department_id},
        ) from None


def _release_supervision(user: User) -> None:
    Department.query.filter_by(branch_id=user.branch_id, supervisor_id=user.id).update(
        {"supervisor_id": None}, synchronize_session="fetch",
    )


# ── Account requests ─────────────────────────────────────────────────────


def register_account(*, branch_id: int, email: str, full_name: str = "",
                     department_id: int | None = None) -> User:
    """Create a PENDING USER and notify the branch's reviewers."""
    email = _normalize_email(email)
    branch = db.session.get(Branch, branch_id)
    if branch is None or not branch.is_active:
        raise ValidationError("Unknown branch", details={"branch_id": branch_id})
    exists = User.query.filter(User.branch_id == branch_id, func.lower(User.email) == email).first()
    if exists:
        raise ConflictError("User", "email", email)
    department = _department_in_branch(branch_id, department_id)

    user = User(
        branch_id=branch_id,
        email=email,
        full_name=full_name.strip(),
        role=Role.USER.value,
        status="PENDING",
        department_id=department.id if department else None,
        requested_at=utcnow(),
    )
    db.session.add(user)
    db.session.flush()

    NotificationService.publish(
        NotificationEvent(
            EventType.USER_REQUEST,
            user.to_resource(),
            actor_id=user.id,
            subject=user.full_name or user.email,
            department=department.to_ref() if department else None,
        ),
        branch_directory(branch_id),
    )
    db.session.commit()
    logger.info("Account request %s created in branch %s", user.id, branch_id)
    return user


def _review_request(principal: Principal, user_id: int, approve: bool) -> User:
    user = get_record(User, user_id)
    enforce(principal, Action.APPROVE_REQUEST, user.to_resource())
    if user.status != "PENDING":
        raise ValidationError(f"User {user_id} has no pending request (status={user.status})")

    user.status = "ACTIVE" if approve else "INACTIVE"
    user.reviewed_by_id = principal.id
    user.reviewed_at = utcnow()
    if not approve:
        user.deactivated_at = user.reviewed_at

    NotificationService.publish(
        NotificationEvent(
            EventType.ACCOUNT_APPROVED if approve else EventType.ACCOUNT_REJECTED,
            user.to_resource(),
            actor_id=principal.id,
            subject=user.full_name or user.email,
        ),
        branch_directory(principal.branch_id, include=[user]),
    )
    db.session.commit()
    return user


def approve_request(principal: Principal, user_id: int) -> User:
    return _review_request(principal, user_id, approve=True)


def reject_request(principal: Principal, user_id: int) -> User:
    return _review_request(principal, user_id, approve=False)


# ── Administration ───────────────────────────────────────────────────────


def create_user(principal: Principal, *, email: str, full_name: str = "", role=Role.USER,
                department_id: int | None = None) -> User:
    """Admin-created account, active immediately."""
    role_value = _validate_role(role)
    department = _department_in_branch(principal.branch_id, department_id)
    enforce(
        principal, Action.CREATE,
        prospective(ResourceKind.USER, principal, department_id=department.id if department else None),
    )
    enforce(principal, Action.CHANGE_ROLE, prospective(ResourceKind.USER, principal), target_role=role_value)

    email = _normalize_email(email)
    if User.query.filter(User.branch_id == principal.branch_id, func.lower(User.email) == email).first():
        raise ConflictError("User", "email", email)

    user = User(
        branch_id=principal.branch_id,
        email=email,
        full_name=full_name.strip(),
        role=role_value,
        status="ACTIVE",
        department_id=department.id if department else None,
        reviewed_by_id=principal.id,
        reviewed_at=utcnow(),
    )
    db.session.add(user)
    db.session.commit()
    return user


def update_profile(principal: Principal, user_id: int, *, full_name=None, email=None) -> User:
    user = get_record(User, user_id)
    enforce(principal, Action.UPDATE, user.to_resource())
    if full_name is not None:
        user.full_name = full_name.strip()
    if email is not None:
        email = _normalize_email(email)
        clash = User.query.filter(
            User.branch_id == user.branch_id, func.lower(User.email) == email, User.id != user.id,
        ).first()
        if clash:
            raise ConflictError("User", "email", email)
        user.email = email
    db.session.commit()
    return user


def change_role(principal: Principal, user_id: int, new_role) -> User:
    role_value = _validate_role(new_role)
    user = get_record(User, user_id)
    enforce(
        principal, Action.CHANGE_ROLE, user.to_resource(),
        target_role=role_value, candidate=user.to_principal(),
    )
    previous = user.role
    user.role = role_value
    hierarchy = get_policy_evaluator().hierarchy
    if not hierarchy.satisfies(role_value, Role.SUPERVISOR):
        _release_supervision(user)
    db.session.commit()
    logger.info("User %s role %s → %s by %s", user.id, previous, role_value, principal.id)
    return user


def reassign_department(principal: Principal, user_id: int, department_id: int | None) -> User:
    user = get_record(User, user_id)
    enforce(principal, Action.REASSIGN_DEPARTMENT, user.to_resource())
    department = _department_in_branch(principal.branch_id, department_id)
    new_id = department.id if department else None
    if user.department_id != new_id:
        _release_supervision(user)
        user.department_id = new_id
    db.session.commit()
    return user


def deactivate_user(principal: Principal, user_id: int) -> User:
    """``User.delete``: soft-deactivate, never remove the row."""
    user = get_record(User, user_id)
    enforce(principal, Action.DELETE, user.to_resource())
    if user.id == principal.id:
        raise ValidationError("You cannot deactivate your own account")
    user.status = "INACTIVE"
    user.deactivated_at = utcnow()
    _release_supervision(user)
    db.session.commit()
    logger.info("User %s deactivated by %s", user.id, principal.id)
    return user
