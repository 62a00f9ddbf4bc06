"""
Branch Policy Engine
Branch Service — the sucursal registry.

Registry entries are managed by the SUPER_ADMIN (and, unless carved out by
configuration, the DEVELOPER) of the branch that registered them.  Entries
are deactivated rather than deleted.
"""

import logging

from sqlalchemy import or_

from branchpolicy.core.exceptions import ConflictError, ValidationError
from branchpolicy.models import db
from branchpolicy.models.org import Branch
from branchpolicy.services.helpers.policy_guard import enforce
from branchpolicy.services.helpers.scoped_queries import get_record
from branchpolicy.services.identity import Principal, ResourceKind, prospective
from branchpolicy.services.policy_rules import Action

logger = logging.getLogger(__name__)


def create_root_branch(*, name: str, code: str | None = None, server_url: str | None = None) -> Branch:
    """Bootstrap a branch with no registry owner (CLI seeding only)."""
    branch = Branch(name=name, code=code, server_url=server_url)
    db.session.add(branch)
    db.session.commit()
    return branch


def list_branches(principal: Principal, *, include_inactive=False) -> list[Branch]:
    enforce(principal, Action.VIEW, prospective(ResourceKind.SUCURSAL, principal))
    q = Branch.query.filter(
        or_(Branch.id == principal.branch_id, Branch.registry_branch_id == principal.branch_id)
    )
    if not include_inactive:
        q = q.filter(Branch.is_active.is_(True))
    return q.order_by(Branch.name).all()


def _check_unique_code(code: str | None, exclude_id: int | None = None) -> None:
    if not code:
        return
    q = Branch.query.filter(Branch.code == code)
    if exclude_id is not None:
        q = q.filter(Branch.id != exclude_id)
    if q.first():
        raise ConflictError("Branch", "code", code)


def register_branch(principal: Principal, *, name: str, code: str | None = None,
                    server_url: str | None = None, description: str = "") -> Branch:
    enforce(principal, Action.CREATE, prospective(ResourceKind.SUCURSAL, principal))
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    _check_unique_code(code)

    branch = Branch(
        name=name,
        code=code,
        server_url=server_url,
        description=description or "",
        registry_branch_id=principal.branch_id,
        created_by_id=principal.id,
    )
    db.session.add(branch)
    db.session.commit()
    logger.info("Branch %s registered by %s (registry %s)", branch.id, principal.id, principal.branch_id)
    return branch


def update_branch(principal: Principal, branch_id: int, data: dict) -> Branch:
    branch = get_record(Branch, branch_id)
    enforce(principal, Action.UPDATE, branch.to_resource())
    if "name" in data:
        name = (data["name"] or "").strip()
        if not name:
            raise ValidationError("name cannot be empty", details={"name": "required"})
        branch.name = name
    if "code" in data:
        _check_unique_code(data["code"], exclude_id=branch.id)
        branch.code = data["code"]
    if "server_url" in data:
        branch.server_url = data["server_url"]
    if "description" in data:
        branch.description = data["description"] or ""
    db.session.commit()
    return branch


def deactivate_branch(principal: Principal, branch_id: int) -> Branch:
    branch = get_record(Branch, branch_id)
    enforce(principal, Action.DELETE, branch.to_resource())
    if branch.id == principal.branch_id:
        raise ValidationError("A branch cannot deactivate itself")
    branch.is_active = False
    db.session.commit()
    logger.info("Branch %s deactivated by %s", branch.id, principal.id)
    return branch
