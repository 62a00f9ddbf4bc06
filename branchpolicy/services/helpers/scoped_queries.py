"""
Branch-scoped query helpers.

Every get-by-id and every list in the services goes through these helpers
instead of ``db.session.get`` / ``Model.query``.  Two shapes:

    get_scoped(Model, pk, branch_id=...)
        PK lookup with a mandatory scope column.  A record outside the scope
        is indistinguishable from a missing one (NotFoundError).

    apply_scope(query, Model, scope_spec)
        Narrow a list query to the records a ScopeSpec contains.  The SQL
        mirrors ``ScopeSpec.contains`` column for column; the two must agree.

Usage:
    dept = get_scoped(Department, department_id, branch_id=principal.branch_id)

    scope = resolve_scope(principal, ResourceKind.GOAL)
    goals = apply_scope(Goal.query, Goal, scope).all()
"""

import logging

from sqlalchemy import false, or_, select

from branchpolicy.core.exceptions import NotFoundError
from branchpolicy.models import db
from branchpolicy.services.scope_resolver import ScopeKind, ScopeSpec

logger = logging.getLogger(__name__)

# Supported scope keyword → expected model column name.
_SCOPE_KWARGS = ("branch_id", "department_id", "goal_id")


def get_scoped(
    model,
    pk: int,
    *,
    branch_id: int | None = None,
    department_id: int | None = None,
    goal_id: int | None = None,
):
    """Fetch a single entity by PK with mandatory scope filter.

    Raises:
        ValueError: If no scope parameter is provided, or none of them names
                    a column on the model.
        NotFoundError: If the entity does not exist OR lies outside the scope.
    """
    provided_scopes = {
        "branch_id": branch_id,
        "department_id": department_id,
        "goal_id": goal_id,
    }
    provided_scopes = {k: v for k, v in provided_scopes.items() if v is not None}

    if not provided_scopes:
        raise ValueError(
            f"{model.__name__} id={pk} requires at least one scope filter "
            f"({', '.join(_SCOPE_KWARGS)}). Unscoped lookups are forbidden."
        )

    applicable_scopes = {
        field: value
        for field, value in provided_scopes.items()
        if hasattr(model, field)
    }

    missing_fields = set(provided_scopes) - set(applicable_scopes)
    if missing_fields:
        logger.warning(
            "get_scoped(%s, %s): scope field(s) %s not found on model; "
            "those filters were NOT applied.",
            model.__name__,
            pk,
            sorted(missing_fields),
        )

    if not applicable_scopes:
        raise ValueError(
            f"{model.__name__} id={pk}: none of the scope fields {sorted(provided_scopes)} "
            f"exist on {model.__name__}. Refusing to perform an unscoped lookup."
        )

    stmt = select(model).where(model.id == pk)
    for field, value in applicable_scopes.items():
        stmt = stmt.where(getattr(model, field) == value)

    result = db.session.execute(stmt).scalar_one_or_none()
    if result is None:
        logger.debug("get_scoped: %s id=%s not found in scope %s", model.__name__, pk, applicable_scopes)
        raise NotFoundError(resource=model.__name__, resource_id=pk)
    return result


def get_scoped_or_none(model, pk: int, **scopes):
    """Same as get_scoped but returns None instead of raising NotFoundError."""
    try:
        return get_scoped(model, pk, **scopes)
    except NotFoundError:
        return None


def get_record(model, pk: int):
    """PK lookup without a scope filter, for records the policy guard judges next.

    Cross-branch access then surfaces as a CROSS_BRANCH decision instead of
    a 404.
    """
    result = db.session.get(model, pk)
    if result is None:
        raise NotFoundError(resource=model.__name__, resource_id=pk)
    return result


def get_for_update(model, pk: int):
    """Load a row with a write lock for check-then-act sequences, or None."""
    stmt = select(model).where(model.id == pk).with_for_update()
    return db.session.execute(stmt).scalar_one_or_none()


def scope_clause(model, scope: ScopeSpec):
    """SQL expression equivalent to ``scope.contains`` for rows of ``model``."""
    branch = model.branch_id == scope.branch_id
    if scope.kind == ScopeKind.ALL_IN_BRANCH:
        return branch

    membership = [getattr(model, model.__owner_column__) == scope.principal_id]
    assigned = model.assigned_ids_select(scope.principal_id)
    if assigned is not None:
        membership.append(model.id.in_(assigned))
    if (
        scope.kind == ScopeKind.DEPARTMENT_IN_BRANCH
        and scope.department_id is not None
        and model.__department_column__
    ):
        membership.append(getattr(model, model.__department_column__) == scope.department_id)

    return branch & or_(*membership) if membership else branch & false()


def apply_scope(query, model, scope: ScopeSpec):
    """Filter ``query`` (legacy Query or 2.0 Select) to rows ``scope`` contains."""
    clause = scope_clause(model, scope)
    if hasattr(query, "filter"):
        return query.filter(clause)
    return query.where(clause)
