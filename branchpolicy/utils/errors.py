"""Standardised API error responses.

Usage
-----
    from branchpolicy.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Goal not found")
    return api_error(E.VALIDATION_REQUIRED, "title is required")
    return decision_error(decision)
"""

from __future__ import annotations

import logging

from flask import jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from branchpolicy.core.decisions import ACCESS_REASONS, LIFECYCLE_REASONS, Decision, ReasonCode
from branchpolicy.core.exceptions import (
    ConflictError,
    NotFoundError,
    PolicyDenied,
    PolicyInputError,
    ValidationError,
)
from branchpolicy.models import db

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_    prefix for standard application errors
     • POLICY_ prefix for policy decisions, one per ReasonCode
    """

    # Validation – HTTP 400 / 422
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    VALIDATION_RULE = "ERR_VALIDATION_RULE"

    # Authentication – HTTP 401
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    ACCOUNT_INACTIVE = "ERR_ACCOUNT_INACTIVE"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"

    # Policy – HTTP 403 (access) / 409 (lifecycle)
    POLICY_CROSS_BRANCH = "POLICY_CROSS_BRANCH"
    POLICY_OUT_OF_SCOPE = "POLICY_OUT_OF_SCOPE"
    POLICY_INSUFFICIENT_ROLE = "POLICY_INSUFFICIENT_ROLE"
    POLICY_COMPLETION_REPORT_REQUIRED = "POLICY_COMPLETION_REPORT_REQUIRED"
    POLICY_INVALID_TRANSITION = "POLICY_INVALID_TRANSITION"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_RULE: 422,
    E.UNAUTHENTICATED: 401,
    E.ACCOUNT_INACTIVE: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


# ReasonCode → (error code, message key, default message)
_REASON_ERRORS: dict[ReasonCode, tuple[str, str, str]] = {
    ReasonCode.CROSS_BRANCH: (
        E.POLICY_CROSS_BRANCH, "policy.cross_branch",
        "This record belongs to another branch.",
    ),
    ReasonCode.OUT_OF_SCOPE: (
        E.POLICY_OUT_OF_SCOPE, "policy.out_of_scope",
        "This record is outside your department or assignments.",
    ),
    ReasonCode.INSUFFICIENT_ROLE: (
        E.POLICY_INSUFFICIENT_ROLE, "policy.insufficient_role",
        "Your role does not allow this action.",
    ),
    ReasonCode.COMPLETION_REPORT_REQUIRED: (
        E.POLICY_COMPLETION_REPORT_REQUIRED, "policy.completion_report_required",
        "This goal cannot be completed yet.",
    ),
    ReasonCode.INVALID_TRANSITION: (
        E.POLICY_INVALID_TRANSITION, "policy.invalid_transition",
        "This status change is not allowed.",
    ),
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
    **extra,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload.

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """
    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    body.update(extra)
    if details:
        body["details"] = details

    return jsonify(body), http_status


def decision_error(decision: Decision):
    """JSON response for a denying Decision: 403 for access, 409 for lifecycle."""
    if decision.reason in ACCESS_REASONS:
        status = 403
    elif decision.reason in LIFECYCLE_REASONS:
        status = 409
    else:
        raise ValueError(f"{decision.reason} is not a denial")
    code, message_key, message = _REASON_ERRORS[decision.reason]
    return api_error(
        code,
        message,
        status=status,
        reason=decision.reason.value,
        message_key=message_key,
        details={"kind": decision.kind, "action": decision.action, "detail": decision.detail}
        if decision.detail else {"kind": decision.kind, "action": decision.action},
    )


def register_error_handlers(app):
    """Map service-layer exceptions to JSON responses for every blueprint.

    Each handler rolls the session back; a service may have staged changes
    before it raised.
    """

    @app.errorhandler(PolicyDenied)
    def _policy_denied(exc):
        db.session.rollback()
        return decision_error(exc.decision)

    @app.errorhandler(NotFoundError)
    def _not_found(exc):
        db.session.rollback()
        return api_error(E.NOT_FOUND, f"{exc.resource} not found")

    @app.errorhandler(ValidationError)
    def _validation(exc):
        db.session.rollback()
        return api_error(E.VALIDATION_RULE, str(exc), details=exc.details)

    @app.errorhandler(ConflictError)
    def _conflict(exc):
        db.session.rollback()
        return api_error(E.CONFLICT_DUPLICATE, str(exc), details={"field": exc.field})

    @app.errorhandler(PolicyInputError)
    def _policy_input(exc):
        db.session.rollback()
        logger.error("Malformed policy input on %s: %s", request.path, exc)
        return api_error(E.INTERNAL, "Internal server error")

    @app.errorhandler(SQLAlchemyError)
    def _database(exc):
        logger.exception("Database error on %s %s", request.method, request.path)
        db.session.rollback()
        return api_error(E.DATABASE, "Database error")

    @app.errorhandler(404)
    def _http_404(exc):
        if request.path.startswith("/api/"):
            return api_error(E.NOT_FOUND, "Resource not found")
        return exc

    @app.errorhandler(405)
    def _http_405(exc):
        if request.path.startswith("/api/"):
            return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)
        return exc

    @app.errorhandler(500)
    def _http_500(exc):
        logger.exception("Unhandled error on %s", request.path)
        return api_error(E.INTERNAL, "Internal server error")
