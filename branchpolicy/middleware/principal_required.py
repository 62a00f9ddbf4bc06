"""
Route decorators for authenticated endpoints.

Usage:
    @bp.route("/goals", methods=["GET"])
    @require_principal
    def list_goals(principal):
        ...

The decorated view receives the request's ``Principal`` as its first
argument.  Authorization proper happens in the service layer through the
policy guard; this decorator only answers "is anyone logged in".
"""

import functools
import logging

from flask import g, request

from branchpolicy.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def require_principal(f):
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        principal = getattr(g, "principal", None)
        if principal is None:
            logger.info("Unauthenticated %s %s", request.method, request.path)
            return api_error(E.UNAUTHENTICATED, "Authentication required")
        return f(principal, *args, **kwargs)
    return decorated
