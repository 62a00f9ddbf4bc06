"""
JWT Auth Middleware — parses the Bearer token and sets ``g.principal``.

For every /api/v1/ request except the public paths below:
  1. decode the token (PyJWT, HS256)
  2. load the user it names
  3. build the Principal from the *current* user row, so role, branch and
     department changes apply without re-issuing tokens

Missing or invalid tokens leave ``g.principal`` as None;
``require_principal`` turns that into a 401.  A valid token for an account
that is not ACTIVE is refused here with 403.
"""

import logging

import jwt as pyjwt
from flask import g, request

from branchpolicy.core.exceptions import PolicyInputError
from branchpolicy.models import db
from branchpolicy.models.org import User
from branchpolicy.services.jwt_service import decode_access_token
from branchpolicy.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.principal = None
        g.current_user = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return None
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return None

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return None

        token = auth_header[7:]
        try:
            payload = decode_access_token(token)
            user_id = int(payload["sub"])
        except pyjwt.ExpiredSignatureError:
            logger.debug("Expired token on %s", path)
            return None
        except (pyjwt.InvalidTokenError, KeyError, TypeError, ValueError):
            logger.debug("Invalid token on %s", path)
            return None

        user = db.session.get(User, user_id)
        if user is None:
            return None
        if not user.is_active:
            logger.warning("Inactive account %s attempted %s %s", user.id, request.method, path,
                           extra={"principal_id": user.id, "branch_id": user.branch_id})
            return api_error(E.ACCOUNT_INACTIVE, "Account is not active")

        try:
            g.principal = user.to_principal()
        except PolicyInputError:
            logger.error("User %s has a malformed profile (role=%r)", user.id, user.role)
            return api_error(E.ACCOUNT_INACTIVE, "Account profile is invalid")
        g.current_user = user
        return None
