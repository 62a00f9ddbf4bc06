"""
Branch Policy Engine
Blueprint registry and shared request helpers.
"""

from flask import request


def page_params(default_limit=50, max_limit=200):
    """Read limit/offset query params.

    Query params:
        limit  — max items (default 50, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (limit, offset)
    """
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return limit, offset


def bool_arg(name, default=False):
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def int_arg(name):
    raw = request.args.get(name)
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def register_blueprints(app):
    from branchpolicy.blueprints.branch_bp import branch_bp
    from branchpolicy.blueprints.department_bp import department_bp
    from branchpolicy.blueprints.goal_bp import goal_bp
    from branchpolicy.blueprints.notification_bp import notification_bp
    from branchpolicy.blueprints.policy_bp import policy_bp
    from branchpolicy.blueprints.report_bp import report_bp
    from branchpolicy.blueprints.user_bp import user_bp

    for bp in (goal_bp, report_bp, department_bp, user_bp, branch_bp, notification_bp, policy_bp):
        app.register_blueprint(bp)
