"""
Shared pytest fixtures for the Branch Policy Engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - org: two branches with departments and one user per role
    - jwt_headers: Authorization header builder for API tests
"""

from types import SimpleNamespace

import pytest

from branchpolicy import create_app
from branchpolicy.models import db as _db
from branchpolicy.models.org import Branch, Department, User
from branchpolicy.services.jwt_service import generate_token_for


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def jwt_headers():
    """Return a function building Bearer headers for a User row."""

    def _jwt_headers(user) -> dict:
        return {"Authorization": f"Bearer {generate_token_for(user)}"}

    return _jwt_headers


# ── ORM helpers ──────────────────────────────────────────────────────────


def _make_user(branch, email, role, department=None, status="ACTIVE"):
    user = User(
        branch_id=branch.id,
        email=email,
        full_name=email.split("@")[0].replace(".", " ").title(),
        role=role,
        status=status,
        department_id=department.id if department else None,
    )
    _db.session.add(user)
    _db.session.flush()
    return user


# ── Organisation fixture ─────────────────────────────────────────────────


@pytest.fixture()
def org():
    """Two branches.

    Branch ``b1``:
        departments ``sales`` (supervised by ``sup_sales``) and ``ops``
        (supervised by ``sup_ops``)
        developer, super_admin, admin, admin2       no department
        sup_sales, user_sales, user_sales2          sales
        sup_ops, user_ops                           ops
        user_nodept                                 USER without department
    Branch ``b2``:
        department ``b2_sales``; admin_b2, user_b2 in it
    """
    b1 = Branch(name="Central", code="B1")
    b2 = Branch(name="North", code="B2")
    _db.session.add_all([b1, b2])
    _db.session.flush()

    sales = Department(branch_id=b1.id, name="Sales")
    ops = Department(branch_id=b1.id, name="Operations")
    b2_sales = Department(branch_id=b2.id, name="Sales")
    _db.session.add_all([sales, ops, b2_sales])
    _db.session.flush()

    o = SimpleNamespace(b1=b1, b2=b2, sales=sales, ops=ops, b2_sales=b2_sales)
    o.developer = _make_user(b1, "dev@central.example.com", "DEVELOPER")
    o.super_admin = _make_user(b1, "root@central.example.com", "SUPER_ADMIN")
    o.admin = _make_user(b1, "admin@central.example.com", "ADMIN")
    o.admin2 = _make_user(b1, "admin.two@central.example.com", "ADMIN")
    o.sup_sales = _make_user(b1, "sup.sales@central.example.com", "SUPERVISOR", sales)
    o.user_sales = _make_user(b1, "user.sales@central.example.com", "USER", sales)
    o.user_sales2 = _make_user(b1, "user.sales2@central.example.com", "USER", sales)
    o.sup_ops = _make_user(b1, "sup.ops@central.example.com", "SUPERVISOR", ops)
    o.user_ops = _make_user(b1, "user.ops@central.example.com", "USER", ops)
    o.user_nodept = _make_user(b1, "floater@central.example.com", "USER")
    o.admin_b2 = _make_user(b2, "admin@north.example.com", "ADMIN", b2_sales)
    o.user_b2 = _make_user(b2, "user@north.example.com", "USER", b2_sales)

    sales.supervisor_id = o.sup_sales.id
    ops.supervisor_id = o.sup_ops.id
    _db.session.commit()
    return o
