"""SQL scope filters agree with ScopeSpec.contains; scoped lookups refuse unscoped use."""

import pytest

from branchpolicy.core.exceptions import NotFoundError
from branchpolicy.models.goal import Goal
from branchpolicy.models.org import Department, User
from branchpolicy.models.report import Report
from branchpolicy.services import goal_service, report_service
from branchpolicy.services.helpers.scoped_queries import apply_scope, get_scoped, get_scoped_or_none
from branchpolicy.services.identity import ResourceKind
from branchpolicy.services.scope_resolver import resolve_scope

PEOPLE = (
    "developer", "super_admin", "admin", "sup_sales", "user_sales", "user_sales2",
    "sup_ops", "user_ops", "user_nodept", "admin_b2", "user_b2",
)


@pytest.fixture()
def records(org):
    goal_service.create_goal(org.sup_sales.to_principal(), title="Sales", department_id=org.sales.id,
                             assignee_ids=[org.user_sales.id])
    goal_service.create_goal(org.sup_ops.to_principal(), title="Ops", department_id=org.ops.id,
                             assignee_ids=[org.user_nodept.id, org.user_sales2.id])
    goal_service.create_goal(org.admin.to_principal(), title="Admin", department_id=org.ops.id)
    goal_service.create_goal(org.admin_b2.to_principal(), title="North", department_id=org.b2_sales.id,
                             assignee_ids=[org.user_b2.id])
    report_service.submit_report(org.user_sales.to_principal(), title="R1", submitted_to_ids=[org.sup_ops.id])
    report_service.submit_report(org.user_nodept.to_principal(), title="R2", submitted_to_ids=[org.admin.id])
    return org


@pytest.mark.parametrize("model,kind", [
    (Goal, ResourceKind.GOAL),
    (Report, ResourceKind.REPORT),
    (User, ResourceKind.USER),
    (Department, ResourceKind.DEPARTMENT),
])
@pytest.mark.parametrize("who", PEOPLE)
def test_sql_filter_matches_contains(records, model, kind, who):
    principal = getattr(records, who).to_principal()
    scope = resolve_scope(principal, kind)
    rows = model.query.all()
    expected = {row.id for row in rows if scope.contains(row.to_resource())}
    actual = {row.id for row in apply_scope(model.query, model, scope).all()}
    assert actual == expected


def test_cross_department_assignment_is_visible(records):
    scope = resolve_scope(records.user_sales2.to_principal(), ResourceKind.GOAL)
    titles = {g.title for g in apply_scope(Goal.query, Goal, scope).all()}
    assert titles == {"Ops"}


class TestGetScoped:
    def test_requires_a_scope(self, org):
        with pytest.raises(ValueError):
            get_scoped(Department, org.sales.id)

    def test_rejects_scope_the_model_lacks(self, org):
        with pytest.raises(ValueError):
            get_scoped(Department, org.sales.id, goal_id=1)

    def test_outside_scope_is_not_found(self, org):
        with pytest.raises(NotFoundError):
            get_scoped(Department, org.sales.id, branch_id=org.b2.id)
        assert get_scoped_or_none(Department, org.sales.id, branch_id=org.b2.id) is None

    def test_inside_scope(self, org):
        assert get_scoped(Department, org.sales.id, branch_id=org.b1.id).name == "Sales"
