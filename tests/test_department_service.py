"""Departments: CRUD, the supervisor invariant and detach-on-delete."""

import pytest

from branchpolicy.core.decisions import ReasonCode
from branchpolicy.core.exceptions import ConflictError, PolicyDenied, ValidationError
from branchpolicy.models import db
from branchpolicy.models.goal import Goal
from branchpolicy.models.org import Department, User
from branchpolicy.services import department_service, goal_service


class TestCrud:
    def test_list_with_counts(self, org):
        rows = department_service.list_departments(org.user_nodept.to_principal(), with_counts=True)
        by_name = {r["name"]: r for r in rows}
        assert set(by_name) == {"Operations", "Sales"}
        assert by_name["Sales"]["member_count"] == 3
        assert by_name["Sales"]["supervisor_id"] == org.sup_sales.id

    def test_create(self, org):
        dept = department_service.create_department(org.admin.to_principal(), name="  Finance ")
        assert dept.name == "Finance"
        assert dept.branch_id == org.b1.id

    def test_duplicate_name_is_case_insensitive(self, org):
        with pytest.raises(ConflictError):
            department_service.create_department(org.admin.to_principal(), name="sales")

    def test_same_name_in_another_branch(self, org):
        dept = department_service.create_department(org.admin_b2.to_principal(), name="Operations")
        assert dept.branch_id == org.b2.id

    def test_supervisor_cannot_create(self, org):
        with pytest.raises(PolicyDenied) as exc:
            department_service.create_department(org.sup_sales.to_principal(), name="Finance")
        assert exc.value.reason == ReasonCode.INSUFFICIENT_ROLE

    def test_rename(self, org):
        dept = department_service.update_department(org.admin.to_principal(), org.ops.id, name="Logistics")
        assert dept.name == "Logistics"
        with pytest.raises(ConflictError):
            department_service.update_department(org.admin.to_principal(), org.ops.id, name="Sales")

    def test_cross_branch_update(self, org):
        with pytest.raises(PolicyDenied) as exc:
            department_service.update_department(org.admin_b2.to_principal(), org.sales.id, name="Mine")
        assert exc.value.reason == ReasonCode.CROSS_BRANCH


class TestAssignSupervisor:
    def test_member_supervisor_is_accepted(self, org):
        org.user_sales.role = "SUPERVISOR"
        db.session.commit()
        dept = department_service.assign_supervisor(org.admin.to_principal(), org.sales.id, org.user_sales.id)
        assert dept.supervisor_id == org.user_sales.id

    def test_plain_user_is_refused(self, org):
        with pytest.raises(PolicyDenied) as exc:
            department_service.assign_supervisor(org.admin.to_principal(), org.sales.id, org.user_sales.id)
        assert exc.value.reason == ReasonCode.INSUFFICIENT_ROLE

    def test_supervisor_of_another_department_is_refused(self, org):
        with pytest.raises(PolicyDenied) as exc:
            department_service.assign_supervisor(org.admin.to_principal(), org.sales.id, org.sup_ops.id)
        assert exc.value.reason == ReasonCode.OUT_OF_SCOPE
        assert db.session.get(Department, org.sales.id).supervisor_id == org.sup_sales.id

    def test_candidate_from_another_branch(self, org):
        with pytest.raises(PolicyDenied) as exc:
            department_service.assign_supervisor(org.admin.to_principal(), org.sales.id, org.admin_b2.id)
        assert exc.value.reason == ReasonCode.CROSS_BRANCH

    def test_inactive_candidate(self, org):
        org.sup_sales.status = "INACTIVE"
        db.session.commit()
        with pytest.raises(ValidationError):
            department_service.assign_supervisor(org.admin.to_principal(), org.sales.id, org.sup_sales.id)

    def test_only_admins_assign(self, org):
        with pytest.raises(PolicyDenied) as exc:
            department_service.assign_supervisor(org.sup_sales.to_principal(), org.sales.id, org.sup_sales.id)
        assert exc.value.reason == ReasonCode.INSUFFICIENT_ROLE

    def test_clear_supervisor(self, org):
        dept = department_service.assign_supervisor(org.admin.to_principal(), org.sales.id, None)
        assert dept.supervisor_id is None


class TestDeleteDepartment:
    def test_members_and_goals_are_detached(self, org):
        goal = goal_service.create_goal(org.sup_sales.to_principal(), title="Quota", department_id=org.sales.id)
        sales_id = org.sales.id

        result = department_service.delete_department(org.admin.to_principal(), sales_id)
        assert result["deleted"] is True
        assert result["detached_users"] == 3
        assert result["detached_goals"] == 1

        assert db.session.get(Department, sales_id) is None
        assert db.session.get(User, org.user_sales.id).department_id is None
        assert db.session.get(User, org.user_sales.id).status == "ACTIVE"
        assert db.session.get(Goal, goal.id).department_id is None

    def test_supervisor_cannot_delete(self, org):
        with pytest.raises(PolicyDenied):
            department_service.delete_department(org.sup_sales.to_principal(), org.sales.id)


class TestDepartmentApi:
    def test_supervisor_endpoint_validates_body(self, client, org, jwt_headers):
        url = f"/api/v1/departments/{org.sales.id}/supervisor"
        assert client.put(url, json={}, headers=jwt_headers(org.admin)).status_code == 400
        assert client.put(url, json={"user_id": "x"}, headers=jwt_headers(org.admin)).status_code == 400

    def test_supervisor_endpoint_denial(self, client, org, jwt_headers):
        res = client.put(f"/api/v1/departments/{org.sales.id}/supervisor", json={"user_id": org.sup_ops.id},
                         headers=jwt_headers(org.admin))
        assert res.status_code == 403
        assert res.get_json()["reason"] == "OUT_OF_SCOPE"

    def test_create_duplicate(self, client, org, jwt_headers):
        res = client.post("/api/v1/departments", json={"name": "Sales"}, headers=jwt_headers(org.admin))
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"

    def test_list(self, client, org, jwt_headers):
        res = client.get("/api/v1/departments", headers=jwt_headers(org.user_sales))
        assert res.status_code == 200
        assert len(res.get_json()) == 2
