"""Goal endpoints: authentication, policy denials and the completion flow over HTTP."""

import pytest

from branchpolicy.models import db


@pytest.fixture()
def goal(client, org, jwt_headers):
    res = client.post("/api/v1/goals", json={
        "title": "Open two new accounts",
        "department_id": org.sales.id,
        "assignee_ids": [org.user_sales.id],
        "requires_report_on_completion": True,
    }, headers=jwt_headers(org.sup_sales))
    assert res.status_code == 201
    return res.get_json()


class TestAuthentication:
    def test_missing_token(self, client, org):
        res = client.get("/api/v1/goals")
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"

    def test_garbage_token(self, client, org):
        res = client.get("/api/v1/goals", headers={"Authorization": "Bearer not-a-token"})
        assert res.status_code == 401

    def test_inactive_account(self, client, org, jwt_headers):
        org.user_sales.status = "INACTIVE"
        db.session.commit()
        res = client.get("/api/v1/goals", headers=jwt_headers(org.user_sales))
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_ACCOUNT_INACTIVE"

    def test_health_is_public(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"


class TestCreateAndList:
    def test_create(self, goal, org):
        assert goal["status"] == "pending"
        assert goal["department_id"] == org.sales.id
        assert goal["assignee_ids"] == [org.user_sales.id]

    def test_missing_title(self, client, org, jwt_headers):
        res = client.post("/api/v1/goals", json={"department_id": org.sales.id},
                          headers=jwt_headers(org.sup_sales))
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_unknown_department(self, client, org, jwt_headers):
        res = client.post("/api/v1/goals", json={"title": "X", "department_id": 9999},
                          headers=jwt_headers(org.admin))
        assert res.status_code == 422
        assert res.get_json()["details"] == {"department_id": 9999}

    def test_other_department_is_out_of_scope(self, client, org, jwt_headers):
        res = client.post("/api/v1/goals", json={"title": "X", "department_id": org.ops.id},
                          headers=jwt_headers(org.sup_sales))
        body = res.get_json()
        assert res.status_code == 403
        assert body["reason"] == "OUT_OF_SCOPE"
        assert body["code"] == "POLICY_OUT_OF_SCOPE"
        assert body["details"]["kind"] == "Goal"
        assert body["details"]["action"] == "create"

    def test_user_cannot_create(self, client, org, jwt_headers):
        res = client.post("/api/v1/goals", json={"title": "X", "department_id": org.sales.id},
                          headers=jwt_headers(org.user_sales))
        assert res.status_code == 403
        assert res.get_json()["reason"] == "INSUFFICIENT_ROLE"

    @pytest.mark.parametrize("who", ["user_nodept", "user_sales"])
    def test_role_is_judged_before_the_body(self, client, org, jwt_headers, who):
        res = client.post("/api/v1/goals", json={}, headers=jwt_headers(getattr(org, who)))
        assert res.status_code == 403
        assert res.get_json()["reason"] == "INSUFFICIENT_ROLE"

    def test_assignee_ids_must_be_a_list(self, client, org, jwt_headers):
        res = client.post("/api/v1/goals", json={"title": "X", "department_id": org.sales.id, "assignee_ids": 7},
                          headers=jwt_headers(org.sup_sales))
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_non_integer_assignee_ids(self, client, org, jwt_headers):
        res = client.post("/api/v1/goals",
                          json={"title": "X", "department_id": org.sales.id, "assignee_ids": ["abc"]},
                          headers=jwt_headers(org.sup_sales))
        assert res.status_code == 422
        assert res.get_json()["details"] == {"user_ids": ["abc"]}

    def test_list_is_scoped(self, client, org, jwt_headers, goal):
        mine = client.get("/api/v1/goals", headers=jwt_headers(org.user_sales)).get_json()
        assert [g["id"] for g in mine["items"]] == [goal["id"]]
        assert mine["scope"]["kind"] == "OWNED_OR_ASSIGNED"

        other = client.get("/api/v1/goals", headers=jwt_headers(org.user_sales2)).get_json()
        assert other["total"] == 0

        foreign = client.get("/api/v1/goals", headers=jwt_headers(org.admin_b2)).get_json()
        assert foreign["total"] == 0


class TestDenials:
    def test_cross_branch_read(self, client, org, jwt_headers, goal):
        res = client.get(f"/api/v1/goals/{goal['id']}", headers=jwt_headers(org.admin_b2))
        assert res.status_code == 403
        assert res.get_json()["reason"] == "CROSS_BRANCH"

    def test_out_of_scope_read(self, client, org, jwt_headers, goal):
        res = client.get(f"/api/v1/goals/{goal['id']}", headers=jwt_headers(org.user_ops))
        assert res.status_code == 403
        assert res.get_json()["reason"] == "OUT_OF_SCOPE"

    def test_missing_goal(self, client, org, jwt_headers):
        res = client.get("/api/v1/goals/9999", headers=jwt_headers(org.admin))
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_assignee_cannot_delete(self, client, org, jwt_headers, goal):
        res = client.delete(f"/api/v1/goals/{goal['id']}", headers=jwt_headers(org.user_sales))
        assert res.status_code == 403
        assert res.get_json()["reason"] == "INSUFFICIENT_ROLE"


class TestCompletionFlow:
    def test_report_then_complete(self, client, org, jwt_headers, goal):
        headers = jwt_headers(org.user_sales)
        url = f"/api/v1/goals/{goal['id']}"

        res = client.put(f"{url}/progress", json={"progress": 100}, headers=headers)
        assert res.status_code == 200
        assert res.get_json()["prompt_completion_report"] is True

        res = client.post(f"{url}/status", json={"status": "completed"}, headers=headers)
        assert res.status_code == 409
        body = res.get_json()
        assert body["reason"] == "COMPLETION_REPORT_REQUIRED"
        assert "completion report" in body["details"]["detail"]

        res = client.post(f"{url}/reports", json={"title": "All done", "is_completion_report": True},
                          headers=headers)
        assert res.status_code == 201
        assert res.get_json()["version"] == 1

        res = client.post(f"{url}/status", json={"status": "completed"}, headers=headers)
        assert res.status_code == 200
        assert res.get_json()["new_status"] == "completed"

        res = client.post(f"{url}/status", json={"status": "pending"}, headers=jwt_headers(org.sup_sales))
        assert res.status_code == 409
        assert res.get_json()["reason"] == "INVALID_TRANSITION"

    def test_progress_validation(self, client, org, jwt_headers, goal):
        headers = jwt_headers(org.sup_sales)
        res = client.put(f"/api/v1/goals/{goal['id']}/progress", json={"progress": 150}, headers=headers)
        assert res.status_code == 422
        res = client.put(f"/api/v1/goals/{goal['id']}/progress", json={}, headers=headers)
        assert res.status_code == 400

    def test_unknown_status(self, client, org, jwt_headers, goal):
        res = client.post(f"/api/v1/goals/{goal['id']}/status", json={"status": "archived"},
                          headers=jwt_headers(org.sup_sales))
        assert res.status_code == 409
        assert res.get_json()["reason"] == "INVALID_TRANSITION"

    def test_detail_exposes_permissions(self, client, org, jwt_headers, goal):
        body = client.get(f"/api/v1/goals/{goal['id']}", headers=jwt_headers(org.user_sales)).get_json()
        assert body["permissions"]["view"] is True
        assert body["permissions"]["delete"] is False
        assert body["permissions"]["update_progress"] is True

    def test_summary(self, client, org, jwt_headers, goal):
        body = client.get("/api/v1/goals/summary", headers=jwt_headers(org.admin)).get_json()
        assert body["total"] == 1
        assert body["completed"] == 0


class TestAssignees:
    def test_assign_requires_list(self, client, org, jwt_headers, goal):
        res = client.post(f"/api/v1/goals/{goal['id']}/assign", json={"user_ids": []},
                          headers=jwt_headers(org.sup_sales))
        assert res.status_code == 400

    def test_assign_and_unassign(self, client, org, jwt_headers, goal):
        headers = jwt_headers(org.sup_sales)
        res = client.post(f"/api/v1/goals/{goal['id']}/assign", json={"user_ids": [org.user_sales2.id]},
                          headers=headers)
        assert res.status_code == 200
        assert sorted(res.get_json()["assignee_ids"]) == sorted([org.user_sales.id, org.user_sales2.id])

        res = client.delete(f"/api/v1/goals/{goal['id']}/assign/{org.user_sales.id}", headers=headers)
        assert res.get_json()["assignee_ids"] == [org.user_sales2.id]

    def test_cannot_assign_foreign_user(self, client, org, jwt_headers, goal):
        res = client.post(f"/api/v1/goals/{goal['id']}/assign", json={"user_ids": [org.user_b2.id]},
                          headers=jwt_headers(org.sup_sales))
        assert res.status_code == 422

    @pytest.mark.parametrize("user_ids", [["abc"], [None], [{"id": 1}]])
    def test_non_integer_user_ids(self, client, org, jwt_headers, goal, user_ids):
        res = client.post(f"/api/v1/goals/{goal['id']}/assign", json={"user_ids": user_ids},
                          headers=jwt_headers(org.sup_sales))
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_RULE"
