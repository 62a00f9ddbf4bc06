"""Read-only policy endpoints: rules, scope and advisory checks."""

import pytest

from branchpolicy.services import goal_service


@pytest.fixture()
def goal(org):
    return goal_service.create_goal(
        org.sup_sales.to_principal(), title="Quota", department_id=org.sales.id,
        assignee_ids=[org.user_sales.id], requires_report_on_completion=True,
    )


def _check(client, headers, **body):
    res = client.post("/api/v1/policy/check", json=body, headers=headers)
    return res.status_code, res.get_json()


class TestRules:
    def test_rules_and_matrix(self, client, org, jwt_headers):
        body = client.get("/api/v1/policy/rules", headers=jwt_headers(org.user_sales)).get_json()
        ranks = {r["role"]: r["rank"] for r in body["hierarchy"]["roles"]}
        assert ranks["USER"] < ranks["SUPERVISOR"] < ranks["ADMIN"] < ranks["SUPER_ADMIN"]
        pairs = {(r["kind"], r["action"]) for r in body["rules"]}
        assert ("Goal", "complete") in pairs
        assert ("Department", "assign_supervisor") in pairs
        row = next(m for m in body["matrix"]
                   if (m["role"], m["kind"], m["action"]) == ("SUPERVISOR", "Goal", "delete"))
        assert row["role_allowed"] is True


class TestScope:
    @pytest.mark.parametrize("who,kind", [
        ("admin", "ALL_IN_BRANCH"),
        ("sup_sales", "DEPARTMENT_IN_BRANCH"),
        ("user_sales", "OWNED_OR_ASSIGNED"),
        ("user_nodept", "NONE"),
    ])
    def test_goal_scope(self, client, org, jwt_headers, who, kind):
        body = client.get("/api/v1/policy/scope?kind=Goal", headers=jwt_headers(getattr(org, who))).get_json()
        assert body["kind"] == kind
        assert body["branch_id"] == org.b1.id

    def test_unknown_kind(self, client, org, jwt_headers):
        res = client.get("/api/v1/policy/scope?kind=Spreadsheet", headers=jwt_headers(org.admin))
        assert res.status_code == 400


class TestCheck:
    def test_prospective_create(self, client, org, jwt_headers):
        headers = jwt_headers(org.sup_sales)
        status, body = _check(client, headers, kind="Goal", action="create", department_id=org.sales.id)
        assert status == 200
        assert body["allow"] is True
        assert body["reason"] == "ALLOWED"

        status, body = _check(client, headers, kind="Goal", action="create", department_id=org.ops.id)
        assert status == 200
        assert body == {
            "allow": False, "reason": "OUT_OF_SCOPE", "kind": "Goal", "action": "create",
            "detail": "Outside the principal's department",
        }

    def test_existing_record(self, client, org, jwt_headers, goal):
        _, body = _check(client, jwt_headers(org.admin_b2), kind="Goal", action="view", resource_id=goal.id)
        assert body["reason"] == "CROSS_BRANCH"
        _, body = _check(client, jwt_headers(org.user_sales), kind="Goal", action="delete", resource_id=goal.id)
        assert body["reason"] == "INSUFFICIENT_ROLE"

    def test_transition(self, client, org, jwt_headers, goal):
        headers = jwt_headers(org.user_sales)
        _, body = _check(client, headers, kind="Goal", resource_id=goal.id, target_status="completed")
        assert body["allow"] is False
        assert body["reason"] == "COMPLETION_REPORT_REQUIRED"
        assert body["action"] == "complete"

        _, body = _check(client, jwt_headers(org.sup_sales), kind="Goal", resource_id=goal.id,
                         target_status="in_progress")
        assert body["allow"] is True

    def test_check_never_mutates(self, client, org, jwt_headers, goal):
        _check(client, jwt_headers(org.sup_sales), kind="Goal", resource_id=goal.id, target_status="on_hold")
        res = client.get(f"/api/v1/goals/{goal.id}", headers=jwt_headers(org.sup_sales))
        assert res.get_json()["status"] == "pending"

    def test_candidate_and_target_role(self, client, org, jwt_headers):
        headers = jwt_headers(org.admin)
        _, body = _check(client, headers, kind="Department", action="assign_supervisor",
                         resource_id=org.sales.id, candidate_id=org.user_sales.id)
        assert body["reason"] == "INSUFFICIENT_ROLE"

        _, body = _check(client, headers, kind="User", action="change_role",
                         resource_id=org.user_sales.id, candidate_id=org.user_sales.id, target_role="SUPERVISOR")
        assert body["allow"] is True
        _, body = _check(client, headers, kind="User", action="change_role",
                         resource_id=org.user_sales.id, candidate_id=org.user_sales.id, target_role="SUPER_ADMIN")
        assert body["allow"] is False

    @pytest.mark.parametrize("body", [
        {"kind": "Spreadsheet", "action": "view"},
        {"kind": "Goal", "action": "teleport"},
        {"kind": "Goal", "action": "view", "resource_id": "abc"},
        {"kind": "Report", "target_status": "completed"},
        {"kind": "Goal"},
    ])
    def test_bad_requests(self, client, org, jwt_headers, body):
        res = client.post("/api/v1/policy/check", json=body, headers=jwt_headers(org.admin))
        assert res.status_code == 400
