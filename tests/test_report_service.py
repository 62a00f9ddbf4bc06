"""Reports: addressee rules, visibility and notifications."""

import pytest

from branchpolicy.core.decisions import ReasonCode
from branchpolicy.core.exceptions import PolicyDenied, ValidationError
from branchpolicy.models.notification import Notification
from branchpolicy.services import report_service


def _inbox(user):
    return [n.event_type for n in Notification.query.filter_by(recipient_id=user.id).all()]


@pytest.fixture()
def report(org):
    return report_service.submit_report(
        org.user_sales.to_principal(), title="Stock shortage", report_type="incident",
        submitted_to_ids=[org.sup_sales.id],
    )


class TestSubmit:
    def test_fields(self, org, report):
        assert report.status == "pending"
        assert report.department_id == org.sales.id
        assert report.submitted_to_ids == [org.sup_sales.id]

    def test_notifies_addressee_and_admins_only(self, org, report):
        assert _inbox(org.sup_sales) == ["REPORT_SUBMITTED"]
        for admin in (org.admin, org.admin2, org.super_admin, org.developer):
            assert _inbox(admin) == ["REPORT_SUBMITTED"]
        assert _inbox(org.sup_ops) == []
        assert _inbox(org.user_sales) == []
        assert _inbox(org.admin_b2) == []

    def test_addressee_must_be_supervisor_or_above(self, org):
        with pytest.raises(ValidationError) as exc:
            report_service.submit_report(org.user_sales.to_principal(), title="Hi",
                                         submitted_to_ids=[org.user_sales2.id])
        assert exc.value.details == {"submitted_to_ids": [org.user_sales2.id]}

    def test_addressee_must_be_in_branch(self, org):
        with pytest.raises(ValidationError):
            report_service.submit_report(org.user_sales.to_principal(), title="Hi",
                                         submitted_to_ids=[org.admin_b2.id])

    def test_at_least_one_addressee(self, org):
        with pytest.raises(ValidationError):
            report_service.submit_report(org.user_sales.to_principal(), title="Hi", submitted_to_ids=[])

    def test_unknown_type(self, org):
        with pytest.raises(ValidationError):
            report_service.submit_report(org.user_sales.to_principal(), title="Hi", report_type="memo",
                                         submitted_to_ids=[org.admin.id])

    def test_user_without_department_can_report(self, org):
        report = report_service.submit_report(org.user_nodept.to_principal(), title="Hello",
                                              submitted_to_ids=[org.admin.id])
        assert report.department_id is None
        assert [r.id for r in report_service.list_reports(org.user_nodept.to_principal())] == [report.id]


class TestVisibility:
    def test_list_per_role(self, org, report):
        assert [r.id for r in report_service.list_reports(org.sup_sales.to_principal())] == [report.id]
        assert [r.id for r in report_service.list_reports(org.admin.to_principal())] == [report.id]
        assert report_service.list_reports(org.user_sales2.to_principal()) == []
        assert report_service.list_reports(org.sup_ops.to_principal()) == []
        assert report_service.list_reports(org.admin_b2.to_principal()) == []

    def test_mine_filter(self, org, report):
        assert report_service.list_reports(org.sup_sales.to_principal(), mine=True) == []

    def test_colleague_cannot_view(self, org, report):
        with pytest.raises(PolicyDenied) as exc:
            report_service.get_report(org.user_sales2.to_principal(), report.id)
        assert exc.value.reason == ReasonCode.OUT_OF_SCOPE

    def test_other_branch_cannot_view(self, org, report):
        with pytest.raises(PolicyDenied) as exc:
            report_service.get_report(org.admin_b2.to_principal(), report.id)
        assert exc.value.reason == ReasonCode.CROSS_BRANCH


class TestRespond:
    def test_supervisor_responds(self, org, report):
        answered = report_service.respond_report(org.sup_sales.to_principal(), report.id, "Reordering today")
        assert answered.status == "responded"
        assert answered.responded_by_id == org.sup_sales.id
        assert _inbox(org.user_sales) == ["REPORT_RESPONDED"]

    def test_submitter_cannot_respond(self, org, report):
        with pytest.raises(PolicyDenied) as exc:
            report_service.respond_report(org.user_sales.to_principal(), report.id, "Me again")
        assert exc.value.reason == ReasonCode.INSUFFICIENT_ROLE

    def test_other_department_supervisor_cannot_respond(self, org, report):
        with pytest.raises(PolicyDenied) as exc:
            report_service.respond_report(org.sup_ops.to_principal(), report.id, "Not mine")
        assert exc.value.reason == ReasonCode.OUT_OF_SCOPE

    def test_empty_response(self, org, report):
        with pytest.raises(ValidationError):
            report_service.respond_report(org.sup_sales.to_principal(), report.id, "  ")


class TestReportApi:
    def test_submit_and_respond(self, client, org, jwt_headers):
        res = client.post("/api/v1/reports", json={"title": "Broken till", "submitted_to_ids": [org.sup_sales.id]},
                          headers=jwt_headers(org.user_sales))
        assert res.status_code == 201
        report_id = res.get_json()["id"]

        res = client.post(f"/api/v1/reports/{report_id}/respond", json={"response": "Fixed"},
                          headers=jwt_headers(org.sup_sales))
        assert res.status_code == 200
        assert res.get_json()["status"] == "responded"

    def test_submit_requires_recipients(self, client, org, jwt_headers):
        res = client.post("/api/v1/reports", json={"title": "No one"}, headers=jwt_headers(org.user_sales))
        assert res.status_code == 400

    def test_non_integer_recipients(self, client, org, jwt_headers):
        res = client.post("/api/v1/reports", json={"title": "Typo", "submitted_to_ids": ["abc"]},
                          headers=jwt_headers(org.user_sales))
        assert res.status_code == 422
        assert res.get_json()["details"] == {"submitted_to_ids": ["abc"]}

    def test_delete_by_submitter(self, client, org, jwt_headers, report):
        res = client.delete(f"/api/v1/reports/{report.id}", headers=jwt_headers(org.user_sales))
        assert res.status_code == 200
        assert res.get_json() == {"deleted": True, "id": report.id}
