"""Notification recipient routing."""

from branchpolicy.services.identity import DepartmentRef, Principal, Resource, ResourceKind
from branchpolicy.services.notification_router import (
    DEFAULT_ROUTER,
    EventType,
    NotificationEvent,
    route,
)
from branchpolicy.services.role_hierarchy import Role

B1, B2 = 1, 2
D, D2 = 10, 20

SUBMITTER = Principal(1, Role.USER, B1, D)
SUP_X = Principal(2, Role.SUPERVISOR, B1, D)
SUP_Y = Principal(3, Role.SUPERVISOR, B1, D2)
ADMIN_1 = Principal(4, Role.ADMIN, B1)
ADMIN_2 = Principal(5, Role.ADMIN, B1)
USER_D = Principal(6, Role.USER, B1, D)
ADMIN_B2 = Principal(7, Role.ADMIN, B2)
DIRECTORY = [SUBMITTER, SUP_X, SUP_Y, ADMIN_1, ADMIN_2, USER_D, ADMIN_B2]


def _ids(addresses):
    return [a.recipient_id for a in addresses]


def _report(**kw):
    base = {
        "kind": ResourceKind.REPORT, "id": 300, "branch_id": B1,
        "owner_id": SUBMITTER.id, "department_id": D, "assignee_ids": {SUP_X.id},
    }
    base.update(kw)
    return Resource(**base)


class TestReportSubmitted:
    def test_addressee_and_admins_only(self):
        event = NotificationEvent(EventType.REPORT_SUBMITTED, _report(), actor_id=SUBMITTER.id, subject="Q1")
        addresses = route(event, DIRECTORY)
        assert _ids(addresses) == [SUP_X.id, ADMIN_1.id, ADMIN_2.id]
        assert all(a.branch_id == B1 for a in addresses)
        assert addresses[0].title == "New report submitted"
        assert "Q1" in addresses[0].body

    def test_other_branch_admin_excluded(self):
        event = NotificationEvent(EventType.REPORT_SUBMITTED, _report(), actor_id=SUBMITTER.id)
        assert ADMIN_B2.id not in _ids(route(event, DIRECTORY))

    def test_actor_is_never_notified(self):
        event = NotificationEvent(EventType.REPORT_SUBMITTED, _report(), actor_id=ADMIN_1.id)
        assert ADMIN_1.id not in _ids(route(event, DIRECTORY))

    def test_addressee_from_another_branch_is_dropped(self):
        event = NotificationEvent(
            EventType.REPORT_SUBMITTED, _report(assignee_ids={ADMIN_B2.id}), actor_id=SUBMITTER.id,
        )
        assert _ids(route(event, DIRECTORY)) == [ADMIN_1.id, ADMIN_2.id]


class TestGoalEvents:
    def _goal(self, **kw):
        base = {
            "kind": ResourceKind.GOAL, "id": 400, "branch_id": B1,
            "owner_id": SUP_X.id, "department_id": D, "assignee_ids": {USER_D.id, SUBMITTER.id},
        }
        base.update(kw)
        return Resource(**base)

    def test_goal_updated_goes_to_owner_and_assignees(self):
        event = NotificationEvent(EventType.GOAL_UPDATED, self._goal(), actor_id=USER_D.id)
        assert _ids(route(event, DIRECTORY)) == [SUBMITTER.id, SUP_X.id]

    def test_goal_assigned_goes_to_new_assignees_only(self):
        event = NotificationEvent(
            EventType.GOAL_ASSIGNED, self._goal(), actor_id=SUP_X.id, target_ids={USER_D.id},
        )
        assert _ids(route(event, DIRECTORY)) == [USER_D.id]

    def test_recipient_must_be_able_to_see_the_goal(self):
        # target not actually assigned: they could not open the goal
        event = NotificationEvent(
            EventType.GOAL_ASSIGNED, self._goal(assignee_ids=set()), actor_id=SUP_X.id, target_ids={USER_D.id},
        )
        assert route(event, DIRECTORY) == []


class TestUserRequest:
    def _request(self, user_id=50, department_id=None):
        return Resource(
            kind=ResourceKind.USER, id=user_id, branch_id=B1, owner_id=user_id, department_id=department_id,
        )

    def test_without_department_reaches_admins(self):
        event = NotificationEvent(EventType.USER_REQUEST, self._request(), actor_id=50)
        assert _ids(route(event, DIRECTORY)) == [ADMIN_1.id, ADMIN_2.id]

    def test_with_department_reaches_its_supervisor_and_admins(self):
        event = NotificationEvent(
            EventType.USER_REQUEST, self._request(department_id=D), actor_id=50,
            department=DepartmentRef(D, B1, SUP_X.id),
        )
        assert _ids(route(event, DIRECTORY)) == [SUP_X.id, ADMIN_1.id, ADMIN_2.id]

    def test_department_supervisor_found_from_directory(self):
        event = NotificationEvent(EventType.USER_REQUEST, self._request(department_id=D2), actor_id=50)
        assert _ids(route(event, DIRECTORY)) == [SUP_Y.id, ADMIN_1.id, ADMIN_2.id]


class TestOwnerEvents:
    def test_report_responded_goes_to_submitter(self):
        event = NotificationEvent(EventType.REPORT_RESPONDED, _report(), actor_id=SUP_X.id)
        assert _ids(route(event, DIRECTORY)) == [SUBMITTER.id]

    def test_account_decisions_go_to_requester(self):
        requester = Principal(50, Role.USER, B1)
        source = Resource(kind=ResourceKind.USER, id=50, branch_id=B1, owner_id=50)
        for event_type in (EventType.ACCOUNT_APPROVED, EventType.ACCOUNT_REJECTED):
            event = NotificationEvent(event_type, source, actor_id=ADMIN_1.id)
            assert _ids(route(event, DIRECTORY + [requester])) == [50]

    def test_empty_directory_routes_to_nobody(self):
        event = NotificationEvent(EventType.REPORT_SUBMITTED, _report(), actor_id=SUBMITTER.id)
        assert DEFAULT_ROUTER.route(event, []) == []

    def test_render_falls_back_to_record_id(self):
        event = NotificationEvent(EventType.GOAL_UPDATED, _report(), actor_id=None)
        assert DEFAULT_ROUTER.render(event)[1] == 'Goal "#300" was updated.'
