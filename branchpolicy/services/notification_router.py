"""
Notification Router — who gets told about a domain event.

Routing is pure: given an event and a directory of principals it returns
addressed messages.  Persisting and delivering them is the job of
``NotificationService``.

Recipient rules (per event type):
    REPORT_SUBMITTED   ADMIN+ in the submitter's branch ∪ the report's addressees
    REPORT_RESPONDED   the report's submitter
    GOAL_UPDATED       the goal's assignees ∪ its creator
    GOAL_ASSIGNED      the newly assigned principals
    USER_REQUEST       SUPERVISOR+ in the branch; when the requester has a
                       department, that department's supervisor plus ADMIN+
    ACCOUNT_APPROVED   the requester
    ACCOUNT_REJECTED   the requester

Two filters apply to every event: the actor is never notified of their own
action, and a candidate is kept only if their ScopeSpec contains the source
resource, so nobody is told about something they could not open.  An event
that resolves to nobody yields an empty list.
"""

from dataclasses import dataclass, field
from enum import Enum

from branchpolicy.services.identity import DepartmentRef, Principal, Resource
from branchpolicy.services.role_hierarchy import DEFAULT_HIERARCHY, Role, RoleHierarchy
from branchpolicy.services.scope_resolver import resolve_scope


class EventType(str, Enum):
    REPORT_SUBMITTED = "REPORT_SUBMITTED"
    REPORT_RESPONDED = "REPORT_RESPONDED"
    GOAL_UPDATED = "GOAL_UPDATED"
    GOAL_ASSIGNED = "GOAL_ASSIGNED"
    USER_REQUEST = "USER_REQUEST"
    ACCOUNT_APPROVED = "ACCOUNT_APPROVED"
    ACCOUNT_REJECTED = "ACCOUNT_REJECTED"


# title, body; {subject} is the source record's display name
_TEMPLATES: dict[EventType, tuple[str, str]] = {
    EventType.REPORT_SUBMITTED: ("New report submitted", 'Report "{subject}" was submitted for review.'),
    EventType.REPORT_RESPONDED: ("Report answered", 'Your report "{subject}" received a response.'),
    EventType.GOAL_UPDATED: ("Goal updated", 'Goal "{subject}" was updated.'),
    EventType.GOAL_ASSIGNED: ("New goal assigned", 'You were assigned to goal "{subject}".'),
    EventType.USER_REQUEST: ("New account request", '{subject} requested access and is awaiting approval.'),
    EventType.ACCOUNT_APPROVED: ("Account approved", "Your account request was approved."),
    EventType.ACCOUNT_REJECTED: ("Account rejected", "Your account request was rejected."),
}


@dataclass(frozen=True)
class NotificationEvent:
    type: EventType
    source: Resource
    actor_id: int | None = None
    subject: str = ""
    target_ids: frozenset = field(default_factory=frozenset)
    department: DepartmentRef | None = None

    def __post_init__(self):
        object.__setattr__(self, "type", EventType(self.type))
        object.__setattr__(self, "target_ids", frozenset(self.target_ids or ()))


@dataclass(frozen=True)
class RecipientAddress:
    recipient_id: int
    title: str
    body: str
    event_type: EventType
    branch_id: int

    def to_dict(self) -> dict:
        return {
            "recipient_id": self.recipient_id,
            "title": self.title,
            "body": self.body,
            "event_type": self.event_type.value,
            "branch_id": self.branch_id,
        }


class NotificationRouter:
    def __init__(self, hierarchy: RoleHierarchy = DEFAULT_HIERARCHY):
        self.hierarchy = hierarchy

    def route(self, event: NotificationEvent, directory) -> list[RecipientAddress]:
        source = event.source
        in_branch = {p.id: p for p in directory if p.branch_id == source.branch_id}

        candidate_ids = self._candidates(event, in_branch)
        candidate_ids.discard(event.actor_id)

        title, body = self.render(event)
        addresses = []
        for pid in sorted(candidate_ids):
            principal = in_branch.get(pid)
            if principal is None:
                continue
            if not resolve_scope(principal, source.kind, hierarchy=self.hierarchy).contains(source):
                continue
            addresses.append(RecipientAddress(pid, title, body, event.type, source.branch_id))
        return addresses

    def render(self, event: NotificationEvent) -> tuple[str, str]:
        title, body = _TEMPLATES[event.type]
        return title, body.format(subject=event.subject or f"#{event.source.id}")

    # ── Candidate rules ──────────────────────────────────────────────────

    def _at_least(self, principals, role) -> set:
        return {p.id for p in principals if self.hierarchy.satisfies(p.role, role)}

    def _candidates(self, event: NotificationEvent, in_branch: dict[int, Principal]) -> set:
        source = event.source
        principals = in_branch.values()

        if event.type == EventType.REPORT_SUBMITTED:
            return self._at_least(principals, Role.ADMIN) | set(source.assignee_ids)

        if event.type == EventType.GOAL_UPDATED:
            ids = set(source.assignee_ids)
            if source.owner_id is not None:
                ids.add(source.owner_id)
            return ids

        if event.type == EventType.GOAL_ASSIGNED:
            return set(event.target_ids)

        if event.type == EventType.USER_REQUEST:
            if source.department_id is None:
                return self._at_least(principals, Role.SUPERVISOR)
            ids = self._at_least(principals, Role.ADMIN)
            if event.department is not None and event.department.supervisor_id is not None:
                ids.add(event.department.supervisor_id)
            else:
                ids |= {
                    p.id for p in principals
                    if p.department_id == source.department_id
                    and self.hierarchy.satisfies(p.role, Role.SUPERVISOR)
                }
            return ids

        # REPORT_RESPONDED, ACCOUNT_APPROVED, ACCOUNT_REJECTED
        return {source.owner_id} if source.owner_id is not None else set()


DEFAULT_ROUTER = NotificationRouter()


def route(event: NotificationEvent, directory) -> list[RecipientAddress]:
    return DEFAULT_ROUTER.route(event, directory)
