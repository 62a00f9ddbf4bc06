"""
Goal Lifecycle — status transitions and the completion guard.

States:
    PENDING (initial), IN_PROGRESS, ON_HOLD, AWAITING, DONE, COMPLETED (terminal)

Transitions are permissive among the non-terminal states; nothing leaves
COMPLETED.  Every transition question goes through ``check_transition`` so a
stricter graph is a change to ``GOAL_TRANSITIONS`` and nothing else.

Entering COMPLETED is additionally guarded by ``can_complete``:

    progress == 100 and (not requires_report_on_completion or completion_report_submitted)

Submitting a completion report flips ``completion_report_submitted``; it never
changes ``status``.  Completion is always an explicit later transition.

Usage:
    from branchpolicy.services.goal_lifecycle import GoalStatus, check_transition

    check = check_transition(goal, GoalStatus.COMPLETED)
    if not check.valid:
        ...  # check.reason is INVALID_TRANSITION or COMPLETION_REPORT_REQUIRED
"""

from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, timezone
from enum import Enum

from branchpolicy.core.decisions import ReasonCode
from branchpolicy.core.exceptions import PolicyInputError
from branchpolicy.services.identity import Resource, ResourceKind


class GoalStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    AWAITING = "awaiting"
    DONE = "done"
    COMPLETED = "completed"


INITIAL_STATUS = GoalStatus.PENDING
TERMINAL_STATUSES = frozenset({GoalStatus.COMPLETED})
NON_TERMINAL_STATUSES = frozenset(s for s in GoalStatus if s not in TERMINAL_STATUSES)

# from-status → statuses reachable in one step
GOAL_TRANSITIONS: dict[GoalStatus, frozenset] = {
    status: (NON_TERMINAL_STATUSES | TERMINAL_STATUSES) - {status}
    for status in NON_TERMINAL_STATUSES
}
for _terminal in TERMINAL_STATUSES:
    GOAL_TRANSITIONS[_terminal] = frozenset()

COMPLETION_REPORT_MESSAGE = (
    "A completion report must be submitted before this goal can be marked as complete."
)
PROGRESS_INCOMPLETE_MESSAGE = "Goal progress must reach 100% before it can be marked as complete."


def parse_status(value) -> GoalStatus | None:
    """Return the ``GoalStatus`` for ``value`` or None if it names no state."""
    if isinstance(value, GoalStatus):
        return value
    try:
        return GoalStatus(str(value).lower())
    except ValueError:
        return None


@dataclass(frozen=True, kw_only=True)
class GoalSnapshot(Resource):
    kind: ResourceKind = ResourceKind.GOAL
    status: GoalStatus = INITIAL_STATUS
    progress: int = 0
    requires_report_on_completion: bool = False
    completion_report_submitted: bool = False
    due_date: date | None = None
    last_report_at: datetime | None = None

    def __post_init__(self):
        super().__post_init__()
        status = parse_status(self.status)
        if status is None:
            raise PolicyInputError(f"Unknown goal status: {self.status!r}")
        object.__setattr__(self, "status", status)

    @property
    def is_completed(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(frozen=True)
class TransitionCheck:
    valid: bool
    from_status: str
    to_status: str | None
    reason: ReasonCode
    message: str | None = None

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "from": self.from_status,
            "to": self.to_status,
            "reason": self.reason.value,
            "message": self.message,
        }


# ── Completion guard ─────────────────────────────────────────────────────


def completion_blocker(goal: GoalSnapshot) -> str | None:
    """Return why ``goal`` cannot be completed yet, or None if it can."""
    if goal.is_completed:
        return "Goal is already completed."
    if goal.progress < 100:
        return PROGRESS_INCOMPLETE_MESSAGE
    if goal.requires_report_on_completion and not goal.completion_report_submitted:
        return COMPLETION_REPORT_MESSAGE
    return None


def can_complete(goal: GoalSnapshot) -> bool:
    return (
        goal.progress == 100
        and (not goal.requires_report_on_completion or goal.completion_report_submitted)
    )


# ── Transitions ──────────────────────────────────────────────────────────


def allowed_targets(status) -> list[str]:
    current = parse_status(status)
    if current is None:
        return []
    return sorted(s.value for s in GOAL_TRANSITIONS[current])


def check_transition(goal: GoalSnapshot, target) -> TransitionCheck:
    """Validate moving ``goal`` into ``target``.

    Re-entering the current non-terminal status is accepted as a no-op.
    """
    current = goal.status
    to_status = parse_status(target)
    if to_status is None:
        return TransitionCheck(False, current.value, None, ReasonCode.INVALID_TRANSITION,
                               f"Unknown goal status: {target!r}")

    if current in TERMINAL_STATUSES:
        return TransitionCheck(False, current.value, to_status.value, ReasonCode.INVALID_TRANSITION,
                               f"Goal is {current.value}; no further transitions are allowed.")

    if to_status != current and to_status not in GOAL_TRANSITIONS[current]:
        return TransitionCheck(False, current.value, to_status.value, ReasonCode.INVALID_TRANSITION,
                               f"Cannot move goal from {current.value} to {to_status.value}.")

    if to_status in TERMINAL_STATUSES and not can_complete(goal):
        return TransitionCheck(False, current.value, to_status.value,
                               ReasonCode.COMPLETION_REPORT_REQUIRED, completion_blocker(goal))

    return TransitionCheck(True, current.value, to_status.value, ReasonCode.ALLOWED)


def apply_transition(goal: GoalSnapshot, target) -> GoalSnapshot:
    """Return ``goal`` moved to ``target``; raises ValueError on an invalid check."""
    check = check_transition(goal, target)
    if not check.valid:
        raise ValueError(check.message or check.reason.value)
    return replace(goal, status=GoalStatus(check.to_status))


# ── Reports ──────────────────────────────────────────────────────────────


def record_completion_report(goal: GoalSnapshot, submitted_at: datetime | None = None) -> GoalSnapshot:
    """Mark the completion report as submitted. Status is left untouched."""
    return replace(
        goal,
        completion_report_submitted=True,
        last_report_at=submitted_at or goal.last_report_at,
    )


def next_report_version(existing_versions) -> int:
    versions = [v for v in existing_versions if v is not None]
    return (max(versions) if versions else 0) + 1


def should_prompt_completion_report(goal: GoalSnapshot, new_progress: int) -> bool:
    """True when a progress update reaches 100 and a completion report is still owed."""
    return (
        new_progress == 100
        and goal.requires_report_on_completion
        and not goal.completion_report_submitted
        and not goal.is_completed
    )


def latest_completion_report(reports: list[dict]) -> dict | None:
    completion = [r for r in reports if r.get("is_completion_report")]
    if not completion:
        return None
    return max(completion, key=lambda r: (r.get("version") or 0, r.get("submitted_at") or ""))


# ── Dashboard helpers ────────────────────────────────────────────────────


def completion_status_label(goal: GoalSnapshot) -> str:
    if goal.is_completed:
        return "Completed"
    if goal.requires_report_on_completion and not goal.completion_report_submitted:
        return "Pending Report" if goal.progress == 100 else f"{goal.progress}% Complete"
    if goal.progress == 100:
        return "Ready to Complete"
    return f"{goal.progress}% Complete"


def completion_stats(goals: list[GoalSnapshot]) -> dict:
    total = len(goals)
    completed = sum(1 for g in goals if g.is_completed)
    pending_reports = sum(
        1 for g in goals
        if not g.is_completed
        and g.progress == 100
        and g.requires_report_on_completion
        and not g.completion_report_submitted
    )
    in_progress = sum(1 for g in goals if not g.is_completed and 0 < g.progress < 100)
    return {
        "total": total,
        "completed": completed,
        "pending_reports": pending_reports,
        "in_progress": in_progress,
        "completion_rate": round(completed / total * 100) if total else 0,
    }


STALE_REPORT_DAYS = 7
DUE_SOON_DAYS = 3


def goal_warnings(goal: GoalSnapshot, *, today: date | None = None) -> list[dict]:
    """Advisory warnings for a goal card. Completed goals have none."""
    if goal.is_completed:
        return []

    today = today or datetime.now(timezone.utc).date()
    warnings = []

    if goal.due_date is not None:
        days_left = (goal.due_date - today).days
        if days_left < 0:
            warnings.append({"type": "overdue", "message": f"Overdue by {-days_left} day(s)."})
        elif days_left <= DUE_SOON_DAYS:
            warnings.append({"type": "due_soon", "message": f"Due in {days_left} day(s)."})

    if should_prompt_completion_report(goal, goal.progress):
        warnings.append({"type": "report_required", "message": COMPLETION_REPORT_MESSAGE})

    if goal.last_report_at is not None and goal.progress < 100:
        last = goal.last_report_at
        if last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        cutoff = datetime.combine(today, datetime.min.time(), tzinfo=timezone.utc)
        if cutoff - last > timedelta(days=STALE_REPORT_DAYS):
            warnings.append({"type": "stale", "message": "No progress report in the last week."})

    return warnings
