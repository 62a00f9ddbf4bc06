"""
Decision value returned by the policy evaluator.

A ``Decision`` is a plain value: two evaluations of the same inputs compare
equal, and nothing in it depends on time or I/O.
"""

from dataclasses import dataclass
from enum import Enum


class ReasonCode(str, Enum):
    """Why an action was allowed or denied."""

    ALLOWED = "ALLOWED"
    CROSS_BRANCH = "CROSS_BRANCH"
    OUT_OF_SCOPE = "OUT_OF_SCOPE"
    INSUFFICIENT_ROLE = "INSUFFICIENT_ROLE"
    COMPLETION_REPORT_REQUIRED = "COMPLETION_REPORT_REQUIRED"
    INVALID_TRANSITION = "INVALID_TRANSITION"


# Denials that describe who may touch a resource, as opposed to what state
# the resource is in.
ACCESS_REASONS = frozenset({
    ReasonCode.CROSS_BRANCH,
    ReasonCode.OUT_OF_SCOPE,
    ReasonCode.INSUFFICIENT_ROLE,
})
LIFECYCLE_REASONS = frozenset({
    ReasonCode.COMPLETION_REPORT_REQUIRED,
    ReasonCode.INVALID_TRANSITION,
})


@dataclass(frozen=True)
class Decision:
    allow: bool
    reason: ReasonCode
    kind: str = ""
    action: str = ""
    detail: str = ""

    @classmethod
    def allowed(cls, kind: str = "", action: str = "") -> "Decision":
        return cls(True, ReasonCode.ALLOWED, kind, action)

    @classmethod
    def denied(cls, reason: ReasonCode, kind: str = "", action: str = "", detail: str = "") -> "Decision":
        return cls(False, reason, kind, action, detail)

    def __bool__(self) -> bool:
        return self.allow

    def to_dict(self) -> dict:
        return {
            "allow": self.allow,
            "reason": self.reason.value,
            "kind": self.kind,
            "action": self.action,
            "detail": self.detail or None,
        }
