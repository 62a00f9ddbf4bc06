"""
Branch policy exception hierarchy.

Services raise these types; ``register_error_handlers`` maps them to HTTP
status codes once for every blueprint.

Usage:
    from branchpolicy.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Goal", resource_id=42)
    raise ValidationError("progress must be between 0 and 100")

The policy engine itself never raises for an access question: it returns a
``Decision``.  ``PolicyDenied`` is raised only by the caller-side guard that
turns a denying decision into a control-flow exit.  ``PolicyInputError`` is a
programmer error (malformed principal or resource, unknown role, missing
rule) and is deliberately not mapped to a 4xx response.
"""


class NotFoundError(Exception):
    """Raised when a requested record does not exist within the given branch.

    Args:
        resource: Human-readable model name (e.g. "Goal", "Department").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        branch_id: Optional. The branch that was enforced, for debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        branch_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.branch_id = branch_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if branch_id is not None:
            msg += f" (branch={branch_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique value. Maps to HTTP 409."""

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class PolicyInputError(ValueError):
    """Raised when the policy engine is handed malformed input.

    A principal without a branch, a resource without a kind, an unknown role
    name or an (action, kind) pair with no rule are all bugs in the caller.
    They surface as HTTP 500, never as a denial.
    """


class PolicyDenied(Exception):
    """Raised by the policy guard when a decision denies the requested action.

    Args:
        decision: The denying ``Decision`` produced by the evaluator.
        principal_id: Who attempted the action, for logging.
    """

    def __init__(self, decision, principal_id: int | None = None) -> None:
        self.decision = decision
        self.principal_id = principal_id
        super().__init__(
            f"{decision.kind}.{decision.action} denied: {decision.reason.value}"
            + (f" ({decision.detail})" if decision.detail else "")
        )

    @property
    def reason(self):
        return self.decision.reason
