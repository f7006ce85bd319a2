"""ESLA exception hierarchy."""


class EslaError(Exception):
    """Base exception for all engine errors."""


class AssignmentError(EslaError):
    """The Assigner could not produce an assignment."""


class NoEligibleValidator(AssignmentError):
    """No active validator with capacity matches the request.

    Transient: the request keeps its status and the next sweep retries.
    """

    def __init__(self, request_id: str, specialization: str | None = None) -> None:
        self.request_id = request_id
        self.specialization = specialization
        spec = specialization or "any"
        super().__init__(f"No eligible validator for request {request_id} (specialization={spec})")


class StaleAssignment(EslaError):
    """A verdict arrived for an assignment that is no longer open."""

    def __init__(self, evidence_id: str, validator_id: str, assignment_status: str) -> None:
        self.evidence_id = evidence_id
        self.validator_id = validator_id
        self.assignment_status = assignment_status
        super().__init__(
            f"Assignment of {validator_id} on evidence {evidence_id} is {assignment_status}"
        )


class ConcurrentUpdateConflict(EslaError):
    """Optimistic-lock failure: the request changed under the caller."""

    def __init__(self, request_id: str, message: str = "concurrent update") -> None:
        self.request_id = request_id
        super().__init__(f"Request {request_id}: {message}")


class RequestLocked(ConcurrentUpdateConflict):
    """Another worker holds the per-request lock."""

    def __init__(self, request_id: str) -> None:
        super().__init__(request_id, "locked by another worker")


class ValidatorStatsConflict(EslaError):
    """Validator statistics kept changing under a compare-and-set update."""

    def __init__(self, validator_id: str, attempts: int) -> None:
        self.validator_id = validator_id
        self.attempts = attempts
        super().__init__(f"Validator {validator_id}: stats update lost {attempts} races")


class TerminalFailure(EslaError):
    """The request exhausted its escalation ladder and needs an operator."""

    def __init__(self, request_id: str) -> None:
        self.request_id = request_id
        super().__init__(f"Request {request_id} failed and requires manual intervention")


class InvalidTransition(EslaError):
    """A state machine transition that is not allowed from the current status."""

    def __init__(self, request_id: str, current: str, target: str) -> None:
        self.request_id = request_id
        self.current = current
        self.target = target
        super().__init__(f"Request {request_id}: cannot move from {current} to {target}")


class RequestNotFound(EslaError):
    """No validation request for the given id or evidence."""


class AssignmentNotFound(EslaError):
    """The validator was never assigned to the evidence."""


class EvidenceNotFound(EslaError):
    """Evidence id unknown to the evidence catalog."""


class PolicyError(EslaError):
    """The SLA policy table is inconsistent."""
