# ABOUTME: Error taxonomy raised by the goal service; the API layer maps each kind to an HTTP status.
# ABOUTME: None of these are retried here; InfrastructureError wraps store failures for the caller.


class GoalTrackingError(Exception):
    """Base class for goal service errors. str(err) is safe to show to the caller."""


class ValidationError(GoalTrackingError):
    """Caller-supplied data failed a precondition (empty title, progress out of range, bad enum)."""


class NotFoundError(GoalTrackingError):
    """Referenced goal or assignment does not exist, or is not owned by the caller."""


class ConflictError(GoalTrackingError):
    """Write was based on a stale revision of the goal."""


class InfrastructureError(GoalTrackingError):
    """Underlying store unreachable or erroring; the original exception is chained."""
