# ABOUTME: Goal tracking package: pure rules, error taxonomy and the GoalService orchestration layer.
# ABOUTME: Use GoalService for API integration; rules are importable on their own for display logic.

from goal_tracking.errors import (
    ConflictError,
    GoalTrackingError,
    InfrastructureError,
    NotFoundError,
    ValidationError,
)
from goal_tracking.rules import is_visible_to_mentor, progress_from_milestones, resolve_status
from goal_tracking.service import GoalService

__all__ = [
    "ConflictError",
    "GoalService",
    "GoalTrackingError",
    "InfrastructureError",
    "NotFoundError",
    "ValidationError",
    "is_visible_to_mentor",
    "progress_from_milestones",
    "resolve_status",
]
