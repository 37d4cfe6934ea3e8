# ABOUTME: Pure goal rules: effective status resolution, milestone progress, mentor visibility.
# ABOUTME: No I/O and no clock access; callers pass `now` so results are reproducible.

from collections.abc import Iterable
from datetime import datetime, time

from core.schemas import STICKY_STATUSES, GoalStatus


def percent(part: int, whole: int) -> int:
    """Integer percentage rounded half up (1/8 -> 13, 2/3 -> 67); 0 when whole is 0.

    Integer arithmetic, so .5 always rounds up regardless of float representation.
    """
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)


def resolve_status(goal, now: datetime) -> GoalStatus:
    """Return the status to display for `goal` at `now`.

    Rules, first match wins:
    1. progress 100 with a completion timestamp -> COMPLETED
    2. stored PAUSED / CANCELLED -> unchanged
    3. due date already passed and progress < 100 -> OVERDUE
    4. progress > 0 -> IN_PROGRESS
    5. otherwise NOT_STARTED

    A due date is the start of that day in `now`'s timezone, so a goal is
    already overdue during its due day. Goals without a due date are never
    overdue.
    """
    if goal.progress == 100 and goal.completed_at is not None:
        return GoalStatus.COMPLETED
    stored = GoalStatus(goal.status)
    if stored in STICKY_STATUSES:
        return stored
    if goal.due_date is not None and goal.progress < 100:
        due = datetime.combine(goal.due_date, time.min, tzinfo=now.tzinfo)
        if due < now:
            return GoalStatus.OVERDUE
    if goal.progress > 0:
        return GoalStatus.IN_PROGRESS
    return GoalStatus.NOT_STARTED


def progress_from_milestones(milestones: Iterable, progress: int) -> int:
    """Percent of completed milestones, or `progress` unchanged when there are none."""
    items = list(milestones)
    if not items:
        return progress
    done = sum(1 for m in items if m.completed)
    return percent(done, len(items))


def is_visible_to_mentor(visible_to_mentor) -> bool:
    """Visible unless explicitly False; None (never set) counts as visible."""
    return visible_to_mentor is not False
