# ABOUTME: Goal activity tracking: one structured JSON log line per goal event on stdout.
# ABOUTME: Events: GOAL_CREATED, GOAL_UPDATED, GOAL_COMPLETED, HELP_REQUESTED (with mentor ids for fan-out).

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID

GOAL_CREATED = "GOAL_CREATED"
GOAL_UPDATED = "GOAL_UPDATED"
GOAL_COMPLETED = "GOAL_COMPLETED"
HELP_REQUESTED = "HELP_REQUESTED"


@dataclass
class ActivityLogEntry:
    """Structured entry for one goal event."""

    timestamp: str
    activity: str
    user_id: str
    goal_id: str
    title: str
    metadata: dict = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(
            {
                "timestamp": self.timestamp,
                "activity": self.activity,
                "user_id": self.user_id,
                "goal_id": self.goal_id,
                "title": self.title,
                "metadata": self.metadata,
            },
            default=str,
        )


def log_activity(
    activity: str,
    *,
    user_id: UUID,
    goal_id: UUID,
    title: str,
    **metadata,
) -> None:
    """Print a structured JSON log line to stdout for one goal event."""
    entry = ActivityLogEntry(
        timestamp=datetime.now(tz=timezone.utc).isoformat(),
        activity=activity,
        user_id=str(user_id),
        goal_id=str(goal_id),
        title=title,
        metadata=metadata,
    )
    print(entry.to_json(), flush=True)
