# ABOUTME: Pydantic models and enums for the goal contract (create/patch bodies, read model, stats).
# ABOUTME: JSON uses camelCase aliases and uppercase enum values; used by the service and FastAPI routes.

from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from core.config import MAX_TITLE_LENGTH


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    MENTOR = "MENTOR"
    MENTEE = "MENTEE"


class GoalCategory(str, Enum):
    SKILL_DEVELOPMENT = "SKILL_DEVELOPMENT"
    CAREER_ADVANCEMENT = "CAREER_ADVANCEMENT"
    LEARNING_OBJECTIVE = "LEARNING_OBJECTIVE"
    PROJECT_COMPLETION = "PROJECT_COMPLETION"
    PERSONAL_GROWTH = "PERSONAL_GROWTH"
    NETWORKING = "NETWORKING"
    CERTIFICATION = "CERTIFICATION"


class GoalPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class GoalStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    OVERDUE = "OVERDUE"
    PAUSED = "PAUSED"
    CANCELLED = "CANCELLED"


# Explicitly set states that date and progress rules never override.
STICKY_STATUSES = frozenset({GoalStatus.PAUSED, GoalStatus.CANCELLED})


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _clean_title(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    title = value.strip()
    if not title:
        raise ValueError("Title is required")
    if len(title) > MAX_TITLE_LENGTH:
        raise ValueError(f"Title must be at most {MAX_TITLE_LENGTH} characters")
    return title


def _reject_overdue(value: Optional[GoalStatus]) -> Optional[GoalStatus]:
    if value is GoalStatus.OVERDUE:
        raise ValueError("OVERDUE is derived from the due date and cannot be set")
    return value


class Milestone(CamelModel):
    """One completable sub-step of a goal; list position is display order."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str
    completed: bool = False

    @field_validator("title")
    @classmethod
    def _title(cls, value: str) -> str:
        title = value.strip()
        if not title:
            raise ValueError("Milestone title is required")
        return title


def _unique_milestone_ids(
    milestones: Optional[list[Milestone]],
) -> Optional[list[Milestone]]:
    if milestones is None:
        return None
    ids = [m.id for m in milestones]
    if len(set(ids)) != len(ids):
        raise ValueError("Milestone ids must be unique within a goal")
    return milestones


class GoalCreate(CamelModel):
    """Draft submitted by the owning mentee."""

    title: str
    description: str = ""
    category: GoalCategory = GoalCategory.PERSONAL_GROWTH
    priority: GoalPriority = GoalPriority.MEDIUM
    progress: int = Field(default=0, ge=0, le=100)
    due_date: Optional[date] = None
    milestones: list[Milestone] = Field(default_factory=list)
    visible_to_mentor: Optional[bool] = None

    @field_validator("title")
    @classmethod
    def _title(cls, value: str) -> str:
        return _clean_title(value)

    @field_validator("milestones")
    @classmethod
    def _milestones(cls, value: list[Milestone]) -> list[Milestone]:
        return _unique_milestone_ids(value)


# Patch fields that may be omitted but never explicitly nulled.
_NON_NULLABLE_PATCH_FIELDS = (
    "title",
    "description",
    "category",
    "priority",
    "status",
    "progress",
    "milestones",
    "needs_help",
)


class GoalPatch(CamelModel):
    """Partial update; only fields the caller actually sent are applied."""

    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[GoalCategory] = None
    priority: Optional[GoalPriority] = None
    status: Optional[GoalStatus] = None
    progress: Optional[int] = Field(default=None, ge=0, le=100)
    due_date: Optional[date] = None
    milestones: Optional[list[Milestone]] = None
    visible_to_mentor: Optional[bool] = None
    needs_help: Optional[bool] = None

    @field_validator("title")
    @classmethod
    def _title(cls, value: Optional[str]) -> Optional[str]:
        return _clean_title(value)

    @field_validator("status")
    @classmethod
    def _status(cls, value: Optional[GoalStatus]) -> Optional[GoalStatus]:
        return _reject_overdue(value)

    @field_validator("milestones")
    @classmethod
    def _milestones(cls, value: Optional[list[Milestone]]) -> Optional[list[Milestone]]:
        return _unique_milestone_ids(value)

    @model_validator(mode="after")
    def _no_explicit_nulls(self) -> "GoalPatch":
        for name in _NON_NULLABLE_PATCH_FIELDS:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{to_camel(name)} cannot be null")
        return self


class GoalRead(CamelModel):
    """Goal as returned to callers: stored fields plus the status resolved at read time."""

    id: UUID
    owner_id: UUID
    title: str
    description: str
    category: GoalCategory
    priority: GoalPriority
    status: GoalStatus
    effective_status: GoalStatus
    progress: int
    due_date: Optional[date] = None
    completed_at: Optional[datetime] = None
    milestones: list[Milestone] = Field(default_factory=list)
    visible_to_mentor: Optional[bool] = None
    needs_help: bool = False
    help_requested_at: Optional[datetime] = None
    revision: int
    created_at: datetime
    updated_at: datetime

    @field_validator("completed_at", "help_requested_at", "created_at", "updated_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # SQLite hands back naive datetimes; everything is stored in UTC.
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class GoalStats(CamelModel):
    total_goals: int
    completed_goals: int
    in_progress_goals: int
    overdue_goals: int
    completion_rate: int
