# ABOUTME: SQLModel tables (User, Goal, MentorAssignment) and the SQLite session factory.
# ABOUTME: get_session yields a session; create_all initializes the schema.

from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, Session, SQLModel, create_engine

from core.config import GOALS_DB_PATH
from core.schemas import GoalCategory, GoalPriority, GoalStatus, UserRole


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    """User account for authentication. Passwords stored as hashes only."""

    __tablename__ = "users"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    username: str = Field(unique=True, index=True)
    password_hash: str = Field()
    role: str = Field(default=UserRole.MENTEE.value, index=True)
    created_at: datetime = Field(default_factory=utcnow)


class MentorAssignment(SQLModel, table=True):
    """Links a mentor to one mentee; inactive rows are kept instead of deleted."""

    __tablename__ = "mentor_assignments"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    mentor_id: UUID = Field(foreign_key="users.id", index=True)
    mentee_id: UUID = Field(foreign_key="users.id", index=True)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class Goal(SQLModel, table=True):
    """Persisted goal record owned by a mentee."""

    __tablename__ = "goals"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    owner_id: UUID = Field(foreign_key="users.id", index=True)
    title: str
    description: str = ""
    category: str = GoalCategory.PERSONAL_GROWTH.value
    priority: str = GoalPriority.MEDIUM.value
    status: str = GoalStatus.NOT_STARTED.value
    progress: int = 0
    due_date: Optional[date] = None
    completed_at: Optional[datetime] = None
    milestones: str = "[]"  # JSON array of {id, title, completed}
    visible_to_mentor: Optional[bool] = None  # None means visible
    needs_help: bool = False
    help_requested_at: Optional[datetime] = None
    revision: int = 1
    created_at: datetime = Field(default_factory=utcnow, index=True)
    sequence: int = Field(default=0, index=True)  # creation order among equal created_at
    updated_at: datetime = Field(
        default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow}
    )


_engine = create_engine(
    f"sqlite:///{GOALS_DB_PATH}",
    connect_args={"check_same_thread": False},
)


def init_db() -> None:
    """Create all tables if they do not exist."""
    SQLModel.metadata.create_all(_engine)


@contextmanager
def get_session():
    """Yield an SQLite session for the default engine."""
    init_db()
    with Session(_engine) as session:
        yield session
