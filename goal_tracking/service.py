# ABOUTME: GoalService: create/update/delete/list goals over the SQLModel store, applying the pure goal rules.
# ABOUTME: Status is resolved at read time; writes settle the stored status and bump the goal revision.

import json
from collections.abc import Callable, Iterable, Mapping
from contextlib import contextmanager
from datetime import datetime
from typing import Optional, Union
from uuid import UUID

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from core.activity import (
    GOAL_COMPLETED,
    GOAL_CREATED,
    GOAL_UPDATED,
    HELP_REQUESTED,
    log_activity,
)
from core.database import Goal, MentorAssignment, get_session, utcnow
from core.schemas import (
    STICKY_STATUSES,
    GoalCreate,
    GoalPatch,
    GoalRead,
    GoalStats,
    GoalStatus,
    Milestone,
)
from goal_tracking.errors import (
    ConflictError,
    InfrastructureError,
    NotFoundError,
    ValidationError,
)
from goal_tracking.rules import (
    is_visible_to_mentor,
    percent,
    progress_from_milestones,
    resolve_status,
)


_PLAIN_PATCH_FIELDS = frozenset(
    {"title", "description", "progress", "due_date", "visible_to_mentor"}
)
_ENUM_PATCH_FIELDS = frozenset({"category", "priority"})


def _coerce(model: type[BaseModel], data: Union[BaseModel, Mapping]):
    """Return `data` as an instance of `model`, turning pydantic errors into ValidationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        messages = "; ".join(err["msg"] for err in e.errors())
        raise ValidationError(messages or "Invalid goal data") from e


def _dump_milestones(milestones: Iterable[Milestone]) -> str:
    return json.dumps([m.model_dump() for m in milestones])


def _load_milestones(raw: Optional[str]) -> list[Milestone]:
    return [Milestone.model_validate(m) for m in json.loads(raw)] if raw else []


def _check_requested_status(patch: GoalPatch, progress: int) -> None:
    """Reject a requested status that contradicts the progress the same patch produces.

    `progress` is the value after the patch's progress and milestones were applied.
    COMPLETED alone may still raise progress to 100, but not when the patch
    itself sets progress (directly or through milestones) below 100.
    """
    requested = patch.status
    if requested is GoalStatus.COMPLETED:
        sets_progress = "progress" in patch.model_fields_set or bool(patch.milestones)
        if sets_progress and progress < 100:
            raise ValidationError(
                f"Cannot mark goal COMPLETED at {progress}% progress; complete every milestone first."
            )
    elif requested is GoalStatus.IN_PROGRESS and not 0 < progress < 100:
        raise ValidationError(f"IN_PROGRESS requires progress between 1 and 99, got {progress}.")
    elif requested is GoalStatus.NOT_STARTED and progress != 0:
        raise ValidationError(f"NOT_STARTED requires progress 0, got {progress}.")


def _settle_status(
    goal: Goal, now: datetime, requested: Optional[GoalStatus] = None
) -> None:
    """Bring the stored status and completed_at in line with progress.

    Sticky states are kept until another status is requested. Requesting
    COMPLETED sets progress to 100. completed_at is stamped on entering
    COMPLETED and cleared on leaving it.
    """
    current = GoalStatus(goal.status)
    if requested is GoalStatus.COMPLETED:
        goal.progress = 100
    if requested in STICKY_STATUSES:
        status = requested
    elif requested is None and current in STICKY_STATUSES:
        status = current
    elif goal.progress == 100:
        status = GoalStatus.COMPLETED
    elif goal.progress > 0:
        status = GoalStatus.IN_PROGRESS
    else:
        status = GoalStatus.NOT_STARTED
    goal.status = status.value
    if status is GoalStatus.COMPLETED:
        if goal.completed_at is None:
            goal.completed_at = now
    else:
        goal.completed_at = None


def _apply_help_flag(goal: Goal, needs_help: bool, now: datetime) -> bool:
    """Set needs_help; return True when the flag was raised by this call.

    Lowering the flag keeps help_requested_at as a record of the last request.
    """
    raised = needs_help and not goal.needs_help
    if raised:
        goal.help_requested_at = now
    goal.needs_help = needs_help
    return raised


class GoalService:
    """Goal operations over an injected session factory. Holds no state besides its collaborators."""

    def __init__(
        self,
        session_factory: Callable = get_session,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._clock = clock

    @contextmanager
    def _store(self):
        try:
            with self._session_factory() as session:
                yield session
        except SQLAlchemyError as e:
            raise InfrastructureError("Goal store is unavailable.") from e

    def _to_read(self, goal: Goal, now: datetime) -> GoalRead:
        return GoalRead(
            id=goal.id,
            owner_id=goal.owner_id,
            title=goal.title,
            description=goal.description,
            category=goal.category,
            priority=goal.priority,
            status=goal.status,
            effective_status=resolve_status(goal, now),
            progress=goal.progress,
            due_date=goal.due_date,
            completed_at=goal.completed_at,
            milestones=_load_milestones(goal.milestones),
            visible_to_mentor=goal.visible_to_mentor,
            needs_help=goal.needs_help,
            help_requested_at=goal.help_requested_at,
            revision=goal.revision,
            created_at=goal.created_at,
            updated_at=goal.updated_at,
        )

    @staticmethod
    def _load(session: Session, goal_id: UUID, owner_id: Optional[UUID]) -> Goal:
        goal = session.get(Goal, goal_id)
        if goal is None or (owner_id is not None and goal.owner_id != owner_id):
            raise NotFoundError("Goal not found.")
        return goal

    @staticmethod
    def _active_mentee_ids(session: Session, mentor_id: UUID) -> list[UUID]:
        stmt = select(MentorAssignment.mentee_id).where(
            MentorAssignment.mentor_id == mentor_id,
            MentorAssignment.is_active == True,  # noqa: E712
        )
        return list(dict.fromkeys(session.exec(stmt)))

    @staticmethod
    def _active_mentor_ids(session: Session, mentee_id: UUID) -> list[UUID]:
        stmt = select(MentorAssignment.mentor_id).where(
            MentorAssignment.mentee_id == mentee_id,
            MentorAssignment.is_active == True,  # noqa: E712
        )
        return list(dict.fromkeys(session.exec(stmt)))

    @staticmethod
    def _goals_for_owners(session: Session, owner_ids: list[UUID]) -> list[Goal]:
        if not owner_ids:
            return []
        stmt = (
            select(Goal)
            .where(col(Goal.owner_id).in_(owner_ids))
            .order_by(Goal.created_at, Goal.sequence)
        )
        return list(session.exec(stmt))

    @staticmethod
    def _next_sequence(session: Session) -> int:
        """One past the highest sequence stored; breaks created_at ties in listings."""
        highest = session.exec(select(func.max(Goal.sequence))).one()
        return (highest or 0) + 1

    def _log_help_request(self, session: Session, goal: Goal) -> None:
        log_activity(
            HELP_REQUESTED,
            user_id=goal.owner_id,
            goal_id=goal.id,
            title=goal.title,
            mentor_ids=[str(m) for m in self._active_mentor_ids(session, goal.owner_id)],
            requested_at=goal.help_requested_at,
        )

    def create_goal(
        self, owner_id: UUID, draft: Union[GoalCreate, Mapping]
    ) -> GoalRead:
        """Create a goal owned by `owner_id`. Progress comes from milestones when any are given."""
        draft = _coerce(GoalCreate, draft)
        now = self._clock()
        goal = Goal(
            owner_id=owner_id,
            title=draft.title,
            description=draft.description,
            category=draft.category.value,
            priority=draft.priority.value,
            progress=progress_from_milestones(draft.milestones, draft.progress),
            due_date=draft.due_date,
            milestones=_dump_milestones(draft.milestones),
            visible_to_mentor=draft.visible_to_mentor,
        )
        _settle_status(goal, now)
        with self._store() as session:
            goal.sequence = self._next_sequence(session)
            session.add(goal)
            session.commit()
            session.refresh(goal)
            log_activity(
                GOAL_CREATED,
                user_id=owner_id,
                goal_id=goal.id,
                title=goal.title,
                category=goal.category,
                priority=goal.priority,
                status=goal.status,
            )
            return self._to_read(goal, now)

    def get_goal(self, goal_id: UUID, owner_id: Optional[UUID] = None) -> GoalRead:
        with self._store() as session:
            return self._to_read(self._load(session, goal_id, owner_id), self._clock())

    def update_goal(
        self,
        goal_id: UUID,
        patch: Union[GoalPatch, Mapping],
        owner_id: Optional[UUID] = None,
        expected_revision: Optional[int] = None,
    ) -> GoalRead:
        """Apply the fields set in `patch`. Nothing is written unless the whole patch applies."""
        patch = _coerce(GoalPatch, patch)
        sent = patch.model_fields_set
        now = self._clock()
        with self._store() as session:
            goal = self._load(session, goal_id, owner_id)
            if expected_revision is not None and goal.revision != expected_revision:
                raise ConflictError(
                    f"Goal was modified (revision {goal.revision}, expected {expected_revision})."
                )
            previous_status = GoalStatus(goal.status)
            for name in _PLAIN_PATCH_FIELDS & sent:
                setattr(goal, name, getattr(patch, name))
            for name in _ENUM_PATCH_FIELDS & sent:
                setattr(goal, name, getattr(patch, name).value)
            if "milestones" in sent:
                goal.milestones = _dump_milestones(patch.milestones)
                goal.progress = progress_from_milestones(patch.milestones, goal.progress)
            _check_requested_status(patch, goal.progress)
            _settle_status(goal, now, patch.status)
            help_raised = "needs_help" in sent and _apply_help_flag(goal, patch.needs_help, now)
            goal.revision += 1
            session.add(goal)
            session.commit()
            session.refresh(goal)

            status = GoalStatus(goal.status)
            if status is not previous_status:
                log_activity(
                    GOAL_COMPLETED if status is GoalStatus.COMPLETED else GOAL_UPDATED,
                    user_id=goal.owner_id,
                    goal_id=goal.id,
                    title=goal.title,
                    old_status=previous_status.value,
                    new_status=status.value,
                )
            if help_raised:
                self._log_help_request(session, goal)
            return self._to_read(goal, now)

    def set_help_flag(
        self, goal_id: UUID, needs_help: bool, owner_id: Optional[UUID] = None
    ) -> GoalRead:
        """Raise or lower the help request flag; only a false -> true change stamps help_requested_at."""
        now = self._clock()
        with self._store() as session:
            goal = self._load(session, goal_id, owner_id)
            if goal.needs_help == needs_help:
                return self._to_read(goal, now)
            raised = _apply_help_flag(goal, needs_help, now)
            goal.revision += 1
            session.add(goal)
            session.commit()
            session.refresh(goal)
            if raised:
                self._log_help_request(session, goal)
            return self._to_read(goal, now)

    def delete_goal(self, goal_id: UUID, owner_id: Optional[UUID] = None) -> None:
        with self._store() as session:
            goal = self._load(session, goal_id, owner_id)
            session.delete(goal)
            session.commit()

    def list_goals_for_owner(
        self, owner_id: UUID, statuses: Optional[Iterable[GoalStatus]] = None
    ) -> list[GoalRead]:
        """Owner's goals in creation order, optionally limited to some effective statuses."""
        now = self._clock()
        wanted = {GoalStatus(s) for s in statuses} if statuses else None
        with self._store() as session:
            goals = [self._to_read(g, now) for g in self._goals_for_owners(session, [owner_id])]
        if wanted is None:
            return goals
        return [g for g in goals if g.effective_status in wanted]

    def list_goals_for_mentor_view(self, mentor_id: UUID) -> list[GoalRead]:
        """Visible goals of every mentee actively assigned to `mentor_id`, in creation order.

        Each result carries its effective status. Goals the owner hid are left out.
        """
        now = self._clock()
        with self._store() as session:
            goals = self._goals_for_owners(session, self._active_mentee_ids(session, mentor_id))
            return [
                self._to_read(g, now)
                for g in goals
                if is_visible_to_mentor(g.visible_to_mentor)
            ]

    def list_goals_for_mentee(self, mentor_id: UUID, mentee_id: UUID) -> list[GoalRead]:
        now = self._clock()
        with self._store() as session:
            if mentee_id not in self._active_mentee_ids(session, mentor_id):
                raise NotFoundError("Mentee is not assigned to this mentor.")
            return [
                self._to_read(g, now)
                for g in self._goals_for_owners(session, [mentee_id])
                if is_visible_to_mentor(g.visible_to_mentor)
            ]

    def list_goals_needing_help(self, mentor_id: UUID) -> list[GoalRead]:
        """Mentor-visible goals with an open help request, oldest request first."""
        flagged = [g for g in self.list_goals_for_mentor_view(mentor_id) if g.needs_help]
        # Rows flagged without a timestamp (written outside this service) go last.
        return sorted(
            flagged,
            key=lambda g: (g.help_requested_at is None, g.help_requested_at or g.created_at),
        )

    def list_all_goals(self) -> list[GoalRead]:
        now = self._clock()
        with self._store() as session:
            goals = session.exec(select(Goal).order_by(Goal.created_at, Goal.sequence))
            return [self._to_read(g, now) for g in goals]

    def goal_stats(self, owner_id: UUID) -> GoalStats:
        """Counts by effective status for one owner; completion rate uses the same rounding as progress."""
        goals = self.list_goals_for_owner(owner_id)
        counts = {status: 0 for status in GoalStatus}
        for g in goals:
            counts[g.effective_status] += 1
        completed = counts[GoalStatus.COMPLETED]
        return GoalStats(
            total_goals=len(goals),
            completed_goals=completed,
            in_progress_goals=counts[GoalStatus.IN_PROGRESS],
            overdue_goals=counts[GoalStatus.OVERDUE],
            completion_rate=percent(completed, len(goals)),
        )

    def assign_mentee(self, mentor_id: UUID, mentee_id: UUID) -> MentorAssignment:
        """Make `mentee_id` visible to `mentor_id`; re-activates an existing pairing."""
        if mentor_id == mentee_id:
            raise ValidationError("A user cannot mentor themselves.")
        with self._store() as session:
            stmt = select(MentorAssignment).where(
                MentorAssignment.mentor_id == mentor_id,
                MentorAssignment.mentee_id == mentee_id,
            )
            assignment = session.exec(stmt).first()
            if assignment is None:
                assignment = MentorAssignment(mentor_id=mentor_id, mentee_id=mentee_id)
            assignment.is_active = True
            session.add(assignment)
            session.commit()
            session.refresh(assignment)
            return assignment

    def unassign_mentee(self, mentor_id: UUID, mentee_id: UUID) -> None:
        with self._store() as session:
            stmt = select(MentorAssignment).where(
                MentorAssignment.mentor_id == mentor_id,
                MentorAssignment.mentee_id == mentee_id,
                MentorAssignment.is_active == True,  # noqa: E712
            )
            assignment = session.exec(stmt).first()
            if assignment is None:
                raise NotFoundError("Assignment not found.")
            assignment.is_active = False
            session.add(assignment)
            session.commit()
