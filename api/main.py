# ABOUTME: FastAPI app: /auth (signup/login), mentee /goals CRUD + help flag, /mentor goal views, /admin goals and assignments.
# ABOUTME: Service errors map to 400/404/409/500 JSON bodies; auth via JWT with role checks per router.

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, FastAPI, Header, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import select

from core.auth import (
    create_access_token,
    hash_password,
    DUMMY_PASSWORD_HASH,
    require_role,
    role_for_signup,
    validate_password_length,
    validate_username,
    verify_password,
)
from core.config import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    CORS_ORIGINS,
    DEFAULT_GOALS_PAGE_SIZE,
    MAX_GOALS_PAGE_SIZE,
)
from core.database import User, get_session
from core.schemas import CamelModel, GoalCreate, GoalPatch, GoalRead, GoalStatus, UserRole
from goal_tracking.errors import (
    ConflictError,
    GoalTrackingError,
    InfrastructureError,
    NotFoundError,
    ValidationError,
)
from goal_tracking.service import GoalService

auth_router = APIRouter(prefix="/auth", tags=["auth"])
goals_router = APIRouter(prefix="/goals", tags=["goals"])
mentor_router = APIRouter(prefix="/mentor", tags=["mentor"])
admin_router = APIRouter(prefix="/admin", tags=["admin"])

_mentee = require_role(UserRole.MENTEE)
_mentor = require_role(UserRole.MENTOR)
_admin = require_role(UserRole.ADMIN)

_ERROR_STATUS = {
    ValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
}


def get_goal_service() -> GoalService:
    """Service bound to this module's get_session (patched in tests)."""
    return GoalService(session_factory=get_session)


def _error_response(err: GoalTrackingError, action: str) -> JSONResponse:
    """Map a service error to a JSON response; store failures are logged and hidden."""
    if isinstance(err, InfrastructureError):
        logging.exception("%s failed (database error)", action)
        return JSONResponse(
            status_code=500,
            content={"message": f"Could not {action}."},
        )
    status_code = _ERROR_STATUS.get(type(err), 400)
    return JSONResponse(status_code=status_code, content={"message": str(err)})


def _goal_to_json(goal: GoalRead) -> dict:
    return goal.model_dump(mode="json", by_alias=True)


def _goals_to_json(goals: list[GoalRead]) -> dict:
    return {"goals": [_goal_to_json(g) for g in goals], "total": len(goals)}


class SignupRequest(BaseModel):
    username: str
    password: str
    role: UserRole = UserRole.MENTEE


class LoginRequest(BaseModel):
    username: str
    password: str


class SignupResponse(BaseModel):
    id: str
    username: str
    role: UserRole
    access_token: str
    token_type: str
    expires_in: int


class LoginResponse(BaseModel):
    access_token: str
    token_type: str
    expires_in: int


class HelpFlagRequest(CamelModel):
    needs_help: bool


class AssignmentRequest(CamelModel):
    mentor_id: UUID
    mentee_id: UUID


@auth_router.post("/signup", status_code=201, response_model=SignupResponse)
def post_signup(req: SignupRequest):
    """Create a new user and return an access token so the client can skip calling login."""
    username_clean = req.username.strip()
    try:
        validate_username(req.username)
        validate_password_length(req.password)
        role = role_for_signup(username_clean, req.role)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"message": str(e)})
    try:
        with get_session() as session:
            user = User(
                username=username_clean,
                password_hash=hash_password(req.password),
                role=role.value,
            )
            session.add(user)
            session.commit()
            session.refresh(user)
            return SignupResponse(
                id=str(user.id),
                username=user.username,
                role=role,
                access_token=create_access_token(user.id),
                token_type="bearer",
                expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            )
    except IntegrityError:
        return JSONResponse(
            status_code=409,
            content={"message": "Username already taken."},
        )
    except SQLAlchemyError:
        logging.exception("post_signup failed (database error)")
        return JSONResponse(
            status_code=500,
            content={"message": "Could not create account."},
        )


@auth_router.post("/login", response_model=LoginResponse)
def post_login(req: LoginRequest):
    """Authenticate and return a JWT. Uses constant-time password check to avoid username enumeration."""
    with get_session() as session:
        stmt = select(User).where(User.username == req.username.strip())
        user = session.exec(stmt).first()
    password_hash = user.password_hash if user else DUMMY_PASSWORD_HASH
    if not verify_password(req.password, password_hash) or user is None:
        return JSONResponse(
            status_code=401,
            content={"message": "Invalid username or password."},
        )
    return LoginResponse(
        access_token=create_access_token(user.id),
        token_type="bearer",
        expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


@goals_router.post("", status_code=201)
def post_goal(
    req: GoalCreate,
    current_user: User = Depends(_mentee),
    service: GoalService = Depends(get_goal_service),
):
    """Create a goal owned by the authenticated mentee."""
    try:
        return _goal_to_json(service.create_goal(current_user.id, req))
    except GoalTrackingError as e:
        return _error_response(e, "save goal")


@goals_router.get("")
def get_goals(
    status: list[GoalStatus] | None = Query(None),
    limit: int = Query(DEFAULT_GOALS_PAGE_SIZE, ge=0, le=MAX_GOALS_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(_mentee),
    service: GoalService = Depends(get_goal_service),
):
    """List the mentee's goals in creation order, optionally filtered by effective status.

    Returns { goals: [...], total: N } where total counts all matches before paging.
    """
    try:
        goals = service.list_goals_for_owner(current_user.id, statuses=status)
    except GoalTrackingError as e:
        return _error_response(e, "load goals")
    page = goals[offset : offset + limit]
    return {"goals": [_goal_to_json(g) for g in page], "total": len(goals)}


@goals_router.get("/stats")
def get_goal_stats(
    current_user: User = Depends(_mentee),
    service: GoalService = Depends(get_goal_service),
):
    try:
        stats = service.goal_stats(current_user.id)
    except GoalTrackingError as e:
        return _error_response(e, "load goal statistics")
    return {"stats": stats.model_dump(by_alias=True)}


@goals_router.get("/{goal_id}")
def get_goal(
    goal_id: UUID,
    current_user: User = Depends(_mentee),
    service: GoalService = Depends(get_goal_service),
):
    try:
        return _goal_to_json(service.get_goal(goal_id, owner_id=current_user.id))
    except GoalTrackingError as e:
        return _error_response(e, "load goal")


@goals_router.patch("/{goal_id}")
def patch_goal(
    goal_id: UUID,
    req: GoalPatch,
    if_match: int | None = Header(None),
    current_user: User = Depends(_mentee),
    service: GoalService = Depends(get_goal_service),
):
    """Apply a partial update. Send If-Match: <revision> to reject writes over newer changes (409)."""
    try:
        goal = service.update_goal(
            goal_id, req, owner_id=current_user.id, expected_revision=if_match
        )
    except GoalTrackingError as e:
        return _error_response(e, "update goal")
    return _goal_to_json(goal)


@goals_router.put("/{goal_id}/help")
def put_help_flag(
    goal_id: UUID,
    req: HelpFlagRequest,
    current_user: User = Depends(_mentee),
    service: GoalService = Depends(get_goal_service),
):
    """Raise or lower the help request on a goal."""
    try:
        goal = service.set_help_flag(goal_id, req.needs_help, owner_id=current_user.id)
    except GoalTrackingError as e:
        return _error_response(e, "update help request")
    return _goal_to_json(goal)


@goals_router.delete("/{goal_id}")
def delete_goal(
    goal_id: UUID,
    current_user: User = Depends(_mentee),
    service: GoalService = Depends(get_goal_service),
):
    try:
        service.delete_goal(goal_id, owner_id=current_user.id)
    except GoalTrackingError as e:
        return _error_response(e, "delete goal")
    return {"message": "Goal deleted successfully"}


@mentor_router.get("/goals")
def get_mentor_goals(
    current_user: User = Depends(_mentor),
    service: GoalService = Depends(get_goal_service),
):
    """Goals of all assigned mentees that their owners left visible."""
    try:
        return _goals_to_json(service.list_goals_for_mentor_view(current_user.id))
    except GoalTrackingError as e:
        return _error_response(e, "load mentee goals")


@mentor_router.get("/goals/help")
def get_mentor_help_requests(
    current_user: User = Depends(_mentor),
    service: GoalService = Depends(get_goal_service),
):
    """Visible goals with an open help request, oldest request first."""
    try:
        return _goals_to_json(service.list_goals_needing_help(current_user.id))
    except GoalTrackingError as e:
        return _error_response(e, "load help requests")


@mentor_router.get("/mentees/{mentee_id}/goals")
def get_mentee_goals(
    mentee_id: UUID,
    current_user: User = Depends(_mentor),
    service: GoalService = Depends(get_goal_service),
):
    try:
        return _goals_to_json(service.list_goals_for_mentee(current_user.id, mentee_id))
    except GoalTrackingError as e:
        return _error_response(e, "load mentee goals")


@admin_router.get("/goals")
def get_all_goals(
    _user: User = Depends(_admin),
    service: GoalService = Depends(get_goal_service),
):
    try:
        return _goals_to_json(service.list_all_goals())
    except GoalTrackingError as e:
        return _error_response(e, "load goals")


def _check_assignment_roles(req: AssignmentRequest) -> None:
    """Raise ValidationError unless mentor_id is a MENTOR and mentee_id a MENTEE."""
    with get_session() as session:
        mentor = session.get(User, req.mentor_id)
        mentee = session.get(User, req.mentee_id)
    if mentor is None or mentor.role != UserRole.MENTOR.value:
        raise ValidationError("mentorId must reference a mentor.")
    if mentee is None or mentee.role != UserRole.MENTEE.value:
        raise ValidationError("menteeId must reference a mentee.")


@admin_router.post("/assignments", status_code=201)
def post_assignment(
    req: AssignmentRequest,
    _user: User = Depends(_admin),
    service: GoalService = Depends(get_goal_service),
):
    """Assign a mentee to a mentor so the mentor sees the mentee's visible goals."""
    try:
        _check_assignment_roles(req)
        assignment = service.assign_mentee(req.mentor_id, req.mentee_id)
    except GoalTrackingError as e:
        return _error_response(e, "save assignment")
    except SQLAlchemyError:
        logging.exception("post_assignment failed (database error)")
        return JSONResponse(
            status_code=500,
            content={"message": "Could not save assignment."},
        )
    return {
        "id": str(assignment.id),
        "mentorId": str(assignment.mentor_id),
        "menteeId": str(assignment.mentee_id),
        "isActive": assignment.is_active,
    }


@admin_router.delete("/assignments")
def delete_assignment(
    req: AssignmentRequest,
    _user: User = Depends(_admin),
    service: GoalService = Depends(get_goal_service),
):
    try:
        service.unassign_mentee(req.mentor_id, req.mentee_id)
    except GoalTrackingError as e:
        return _error_response(e, "remove assignment")
    return {"message": "Assignment removed"}


app = FastAPI(title="MentorConnect Goals API")
app.include_router(auth_router)
app.include_router(goals_router)
app.include_router(mentor_router)
app.include_router(admin_router)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
