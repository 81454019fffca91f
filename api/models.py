"""
API request and response models for taskwarden REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
tasks/models.py, which own the internal domain representation. Route handlers
map between the two.

Input-shape validation lives here. By the time a route handler runs, fields
are well-typed; password *strength* is still checked by auth/policy.py so the
caller gets every broken rule at once.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from auth.models import CallerIdentity, Role, User
from tasks.models import Task, TaskComment

USERNAME_PATTERN = r"^[a-zA-Z0-9_-]+$"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class TaskStatusEnum(str, Enum):
    pending = "pending"
    in_progress = "in_progress"
    done = "done"


# ---------------------------------------------------------------------------
# Errors / health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    violations: Optional[list[str]] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


class WelcomeResponse(BaseModel):
    """Response for GET /api/v1/ -- personalized when a valid token is sent."""

    message: str
    version: str
    authenticated_as: Optional[str] = None


# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    email: EmailStr
    # Strength rules are enforced by SecretPolicy, not here, so that every
    # violation is reported together.
    password: str = Field(min_length=1, max_length=255)


class LoginRequest(BaseModel):
    """Either username or email may be supplied as the login identifier."""

    username: Optional[str] = Field(default=None, max_length=100)
    email: Optional[str] = Field(default=None, max_length=100)
    password: str = Field(min_length=1, max_length=255)

    @property
    def login(self) -> str:
        return (self.username or self.email or "").strip()


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class PasswordChangeRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=255)
    new_password: str = Field(min_length=1, max_length=255)


class UserCreate(BaseModel):
    """Admin-only account creation; the only way to assign a non-default role."""

    username: str = Field(min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    email: EmailStr
    password: str = Field(min_length=1, max_length=255)
    role: Role = Role.user


class UserPatch(BaseModel):
    role: Optional[Role] = None
    is_active: Optional[bool] = None


# ---------------------------------------------------------------------------
# Auth -- responses
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of an account. Never carries the password hash."""

    id: int
    username: str
    email: str
    role: Role
    is_active: bool = True
    created_at: str = ""

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            role=Role(user.role),
            is_active=user.is_active,
            created_at=user.created_at or "",
        )


class TokenPair(BaseModel):
    access: str
    refresh: str
    token_type: str = "bearer"
    expires_in: int  # seconds until the access token expires


class AuthResponse(BaseModel):
    """Returned by register, login and refresh."""

    message: str
    user: UserResponse
    tokens: TokenPair


class MeResponse(BaseModel):
    id: int
    username: str
    email: str
    role: Role

    @classmethod
    def from_identity(cls, identity: CallerIdentity) -> "MeResponse":
        return cls(id=identity.id, username=identity.username, email=identity.email, role=identity.role)


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TaskCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    status: TaskStatusEnum = TaskStatusEnum.pending
    due_date: Optional[str] = Field(default=None, max_length=32)


class TaskUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    status: Optional[TaskStatusEnum] = None
    due_date: Optional[str] = Field(default=None, max_length=32)


class CommentCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    content: str = Field(min_length=1, max_length=1000)


class CommentResponse(BaseModel):
    id: int
    content: str
    task_id: int
    user_id: int
    created_at: str
    updated_at: str

    @classmethod
    def from_comment(cls, comment: TaskComment) -> "CommentResponse":
        return cls(
            id=comment.id,
            content=comment.content,
            task_id=comment.task_id,
            user_id=comment.user_id,
            created_at=comment.created_at,
            updated_at=comment.updated_at,
        )


class TaskResponse(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    status: TaskStatusEnum
    due_date: Optional[str] = None
    owner_id: int
    created_at: str
    updated_at: str
    # Only the single-task read embeds comments; other routes leave this unset.
    comments: Optional[list[CommentResponse]] = None

    @classmethod
    def from_task(cls, task: Task, comments: Optional[list[TaskComment]] = None) -> "TaskResponse":
        return cls(
            id=task.id,
            title=task.title,
            description=task.description,
            status=TaskStatusEnum(task.status),
            due_date=task.due_date,
            owner_id=task.owner_id,
            created_at=task.created_at,
            updated_at=task.updated_at,
            comments=[CommentResponse.from_comment(c) for c in comments] if comments is not None else None,
        )


class TaskListResponse(BaseModel):
    tasks: list[TaskResponse]
    total: int
    page: int
    limit: int
