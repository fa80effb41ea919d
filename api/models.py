"""
API request and response models for the Taskboard REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py and
tasks/models.py, which own the internal domain representation. Route handlers
map between the two.

Wire names: the client contract uses Mongo-style keys (_id, profileImage,
createdAt, owner). Fields keep snake_case names in Python and declare the wire
name as an alias; FastAPI serializes response models by alias.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.validation import PASSWORD_MAX_BYTES

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class PriorityEnum(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class StatusEnum(str, Enum):
    pending = "pending"
    in_progress = "in-progress"
    completed = "completed"


def _check_deadline(value: Optional[str]) -> Optional[str]:
    """Accept an ISO 8601 date or datetime; empty string means no deadline."""
    if value is None or value == "":
        return None
    try:
        date.fromisoformat(value)
    except ValueError:
        try:
            datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValueError("deadline must be an ISO 8601 date or datetime") from exc
    return value


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/auth/register.

    Fields default to "" so a missing field is reported by the credential
    rules in auth.validation with its own message, alongside any other
    field problems. max_length is only a transport cap; a password within
    it can still be over the byte limit once encoded, which
    auth.validation.check_password reports.
    """

    username: str = Field(default="", max_length=255)
    email: str = Field(default="", max_length=255)
    password: str = Field(default="", max_length=PASSWORD_MAX_BYTES)
    name: str = Field(default="", max_length=255)


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login."""

    email: str = Field(default="", max_length=255)
    password: str = Field(default="", max_length=128)


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class LocationModel(BaseModel):
    city: str = ""
    country: str = ""


class UserProfile(BaseModel):
    """Public projection of a credential record. Never carries the hash."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(alias="_id")
    username: str
    name: str = ""
    email: str
    profile_image: str = Field(default="", alias="profileImage")
    location: LocationModel = Field(default_factory=LocationModel)
    bio: str = ""


class TokenResponse(BaseModel):
    """Response for POST /api/auth/register."""

    token: str


class LoginResponse(BaseModel):
    """Response for POST /api/auth/login."""

    token: str
    user: UserProfile


class VerifyResponse(BaseModel):
    """Response for GET /api/auth/verify."""

    user: UserProfile


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TaskCreate(BaseModel):
    """Request body for POST /api/tasks."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)
    deadline: Optional[str] = None
    priority: PriorityEnum = PriorityEnum.medium
    status: StatusEnum = StatusEnum.pending

    @field_validator("deadline")
    @classmethod
    def validate_deadline(cls, value: Optional[str]) -> Optional[str]:
        return _check_deadline(value)


class TaskPatch(BaseModel):
    """Request body for PATCH /api/tasks/{task_id}.

    Only fields present in the body are applied. deadline may be sent as
    null to clear it; the other fields may not be null.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    deadline: Optional[str] = None
    priority: Optional[PriorityEnum] = None
    status: Optional[StatusEnum] = None

    @field_validator("deadline")
    @classmethod
    def validate_deadline(cls, value: Optional[str]) -> Optional[str]:
        return _check_deadline(value)


class TaskResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int = Field(alias="_id")
    title: str
    description: str
    deadline: Optional[str]
    priority: str
    status: str
    owner_id: int = Field(alias="owner")
    created_at: str = Field(alias="createdAt")
    updated_at: str = Field(alias="updatedAt")


class TaskSummaryResponse(BaseModel):
    """Response for GET /api/tasks/summary."""

    model_config = ConfigDict(frozen=True)

    total: int
    counts: dict[str, int]


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    message: str


class FieldErrorModel(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    """Error envelope returned on 4xx/5xx responses.

    errors is present only for validation failures; error (the raw exception
    text) only when DEBUG is on.
    """

    model_config = ConfigDict(frozen=True)

    message: str
    code: str
    errors: Optional[list[FieldErrorModel]] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"  # "healthy" | "degraded"
    version: str
    components: dict[str, str]
