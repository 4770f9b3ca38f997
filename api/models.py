"""
API request and response models for SmartFeedback REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/, feedback/ and
audit/, which own the internal domain representation. Route handlers map
between the two.

Field names are snake_case in Python and camelCase on the wire (fullName,
isAdmin, submittedAt, ...) because that is what the SPA sends and reads.
populate_by_name=True lets tests and handlers build models with either form.
"""

from enum import Enum
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

from audit.models import AuditLogEntry
from auth.models import EMAIL_PATTERN
from feedback.models import STATUS_IN_PROGRESS, STATUS_NEW, STATUS_RESOLVED, Feedback


class _CamelModel(BaseModel):
    # No global whitespace stripping: passwords must reach the hasher verbatim.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _FrozenCamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class FeedbackStatusEnum(str, Enum):
    new = STATUS_NEW
    in_progress = STATUS_IN_PROGRESS
    resolved = STATUS_RESOLVED


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class RegisterRequest(_CamelModel):
    """Request body for POST /api/auth/register.

    The password carries no length constraint here on purpose: the strength
    policy runs in the handler so a weak password is reported as
    weak_password rather than a generic validation error.
    """

    full_name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=3, max_length=255)]
    email: Annotated[str, StringConstraints(strip_whitespace=True, max_length=255, pattern=EMAIL_PATTERN)]
    password: str = Field(max_length=255)
    gender: str = Field(default="", max_length=50)


class LoginRequest(_CamelModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class RoleUpdate(_CamelModel):
    """Request body for PATCH /api/admin/users/{id}/role."""

    is_admin: bool


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class LoginResponse(_FrozenCamelModel):
    token: str
    is_admin: bool
    full_name: str
    expires_at: str


class MeResponse(_FrozenCamelModel):
    user_id: int
    full_name: str
    email: str
    gender: str
    is_admin: bool


class UserResponse(_FrozenCamelModel):
    id: int
    full_name: str
    email: str
    gender: str
    is_admin: bool
    created_at: str


class MessageResponse(_FrozenCamelModel):
    message: str
    id: Optional[int] = None


# ---------------------------------------------------------------------------
# Feedback
# ---------------------------------------------------------------------------


class FeedbackCreate(_CamelModel):
    """Request body for POST /api/feedback/submit."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)

    heading: str = Field(min_length=1, max_length=255)
    category: str = Field(min_length=1, max_length=100)
    subcategory: str = Field(min_length=1, max_length=100)
    message: str = Field(min_length=1, max_length=5000)
    image_url: Optional[str] = Field(default=None, max_length=2048)


class StatusUpdate(_CamelModel):
    """Request body for PUT /api/admin/update-status/{feedback_id}."""

    status: FeedbackStatusEnum


class FeedbackResponse(_FrozenCamelModel):
    id: int
    heading: str
    category: str
    subcategory: str
    message: str
    image_url: Optional[str]
    status: str
    submitted_at: str

    @classmethod
    def from_feedback(cls, item: Feedback) -> "FeedbackResponse":
        return cls(
            id=item.id,
            heading=item.heading,
            category=item.category,
            subcategory=item.subcategory,
            message=item.message,
            image_url=item.image_url,
            status=item.status,
            submitted_at=item.submitted_at,
        )


class SubmitterInfo(_FrozenCamelModel):
    id: int
    full_name: Optional[str]
    email: Optional[str]


class AdminFeedbackResponse(FeedbackResponse):
    """One row of GET /api/admin/all-feedbacks -- feedback plus its submitter."""

    user: SubmitterInfo

    @classmethod
    def from_feedback(cls, item: Feedback) -> "AdminFeedbackResponse":
        return cls(
            id=item.id,
            heading=item.heading,
            category=item.category,
            subcategory=item.subcategory,
            message=item.message,
            image_url=item.image_url,
            status=item.status,
            submitted_at=item.submitted_at,
            user=SubmitterInfo(id=item.user_id, full_name=item.submitter_name, email=item.submitter_email),
        )


class StatusChangeResponse(_FrozenCamelModel):
    message: str
    feedback_id: int
    old_status: str
    new_status: str


class UserWithFeedbackResponse(_FrozenCamelModel):
    id: int
    full_name: str
    email: str
    feedbacks: list[FeedbackResponse] = Field(default_factory=list)


class FeedbackStatsResponse(_FrozenCamelModel):
    """Response for GET /api/admin/feedback-stats (drives the analytics charts)."""

    total: int
    by_status: dict[str, int]
    by_category: dict[str, int]


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


class AuditLogResponse(_FrozenCamelModel):
    id: int
    action_type: str
    description: str
    timestamp: str
    performed_by_user_id: int
    performed_by_name: Optional[str] = None
    target_user_id: Optional[int] = None
    feedback_id: Optional[int] = None

    @classmethod
    def from_entry(cls, entry: AuditLogEntry) -> "AuditLogResponse":
        return cls(
            id=entry.id,
            action_type=entry.action_type,
            description=entry.description,
            timestamp=entry.timestamp,
            performed_by_user_id=entry.performed_by_user_id,
            performed_by_name=entry.performed_by_name,
            target_user_id=entry.target_user_id,
            feedback_id=entry.feedback_id,
        )


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
