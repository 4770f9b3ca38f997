"""
api/routes/admin.py -- Admin dashboard, audit log, and user management endpoints.

Routes:
  GET    /api/admin/all-feedbacks              -- all feedback with submitter
  PUT    /api/admin/update-status/{id}         -- change status (audited)
  DELETE /api/admin/delete-feedback/{id}       -- delete feedback (audited)
  GET    /api/admin/audit-logs                 -- audit trail, newest first
  GET    /api/admin/users-with-feedbacks       -- every user with their feedback
  GET    /api/admin/feedback-stats             -- counts for the analytics charts
  PATCH  /api/admin/users/{id}/role            -- grant/revoke admin (audited)

Every state-changing route writes its audit entry in the same transaction as
the change itself (see feedback/store.py and UserStore.change_role).
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from api.models import (
    AdminFeedbackResponse,
    AuditLogResponse,
    FeedbackResponse,
    FeedbackStatsResponse,
    MessageResponse,
    RoleUpdate,
    StatusChangeResponse,
    StatusUpdate,
    UserResponse,
    UserWithFeedbackResponse,
)
from audit.store import AuditStore
from auth.dependencies import require_admin
from auth.models import Identity
from auth.store import UserStore
from core.errors import InvalidArgument
from feedback.store import FeedbackStore

# Auth policy:
# - every route: requires admin (require_admin) -- 401 without a valid token, 403 for ordinary users.
# Router-level dependency enforces it; handlers that need the caller's id
# declare it again (FastAPI resolves it once per request).
router = APIRouter(dependencies=[Depends(require_admin)])


# ---------------------------------------------------------------------------
# Feedback moderation
# ---------------------------------------------------------------------------


@router.get("/admin/all-feedbacks", response_model=list[AdminFeedbackResponse])
def all_feedbacks(request: Request) -> list[AdminFeedbackResponse]:
    store: FeedbackStore = request.app.state.feedback_store
    return [AdminFeedbackResponse.from_feedback(f) for f in store.list_all()]


@router.put("/admin/update-status/{feedback_id}", response_model=StatusChangeResponse)
def update_status(
    request: Request,
    feedback_id: int,
    body: StatusUpdate,
    identity: Identity = Depends(require_admin),
) -> StatusChangeResponse:
    """Change a feedback item's status and audit the change atomically."""
    store: FeedbackStore = request.app.state.feedback_store
    change = store.update_status(feedback_id, body.status.value, performed_by=identity.user_id)
    return StatusChangeResponse(
        message="Feedback status updated successfully.",
        feedback_id=change.feedback_id,
        old_status=change.old_status,
        new_status=change.new_status,
    )


@router.delete("/admin/delete-feedback/{feedback_id}", response_model=MessageResponse)
def delete_feedback(
    request: Request,
    feedback_id: int,
    identity: Identity = Depends(require_admin),
) -> MessageResponse:
    store: FeedbackStore = request.app.state.feedback_store
    store.delete(feedback_id, performed_by=identity.user_id)
    return MessageResponse(message="Feedback deleted successfully", id=feedback_id)


@router.get("/admin/feedback-stats", response_model=FeedbackStatsResponse)
def feedback_stats(request: Request) -> FeedbackStatsResponse:
    store: FeedbackStore = request.app.state.feedback_store
    return FeedbackStatsResponse(**store.stats())


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------


@router.get("/admin/audit-logs", response_model=list[AuditLogResponse])
def audit_logs(
    request: Request,
    response: Response,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> list[AuditLogResponse]:
    """Return the audit trail newest first.

    Without limit the whole log is returned. X-Total-Count carries the
    total number of entries so clients can page with limit/offset.
    """
    audit: AuditStore = request.app.state.audit_store
    entries = audit.list_all(limit=limit, offset=offset)
    response.headers["X-Total-Count"] = str(audit.count())
    return [AuditLogResponse.from_entry(e) for e in entries]


# ---------------------------------------------------------------------------
# User management
# ---------------------------------------------------------------------------


@router.get("/admin/users-with-feedbacks", response_model=list[UserWithFeedbackResponse])
def users_with_feedbacks(request: Request) -> list[UserWithFeedbackResponse]:
    store: FeedbackStore = request.app.state.feedback_store
    return [
        UserWithFeedbackResponse(
            id=user_id,
            full_name=full_name,
            email=email,
            feedbacks=[FeedbackResponse.from_feedback(f) for f in items],
        )
        for user_id, full_name, email, items in store.list_users_with_feedback()
    ]


@router.patch("/admin/users/{user_id}/role", response_model=UserResponse)
def change_role(
    request: Request,
    user_id: int,
    body: RoleUpdate,
    identity: Identity = Depends(require_admin),
) -> UserResponse:
    """Grant or revoke admin rights. An admin cannot demote themselves."""
    user_store: UserStore = request.app.state.user_store
    audit: AuditStore = request.app.state.audit_store

    if user_id == identity.user_id and not body.is_admin:
        raise InvalidArgument("You cannot remove your own admin role.")

    user_store.change_role(user_id, body.is_admin, performed_by=identity.user_id, audit=audit)
    user = user_store.get_by_id(user_id)
    return UserResponse(
        id=user.id,
        full_name=user.full_name,
        email=user.email,
        gender=user.gender,
        is_admin=user.is_admin,
        created_at=user.created_at or "",
    )
