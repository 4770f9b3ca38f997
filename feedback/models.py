"""
feedback/models.py -- Domain dataclasses for feedback submissions.

Pure data containers. All business logic (status transitions, audit writes)
lives in feedback/store.py.
"""

from __future__ import annotations

from dataclasses import dataclass

from audit.models import AuditLogEntry

STATUS_NEW = "New"
STATUS_IN_PROGRESS = "In Progress"
STATUS_RESOLVED = "Resolved"

FEEDBACK_STATUSES: tuple[str, ...] = (STATUS_NEW, STATUS_IN_PROGRESS, STATUS_RESOLVED)


@dataclass
class Feedback:
    """A piece of feedback submitted by a user.

    image_url is whatever URL the client supplies; this service stores the
    string and never fetches or hosts the image.

    version is the optimistic-lock counter bumped by every status change.
    submitter_name / submitter_email are read-side projections filled in by
    FeedbackStore.list_all(); they are not stored on the feedback row.

    id is None before the record is written to the database.
    """

    heading: str
    category: str
    subcategory: str
    message: str
    user_id: int
    image_url: str | None = None
    status: str = STATUS_NEW
    submitted_at: str = ""  # ISO 8601, set by store on insert
    version: int = 1
    id: int | None = None
    submitter_name: str | None = None
    submitter_email: str | None = None


@dataclass(frozen=True)
class StatusChange:
    """Outcome of FeedbackStore.update_status().

    old_status is the status this change actually replaced -- under
    concurrent updates it is the previous writer's new status, never a
    stale read.
    """

    feedback_id: int
    old_status: str
    new_status: str
    audit_entry: AuditLogEntry
