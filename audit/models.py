"""
audit/models.py -- Domain dataclass for audit log entries.

Pure data container, zero logic. AuditStore owns creation; nothing owns
mutation because there is none.
"""

from __future__ import annotations

from dataclasses import dataclass

ACTION_PRIVILEGED_LOGIN = "privileged login"
ACTION_STATUS_CHANGE = "status change"
ACTION_FEEDBACK_DELETE = "feedback delete"
ACTION_ROLE_CHANGE = "role change"


@dataclass(frozen=True)
class AuditLogEntry:
    """Immutable record of a privileged action.

    Records are never updated or deleted -- only inserted. frozen=True keeps
    the in-memory copy honest too.

    timestamp is ISO 8601 UTC with microseconds, stamped by the store at
    append time. performed_by_name is a read-side projection (joined from
    users) and is None on freshly appended entries.
    """

    action_type: str
    description: str
    timestamp: str
    performed_by_user_id: int
    target_user_id: int | None = None
    feedback_id: int | None = None
    id: int | None = None
    performed_by_name: str | None = None
