"""
feedback/store.py -- SQLAlchemy-backed persistence for feedback submissions.

Pattern: Repository + Data Mapper. FeedbackStore is the repository; the
_row_to_* functions are the mappers. Route handlers never touch SQL directly.

Status changes and deletions are audited atomically: the feedback write and
its AuditLogEntry commit in one transaction (AuditStore.append_in), so there
is never a status change without its audit entry or vice versa.

Concurrent status updates use an optimistic version check:
  1. read (status, version) outside any write transaction
  2. in one transaction: UPDATE ... WHERE id = :id AND version = :version,
     then append the audit entry
  3. if the UPDATE matched no row, another writer got there first -- re-read
     and try again
Each audit entry therefore names the status it really replaced. Reading
before the write transaction (rather than inside it) keeps SQLite writers
from deadlocking on a shared-to-reserved lock upgrade; they queue on the
write lock instead.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = FeedbackStore(engine, AuditStore(engine))
    fid = store.create(Feedback(heading="Slow app", category="Bug", subcategory="UI",
                                message="Pages take 10s to load", user_id=3))
    change = store.update_status(fid, "In Progress", performed_by=1)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from audit.models import ACTION_FEEDBACK_DELETE, ACTION_STATUS_CHANGE, AuditLogEntry
from audit.store import AuditStore
from core.database import feedback as _feedback
from core.database import users as _users
from core.errors import Conflict, InvalidArgument, NotFound, PersistenceFailure
from feedback.models import FEEDBACK_STATUSES, STATUS_NEW, Feedback, StatusChange

logger = logging.getLogger("smartfeedback.feedback")

_MAX_STATUS_ATTEMPTS = 5

_REQUIRED_FIELDS = ("heading", "category", "subcategory", "message")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class FeedbackStore:
    """Repository for Feedback entities."""

    def __init__(self, engine: Engine, audit: AuditStore) -> None:
        self.engine = engine
        self.audit = audit

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------

    def create(self, item: Feedback) -> int:
        """Insert a new feedback item and return its ID.

        status always starts at "New" and submitted_at is stamped here,
        whatever the caller put in the dataclass.
        """
        for name in _REQUIRED_FIELDS:
            if not (getattr(item, name) or "").strip():
                raise InvalidArgument(f"{name} is required.")
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _feedback.insert().values(
                        heading=item.heading,
                        category=item.category,
                        subcategory=item.subcategory,
                        message=item.message,
                        image_url=item.image_url,
                        status=STATUS_NEW,
                        submitted_at=_now_iso(),
                        user_id=item.user_id,
                        version=1,
                    )
                )
                return result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise NotFound("User not found.") from exc
        except SQLAlchemyError as exc:
            logger.exception("Failed to save feedback for user_id=%s", item.user_id)
            raise PersistenceFailure("Could not save the feedback.") from exc

    def get(self, feedback_id: int) -> Feedback | None:
        with self.engine.connect() as conn:
            row = conn.execute(_feedback.select().where(_feedback.c.id == feedback_id)).fetchone()
        return _row_to_feedback(row) if row is not None else None

    def list_for_user(self, user_id: int) -> list[Feedback]:
        """Return one user's feedback, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _feedback.select()
                .where(_feedback.c.user_id == user_id)
                .order_by(_feedback.c.submitted_at.desc(), _feedback.c.id.desc())
            ).fetchall()
        return [_row_to_feedback(r) for r in rows]

    def list_all(self) -> list[Feedback]:
        """Return every feedback item with its submitter, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(
                    _feedback,
                    _users.c.full_name.label("submitter_name"),
                    _users.c.email.label("submitter_email"),
                )
                .select_from(_feedback.join(_users, _feedback.c.user_id == _users.c.id))
                .order_by(_feedback.c.submitted_at.desc(), _feedback.c.id.desc())
            ).fetchall()
        return [_row_to_feedback(r) for r in rows]

    # ------------------------------------------------------------------
    # Admin actions (audited)
    # ------------------------------------------------------------------

    def update_status(self, feedback_id: int, new_status: str, performed_by: int) -> StatusChange:
        """Change a feedback item's status and audit it in one transaction.

        Raises:
            InvalidArgument:    new_status is not one of FEEDBACK_STATUSES.
            NotFound:           no such feedback item (or performer is not a user).
            Conflict:           lost the version race _MAX_STATUS_ATTEMPTS times.
            PersistenceFailure: any other storage error.
        """
        if new_status not in FEEDBACK_STATUSES:
            raise InvalidArgument(
                f"Invalid status {new_status!r}.",
                detail="Allowed: " + ", ".join(FEEDBACK_STATUSES),
            )
        for attempt in range(1, _MAX_STATUS_ATTEMPTS + 1):
            current = self._read_for_update(feedback_id)
            if current is None:
                raise NotFound("Feedback not found.")
            change = self._compare_and_set_status(current, new_status, performed_by)
            if change is not None:
                return change
            logger.info("Status update on feedback %s lost a race (attempt %d), retrying", feedback_id, attempt)
        raise Conflict("Feedback was modified concurrently; try again.")

    def delete(self, feedback_id: int, performed_by: int) -> AuditLogEntry:
        """Delete a feedback item and audit the deletion in one transaction."""
        current = self._read_for_update(feedback_id)
        if current is None:
            raise NotFound("Feedback not found.")
        try:
            with self.engine.begin() as conn:
                result = conn.execute(_feedback.delete().where(_feedback.c.id == feedback_id))
                if result.rowcount == 0:
                    raise NotFound("Feedback not found.")
                return self.audit.append_in(
                    conn,
                    ACTION_FEEDBACK_DELETE,
                    f"Deleted feedback ID {feedback_id} ('{current.heading}') "
                    f"submitted by {current.submitter_name or 'Unknown'}",
                    performed_by,
                    target_user_id=current.user_id,
                    feedback_id=feedback_id,
                )
        except IntegrityError as exc:
            raise NotFound("Referenced user does not exist.") from exc
        except SQLAlchemyError as exc:
            logger.exception("Failed to delete feedback %s", feedback_id)
            raise PersistenceFailure("Could not delete the feedback.") from exc

    def _read_for_update(self, feedback_id: int) -> Feedback | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_feedback, _users.c.full_name.label("submitter_name"))
                .select_from(_feedback.outerjoin(_users, _feedback.c.user_id == _users.c.id))
                .where(_feedback.c.id == feedback_id)
            ).fetchone()
        return _row_to_feedback(row) if row is not None else None

    def _compare_and_set_status(self, current: Feedback, new_status: str, performed_by: int) -> StatusChange | None:
        """One optimistic attempt. Returns None when the version moved underneath us."""
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _feedback.update()
                    .where((_feedback.c.id == current.id) & (_feedback.c.version == current.version))
                    .values(status=new_status, version=current.version + 1)
                )
                if result.rowcount == 0:
                    return None
                entry = self.audit.append_in(
                    conn,
                    ACTION_STATUS_CHANGE,
                    f"Changed status of feedback ID {current.id} from '{current.status}' to '{new_status}' "
                    f"for user {current.submitter_name or 'Unknown'}",
                    performed_by,
                    target_user_id=current.user_id,
                    feedback_id=current.id,
                )
        except IntegrityError as exc:
            raise NotFound("Referenced user does not exist.") from exc
        except SQLAlchemyError as exc:
            logger.exception("Failed to update status of feedback %s", current.id)
            raise PersistenceFailure("Could not update the feedback status.") from exc
        return StatusChange(
            feedback_id=current.id,
            old_status=current.status,
            new_status=new_status,
            audit_entry=entry,
        )

    # ------------------------------------------------------------------
    # Analytics / user management reads
    # ------------------------------------------------------------------

    def stats(self) -> dict:
        """Return {"total": n, "by_status": {...}, "by_category": {...}}.

        by_status always carries every known status (zero when unused) so
        chart series stay stable.
        """
        with self.engine.connect() as conn:
            status_rows = conn.execute(
                select(_feedback.c.status, func.count()).group_by(_feedback.c.status)
            ).fetchall()
            category_rows = conn.execute(
                select(_feedback.c.category, func.count())
                .group_by(_feedback.c.category)
                .order_by(_feedback.c.category)
            ).fetchall()
        by_status: dict[str, int] = {s: 0 for s in FEEDBACK_STATUSES}
        for status, count in status_rows:
            by_status[status] = count
        by_category = {category: count for category, count in category_rows}
        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "by_category": by_category,
        }

    def list_users_with_feedback(self) -> list[tuple[int, str, str, list[Feedback]]]:
        """Return (user_id, full_name, email, feedback newest first) for every user.

        Two queries total: users, then all feedback grouped in Python.
        """
        with self.engine.connect() as conn:
            user_rows = conn.execute(
                select(_users.c.id, _users.c.full_name, _users.c.email).order_by(_users.c.id)
            ).fetchall()
            feedback_rows = conn.execute(
                _feedback.select().order_by(_feedback.c.submitted_at.desc(), _feedback.c.id.desc())
            ).fetchall()
        by_user: dict[int, list[Feedback]] = {}
        for row in feedback_rows:
            by_user.setdefault(row.user_id, []).append(_row_to_feedback(row))
        return [(u.id, u.full_name, u.email, by_user.get(u.id, [])) for u in user_rows]


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_feedback(row) -> Feedback:
    return Feedback(
        id=row.id,
        heading=row.heading,
        category=row.category,
        subcategory=row.subcategory,
        message=row.message,
        image_url=row.image_url,
        status=row.status,
        submitted_at=row.submitted_at,
        user_id=row.user_id,
        version=row.version,
        submitter_name=getattr(row, "submitter_name", None),
        submitter_email=getattr(row, "submitter_email", None),
    )
