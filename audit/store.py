"""
audit/store.py -- Append-only persistence for AuditLogEntry records.

Pattern: Repository + Data Mapper. AuditStore is the repository;
_row_to_entry is the mapper. There is deliberately no update or delete
method: the audit trail is append-only.

Two ways to append:
  append()     -- opens its own transaction. Used for standalone events such
                  as a privileged login.
  append_in()  -- writes through a connection the caller already holds, so
                  the entry commits or rolls back together with the caller's
                  own change (feedback status update, feedback delete).

Timestamps come from the injected clock at the moment of the call and are
never client-supplied. Read order is timestamp DESC, id DESC -- the id breaks
ties deterministically when two entries share a timestamp.

Security: all queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/, auth/, or feedback/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from audit.models import AuditLogEntry
from core.database import audit_logs as _audit_logs
from core.database import users as _users
from core.errors import InvalidArgument, NotFound, PersistenceFailure

logger = logging.getLogger("smartfeedback.audit")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuditStore:
    """Repository for AuditLogEntry records.

    Usage:
        audit = AuditStore(engine)
        entry = audit.append("privileged login", "Admin Ada logged in.", performed_by=1)
        latest = audit.list_all(limit=50)
    """

    def __init__(self, engine: Engine, clock: Clock = utc_now) -> None:
        self.engine = engine
        self._clock = clock

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append(
        self,
        action_type: str,
        description: str,
        performed_by: int | None,
        target_user_id: int | None = None,
        feedback_id: int | None = None,
    ) -> AuditLogEntry:
        """Append one entry in its own transaction and return it.

        Raises:
            InvalidArgument:    performed_by missing or action_type empty.
            NotFound:           performed_by / target_user_id is not a user.
            PersistenceFailure: any other storage error.
        """
        try:
            with self.engine.begin() as conn:
                return self.append_in(conn, action_type, description, performed_by, target_user_id, feedback_id)
        except IntegrityError as exc:
            raise NotFound("Referenced user does not exist.") from exc
        except SQLAlchemyError as exc:
            logger.exception("Audit append failed (action_type=%s)", action_type)
            raise PersistenceFailure("Could not write the audit log entry.") from exc

    def append_in(
        self,
        conn: Connection,
        action_type: str,
        description: str,
        performed_by: int | None,
        target_user_id: int | None = None,
        feedback_id: int | None = None,
    ) -> AuditLogEntry:
        """Append one entry through the caller's connection (caller commits).

        Storage errors propagate as SQLAlchemy exceptions so the caller's
        transaction context can roll back everything it wrote.
        """
        if performed_by is None:
            raise InvalidArgument("performed_by is required for an audit entry.")
        if not action_type or not action_type.strip():
            raise InvalidArgument("action_type is required for an audit entry.")
        timestamp = self._clock().astimezone(timezone.utc).isoformat(timespec="microseconds")
        result = conn.execute(
            _audit_logs.insert().values(
                action_type=action_type,
                description=description or "",
                timestamp=timestamp,
                performed_by_user_id=performed_by,
                target_user_id=target_user_id,
                feedback_id=feedback_id,
            )
        )
        entry = AuditLogEntry(
            id=result.inserted_primary_key[0],
            action_type=action_type,
            description=description or "",
            timestamp=timestamp,
            performed_by_user_id=performed_by,
            target_user_id=target_user_id,
            feedback_id=feedback_id,
        )
        logger.info(
            "Audit: %s by user_id=%s (target_user_id=%s, feedback_id=%s)",
            action_type,
            performed_by,
            target_user_id,
            feedback_id,
        )
        return entry

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_all(self, limit: int | None = None, offset: int = 0) -> list[AuditLogEntry]:
        """Return entries newest first (timestamp DESC, id DESC).

        limit=None returns the whole log. limit/offset page through it
        without changing the order.
        """
        if limit is not None and limit < 1:
            raise InvalidArgument("limit must be at least 1.")
        if offset < 0:
            raise InvalidArgument("offset must not be negative.")
        query = (
            select(_audit_logs, _users.c.full_name.label("performed_by_name"))
            .select_from(_audit_logs.outerjoin(_users, _audit_logs.c.performed_by_user_id == _users.c.id))
            .order_by(_audit_logs.c.timestamp.desc(), _audit_logs.c.id.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        if offset:
            query = query.offset(offset)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_entry(r) for r in rows]

    def list_by_action(self, action_type: str) -> list[AuditLogEntry]:
        """Return entries of one action type, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _audit_logs.select()
                .where(_audit_logs.c.action_type == action_type)
                .order_by(_audit_logs.c.timestamp.desc(), _audit_logs.c.id.desc())
            ).fetchall()
        return [_row_to_entry(r) for r in rows]

    def count(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_audit_logs)).scalar()
        return result or 0


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_entry(row) -> AuditLogEntry:
    return AuditLogEntry(
        id=row.id,
        action_type=row.action_type,
        description=row.description,
        timestamp=row.timestamp,
        performed_by_user_id=row.performed_by_user_id,
        target_user_id=row.target_user_id,
        feedback_id=row.feedback_id,
        performed_by_name=getattr(row, "performed_by_name", None),
    )
