"""
core/database.py -- Shared SQLAlchemy Core schema and engine factory.

Uses SQLAlchemy Core (not ORM) so the domain dataclasses in auth/models.py,
feedback/models.py and audit/models.py remain the authoritative domain
representation. Swapping SQLite for PostgreSQL is a connection string change.

All three tables live in one MetaData because they reference each other:
audit_logs.performed_by_user_id and target_user_id point at users, and
feedback.user_id points at users. audit_logs.feedback_id is a plain integer
reference on purpose: deleting a feedback item must not touch (or be blocked
by) the immutable audit entries that mention it.

One Engine is created at startup (api/main.py lifespan or the CLI) and passed
to every store. Stores never create engines of their own.

Layer rule: core/ is the kernel. No imports from api/, auth/, audit/, or feedback/.
"""

from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Index, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("full_name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),  # stored lower-cased
    Column("hashed_password", Text, nullable=False),
    Column("gender", String(50), nullable=False, server_default=""),
    Column("is_admin", Integer, nullable=False, server_default="0"),  # boolean stored as 0/1
    Column("created_at", String(32), nullable=False),
)

feedback = Table(
    "feedback",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("heading", String(255), nullable=False),
    Column("category", String(100), nullable=False),
    Column("subcategory", String(100), nullable=False),
    Column("message", Text, nullable=False),
    Column("image_url", Text),
    Column("status", String(30), nullable=False, server_default="New"),
    Column("submitted_at", String(32), nullable=False),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("version", Integer, nullable=False, server_default="1"),  # optimistic lock counter
)

audit_logs = Table(
    "audit_logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("action_type", String(50), nullable=False),
    Column("description", Text, nullable=False, server_default=""),
    Column("timestamp", String(32), nullable=False),
    Column("performed_by_user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("target_user_id", Integer, ForeignKey("users.id")),
    Column("feedback_id", Integer),  # no FK: entries outlive deleted feedback
)

Index("ix_audit_logs_timestamp_id", audit_logs.c.timestamp, audit_logs.c.id)
Index("ix_feedback_user_id", feedback.c.user_id)


# ---------------------------------------------------------------------------
# SQLite pragmas
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. foreign_keys is off by default in SQLite,
    which would let an audit entry reference a user that does not exist.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ---------------------------------------------------------------------------
# Engine factory
# ---------------------------------------------------------------------------


def create_db_engine(db_url: str) -> Engine:
    """Create an Engine for db_url and make sure the schema exists.

    Usage:
        engine = create_db_engine("sqlite:///smartfeedback.db")
        users = UserStore(engine)
        ...
        engine.dispose()
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        # Route handlers run in FastAPI's thread pool; connections are shared
        # across threads by the pool.
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    metadata.create_all(engine)
    return engine
