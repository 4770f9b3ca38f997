"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts (the
credential store).

Pattern: Repository + Data Mapper (same as feedback/store.py and audit/store.py).
UserStore is the repository; _row_to_user is the mapper. Route and dependency
code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Emails are lower-cased before every insert and lookup, so the UNIQUE index
  on users.email is effectively case-insensitive.

Users are never deleted -- audit entries reference them by foreign key.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from audit.models import ACTION_ROLE_CHANGE, AuditLogEntry
from audit.store import AuditStore
from auth.models import ROLE_ADMIN, ROLE_USER, User
from auth.passwords import DUMMY_HASH, MAX_PASSWORD_BYTES, hash_password, needs_rehash, verify_password
from core.database import users as _users
from core.errors import DuplicateIdentity, NotFound, PersistenceFailure

logger = logging.getLogger("smartfeedback.auth")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore(engine)
        uid = store.create_user(User(full_name="Ada", email="ada@example.com",
                                     hashed_password=hash_password("S3cret!pw")))
        user = store.get_by_email("ADA@example.com")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by id."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        The existence check gives a clean DuplicateIdentity in the common
        case; the UNIQUE index still catches two concurrent registrations
        racing past it, which surface as the same error.
        """
        email = normalize_email(user.email)
        if self.get_by_email(email) is not None:
            raise DuplicateIdentity("Email already exists")
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _users.insert().values(
                        full_name=user.full_name,
                        email=email,
                        hashed_password=user.hashed_password,
                        gender=user.gender,
                        is_admin=1 if user.is_admin else 0,
                        created_at=_now_iso(),
                    )
                )
                return result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise DuplicateIdentity("Email already exists") from exc
        except SQLAlchemyError as exc:
            logger.exception("Failed to create user")
            raise PersistenceFailure("Could not save the user.") from exc

    def set_admin(self, user_id: int, is_admin: bool) -> bool:
        """Change the role flag. Returns True if a row was updated."""
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _users.update().where(_users.c.id == user_id).values(is_admin=1 if is_admin else 0)
                )
        except SQLAlchemyError as exc:
            logger.exception("Failed to set is_admin for user_id=%s", user_id)
            raise PersistenceFailure("Could not change the user's role.") from exc
        return result.rowcount > 0

    def change_role(self, user_id: int, is_admin: bool, performed_by: int, audit: AuditStore) -> AuditLogEntry:
        """Set the role flag and write a "role change" audit entry atomically.

        Raises NotFound if user_id does not exist.
        """
        target = self.get_by_id(user_id)
        if target is None:
            raise NotFound("User not found.")
        new_role = ROLE_ADMIN if is_admin else ROLE_USER
        try:
            with self.engine.begin() as conn:
                conn.execute(_users.update().where(_users.c.id == user_id).values(is_admin=1 if is_admin else 0))
                return audit.append_in(
                    conn,
                    ACTION_ROLE_CHANGE,
                    f"Changed role of user {target.full_name} from '{target.role}' to '{new_role}'",
                    performed_by,
                    target_user_id=user_id,
                )
        except IntegrityError as exc:
            raise NotFound("Referenced user does not exist.") from exc
        except SQLAlchemyError as exc:
            logger.exception("Failed to change role of user_id=%s", user_id)
            raise PersistenceFailure("Could not change the user's role.") from exc

    def update_password(self, user_id: int, hashed_password: str) -> bool:
        """Replace the stored digest. Returns True if a row was updated."""
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _users.update().where(_users.c.id == user_id).values(hashed_password=hashed_password)
                )
        except SQLAlchemyError as exc:
            logger.exception("Failed to update password hash for user_id=%s", user_id)
            raise PersistenceFailure("Could not update the password.") from exc
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Authentication (constant-time)
# ---------------------------------------------------------------------------


def authenticate(store: UserStore, email: str, password: str) -> User | None:
    """Authenticate an email/password login with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown email: bcrypt runs against DUMMY_HASH (same cost as a real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    A successful login against a legacy digest upgrades it to bcrypt before
    returning. A failed upgrade is logged and the login still succeeds; the
    legacy digest stays valid and is retried next time. Returns the User on
    success, None on any failure.
    """
    user = store.get_by_email(email)
    if user is None:
        # Equalize timing -- do NOT return early before running bcrypt
        verify_password(password, DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    if needs_rehash(user.hashed_password) and len(password.encode("utf-8")) <= MAX_PASSWORD_BYTES:
        upgraded = hash_password(password)
        try:
            store.update_password(user.id, upgraded)
        except PersistenceFailure:
            logger.exception("Legacy hash upgrade failed for user_id=%s; login proceeds", user.id)
        else:
            user.hashed_password = upgraded
            logger.info("Upgraded legacy password hash for user_id=%s", user.id)
    return user


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        full_name=row.full_name,
        email=row.email,
        hashed_password=row.hashed_password,
        gender=row.gender or "",
        is_admin=bool(row.is_admin),
        created_at=row.created_at,
    )
