"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic beyond derived flags).
Dataclasses own domain shape; stores and routes do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

ROLE_ADMIN = "admin"
ROLE_USER = "user"

# Loose on purpose: one @, no whitespace, a dot in the domain part.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


@dataclass
class User:
    """A registered account.

    email is stored lower-cased so lookups are case-insensitive.
    hashed_password is a bcrypt hash (or, for accounts imported from the
    previous system, a legacy unsalted SHA-256 digest that is upgraded to
    bcrypt on the next successful login). Plaintext is never stored.
    """

    full_name: str
    email: str
    hashed_password: str
    gender: str = ""
    is_admin: bool = False
    id: int | None = None
    created_at: str | None = None

    @property
    def role(self) -> str:
        return ROLE_ADMIN if self.is_admin else ROLE_USER


@dataclass(frozen=True)
class Identity:
    """The caller behind a validated token, as seen by route handlers.

    Built from token claims only -- the gate does not hit the database.
    """

    user_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


@dataclass(frozen=True)
class IssuedToken:
    """Result of a successful TokenIssuer.issue() call."""

    token: str
    expires_at: datetime
    identity: Identity
