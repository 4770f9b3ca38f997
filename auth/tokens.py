"""
auth/tokens.py -- JWT issuance and validation (Token Issuer + Authorization Gate).

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       sub (user id as string), user_id, role, name, iat and exp. There is no
       server-side token store: a token is valid until it expires, and logout
       is the client discarding it.

  Expiry: checked here against the injected clock rather than inside
       jose.jwt.decode(), so the boundary is exact and testable. A token is
       valid while now < exp. No leeway.

  Key handling: TokenConfig is built once from Settings at startup and
       injected into TokenIssuer and AuthorizationGate. Nothing in this module
       reads configuration at import time.

  Failure reporting: every rejection raises Unauthenticated with the same
       generic message. The specific reason goes to the server log only.

Layer rule: no imports from api/ or feedback/. audit/ is used to record
privileged logins.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from audit.models import ACTION_PRIVILEGED_LOGIN
from audit.store import AuditStore
from auth.models import ROLE_ADMIN, ROLE_USER, Identity, IssuedToken, User
from core.config import Settings
from core.errors import FeedbackAppError, Forbidden, Unauthenticated

logger = logging.getLogger("smartfeedback.auth")

Clock = Callable[[], datetime]

_ROLES = {ROLE_ADMIN, ROLE_USER}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TokenConfig:
    """Signing contract shared by the issuer and the gate."""

    secret_key: str
    algorithm: str = "HS256"
    expire_seconds: int = 3600

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenConfig":
        return cls(secret_key=settings.secret_key, expire_seconds=settings.token_expire_seconds)


# ---------------------------------------------------------------------------
# Token Issuer
# ---------------------------------------------------------------------------


class TokenIssuer:
    """Mints signed, time-bounded tokens for users whose password was verified.

    Issuing a token for an admin also appends exactly one "privileged login"
    audit entry. A failed audit write is logged and swallowed: the user is
    already authenticated and the login must still succeed.
    """

    def __init__(self, config: TokenConfig, audit: AuditStore, clock: Clock = _utc_now) -> None:
        self._config = config
        self._audit = audit
        self._clock = clock

    def issue(self, user: User) -> IssuedToken:
        if user.id is None:
            raise ValueError("Cannot issue a token for an unsaved user.")
        now = self._clock().astimezone(timezone.utc).replace(microsecond=0)
        expires_at = now + timedelta(seconds=self._config.expire_seconds)
        payload = {
            "sub": str(user.id),
            "user_id": user.id,
            "role": user.role,
            "name": user.full_name,
            "iat": now,
            "exp": expires_at,
        }
        token = jwt.encode(payload, self._config.secret_key, algorithm=self._config.algorithm)

        if user.is_admin:
            try:
                self._audit.append(
                    ACTION_PRIVILEGED_LOGIN,
                    f"Admin {user.full_name} logged in.",
                    performed_by=user.id,
                )
            except FeedbackAppError:
                logger.exception("Privileged login audit failed for user_id=%s; login proceeds", user.id)

        return IssuedToken(token=token, expires_at=expires_at, identity=Identity(user_id=user.id, role=user.role))


# ---------------------------------------------------------------------------
# Authorization Gate
# ---------------------------------------------------------------------------


def role_satisfies(role: str, required_role: str | None) -> bool:
    """admin satisfies every requirement; user satisfies only "user"."""
    if required_role is None or role == ROLE_ADMIN:
        return True
    return role == required_role


class AuthorizationGate:
    """Validates bearer tokens. Stateless: same token in, same Identity out."""

    def __init__(self, config: TokenConfig, clock: Clock = _utc_now) -> None:
        self._config = config
        self._clock = clock

    def decode(self, token: str) -> dict:
        """Verify signature, required claims, and expiry. Returns the claims.

        Raises Unauthenticated on any failure.
        """
        if not token:
            raise Unauthenticated(detail="missing token")
        try:
            payload = jwt.decode(
                token,
                self._config.secret_key,
                algorithms=[self._config.algorithm],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            logger.info("Rejected token: %s", exc)
            raise Unauthenticated(detail="invalid token") from exc

        exp = payload.get("exp")
        user_id = payload.get("user_id")
        role = payload.get("role")
        if not isinstance(exp, (int, float)) or not isinstance(user_id, int) or role not in _ROLES:
            logger.info("Rejected token: missing or malformed claims")
            raise Unauthenticated(detail="invalid claims")
        if self._clock().timestamp() >= exp:
            logger.info("Rejected token: expired for user_id=%s", user_id)
            raise Unauthenticated(detail="expired token")
        return payload

    def authorize(self, token: str, required_role: str | None = None) -> Identity:
        """Return the caller's Identity or raise Unauthenticated / Forbidden."""
        payload = self.decode(token)
        identity = Identity(user_id=payload["user_id"], role=payload["role"])
        if not role_satisfies(identity.role, required_role):
            raise Forbidden()
        return identity
