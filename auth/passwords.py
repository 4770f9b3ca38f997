"""
auth/passwords.py -- Password policy, hashing, and verification.

Security design decisions:
  Hashing: bcrypt used directly (no passlib wrapper). Each hash carries its
       own random salt, so two accounts with the same password never share
       a digest, and the cost factor makes offline brute force expensive.

  Legacy digests: accounts imported from the previous system carry
       base64(SHA-256(password)) with no salt. verify_password() still
       accepts them (compared with hmac.compare_digest) so those users can
       log in; needs_rehash() tells the login flow to replace the digest
       with a bcrypt hash straight away.

  Policy: check_password_policy() runs before hash_password() in every
       caller. A weak password never reaches bcrypt and never produces a
       stored digest.

  Length: bcrypt only reads the first 72 bytes of its input, and bcrypt 5.x
       raises instead of truncating. The policy rejects anything longer so
       the limit surfaces as a WeakCredential rather than a 500.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import re

import bcrypt

from core.errors import WeakCredential

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_BYTES = 72
PASSWORD_SYMBOLS = "!@#$%^&*()_+[]{}|;':\",.<>?/\\`~"

# bcrypt hashes look like $2b$12$<53 chars>; anything else is treated as legacy.
_BCRYPT_RE = re.compile(r"^\$2[abxy]\$\d{2}\$[./A-Za-z0-9]{53}$")


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


def password_policy_violations(plain: str) -> list[str]:
    """Return a human-readable list of unmet policy rules (empty when strong)."""
    problems: list[str] = []
    if len(plain) < MIN_PASSWORD_LENGTH:
        problems.append(f"at least {MIN_PASSWORD_LENGTH} characters")
    if len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES:
        problems.append(f"at most {MAX_PASSWORD_BYTES} bytes")
    if not any(ch.isupper() for ch in plain):
        problems.append("an uppercase letter")
    if not any(ch.islower() for ch in plain):
        problems.append("a lowercase letter")
    if not any(ch.isdigit() for ch in plain):
        problems.append("a number")
    if not any(ch in PASSWORD_SYMBOLS for ch in plain):
        problems.append("a symbol")
    return problems


def check_password_policy(plain: str) -> None:
    """Raise WeakCredential if the password fails the strength policy."""
    problems = password_policy_violations(plain)
    if problems:
        raise WeakCredential(
            "Password must be at least 8 characters, include uppercase, lowercase, number, and symbol.",
            detail="Missing: " + ", ".join(problems),
        )


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def legacy_hash(plain: str) -> str:
    """base64(SHA-256(plain)) -- the unsalted digest format of imported accounts."""
    return base64.b64encode(hashlib.sha256(plain.encode("utf-8")).digest()).decode("ascii")


def needs_rehash(hashed: str) -> bool:
    """True when the stored digest is not a bcrypt hash and should be replaced."""
    return not _BCRYPT_RE.match(hashed)


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the stored digest.

    Never raises for a wrong password or a malformed digest -- both are a
    plain False to the caller.
    """
    if needs_rehash(hashed):
        return hmac.compare_digest(legacy_hash(plain).encode("ascii"), hashed.encode("utf-8"))
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Over-long input (bcrypt 5.x) or a corrupted hash.
        return False


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. authenticate() always runs bcrypt, even for an
# unknown email, so response time does not reveal which emails are registered.
DUMMY_HASH: str = hash_password("smartfeedback_timing_dummy")
