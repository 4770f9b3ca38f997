"""
tests/test_tokens.py -- Unit tests for TokenIssuer and AuthorizationGate.

Covers:
  - Issued token carries user_id and role; the gate returns the same Identity
  - Expiry boundary against an injected clock: valid at exp-1, invalid at exp and after
  - Wrong signing key, malformed token, empty token -> Unauthenticated
  - Role checks: admin satisfies everything, user does not satisfy admin (Forbidden)
  - Admin issuance writes exactly one "privileged login" entry; ordinary users none
  - A failing audit write does not fail issuance
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from jose import jwt

from audit.models import ACTION_PRIVILEGED_LOGIN
from auth.models import ROLE_ADMIN, ROLE_USER, User
from auth.tokens import AuthorizationGate, TokenConfig, TokenIssuer, role_satisfies
from core.errors import Forbidden, PersistenceFailure, Unauthenticated

CONFIG = TokenConfig(secret_key="unit-test-signing-key-" + "s" * 32, expire_seconds=600)


@pytest.fixture
def issuer(audit_store, clock) -> TokenIssuer:
    return TokenIssuer(CONFIG, audit_store, clock=clock)


@pytest.fixture
def gate(clock) -> AuthorizationGate:
    return AuthorizationGate(CONFIG, clock=clock)


class TestIssueAndValidate:
    def test_round_trip_identity(self, issuer, gate, plain_user) -> None:
        issued = issuer.issue(plain_user)
        identity = gate.authorize(issued.token)
        assert identity.user_id == plain_user.id
        assert identity.role == ROLE_USER
        assert identity == issued.identity

    def test_validation_is_idempotent(self, issuer, gate, plain_user) -> None:
        token = issuer.issue(plain_user).token
        assert gate.authorize(token) == gate.authorize(token)

    def test_expires_at_is_issue_time_plus_lifetime(self, issuer, clock, plain_user) -> None:
        issued = issuer.issue(plain_user)
        assert issued.expires_at == clock.now.replace(microsecond=0) + timedelta(seconds=600)

    def test_claims(self, issuer, plain_user) -> None:
        token = issuer.issue(plain_user).token
        claims = jwt.get_unverified_claims(token)
        assert claims["sub"] == str(plain_user.id)
        assert claims["user_id"] == plain_user.id
        assert claims["role"] == ROLE_USER
        assert claims["name"] == plain_user.full_name

    def test_unsaved_user_cannot_get_a_token(self, issuer) -> None:
        with pytest.raises(ValueError):
            issuer.issue(User(full_name="Ghost", email="ghost@example.com", hashed_password="x"))


class TestExpiry:
    def test_valid_one_second_before_expiry(self, issuer, gate, clock, plain_user) -> None:
        token = issuer.issue(plain_user).token
        clock.advance(seconds=599)
        assert gate.authorize(token).user_id == plain_user.id

    def test_invalid_at_expiry(self, issuer, gate, clock, plain_user) -> None:
        token = issuer.issue(plain_user).token
        clock.advance(seconds=600)
        with pytest.raises(Unauthenticated):
            gate.authorize(token)

    def test_invalid_after_expiry(self, issuer, gate, clock, plain_user) -> None:
        token = issuer.issue(plain_user).token
        clock.advance(seconds=601)
        with pytest.raises(Unauthenticated):
            gate.authorize(token)


class TestRejection:
    def test_wrong_key(self, issuer, clock, plain_user) -> None:
        token = issuer.issue(plain_user).token
        other = AuthorizationGate(TokenConfig(secret_key="another-signing-key-" + "o" * 32), clock=clock)
        with pytest.raises(Unauthenticated):
            other.authorize(token)

    @pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
    def test_malformed(self, gate, token: str) -> None:
        with pytest.raises(Unauthenticated):
            gate.authorize(token)

    def test_missing_role_claim(self, gate, clock) -> None:
        exp = int(clock.now.timestamp()) + 60
        token = jwt.encode({"user_id": 1, "exp": exp}, CONFIG.secret_key, algorithm="HS256")
        with pytest.raises(Unauthenticated):
            gate.authorize(token)

    def test_unknown_role_claim(self, gate, clock) -> None:
        exp = int(clock.now.timestamp()) + 60
        token = jwt.encode({"user_id": 1, "role": "root", "exp": exp}, CONFIG.secret_key, algorithm="HS256")
        with pytest.raises(Unauthenticated):
            gate.authorize(token)

    def test_rejection_message_is_generic(self, gate) -> None:
        with pytest.raises(Unauthenticated) as exc_info:
            gate.authorize("not-a-jwt")
        assert exc_info.value.message == "Authentication required."


class TestRoles:
    def test_role_satisfies(self) -> None:
        assert role_satisfies(ROLE_ADMIN, ROLE_ADMIN)
        assert role_satisfies(ROLE_ADMIN, ROLE_USER)
        assert role_satisfies(ROLE_USER, ROLE_USER)
        assert role_satisfies(ROLE_USER, None)
        assert not role_satisfies(ROLE_USER, ROLE_ADMIN)

    def test_user_token_forbidden_for_admin(self, issuer, gate, plain_user) -> None:
        token = issuer.issue(plain_user).token
        with pytest.raises(Forbidden):
            gate.authorize(token, required_role=ROLE_ADMIN)

    def test_admin_token_accepted_for_admin(self, issuer, gate, admin_user) -> None:
        token = issuer.issue(admin_user).token
        assert gate.authorize(token, required_role=ROLE_ADMIN).is_admin


class TestPrivilegedLoginAudit:
    def test_admin_issuance_writes_one_entry(self, issuer, audit_store, admin_user) -> None:
        issuer.issue(admin_user)
        entries = audit_store.list_by_action(ACTION_PRIVILEGED_LOGIN)
        assert len(entries) == 1
        assert entries[0].performed_by_user_id == admin_user.id
        assert admin_user.full_name in entries[0].description

    def test_user_issuance_writes_nothing(self, issuer, audit_store, plain_user) -> None:
        issuer.issue(plain_user)
        assert audit_store.count() == 0

    def test_audit_failure_does_not_block_issuance(self, gate, clock, admin_user) -> None:
        failing_audit = MagicMock()
        failing_audit.append.side_effect = PersistenceFailure("disk full")
        issued = TokenIssuer(CONFIG, failing_audit, clock=clock).issue(admin_user)
        assert gate.authorize(issued.token).user_id == admin_user.id
        failing_audit.append.assert_called_once()
