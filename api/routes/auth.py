"""
api/routes/auth.py -- Registration, login, and identity endpoints.

Routes:
  POST /api/auth/register  -- create an ordinary account (no token issued)
  POST /api/auth/login     -- email/password login; returns a bearer token
  GET  /api/auth/me        -- current identity and profile (requires auth)

Security:
  POST /login and /register are rate-limited per IP (Settings.login_rate_limit).
  @router.post sits above @limiter.limit so the registered endpoint is the
  slowapi wrapper and the limit is checked inside the route itself.
  authenticate() provides timing equalization -- use it, never inline
  get_by_email() + verify_password().
  Login failures return one uniform bad_credentials error whether the email
  is unknown or the password is wrong.
  Cache-Control: no-store on login responses.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import (
    ErrorDetail,
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    RegisterRequest,
)
from auth.dependencies import get_identity
from auth.models import Identity, User
from auth.passwords import check_password_policy, hash_password
from auth.store import UserStore, authenticate
from auth.tokens import TokenIssuer
from core.errors import DuplicateIdentity, NotFound

logger = logging.getLogger("smartfeedback.auth")

# Auth policy:
# - POST /api/auth/register: public -- self-service sign-up, always as an ordinary user
# - POST /api/auth/login:    public -- login endpoint must be unauthenticated
# - GET  /api/auth/me:       requires auth (get_identity)
router = APIRouter()


@router.post("/auth/register", response_model=MessageResponse)
@limiter.limit(login_rate_limit)
def register(request: Request, body: RegisterRequest) -> MessageResponse:
    """Register a new ordinary user.

    Policy is checked before anything is hashed: a weak password never
    reaches bcrypt. Admin rights are never granted here -- use the CLI or
    PATCH /api/admin/users/{id}/role.
    """
    user_store: UserStore = request.app.state.user_store

    check_password_policy(body.password)
    if user_store.get_by_email(body.email) is not None:
        raise DuplicateIdentity("Email already exists")

    user_id = user_store.create_user(
        User(
            full_name=body.full_name,
            email=body.email,
            hashed_password=hash_password(body.password),
            gender=body.gender,
        )
    )
    logger.info("Registered user_id=%s", user_id)
    return MessageResponse(message="User registered", id=user_id)


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(login_rate_limit)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a bearer token.

    Admin logins are audited by the TokenIssuer. If that audit write fails
    the login still succeeds.
    """
    user_store: UserStore = request.app.state.user_store
    issuer: TokenIssuer = request.app.state.token_issuer

    user = authenticate(user_store, body.email, body.password)
    if user is None:
        logger.info("Failed login attempt")
        resp = JSONResponse(
            status_code=401,
            content=ErrorResponse(
                error=ErrorDetail(code="bad_credentials", message="Invalid credentials.")
            ).model_dump(),
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    issued = issuer.issue(user)
    logger.info("Login succeeded for user_id=%s (role=%s)", user.id, user.role)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            token=issued.token,
            is_admin=user.is_admin,
            full_name=user.full_name,
            expires_at=issued.expires_at.isoformat(),
        ).model_dump(by_alias=True),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, identity: Identity = Depends(get_identity)) -> MeResponse:
    """Return identity and profile information for the caller."""
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(identity.user_id)
    if user is None:
        raise NotFound("User not found.")
    return MeResponse(
        user_id=user.id,
        full_name=user.full_name,
        email=user.email,
        gender=user.gender,
        is_admin=user.is_admin,
    )
