"""
api/routes/auth.py -- Authentication and profile REST endpoints.

Routes:
  POST /api/auth/register      -- create account; 201 {token}
  POST /api/auth/login         -- password login; {token, user}
  GET  /api/auth/verify        -- re-verify a token; {user} (requires auth)
  GET  /api/auth/me            -- caller's public profile (requires auth)
  GET  /api/auth/user/{id}     -- any user's public profile (requires auth)
  PUT  /api/auth/profile       -- multipart profile patch + avatar upload (requires auth)

Security:
  POST /register and POST /login are rate-limited per IP (LOGIN_RATE_LIMIT,
  REGISTER_RATE_LIMIT).
  auth.issuer.authenticate() provides timing equalization -- never inline
  get_by_email() + verify_password() here.
  Cache-Control: no-store on every response that carries a token.
  Errors are raised as core.errors types; api/main.py renders them.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter
from api.models import LoginRequest, LoginResponse, RegisterRequest, TokenResponse, UserProfile, VerifyResponse
from auth import issuer
from auth.avatars import AvatarStore
from auth.dependencies import get_current_identity
from auth.models import Identity, User
from auth.store import UserStore
from auth.validation import validate_profile_patch
from core.config import get_settings
from core.errors import DuplicateIdentity, FieldError, NotFound, UnknownSubject, ValidationError

# Auth policy:
# - POST /api/auth/register:    public
# - POST /api/auth/login:       public
# - GET  /api/auth/verify:      requires auth (get_current_identity)
# - GET  /api/auth/me:          requires auth
# - GET  /api/auth/user/{id}:   requires auth
# - PUT  /api/auth/profile:     requires auth; only ever patches the caller
router = APIRouter()

_settings = get_settings()


def _profile(user: User) -> UserProfile:
    return UserProfile.model_validate(user.public_profile())


def _no_store(content: dict, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=content)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.register_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=TokenResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a credential record and return its first token.

    The response carries only the token; clients read display claims from it
    and call GET /auth/verify for the authoritative profile.
    """
    user_store: UserStore = request.app.state.user_store
    session = issuer.register(
        user_store,
        username=body.username,
        email=body.email,
        password=body.password,
        name=body.name,
    )
    return _no_store(TokenResponse(token=session.token).model_dump(), status_code=201)


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Unknown email and wrong password produce the same 401 body.
    """
    missing = [FieldError(f, f"{f.capitalize()} is required") for f in ("email", "password") if not getattr(body, f)]
    if missing:
        raise ValidationError(missing, message="Email and password are required")

    user_store: UserStore = request.app.state.user_store
    session = issuer.login(user_store, email=body.email, password=body.password)
    content = LoginResponse(token=session.token, user=_profile(session.user)).model_dump(by_alias=True)
    return _no_store(content)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/verify", response_model=VerifyResponse)
def verify(request: Request, identity: Identity = Depends(get_current_identity)) -> VerifyResponse:
    """Confirm the token is still good and return the current public profile."""
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(identity.id)
    if user is None:
        raise UnknownSubject()
    return VerifyResponse(user=_profile(user))


@router.get("/auth/me", response_model=UserProfile)
def me(request: Request, identity: Identity = Depends(get_current_identity)) -> UserProfile:
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(identity.id)
    if user is None:
        raise NotFound("User not found")
    return _profile(user)


@router.get("/auth/user/{user_id}", response_model=UserProfile)
def get_user(request: Request, user_id: int, identity: Identity = Depends(get_current_identity)) -> UserProfile:
    """Public profile of any user. The hash is never part of the projection."""
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(user_id)
    if user is None:
        raise NotFound("User not found")
    return _profile(user)


@router.put("/auth/profile", response_model=UserProfile)
async def update_profile(
    request: Request,
    name: Optional[str] = Form(default=None),
    username: Optional[str] = Form(default=None),
    bio: Optional[str] = Form(default=None),
    location: Optional[str] = Form(default=None),
    profile_image: Optional[UploadFile] = File(default=None, alias="profileImage"),
    identity: Identity = Depends(get_current_identity),
) -> UserProfile:
    """Patch the caller's profile from a multipart form.

    Blank fields are ignored. location is a JSON object string with
    city/country keys; a key left out keeps its stored value. A new
    profileImage replaces the stored avatar and the previous uploaded file
    (never the placeholder) is deleted once the record update has succeeded.
    """
    user_store: UserStore = request.app.state.user_store
    avatars: AvatarStore = request.app.state.avatars

    user = user_store.get_by_id(identity.id)
    if user is None:
        raise NotFound("User not found")

    patch = validate_profile_patch(
        name=name, username=username, bio=bio, location=location, current_location=user.location
    )
    new_username = patch.get("username")
    if new_username and new_username != user.username and user_store.username_taken(new_username, exclude_id=user.id):
        raise DuplicateIdentity("Username is already taken")

    new_image: str | None = None
    if profile_image is not None and profile_image.filename:
        new_image = await avatars.save(profile_image, user.id)

    try:
        updated = user_store.update_profile(user.id, profile_image=new_image, **patch)
    except IntegrityError as exc:
        avatars.remove(new_image)
        raise DuplicateIdentity("Username is already taken") from exc
    except Exception:
        avatars.remove(new_image)
        raise
    if not updated:
        avatars.remove(new_image)
        raise NotFound("User not found")

    if new_image is not None and user.profile_image != new_image:
        avatars.remove(user.profile_image)

    refreshed = user_store.get_by_id(user.id)
    if refreshed is None:
        raise NotFound("User not found")
    return _profile(refreshed)
