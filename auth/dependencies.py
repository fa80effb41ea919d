"""
auth/dependencies.py -- The auth gate and its FastAPI Depends() helpers.

verify_authorization() is the gate itself and has no FastAPI dependency: it
takes the raw Authorization value and a UserStore and either returns an
Identity or raises one of

  MissingToken    -- no authorization value at all
  InvalidToken    -- bad signature / malformed (ExpiredToken is a subclass)
  UnknownSubject  -- valid token whose user no longer exists

get_current_identity() adapts it to FastAPI. There is no caching: every
protected request decodes the token and reads the credential store again.

Layer rule: no imports from api/, tasks/, or client/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import Request

from auth.models import Identity, User
from auth.store import UserStore
from auth.tokens import decode_access_token, subject_id
from core.errors import MissingToken, UnknownSubject

logger = logging.getLogger("taskboard.auth.gate")


def extract_token(authorization: str | None) -> str | None:
    """Return the token from an Authorization value, with or without a scheme.

    "Bearer <token>" (any case) and a bare "<token>" are both accepted.
    Returns None when nothing usable is present.
    """
    if not authorization:
        return None
    parts = authorization.strip().split()
    if not parts:
        return None
    if len(parts) == 1:
        return parts[0]
    if parts[0].lower() == "bearer":
        return parts[1]
    return parts[-1]


def resolve_user(store: UserStore, authorization: str | None) -> User:
    """Run the gate and return the full credential record behind the token."""
    token = extract_token(authorization)
    if token is None:
        raise MissingToken()
    payload = decode_access_token(token)
    user_id = subject_id(payload)
    user = store.get_by_id(user_id)
    if user is None:
        logger.info("Token subject id=%s no longer exists", user_id)
        raise UnknownSubject()
    return user


def verify_authorization(store: UserStore, authorization: str | None) -> Identity:
    """The auth gate: authorization value in, trusted Identity out."""
    return Identity.from_user(resolve_user(store, authorization))


def get_current_identity(request: Request) -> Identity:
    """FastAPI dependency guarding a protected route.

    Use as:
        @router.get("/protected")
        def route(identity: Identity = Depends(get_current_identity)): ...

    The resulting Identity is also stored on request.state.identity.
    """
    user_store: UserStore = request.app.state.user_store
    identity = verify_authorization(user_store, request.headers.get("Authorization"))
    request.state.identity = identity
    return identity
