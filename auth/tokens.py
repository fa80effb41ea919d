"""
auth/tokens.py -- JWT encode/decode for Taskboard session tokens.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       sub (user id as a string), username, name, iat and exp. Nothing in the
       claim set is used for authorization on its own: the auth gate resolves
       sub against the credential store on every request.

  Failures raise rather than return None so the gate can report the three
  rejection reasons separately. Expiry surfaces as ExpiredToken, which is a
  subclass of InvalidToken.

  SECRET_KEY: sourced from core.config.get_settings(). The Settings class
       validates the key at startup.

Layer rule: no imports from api/, tasks/, or client/. Import from core/ is
allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from auth.models import User
from core.config import get_settings
from core.errors import ExpiredToken, InvalidToken

logger = logging.getLogger("taskboard.auth.tokens")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"


def create_access_token(user: User, expire_seconds: int) -> str:
    """Encode a signed JWT carrying the user's identity claims.

    Args:
        user:           A persisted credential record (id must be set).
        expire_seconds: Token lifetime. Callers pass one of the configured
                        lifetimes (register_token_expire_seconds or
                        login_token_expire_seconds) so the policy stays in
                        core.config rather than hidden here.
    """
    if user.id is None:
        raise ValueError("Cannot issue a token for an unsaved user")
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "username": user.username,
        "name": user.name,
        "iat": now,
        "exp": now + timedelta(seconds=expire_seconds),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and expiry and return the claims.

    Raises:
        ExpiredToken: the signature is valid but exp is in the past.
        InvalidToken: bad signature, malformed token, or no usable sub claim.
    """
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise ExpiredToken() from exc
    except JWTError as exc:
        logger.info("Rejected token: %s", exc)
        raise InvalidToken() from exc
    if not subject_id(payload):
        raise InvalidToken()
    return payload


def subject_id(payload: dict) -> int | None:
    """Return the numeric user id from the sub claim, or None if unusable."""
    sub = payload.get("sub")
    if not isinstance(sub, str) or not sub.isdigit():
        return None
    return int(sub)
