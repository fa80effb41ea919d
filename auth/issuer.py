"""
auth/issuer.py -- Registration and login: the two places tokens are issued.

Both flows end in an IssuedSession (token + the persisted User). Routes turn
that into the HTTP response; the public projection never includes the hash.

Timing equalization:
  authenticate() always runs bcrypt, against DUMMY_HASH when the email is
  unknown, so response time does not reveal whether an account exists. Both
  failure paths raise the identical InvalidCredentials.

last_login:
  Registration writes it with the record. Login stamps it after the password
  check; a failure there is logged and the login still succeeds.

Layer rule: no imports from api/, tasks/, or client/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.avatars import default_avatar_url
from auth.models import User
from auth.passwords import DUMMY_HASH, verify_password
from auth.store import UserStore
from auth.tokens import create_access_token
from auth.validation import normalize_email, validate_registration
from core.config import get_settings
from core.errors import DuplicateIdentity, InvalidCredentials

logger = logging.getLogger("taskboard.auth.issuer")


@dataclass(frozen=True)
class IssuedSession:
    token: str
    user: User


def register(store: UserStore, *, username: str, email: str, password: str, name: str) -> IssuedSession:
    """Create a credential record and issue its first token.

    Raises:
        ValidationError:   a field violates its length/format rule.
        DuplicateIdentity: the username or email is already registered, either
                           by the pre-check or by the unique index.
    """
    fields = validate_registration(username, email, password, name)

    if store.email_taken(fields["email"]) or store.username_taken(fields["username"]):
        raise DuplicateIdentity()

    user = User(
        username=fields["username"],
        email=fields["email"],
        name=fields["name"],
        profile_image=default_avatar_url(fields["name"]),
        last_login=datetime.now(timezone.utc).isoformat(),
    )
    try:
        user.id = store.create_user(user, fields["password"])
    except IntegrityError as exc:
        # A concurrent registration won the race past the pre-check.
        raise DuplicateIdentity() from exc

    logger.info("Registered user id=%s username=%s", user.id, user.username)
    token = create_access_token(user, get_settings().register_token_expire_seconds)
    return IssuedSession(token=token, user=user)


def authenticate(store: UserStore, email: str, password: str) -> User:
    """Return the matching user or raise InvalidCredentials.

    Always runs bcrypt whether or not the email exists.
    """
    user = store.get_by_email(normalize_email(email or ""))
    if user is None or not user.hashed_password:
        verify_password(password or "", DUMMY_HASH)
        raise InvalidCredentials()
    if not verify_password(password or "", user.hashed_password):
        raise InvalidCredentials()
    return user


def login(store: UserStore, *, email: str, password: str) -> IssuedSession:
    """Check credentials and issue a login token."""
    user = authenticate(store, email, password)
    try:
        store.update_last_login(user.id)
    except SQLAlchemyError:
        logger.warning("Could not record last_login for user id=%s", user.id, exc_info=True)
    logger.info("Login for user id=%s", user.id)
    token = create_access_token(user, get_settings().login_token_expire_seconds)
    return IssuedSession(token=token, user=user)
