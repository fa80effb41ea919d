"""
auth/validation.py -- Field rules for credential records.

The credential store owns these rules; the issuer and the profile route call
them before any write. Every check collects FieldError entries rather than
failing on the first problem so the client can show all messages at once.

Location input is a tagged union. normalize_location() is the single place
that turns whatever the client sent into a Location:

  None / ""                         -> None (field absent, keep stored value)
  Mapping with only city/country    -> Location (missing key keeps the stored part,
                                       null clears it)
  JSON string encoding that mapping -> Location
  anything else                     -> ValidationError

Unknown keys and non-string values are rejected rather than guessed at.

Layer rule: no imports from api/, tasks/, or client/.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import Any

from auth.models import Location
from core.errors import FieldError, ValidationError

USERNAME_MIN = 3
USERNAME_MAX = 20
NAME_MIN = 2
NAME_MAX = 50
PASSWORD_MIN = 6
# bcrypt only hashes the first 72 bytes and 5.x refuses longer input outright.
PASSWORD_MAX_BYTES = 72
BIO_MAX = 500
LOCATION_PART_MAX = 50

_USERNAME_RE = re.compile(r"^[A-Za-z0-9_]+$")
_EMAIL_RE = re.compile(r"^[\w.+-]+@[\w-]+(\.[\w-]+)*\.[A-Za-z]{2,}$")
_LOCATION_KEYS = frozenset({"city", "country"})


# ---------------------------------------------------------------------------
# Normalisers
# ---------------------------------------------------------------------------


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Single-field checks -- each returns a list so callers can extend()
# ---------------------------------------------------------------------------


def check_username(username: str) -> list[FieldError]:
    if not username:
        return [FieldError("username", "Username is required")]
    if len(username) < USERNAME_MIN:
        return [FieldError("username", f"Username must be at least {USERNAME_MIN} characters long")]
    if len(username) > USERNAME_MAX:
        return [FieldError("username", f"Username cannot exceed {USERNAME_MAX} characters")]
    if not _USERNAME_RE.match(username):
        return [FieldError("username", "Username can only contain letters, numbers, and underscores")]
    return []


def check_email(email: str) -> list[FieldError]:
    if not email or not _EMAIL_RE.match(email):
        return [FieldError("email", "Please include a valid email")]
    return []


def check_name(name: str) -> list[FieldError]:
    if not name:
        return [FieldError("name", "Name is required")]
    if len(name) < NAME_MIN:
        return [FieldError("name", f"Name must be at least {NAME_MIN} characters long")]
    if len(name) > NAME_MAX:
        return [FieldError("name", f"Name cannot exceed {NAME_MAX} characters")]
    return []


def check_password(password: str) -> list[FieldError]:
    if not password or len(password) < PASSWORD_MIN:
        return [FieldError("password", f"Password must be {PASSWORD_MIN} or more characters")]
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        return [FieldError("password", f"Password cannot exceed {PASSWORD_MAX_BYTES} bytes")]
    return []


def check_bio(bio: str) -> list[FieldError]:
    if len(bio) > BIO_MAX:
        return [FieldError("bio", f"Bio cannot exceed {BIO_MAX} characters")]
    return []


# ---------------------------------------------------------------------------
# Location
# ---------------------------------------------------------------------------


def normalize_location(raw: Any, current: Location | None = None) -> Location | None:
    """Return the canonical Location for a client-supplied value.

    Returns None when the value is absent (None or blank string). Inside a
    mapping, a missing key keeps that part of `current` and an explicit null
    clears it, so {"city": "Berlin"} moves city without touching country.
    Raises ValidationError for every shape that is not listed in the module
    docstring.
    """
    if raw is None:
        return None
    if isinstance(raw, str):
        if not raw.strip():
            return None
        try:
            raw = json.loads(raw)
        except (ValueError, RecursionError) as exc:
            raise ValidationError.single("location", "Invalid location format") from exc
    if not isinstance(raw, Mapping):
        raise ValidationError.single("location", "Invalid location format")

    unknown = set(raw) - _LOCATION_KEYS
    if unknown:
        raise ValidationError.single("location", f"Unknown location fields: {', '.join(sorted(unknown))}")

    base = current or Location()
    parts: dict[str, str] = base.to_dict()
    errors: list[FieldError] = []
    for key in ("city", "country"):
        if key not in raw:
            continue
        value = raw[key]
        if value is None:
            parts[key] = ""
            continue
        if not isinstance(value, str):
            errors.append(FieldError(f"location.{key}", f"{key.capitalize()} must be a string"))
            continue
        value = value.strip()
        if len(value) > LOCATION_PART_MAX:
            errors.append(
                FieldError(f"location.{key}", f"{key.capitalize()} name cannot exceed {LOCATION_PART_MAX} characters")
            )
        parts[key] = value
    if errors:
        raise ValidationError(errors)
    return Location(city=parts["city"], country=parts["country"])


# ---------------------------------------------------------------------------
# Aggregate validators
# ---------------------------------------------------------------------------


def validate_registration(username: str, email: str, password: str, name: str) -> dict:
    """Validate and normalise registration fields.

    Returns the cleaned values. Raises ValidationError listing every
    problem found.
    """
    cleaned = {
        "username": (username or "").strip(),
        "email": normalize_email(email or ""),
        "password": password or "",
        "name": (name or "").strip(),
    }
    errors: list[FieldError] = []
    errors.extend(check_username(cleaned["username"]))
    errors.extend(check_email(cleaned["email"]))
    errors.extend(check_password(cleaned["password"]))
    errors.extend(check_name(cleaned["name"]))
    if errors:
        raise ValidationError(errors)
    return cleaned


def validate_profile_patch(
    name: str | None = None,
    username: str | None = None,
    bio: str | None = None,
    location: Any = None,
    current_location: Location | None = None,
) -> dict:
    """Build a selective patch from optional profile fields.

    Blank values count as absent and are left out of the patch, so a stored
    field is never cleared by an empty form input. Returns a dict whose keys
    are a subset of name, username, bio, location. current_location is the
    stored value that a partial location mapping is merged onto.
    """
    patch: dict = {}
    errors: list[FieldError] = []

    if name is not None and name.strip():
        patch["name"] = name.strip()
        errors.extend(check_name(patch["name"]))
    if username is not None and username.strip():
        patch["username"] = username.strip()
        errors.extend(check_username(patch["username"]))
    if bio is not None and bio.strip():
        patch["bio"] = bio.strip()
        errors.extend(check_bio(patch["bio"]))
    try:
        parsed = normalize_location(location, current_location)
    except ValidationError as exc:
        errors.extend(exc.errors)
    else:
        if parsed is not None:
            patch["location"] = parsed

    if errors:
        raise ValidationError(errors)
    return patch
