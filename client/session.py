"""
client/session.py -- Client-side session context.

SessionContext owns the token and the cached user snapshot. It is created
once by the caller (the CLI, a test) and passed around; there is no module
level session.

Lifecycle:
  start()                      -- load the persisted snapshot, re-verify if a token exists
  login() / register()         -- obtain a token and seed the snapshot
  verify() / update_profile()  -- merge server data into the snapshot
  logout() / clear()           -- drop token and snapshot, locally and on disk

Merge rule (merge_snapshot): a server value replaces the cached one only when
it is non-empty. An empty string, None, or a mapping whose values are all
empty falls back to what was cached, so a verify never blanks a known name.

Claims decoded from the token on the client are a display hint only and are
never trusted for anything else.
"""

import json
import logging
import mimetypes
from pathlib import Path
from typing import Optional

from jose import JWTError, jwt

from client.api import ApiClient, ApiError
from client.session_store import SessionStore

logger = logging.getLogger("taskboard.client.session")


def _is_empty(value) -> bool:
    if value is None or value == "":
        return True
    if isinstance(value, dict):
        return all(_is_empty(v) for v in value.values())
    return False


def merge_snapshot(cached: Optional[dict], verified: Optional[dict]) -> dict:
    """Union of the cached snapshot and a server-verified user.

    Keys present only in cached are kept. Nested mappings (location) merge
    key by key with the same rule.
    """
    merged = dict(cached or {})
    for key, value in (verified or {}).items():
        old = merged.get(key)
        if isinstance(value, dict) and isinstance(old, dict):
            merged[key] = merge_snapshot(old, value)
        elif not _is_empty(value) or key not in merged:
            merged[key] = value
    return merged


def claims_hint(token: str) -> dict:
    """Display claims read from the token without verifying the signature."""
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return {}
    hint = {k: claims[k] for k in ("username", "name") if claims.get(k)}
    sub = claims.get("sub")
    if isinstance(sub, str) and sub.isdigit():
        hint["_id"] = int(sub)
    return hint


class SessionContext:
    def __init__(self, api: ApiClient, store: SessionStore) -> None:
        self.api = api
        self.store = store
        self._token: Optional[str] = None
        self._user: Optional[dict] = None
        api.token_provider = lambda: self._token
        api.on_unauthorized = self.clear

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def user(self) -> Optional[dict]:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None

    def display_claims(self) -> dict:
        return claims_hint(self._token) if self._token else {}

    def start(self) -> bool:
        """Restore the persisted session. Returns True when it is still valid."""
        self._token, self._user = self.store.load()
        if self._token is None:
            self._user = None
            return False
        return self.verify()

    def login(self, email: str, password: str) -> dict:
        resp = self.api.login(email, password)
        self._set(resp["token"], merge_snapshot(None, resp.get("user")))
        logger.info("Logged in as %s", self._user.get("username"))
        return self._user

    def register(self, username: str, email: str, password: str, name: str) -> dict:
        """Create the account, then verify to replace the claim-seeded snapshot.

        Raises ApiError if the server rejects the registration or the new
        token fails verification.
        """
        resp = self.api.register(username, email, password, name)
        token = resp["token"]
        self._set(token, claims_hint(token))
        if not self.verify():
            raise ApiError(401, "Registration succeeded but the new session could not be verified")
        return self._user

    def verify(self) -> bool:
        """Re-verify the token and merge the server's user into the snapshot.

        Any failure (401, other HTTP error, network) is a hard logout.
        """
        if self._token is None:
            return False
        try:
            resp = self.api.verify()
        except ApiError as e:
            logger.info("Session verification failed (%s); logging out", e.code or e.status_code)
            self.clear()
            return False
        self._set(self._token, merge_snapshot(self._user, resp.get("user")))
        return True

    def update_profile(
        self,
        name: Optional[str] = None,
        username: Optional[str] = None,
        bio: Optional[str] = None,
        location: Optional[dict] = None,
        image_path: Optional[Path] = None,
    ) -> dict:
        fields = {k: v for k, v in (("name", name), ("username", username), ("bio", bio)) if v}
        if location:
            fields["location"] = json.dumps(location)

        if image_path is None:
            user = self.api.update_profile(fields)
        else:
            path = Path(image_path)
            content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
            with path.open("rb") as fh:
                user = self.api.update_profile(fields, image=(path.name, fh, content_type))

        self._set(self._token, merge_snapshot(self._user, user))
        return self._user

    def logout(self) -> None:
        self.clear()

    def clear(self) -> None:
        self._token = None
        self._user = None
        self.store.clear()

    def _set(self, token: Optional[str], user: Optional[dict]) -> None:
        if token is None:
            # A 401 during the request already cleared the session.
            return
        self._token = token
        self._user = user
        self.store.save(token, user)
