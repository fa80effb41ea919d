"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic beyond projections).
Mirrors tasks/models.py -- dataclasses own domain shape; stores and routes do
the work.

Layer rule: no imports from api/, tasks/, or client/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Location:
    city: str = ""
    country: str = ""

    def to_dict(self) -> dict:
        return {"city": self.city, "country": self.country}


@dataclass
class User:
    """A credential record.

    hashed_password is the bcrypt hash; the plaintext never reaches this
    object. profile_image is either the generated ui-avatars placeholder or a
    /uploads/profiles/... path written by auth.avatars.
    """

    username: str
    email: str
    name: str
    id: int | None = None
    hashed_password: str | None = None
    profile_image: str = ""
    bio: str = ""
    location: Location = field(default_factory=Location)
    last_login: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def public_profile(self) -> dict:
        """Every public field, never the secret. Keys use the wire names."""
        return {
            "_id": self.id,
            "username": self.username,
            "name": self.name or "",
            "email": self.email,
            "profileImage": self.profile_image or "",
            "location": self.location.to_dict(),
            "bio": self.bio or "",
        }


@dataclass(frozen=True)
class Identity:
    """What the auth gate hands to downstream handlers.

    This is the only trusted identity for the remainder of a request. It is
    built from a live credential record, never from token claims.
    """

    id: int
    username: str
    email: str

    @classmethod
    def from_user(cls, user: User) -> Identity:
        return cls(id=user.id, username=user.username, email=user.email)
