"""
auth/store.py -- SQLAlchemy Core persistence layer for credential records.

Pattern: Repository + Data Mapper (same as tasks/store.py).
UserStore is the repository; _row_to_user is the mapper. Route and issuer
code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  The plaintext password only passes through create_user(), which hashes it
  before the INSERT. No read method returns anything but the hash.

Uniqueness:
  username and email carry UNIQUE indexes. The issuer pre-checks with
  username_taken()/email_taken(), but two concurrent registrations can both
  pass the pre-check. The index is the real enforcement: create_user() and
  update_profile() raise sqlalchemy.exc.IntegrityError, and callers map that
  to DuplicateIdentity.

Layer rule: no imports from api/, tasks/, or client/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.models import Location, User
from auth.passwords import hash_password

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(20), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(50), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("profile_image", Text, nullable=False, server_default=""),
    Column("bio", Text, nullable=False, server_default=""),
    Column("city", String(50), nullable=False, server_default=""),
    Column("country", String(50), nullable=False, server_default=""),
    Column("last_login", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for credential records.

    Usage:
        store = UserStore("sqlite:///taskboard.db")
        uid = store.create_user(User(username="alice", email="a@example.com", name="Alice"), "secret1")
        user = store.get_by_email("a@example.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            return False
        return True

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User, password: str) -> int:
        """Hash the password, insert the record and return its database ID.

        The hash is computed here, once, at write time. Raises
        sqlalchemy.exc.IntegrityError if the username or email already exists.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    email=user.email,
                    name=user.name,
                    hashed_password=hash_password(password),
                    profile_image=user.profile_image,
                    bio=user.bio,
                    city=user.location.city,
                    country=user.location.country,
                    last_login=user.last_login,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def update_profile(
        self,
        user_id: int,
        *,
        name: str | None = None,
        username: str | None = None,
        bio: str | None = None,
        location: Location | None = None,
        profile_image: str | None = None,
    ) -> bool:
        """Patch the given profile fields; None means "leave unchanged".

        Returns True if a row was updated, False if user_id was not found.
        Raises IntegrityError if a new username collides with another record.
        """
        values: dict = {}
        if name is not None:
            values["name"] = name
        if username is not None:
            values["username"] = username
        if bio is not None:
            values["bio"] = bio
        if location is not None:
            values["city"] = location.city
            values["country"] = location.country
        if profile_image is not None:
            values["profile_image"] = profile_image
        if not values:
            return self.get_by_id(user_id) is not None
        values["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
            conn.commit()
        return result.rowcount > 0

    def update_last_login(self, user_id: int) -> None:
        """Stamp the current UTC timestamp as last_login for the given user."""
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=_now_iso()))
            conn.commit()

    def delete_user(self, user_id: int) -> bool:
        """Permanently delete a credential record. Returns True if deleted.

        No HTTP route calls this. Tasks owned by the user are left in place:
        owner_id is a reference by value with no cascade.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by normalised (lower-case) email."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive)."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def count_users(self) -> int:
        """Return the number of credential records."""
        with self.engine.connect() as conn:
            count = conn.execute(select(func.count()).select_from(_users)).scalar()
        return count or 0

    def username_taken(self, username: str, exclude_id: int | None = None) -> bool:
        return self._exists(_users.c.username == username, exclude_id)

    def email_taken(self, email: str, exclude_id: int | None = None) -> bool:
        return self._exists(_users.c.email == email, exclude_id)

    def _exists(self, clause, exclude_id: int | None) -> bool:
        query = select(func.count()).select_from(_users).where(clause)
        if exclude_id is not None:
            query = query.where(_users.c.id != exclude_id)
        with self.engine.connect() as conn:
            count = conn.execute(query).scalar()
        return (count or 0) > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        name=row.name,
        hashed_password=row.hashed_password,
        profile_image=row.profile_image or "",
        bio=row.bio or "",
        location=Location(city=row.city or "", country=row.country or ""),
        last_login=row.last_login,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
