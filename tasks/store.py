"""
tasks/store.py -- SQLAlchemy-backed persistence layer for task records.

Uses SQLAlchemy Core (not ORM) so the dataclass in tasks/models.py remains
the authoritative domain representation.

Pattern: Repository + Data Mapper. TaskStore is the repository; _row_to_task
is the mapper. Route handlers never touch SQL directly.

Ownership: every read and write takes owner_id and puts it in the WHERE
clause. A task id belonging to someone else behaves exactly like a missing
one, so callers cannot discover other users' records.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = TaskStore("sqlite:///taskboard.db")
    task_id = store.create_task(Task(owner_id=1, title="Write report"))
    store.update_task(task_id, owner_id=1, status="completed")
    tasks = store.list_tasks(owner_id=1)
    store.close()
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from tasks.models import STATUSES, Task

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_tasks = Table(
    "tasks",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("owner_id", Integer, nullable=False, index=True),
    Column("title", String(200), nullable=False),
    Column("description", Text, nullable=False, server_default=""),
    Column("deadline", String(32)),
    Column("priority", String(10), nullable=False, server_default="medium"),
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# Columns a PATCH may touch. owner_id and timestamps are never client-writable.
_MUTABLE_FIELDS = frozenset({"title", "description", "deadline", "priority", "status"})


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class TaskStore:
    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            return False
        return True

    def create_task(self, task: Task) -> int:
        """Insert a new task and return its assigned database ID."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _tasks.insert().values(
                    owner_id=task.owner_id,
                    title=task.title,
                    description=task.description,
                    deadline=task.deadline,
                    priority=task.priority,
                    status=task.status,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_task(self, task_id: int, owner_id: int) -> Optional[Task]:
        """Return the task if it exists and belongs to owner_id, else None."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _tasks.select().where((_tasks.c.id == task_id) & (_tasks.c.owner_id == owner_id))
            ).fetchone()
        return _row_to_task(row) if row is not None else None

    def list_tasks(self, owner_id: int) -> list[Task]:
        """Return all tasks for owner_id, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _tasks.select()
                .where(_tasks.c.owner_id == owner_id)
                .order_by(_tasks.c.created_at.desc(), _tasks.c.id.desc())
            ).fetchall()
        return [_row_to_task(r) for r in rows]

    def update_task(self, task_id: int, owner_id: int, **fields) -> bool:
        """Patch mutable fields on one of owner_id's tasks.

        Unknown field names raise ValueError rather than being silently
        dropped. Returns True if a row was updated, False if the task does not
        exist or belongs to another owner.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown task fields: {sorted(unknown)!r}")
        if not fields:
            return self.get_task(task_id, owner_id) is not None
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _tasks.update().where((_tasks.c.id == task_id) & (_tasks.c.owner_id == owner_id)).values(**fields)
            )
            conn.commit()
        return result.rowcount > 0

    def delete_task(self, task_id: int, owner_id: int) -> bool:
        """Delete one of owner_id's tasks. Returns True if a row was removed."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _tasks.delete().where((_tasks.c.id == task_id) & (_tasks.c.owner_id == owner_id))
            )
            conn.commit()
        return result.rowcount > 0

    def get_status_counts(self, owner_id: int) -> dict[str, int]:
        """Return {status: count} for owner_id, with every known status present."""
        stmt = (
            select(_tasks.c.status, func.count())
            .where(_tasks.c.owner_id == owner_id)
            .group_by(_tasks.c.status)
        )
        counts: dict[str, int] = {s: 0 for s in STATUSES}
        with self.engine.connect() as conn:
            for status, count in conn.execute(stmt):
                counts[status] = count
        return counts

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_task(row) -> Task:
    return Task(
        id=row.id,
        owner_id=row.owner_id,
        title=row.title,
        description=row.description or "",
        deadline=row.deadline,
        priority=row.priority,
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
