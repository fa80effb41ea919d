"""
tasks/models.py -- Domain dataclass for task records.

Pure data container with zero logic. Ownership scoping and timestamps live
in tasks/store.py.
"""

from dataclasses import dataclass
from typing import Optional

PRIORITIES = ("low", "medium", "high")
STATUSES = ("pending", "in-progress", "completed")


@dataclass
class Task:
    """A to-do item owned by one credential record.

    owner_id references users.id by value. Deleting the user does not
    remove their tasks.

    id is None before the record is written to the database.
    """

    owner_id: int
    title: str
    description: str = ""
    deadline: Optional[str] = None  # ISO 8601 date or datetime
    priority: str = "medium"  # "low" | "medium" | "high"
    status: str = "pending"  # "pending" | "in-progress" | "completed"
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""
