"""
tasks/models.py -- Domain dataclasses for tasks and their comments.

Pure data containers with zero logic. Persistence lives in tasks/store.py;
who may read or change a task is decided by auth/authorization.py against
owner_id.
"""

from dataclasses import dataclass
from typing import Optional

TASK_STATUSES = ("pending", "in_progress", "done")


@dataclass
class Task:
    """A unit of work owned by exactly one user.

    id is None before the record is written to the database.
    """

    title: str
    owner_id: int
    description: Optional[str] = None
    status: str = "pending"  # "pending" | "in_progress" | "done"
    due_date: Optional[str] = None  # ISO 8601
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""


@dataclass
class TaskComment:
    """A note left on a task. user_id is the author, always the caller who posted it."""

    content: str
    task_id: int
    user_id: int
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""
