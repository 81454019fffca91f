"""
tasks/store.py -- SQLAlchemy-backed persistence layer for tasks.

Uses SQLAlchemy Core (not ORM) so the Task dataclass in tasks/models.py
remains the authoritative domain representation.

Pattern: Repository + Data Mapper. TaskStore is the repository; _row_to_task
is the mapper. Route handlers never touch SQL directly.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = TaskStore()                               # SQLite default
    store = TaskStore("postgresql://user:pw@host/db") # PostgreSQL
    task_id = store.create_task(Task(title="Write report", owner_id=7))
    store.create_comment(TaskComment(content="Started", task_id=task_id, user_id=7))
    store.update_task(task_id, status="done")
    store.close()
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from tasks.models import Task, TaskComment

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'taskwarden_tasks.db'}"

_UPDATABLE_FIELDS = frozenset({"title", "description", "status", "due_date"})

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_tasks = Table(
    "tasks",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(255), nullable=False),
    Column("description", Text),
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("due_date", String(32)),
    Column("owner_id", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Index("ix_tasks_owner_id", "owner_id"),
)

_comments = Table(
    "task_comments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("content", Text, nullable=False),
    Column("task_id", Integer, nullable=False),
    Column("user_id", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Index("ix_task_comments_task_id", "task_id"),
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class TaskStore:
    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # Route handlers run in FastAPI's threadpool, so one connection
            # may be used from several threads.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    def create_task(self, task: Task) -> int:
        """Insert a new task and return its assigned database ID."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _tasks.insert().values(
                    title=task.title,
                    description=task.description,
                    status=task.status,
                    due_date=task.due_date,
                    owner_id=task.owner_id,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_task(self, task_id: int) -> Optional[Task]:
        with self.engine.connect() as conn:
            row = conn.execute(select(_tasks).where(_tasks.c.id == task_id)).fetchone()
        return _row_to_task(row) if row is not None else None

    def _filtered(self, query, owner_id: Optional[int], status: Optional[str]):
        if owner_id is not None:
            query = query.where(_tasks.c.owner_id == owner_id)
        if status is not None:
            query = query.where(_tasks.c.status == status)
        return query

    def list_tasks(
        self,
        owner_id: Optional[int] = None,
        status: Optional[str] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> list[Task]:
        """Return tasks newest first, optionally restricted to one owner and/or status."""
        query = self._filtered(select(_tasks), owner_id, status)
        query = query.order_by(_tasks.c.id.desc()).limit(limit).offset(offset)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_task(r) for r in rows]

    def count_tasks(self, owner_id: Optional[int] = None, status: Optional[str] = None) -> int:
        query = self._filtered(select(func.count()).select_from(_tasks), owner_id, status)
        with self.engine.connect() as conn:
            return conn.execute(query).scalar() or 0

    def update_task(self, task_id: int, **fields) -> bool:
        """Update title / description / status / due_date. Returns True if a row changed."""
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")
        with self.engine.connect() as conn:
            result = conn.execute(
                _tasks.update().where(_tasks.c.id == task_id).values(updated_at=_now_iso(), **fields)
            )
            conn.commit()
        return result.rowcount > 0

    def delete_task(self, task_id: int) -> bool:
        """Delete a task together with its comments."""
        with self.engine.connect() as conn:
            conn.execute(_comments.delete().where(_comments.c.task_id == task_id))
            result = conn.execute(_tasks.delete().where(_tasks.c.id == task_id))
            conn.commit()
        return result.rowcount > 0

    # -- comments ------------------------------------------------------------

    def create_comment(self, comment: TaskComment) -> int:
        """Insert a comment and return its ID. The caller checks the task exists."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _comments.insert().values(
                    content=comment.content,
                    task_id=comment.task_id,
                    user_id=comment.user_id,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_comment(self, comment_id: int) -> Optional[TaskComment]:
        with self.engine.connect() as conn:
            row = conn.execute(select(_comments).where(_comments.c.id == comment_id)).fetchone()
        return _row_to_comment(row) if row is not None else None

    def list_comments(self, task_id: int) -> list[TaskComment]:
        """Comments on one task, newest first."""
        query = select(_comments).where(_comments.c.task_id == task_id).order_by(_comments.c.id.desc())
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_comment(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_task(row) -> Task:
    return Task(
        id=row.id,
        title=row.title,
        description=row.description,
        status=row.status,
        due_date=row.due_date,
        owner_id=row.owner_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_comment(row) -> TaskComment:
    return TaskComment(
        id=row.id,
        content=row.content,
        task_id=row.task_id,
        user_id=row.user_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
