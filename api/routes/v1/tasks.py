"""
api/routes/v1/tasks.py -- Task CRUD routes.

Routes:
  GET    /tasks             -- list tasks (own tasks; admin/manager see everyone's)
  POST   /tasks             -- create a task owned by the caller
  GET    /tasks/{task_id}   -- task detail   (owner or admin)
  PUT    /tasks/{task_id}   -- update a task (owner or admin)
  DELETE /tasks/{task_id}   -- delete a task (owner or admin)
  POST   /tasks/{task_id}/comments -- comment on a task (any authenticated user)

Every route requires authentication. Single-task routes add an ownership
check through require_owner("task"), which resolves task_id via the
resource lookup on app.state and short-circuits with 404 (missing) or 403
(not the owner) before the handler body runs.
Comments only need an authenticated caller and an existing task; the author
is always the caller.

Handlers are plain `def`: the stores are synchronous, so FastAPI runs them
in its threadpool instead of blocking the event loop.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from api.errors import api_error
from api.models import (
    CommentCreate,
    CommentResponse,
    TaskCreate,
    TaskListResponse,
    TaskResponse,
    TaskStatusEnum,
    TaskUpdate,
)
from auth.authorization import authorize
from auth.dependencies import get_request_context, require_owner
from auth.models import RequestContext, Role
from tasks.models import Task, TaskComment
from tasks.store import TaskStore

router = APIRouter()

# Roles that may see tasks belonging to other users in list views.
_OVERSEER_ROLES = frozenset({Role.admin, Role.manager})


@router.get("/tasks", response_model=TaskListResponse)
def list_tasks(
    request: Request,
    status: Optional[TaskStatusEnum] = None,
    owner_id: Optional[int] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    ctx: RequestContext = Depends(get_request_context),
) -> TaskListResponse:
    """Return one page of tasks.

    Callers outside admin/manager only ever see their own tasks; owner_id is
    ignored for them.
    """
    store: TaskStore = request.app.state.task_store
    if not authorize(ctx.identity, _OVERSEER_ROLES).ok:
        owner_id = ctx.identity.id

    status_value = status.value if status is not None else None
    tasks = store.list_tasks(owner_id=owner_id, status=status_value, limit=limit, offset=(page - 1) * limit)
    return TaskListResponse(
        tasks=[TaskResponse.from_task(t) for t in tasks],
        total=store.count_tasks(owner_id=owner_id, status=status_value),
        page=page,
        limit=limit,
    )


@router.post("/tasks", response_model=TaskResponse, status_code=201)
def create_task(
    request: Request,
    body: TaskCreate,
    ctx: RequestContext = Depends(get_request_context),
) -> TaskResponse:
    """Create a task. The owner is always the caller, never taken from the body."""
    store: TaskStore = request.app.state.task_store
    task_id = store.create_task(
        Task(
            title=body.title,
            description=body.description,
            status=body.status.value,
            due_date=body.due_date,
            owner_id=ctx.identity.id,
        )
    )
    return TaskResponse.from_task(store.get_task(task_id))


@router.get("/tasks/{task_id}", response_model=TaskResponse)
def get_task(
    request: Request,
    task_id: int,
    ctx: RequestContext = Depends(require_owner("task")),
) -> TaskResponse:
    """Task detail with its comments, newest first."""
    store: TaskStore = request.app.state.task_store
    task = _existing(store, task_id)
    return TaskResponse.from_task(task, comments=store.list_comments(task_id))


@router.put("/tasks/{task_id}", response_model=TaskResponse)
def update_task(
    request: Request,
    task_id: int,
    body: TaskUpdate,
    ctx: RequestContext = Depends(require_owner("task")),
) -> TaskResponse:
    """Apply the supplied fields; omitted fields are left unchanged."""
    store: TaskStore = request.app.state.task_store
    updates = body.model_dump(exclude_unset=True, exclude_none=True)
    if "status" in updates:
        updates["status"] = updates["status"].value
    if not updates:
        raise api_error(400, "no_changes", "No fields to update.")
    store.update_task(task_id, **updates)
    return TaskResponse.from_task(_existing(store, task_id))


@router.delete("/tasks/{task_id}", status_code=204)
def delete_task(
    request: Request,
    task_id: int,
    ctx: RequestContext = Depends(require_owner("task")),
) -> Response:
    store: TaskStore = request.app.state.task_store
    store.delete_task(task_id)
    return Response(status_code=204)


@router.post("/tasks/{task_id}/comments", response_model=CommentResponse, status_code=201)
def create_comment(
    request: Request,
    task_id: int,
    body: CommentCreate,
    ctx: RequestContext = Depends(get_request_context),
) -> CommentResponse:
    """Add a comment to any existing task. The author is the caller."""
    store: TaskStore = request.app.state.task_store
    _existing(store, task_id)
    comment_id = store.create_comment(TaskComment(content=body.content, task_id=task_id, user_id=ctx.identity.id))
    return CommentResponse.from_comment(store.get_comment(comment_id))


def _existing(store: TaskStore, task_id: int) -> Task:
    # Behind require_owner this only trips on a concurrent delete.
    task = store.get_task(task_id)
    if task is None:
        raise api_error(404, "not_found", "Task not found.")
    return task
