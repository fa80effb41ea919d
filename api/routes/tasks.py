"""
api/routes/tasks.py -- Owner-scoped task CRUD routes.

Routes (summary is registered before the {task_id} routes):
  GET    /api/tasks            -- caller's tasks, newest first
  POST   /api/tasks            -- create a task
  GET    /api/tasks/summary    -- per-status counts for the caller
  PATCH  /api/tasks/{task_id}  -- selective update
  DELETE /api/tasks/{task_id}  -- delete

Every handler takes the Identity produced by the auth gate and passes its id
to TaskStore as owner_id. Nothing here reads a user id from the request body
or from token claims.
"""

from fastapi import APIRouter, Depends, Request

from api.models import MessageResponse, TaskCreate, TaskPatch, TaskResponse, TaskSummaryResponse
from auth.dependencies import get_current_identity
from auth.models import Identity
from core.errors import FieldError, NotFound, ValidationError
from tasks.models import Task
from tasks.store import TaskStore

router = APIRouter()

# Fields a PATCH may not set to null.
_NON_NULLABLE = ("title", "description", "priority", "status")


def _to_response(task: Task) -> TaskResponse:
    return TaskResponse.model_validate(
        {
            "_id": task.id,
            "title": task.title,
            "description": task.description,
            "deadline": task.deadline,
            "priority": task.priority,
            "status": task.status,
            "owner": task.owner_id,
            "createdAt": task.created_at,
            "updatedAt": task.updated_at,
        }
    )


@router.get("/tasks", response_model=list[TaskResponse])
def list_tasks(request: Request, identity: Identity = Depends(get_current_identity)) -> list[TaskResponse]:
    store: TaskStore = request.app.state.task_store
    return [_to_response(t) for t in store.list_tasks(identity.id)]


@router.post("/tasks", response_model=TaskResponse, status_code=201)
def create_task(
    request: Request,
    body: TaskCreate,
    identity: Identity = Depends(get_current_identity),
) -> TaskResponse:
    store: TaskStore = request.app.state.task_store
    task = Task(
        owner_id=identity.id,
        title=body.title,
        description=body.description,
        deadline=body.deadline,
        priority=body.priority.value,
        status=body.status.value,
    )
    task_id = store.create_task(task)
    return _to_response(store.get_task(task_id, identity.id))


@router.get("/tasks/summary", response_model=TaskSummaryResponse)
def task_summary(request: Request, identity: Identity = Depends(get_current_identity)) -> TaskSummaryResponse:
    """Counts per status for the caller.

    Response:
      total  -- number of tasks the caller owns
      counts -- {"pending": N, "in-progress": N, "completed": N}
    """
    store: TaskStore = request.app.state.task_store
    counts = store.get_status_counts(identity.id)
    return TaskSummaryResponse(total=sum(counts.values()), counts=counts)


@router.patch("/tasks/{task_id}", response_model=TaskResponse)
def update_task(
    request: Request,
    task_id: int,
    body: TaskPatch,
    identity: Identity = Depends(get_current_identity),
) -> TaskResponse:
    store: TaskStore = request.app.state.task_store
    fields = body.model_dump(exclude_unset=True)
    nulls = [FieldError(f, f"{f} cannot be null") for f in _NON_NULLABLE if f in fields and fields[f] is None]
    if nulls:
        raise ValidationError(nulls)
    for key in ("priority", "status"):
        if key in fields:
            fields[key] = fields[key].value

    if not store.update_task(task_id, identity.id, **fields):
        raise NotFound("Task not found")
    return _to_response(store.get_task(task_id, identity.id))


@router.delete("/tasks/{task_id}", response_model=MessageResponse)
def delete_task(request: Request, task_id: int, identity: Identity = Depends(get_current_identity)) -> MessageResponse:
    store: TaskStore = request.app.state.task_store
    if not store.delete_task(task_id, identity.id):
        raise NotFound("Task not found")
    return MessageResponse(message="Task deleted")
