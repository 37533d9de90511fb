from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from inbox.deps import get_current_user, get_db, get_services
from inbox.errors import UnsupportedAction
from inbox.models import IntegrationProviderKind, TaskStatus, User
from inbox.schemas import (
  ProjectSummaryOut,
  SyncResultOut,
  TaskOut,
  TaskPatchIn,
  project_summary_out,
  sync_result_out,
  task_out,
)
from inbox.services import Services

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("", response_model=list[TaskOut])
async def list_tasks(
  status: TaskStatus | None = None,
  limit: int = Query(default=100, ge=1, le=500),
  offset: int = Query(default=0, ge=0),
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  services: Services = Depends(get_services),
) -> list[TaskOut]:
  tasks = await services.tasks.list_tasks(db, actor.id, status=status, limit=limit, offset=offset)
  return [task_out(t) for t in tasks]


@router.post("/sync", response_model=list[SyncResultOut])
async def sync_tasks(
  source: IntegrationProviderKind | None = None,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  services: Services = Depends(get_services),
) -> list[SyncResultOut]:
  results = await services.sync.sync_tasks(db, source, actor.id)
  return [sync_result_out(r) for r in results]


@router.get("/projects/search", response_model=list[ProjectSummaryOut])
async def search_projects(
  matches: str = Query(default="", max_length=200),
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  services: Services = Depends(get_services),
) -> list[ProjectSummaryOut]:
  sink = await services.providers.task_sink_for_user(db, actor.id)
  if sink is None:
    raise UnsupportedAction("No task management integration is connected")
  return [project_summary_out(p) for p in await sink.search_projects(db, matches, actor.id)]


@router.get("/{task_id}", response_model=TaskOut)
async def get_task(
  task_id: str,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  services: Services = Depends(get_services),
) -> TaskOut:
  return task_out(await services.tasks.get_user_task(db, task_id, actor.id))


@router.patch("/{task_id}", response_model=TaskOut)
async def patch_task(
  task_id: str,
  payload: TaskPatchIn,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  services: Services = Depends(get_services),
) -> TaskOut:
  task = await services.tasks.patch_task(db, task_id, payload.to_patch(), actor.id)
  await db.commit()
  return task_out(task)
