from __future__ import annotations

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from inbox.deps import get_current_user, get_db, get_services
from inbox.models import IntegrationProviderKind, NotificationSourceKind, NotificationStatus, User
from inbox.schemas import (
  NotificationOut,
  NotificationPatchIn,
  SyncResultOut,
  TaskCreationIn,
  TaskOut,
  WebPageIn,
  notification_out,
  sync_result_out,
  task_out,
)
from inbox.services import Services
from inbox.web_page.models import WebPage

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationOut])
async def list_notifications(
  status: list[NotificationStatus] | None = Query(default=None),
  kind: list[NotificationSourceKind] | None = Query(default=None),
  includeSnoozed: bool = False,
  taskId: str | None = None,
  limit: int = Query(default=100, ge=1, le=500),
  offset: int = Query(default=0, ge=0),
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  services: Services = Depends(get_services),
) -> list[NotificationOut]:
  notifications = await services.notifications.list_notifications(
    db,
    actor.id,
    statuses=status,
    include_snoozed=includeSnoozed,
    kinds=kind,
    task_id=taskId,
    limit=limit,
    offset=offset,
  )
  return [notification_out(n) for n in notifications]


@router.post("/sync", response_model=list[SyncResultOut])
async def sync_notifications(
  source: IntegrationProviderKind | None = None,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  services: Services = Depends(get_services),
) -> list[SyncResultOut]:
  results = await services.sync.sync_notifications(db, source, actor.id)
  return [sync_result_out(r) for r in results]


@router.post("/web-pages", response_model=NotificationOut)
async def create_web_page_notification(
  payload: WebPageIn,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  services: Services = Depends(get_services),
) -> NotificationOut:
  adapter = services.adapter(IntegrationProviderKind.api)
  item = await adapter.build_web_page_item(
    db, WebPage(url=payload.url, title=payload.title, favicon=payload.favicon), actor.id
  )
  upsert = await services.third_party_items.create_or_update_third_party_item(db, item)
  notification = await services.notifications.create_notification_from_third_party_item(
    db, upsert.value(), adapter, actor.id
  )
  await db.commit()
  return notification_out(notification)


@router.get("/{notification_id}", response_model=NotificationOut)
async def get_notification(
  notification_id: str,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  services: Services = Depends(get_services),
) -> NotificationOut:
  return notification_out(await services.notifications.get_user_notification(db, notification_id, actor.id))


@router.patch("/{notification_id}", response_model=NotificationOut)
async def patch_notification(
  notification_id: str,
  payload: NotificationPatchIn,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  services: Services = Depends(get_services),
) -> NotificationOut:
  notification = await services.notifications.patch_notification(db, notification_id, payload.to_patch(), actor.id)
  await db.commit()
  return notification_out(notification)


@router.post("/{notification_id}/task", response_model=TaskOut)
async def create_task_from_notification(
  notification_id: str,
  payload: TaskCreationIn | None = Body(default=None),
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  services: Services = Depends(get_services),
) -> TaskOut:
  task = await services.notifications.create_task_from_notification(
    db, notification_id, actor.id, payload.to_creation() if payload is not None else None
  )
  await db.commit()
  return task_out(task)
