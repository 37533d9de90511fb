from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from inbox.errors import Forbidden, InvalidInputData, NotFound
from inbox.integration_connections.config import get_task_creation_default_values
from inbox.models import IntegrationConnection, Task, TaskStatus, ThirdPartyItem, ThirdPartyItemKind
from inbox.tasks.types import TaskCreation, TaskCreationConfig, TaskPatch
from inbox.third_party.item import item_html_url, item_payload, marked_as_done
from inbox.third_party.sources import NotificationSource, TaskSource

if TYPE_CHECKING:
  from inbox.notifications.service import NotificationService
  from inbox.third_party.registry import ProviderRegistry
  from inbox.third_party.service import ThirdPartyItemService

logger = logging.getLogger(__name__)

# Kinds whose tasks live in a task manager; their source item is also their sink item.
SINK_ITEM_KINDS = (ThirdPartyItemKind.todoist_item.value, ThirdPartyItemKind.ticktick_item.value)
INBOX_PROJECT = "Inbox"


def _now() -> datetime:
  return datetime.now(timezone.utc)


class TaskService:
  notification_service: NotificationService
  third_party_item_service: ThirdPartyItemService

  def __init__(self, providers: ProviderRegistry) -> None:
    self.providers = providers

  async def get_task(self, db: AsyncSession, task_id: str) -> Task | None:
    res = await db.execute(select(Task).where(Task.id == task_id))
    return res.scalar_one_or_none()

  async def get_user_task(self, db: AsyncSession, task_id: str, user_id: str) -> Task:
    task = await self.get_task(db, task_id)
    if task is None:
      raise NotFound(f"Task {task_id} not found")
    if task.user_id != user_id:
      raise Forbidden(f"Task {task_id} belongs to another user")
    return task

  async def list_tasks(
    self,
    db: AsyncSession,
    user_id: str,
    *,
    status: TaskStatus | None = None,
    limit: int = 100,
    offset: int = 0,
  ) -> list[Task]:
    q = select(Task).where(Task.user_id == user_id)
    if status is not None:
      q = q.where(Task.status == status.value)
    q = q.order_by(Task.priority.asc(), Task.updated_at.desc()).limit(limit).offset(offset)
    res = await db.execute(q)
    return list(res.scalars().all())

  async def get_task_for_item(self, db: AsyncSession, item: ThirdPartyItem) -> Task | None:
    res = await db.execute(
      select(Task).where(or_(Task.source_item_id == item.id, Task.sink_item_id == item.id)).order_by(
        Task.created_at.asc()
      )
    )
    return res.scalars().first()

  async def create_task_from_third_party_item(
    self,
    db: AsyncSession,
    item: ThirdPartyItem,
    adapter: TaskSource,
    user_id: str,
  ) -> Task | None:
    """Derive the task of ``item``; an existing task is updated and its sink kept in line."""
    connection = await db.get(IntegrationConnection, item.integration_connection_id)
    creation_config = (
      get_task_creation_default_values(connection, ThirdPartyItemKind(item.kind)) if connection is not None else None
    )
    existing = await self.get_task_for_item(db, item)
    derived = await adapter.third_party_item_into_task(db, item_payload(item), item, creation_config, user_id)

    if existing is not None:
      if existing.source_item_id != item.id:
        # item is the sink of a task sourced elsewhere; only its status flows back
        return await self._apply_sink_status(db, existing, derived)
      return await self._update_task_from_source(db, existing, derived, item, user_id)

    derived.user_id = user_id
    derived.source_item_id = item.id
    derived.source_item = item
    if item.kind in SINK_ITEM_KINDS:
      derived.sink_item_id = item.id
      derived.sink_item = item
    else:
      derived.sink_item = None
    db.add(derived)
    await db.flush()
    logger.info("Created %s task %s from item %s", derived.kind, derived.id, item.source_id)

    if item.kind not in SINK_ITEM_KINDS and derived.status == TaskStatus.active:
      await self.create_sink_item_for_task(db, derived, user_id, creation_config)
    if item.kind in SINK_ITEM_KINDS and isinstance(adapter, NotificationSource):
      await self._create_inbox_task_notification(db, derived, item, adapter, user_id)
    return derived

  async def _update_task_from_source(
    self, db: AsyncSession, task: Task, derived: Task, item: ThirdPartyItem, user_id: str
  ) -> Task:
    previous_status = TaskStatus(task.status)
    new_status = TaskStatus(derived.status)
    if (
      task.sink_item is not None
      and task.sink_item_id != task.source_item_id
      and new_status != previous_status
    ):
      await self._mirror_status_on_sink(db, task, previous_status, new_status, user_id)

    task.title = derived.title
    task.body = derived.body
    task.status = derived.status
    task.completed_at = derived.completed_at
    task.priority = derived.priority
    task.due_at = derived.due_at
    task.tags = list(derived.tags or [])
    task.parent_id = derived.parent_id
    task.project = derived.project
    task.is_recurring = derived.is_recurring
    task.updated_at = derived.updated_at or _now()
    task.source_item = item
    await db.flush()

    if item.kind in SINK_ITEM_KINDS:
      adapter = self.providers.notification_source_for_item(item)
      await self._create_inbox_task_notification(db, task, item, adapter, user_id)
    return task

  async def _apply_sink_status(self, db: AsyncSession, task: Task, derived: Task) -> Task:
    if task.status != derived.status:
      task.status = derived.status
      task.completed_at = derived.completed_at
      task.updated_at = _now()
      await db.flush()
    return task

  async def _mirror_status_on_sink(
    self, db: AsyncSession, task: Task, previous: TaskStatus, new: TaskStatus, user_id: str
  ) -> None:
    sink_item = task.sink_item
    sink = self.providers.task_source_for_item(sink_item)
    if new == TaskStatus.done:
      await sink.complete_task(db, sink_item, user_id)
      await self.third_party_item_service.create_or_update_third_party_item(db, marked_as_done(sink_item))
    elif new == TaskStatus.deleted:
      await sink.delete_task(db, sink_item, user_id)
      await self.third_party_item_service.create_or_update_third_party_item(db, marked_as_done(sink_item))
    elif new == TaskStatus.active and previous == TaskStatus.done:
      await sink.uncomplete_task(db, sink_item, user_id)
    logger.info("Mirrored task %s status %s -> %s on %s sink", task.id, previous, new, sink_item.kind)

  async def _create_inbox_task_notification(
    self, db: AsyncSession, task: Task, item: ThirdPartyItem, adapter: NotificationSource, user_id: str
  ) -> None:
    if task.project != INBOX_PROJECT:
      return
    notification = await self.notification_service.create_notification_from_third_party_item(
      db, item, adapter, user_id
    )
    if notification is not None and notification.task_id is None:
      notification.task_id = task.id
      await db.flush()

  async def create_sink_item_for_task(
    self,
    db: AsyncSession,
    task: Task,
    user_id: str,
    creation_config: TaskCreationConfig | None = None,
    *,
    overwrite: bool = False,
  ) -> ThirdPartyItem | None:
    """Push ``task`` into the user's task manager and attach the resulting sink item."""
    if task.sink_item_id is not None and not overwrite:
      return task.sink_item
    sink = await self.providers.task_sink_for_user(db, user_id)
    if sink is None:
      logger.info("No task sink connected for user %s, task %s stays local", user_id, task.id)
      return None

    project_name = task.project
    if creation_config is not None and creation_config.target_project is not None:
      project_name = creation_config.target_project.name
    body = task.body
    url = item_html_url(task.source_item)
    if url and url not in body:
      body = f"{body}\n\n{url}" if body else url
    creation = TaskCreation(
      title=task.title,
      body=body,
      project_name=project_name,
      due_at=task.due_at,
      priority=task.priority,
    )
    sink_item = await sink.create_task(db, creation, user_id)
    upsert = await self.third_party_item_service.create_or_update_third_party_item(db, sink_item)
    saved = upsert.value()
    task.sink_item_id = saved.id
    task.sink_item = saved
    task.updated_at = _now()
    await db.flush()
    logger.info("Created %s sink item %s for task %s", saved.kind, saved.source_id, task.id)
    return saved

  async def patch_task(self, db: AsyncSession, task_id: str, patch: TaskPatch, user_id: str) -> Task:
    """Apply ``patch`` upstream first, then locally; an upstream failure leaves the task unchanged."""
    task = await self.get_user_task(db, task_id, user_id)
    if patch.is_empty():
      return task
    fields = patch.model_fields_set

    if "sink_item_id" in fields and patch.sink_item_id != task.sink_item_id:
      sink_item = await db.get(ThirdPartyItem, patch.sink_item_id) if patch.sink_item_id else None
      if patch.sink_item_id and (sink_item is None or sink_item.user_id != user_id):
        raise InvalidInputData(f"Sink item {patch.sink_item_id} not found")
      task.sink_item_id = patch.sink_item_id
      task.sink_item = sink_item

    target = task.sink_item or task.source_item
    adapter = self.providers.task_source_for_item(target, required=False)
    previous_status = TaskStatus(task.status)
    new_status = patch.status if "status" in fields else None

    if adapter is not None:
      if new_status is not None and new_status != previous_status:
        if new_status == TaskStatus.done:
          await adapter.complete_task(db, target, user_id)
        elif new_status == TaskStatus.deleted:
          await adapter.delete_task(db, target, user_id)
        elif new_status == TaskStatus.active and previous_status == TaskStatus.done:
          await adapter.uncomplete_task(db, target, user_id)
      if fields & {"title", "body", "due_at", "priority", "project_name"}:
        await adapter.update_task(db, target, patch, user_id)

    if new_status is not None and new_status != previous_status:
      task.status = new_status.value
      task.completed_at = _now() if new_status == TaskStatus.done else None
      if new_status in (TaskStatus.done, TaskStatus.deleted) and target is not None:
        await self.third_party_item_service.create_or_update_third_party_item(db, marked_as_done(target))
    if "title" in fields and patch.title is not None:
      task.title = patch.title
    if "body" in fields and patch.body is not None:
      task.body = patch.body
    if "due_at" in fields:
      task.due_at = patch.due_at
    if "priority" in fields and patch.priority is not None:
      task.priority = int(patch.priority)
    if "project_name" in fields and patch.project_name:
      task.project = patch.project_name
    task.updated_at = _now()
    await db.flush()
    return task
