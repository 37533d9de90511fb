from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from inbox.cache import Cache, user_scoped_key
from inbox.config import settings
from inbox.errors import UnsupportedAction
from inbox.http import ProviderApiError, ProviderAuth
from inbox.integration_connections.config import TickTickContext
from inbox.integration_connections.service import IntegrationConnectionService
from inbox.models import (
  IntegrationProviderKind,
  Notification,
  NotificationSourceKind,
  NotificationStatus,
  Task,
  TaskSourceKind,
  TaskStatus,
  ThirdPartyItem,
  ThirdPartyItemKind,
)
from inbox.tasks.types import ProjectSummary, TaskCreation, TaskCreationConfig, TaskPatch, format_due_date, parse_due_date
from inbox.third_party.item import build_item
from inbox.ticktick.client import (
  ticktick_auth,
  ticktick_complete_task,
  ticktick_create_project,
  ticktick_create_task,
  ticktick_delete_task,
  ticktick_list_project_tasks,
  ticktick_list_projects,
  ticktick_update_task,
)
from inbox.ticktick.models import INBOX_PROJECT, NO_PROJECT, TickTickItem, TickTickItemPriority, TickTickProject

logger = logging.getLogger(__name__)

# The inbox is not part of the project list but can be read with this id
INBOX_PROJECT_ID = "inbox"


def _ticktick_date(value: date | datetime) -> str:
  if not isinstance(value, datetime):
    value = datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
  return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S+0000")


def _due_fields(due_at: str | None) -> dict[str, Any]:
  due = parse_due_date(due_at)
  if due is None:
    return {}
  return {"dueDate": _ticktick_date(due), "isAllDay": not isinstance(due, datetime)}


class TickTickService:
  provider_kind = IntegrationProviderKind.ticktick
  notification_source_kind = NotificationSourceKind.ticktick
  task_source_kind = TaskSourceKind.ticktick

  def __init__(
    self,
    integration_connections: IntegrationConnectionService,
    cache: Cache,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
  ) -> None:
    self.integration_connections = integration_connections
    self.cache = cache
    self.transport = transport

  async def _auth(self, db: AsyncSession, user_id: str, action: str) -> tuple[ProviderAuth, str]:
    token, connection = await self.integration_connections.require_access_token(db, self.provider_kind, user_id, action)
    return ticktick_auth(token, self.transport), connection.id

  def third_party_item_source_kind(self) -> ThirdPartyItemKind:
    return ThirdPartyItemKind.ticktick_item

  def is_sync_incremental(self) -> bool:
    # The open API has no change feed
    return False

  async def fetch_items(
    self, db: AsyncSession, user_id: str, last_sync_completed_at: datetime | None
  ) -> list[ThirdPartyItem]:
    auth, connection_id = await self._auth(db, user_id, "fetch TickTick tasks")
    projects = await self.list_projects(auth, user_id)
    names = {p.id: p.name for p in projects}
    tasks: list[TickTickItem] = []
    for project_id in [INBOX_PROJECT_ID, *names]:
      for raw in await ticktick_list_project_tasks(auth=auth, project_id=project_id):
        task = TickTickItem.model_validate(raw)
        task.project_name = self._project_name(names, task.project_id)
        tasks.append(task)
    await self.integration_connections.update_integration_connection_context(
      db, connection_id, TickTickContext(last_sync_at=datetime.now(timezone.utc))
    )
    logger.info("Fetched %s TickTick tasks across %s projects", len(tasks), len(projects) + 1)
    return [self._build_item(t, user_id, connection_id) for t in tasks]

  def _build_item(self, task: TickTickItem, user_id: str, connection_id: str) -> ThirdPartyItem:
    return build_item(
      source_id=task.id,
      payload=task,
      user_id=user_id,
      integration_connection_id=connection_id,
      created_at=task.created_time,
      updated_at=task.modified_time or task.created_time,
    )

  def _project_name(self, names: dict[str, str], project_id: str) -> str:
    if project_id.startswith(INBOX_PROJECT_ID):
      return INBOX_PROJECT
    return names.get(project_id, NO_PROJECT)

  async def list_projects(self, auth: ProviderAuth, user_id: str) -> list[TickTickProject]:
    key = user_scoped_key(user_id, "ticktick", "projects")
    raw = await self.cache.get(key)
    if raw is None:
      raw = [p for p in await ticktick_list_projects(auth=auth) if not p.get("closed")]
      await self.cache.set(key, raw, settings.cache_ttl_projects_seconds)
    return [TickTickProject.model_validate(p) for p in raw]

  async def _find_or_create_project(self, auth: ProviderAuth, user_id: str, name: str) -> TickTickProject:
    if name == INBOX_PROJECT:
      return TickTickProject(id=INBOX_PROJECT_ID, name=INBOX_PROJECT)
    for project in await self.list_projects(auth, user_id):
      if project.name == name:
        return project
    created = TickTickProject.model_validate(await ticktick_create_project(auth=auth, name=name))
    await self.cache.delete_prefix(user_scoped_key(user_id, "ticktick", "projects"))
    logger.info("Created TickTick project %s", name)
    return created

  async def get_or_create_project(self, db: AsyncSession, project_name: str, user_id: str) -> ProjectSummary:
    auth, _ = await self._auth(db, user_id, "create a TickTick project")
    project = await self._find_or_create_project(auth, user_id, project_name)
    return ProjectSummary(source_id=project.id, name=project.name)

  async def search_projects(self, db: AsyncSession, matches: str, user_id: str) -> list[ProjectSummary]:
    found = await self.integration_connections.find_access_token(db, self.provider_kind, user_id)
    if found is None:
      return []
    auth = ticktick_auth(found[0], self.transport)
    needle = matches.lower()
    return [
      ProjectSummary(source_id=p.id, name=p.name)
      for p in await self.list_projects(auth, user_id)
      if needle in p.name.lower()
    ]

  async def create_task(self, db: AsyncSession, creation: TaskCreation, user_id: str) -> ThirdPartyItem:
    auth, connection_id = await self._auth(db, user_id, "create a TickTick task")
    fields: dict[str, Any] = {
      "title": creation.title,
      "content": creation.body or "",
      "priority": int(TickTickItemPriority.from_task_priority(creation.priority)),
      **_due_fields(creation.due_at),
    }
    project_name = INBOX_PROJECT
    if creation.project_name:
      project = await self._find_or_create_project(auth, user_id, creation.project_name)
      fields["projectId"] = project.id
      project_name = project.name
    task = TickTickItem.model_validate(await ticktick_create_task(auth=auth, fields=fields))
    task.project_name = project_name
    logger.info("Created TickTick task %s in project %s", task.id, project_name)
    return self._build_item(task, user_id, connection_id)

  async def third_party_item_into_task(
    self,
    db: AsyncSession,
    payload: TickTickItem,
    item: ThirdPartyItem,
    task_creation_config: TaskCreationConfig | None,
    user_id: str,
  ) -> Task:
    project = payload.project_name
    if project is None:
      auth, _ = await self._auth(db, user_id, "read TickTick projects")
      names = {p.id: p.name for p in await self.list_projects(auth, user_id)}
      project = self._project_name(names, payload.project_id)
    due_at = None
    if payload.due_date is not None:
      due_at = payload.due_date.date().isoformat() if payload.all_day else format_due_date(payload.due_date)
    now = datetime.now(timezone.utc).replace(microsecond=0)
    return Task(
      title=payload.title,
      body=payload.content or payload.desc or "",
      status=(TaskStatus.done if payload.is_completed() else TaskStatus.active).value,
      completed_at=payload.completed_time,
      priority=int(payload.priority.task_priority()),
      due_at=due_at,
      tags=list(payload.tags),
      parent_id=None,
      project=project,
      is_recurring=bool(payload.repeat_flag),
      kind=self.task_source_kind.value,
      user_id=user_id,
      created_at=payload.created_time or now,
      updated_at=item.updated_at,
    )

  def third_party_item_into_notification(
    self,
    payload: TickTickItem,
    item: ThirdPartyItem,
    user_id: str,
    existing_status: NotificationStatus | None = None,
  ) -> Notification:
    return Notification(
      title=payload.title,
      status=payload.notification_status().value,
      kind=self.notification_source_kind.value,
      created_at=payload.created_time or item.created_at,
      updated_at=item.updated_at,
      user_id=user_id,
    )

  def _payload(self, item: ThirdPartyItem) -> TickTickItem:
    return TickTickItem.model_validate(item.data)

  async def delete_task(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    auth, _ = await self._auth(db, user_id, "delete a TickTick task")
    try:
      await ticktick_delete_task(auth=auth, project_id=self._payload(item).project_id, task_id=item.source_id)
    except ProviderApiError as exc:
      if not exc.not_found:
        raise

  async def complete_task(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    auth, _ = await self._auth(db, user_id, "complete a TickTick task")
    try:
      await ticktick_complete_task(auth=auth, project_id=self._payload(item).project_id, task_id=item.source_id)
    except ProviderApiError as exc:
      if not exc.not_found:
        raise

  async def uncomplete_task(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    raise UnsupportedAction("TickTick API does not support uncompleting a task")

  async def update_task(self, db: AsyncSession, item: ThirdPartyItem, patch: TaskPatch, user_id: str) -> None:
    auth, _ = await self._auth(db, user_id, "update a TickTick task")
    set_fields = patch.model_fields_set
    fields: dict[str, Any] = {"projectId": self._payload(item).project_id}
    if "project_name" in set_fields and patch.project_name:
      fields["projectId"] = (await self._find_or_create_project(auth, user_id, patch.project_name)).id
    if "title" in set_fields and patch.title:
      fields["title"] = patch.title
    if "body" in set_fields and patch.body is not None:
      fields["content"] = patch.body
    if "priority" in set_fields and patch.priority is not None:
      fields["priority"] = int(TickTickItemPriority.from_task_priority(patch.priority))
    if "due_at" in set_fields:
      fields.update(_due_fields(patch.due_at) if patch.due_at else {"dueDate": None})
    await ticktick_update_task(auth=auth, task_id=item.source_id, fields=fields)

  async def delete_notification_from_source(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    raise UnsupportedAction(f"Cannot delete TickTick task {item.source_id} from its notification")

  async def unsubscribe_notification_from_source(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    raise UnsupportedAction(f"Cannot unsubscribe from TickTick task {item.source_id}")

  async def snooze_notification_from_source(
    self, db: AsyncSession, item: ThirdPartyItem, snoozed_until: datetime, user_id: str
  ) -> None:
    return None

  def is_supporting_snoozed_notifications(self) -> bool:
    return False
