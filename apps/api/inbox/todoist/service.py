from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from inbox.cache import Cache, user_scoped_key
from inbox.config import settings
from inbox.errors import UnsupportedAction
from inbox.http import ProviderApiError, ProviderAuth
from inbox.integration_connections.config import TodoistContext, connection_context
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
from inbox.tasks.types import (
  ProjectSummary,
  TaskCreation,
  TaskCreationConfig,
  TaskPatch,
  format_due_date,
  is_date_only,
  parse_due_date,
)
from inbox.third_party.item import build_item
from inbox.todoist.client import (
  todoist_auth,
  todoist_close_task,
  todoist_create_project,
  todoist_create_task,
  todoist_delete_task,
  todoist_move_task,
  todoist_reopen_task,
  todoist_sync,
  todoist_update_task,
)
from inbox.todoist.models import INBOX_PROJECT, TodoistItem, TodoistProject

logger = logging.getLogger(__name__)


def _due_fields(due_at: str | None) -> dict[str, Any]:
  if not due_at:
    return {}
  if is_date_only(due_at):
    return {"due_date": due_at}
  return {"due_datetime": format_due_date(parse_due_date(due_at))}


class TodoistService:
  provider_kind = IntegrationProviderKind.todoist
  notification_source_kind = NotificationSourceKind.todoist
  task_source_kind = TaskSourceKind.todoist

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
    return todoist_auth(token, self.transport), connection.id

  def third_party_item_source_kind(self) -> ThirdPartyItemKind:
    return ThirdPartyItemKind.todoist_item

  def is_sync_incremental(self) -> bool:
    return True

  async def fetch_items(
    self, db: AsyncSession, user_id: str, last_sync_completed_at: datetime | None
  ) -> list[ThirdPartyItem]:
    token, connection = await self.integration_connections.require_access_token(
      db, self.provider_kind, user_id, "fetch Todoist tasks"
    )
    auth = todoist_auth(token, self.transport)
    context: TodoistContext | None = connection_context(connection)
    sync_token = context.items_sync_token if context is not None else None
    data = await todoist_sync(auth=auth, resource_types=["items"], sync_token=sync_token)
    items = [TodoistItem.model_validate(raw) for raw in data.get("items") or []]
    if data.get("sync_token"):
      await self.integration_connections.update_integration_connection_context(
        db, connection.id, TodoistContext(items_sync_token=data["sync_token"])
      )
    logger.info("Fetched %s Todoist items (full sync: %s)", len(items), bool(data.get("full_sync", sync_token is None)))
    return [self._build_item(i, user_id, connection.id) for i in items]

  def _build_item(self, item: TodoistItem, user_id: str, connection_id: str) -> ThirdPartyItem:
    return build_item(
      source_id=item.id,
      payload=item,
      user_id=user_id,
      integration_connection_id=connection_id,
      created_at=item.added_at,
      updated_at=item.updated_at or item.added_at,
    )

  async def list_projects(self, auth: ProviderAuth, user_id: str) -> list[TodoistProject]:
    key = user_scoped_key(user_id, "todoist", "projects")
    raw = await self.cache.get(key)
    if raw is None:
      data = await todoist_sync(auth=auth, resource_types=["projects"])
      raw = [p for p in data.get("projects") or [] if not p.get("is_deleted")]
      await self.cache.set(key, raw, settings.cache_ttl_projects_seconds)
    return [TodoistProject.model_validate(p) for p in raw]

  async def _project_name(self, auth: ProviderAuth, user_id: str, project_id: str) -> str:
    for project in await self.list_projects(auth, user_id):
      if project.id == project_id:
        return INBOX_PROJECT if project.inbox_project else project.name
    return INBOX_PROJECT

  async def _find_or_create_project(self, auth: ProviderAuth, user_id: str, name: str) -> TodoistProject:
    projects = await self.list_projects(auth, user_id)
    if name == INBOX_PROJECT:
      for project in projects:
        if project.inbox_project:
          return project
    for project in projects:
      if project.name == name and not project.is_archived:
        return project
    created = TodoistProject.model_validate(await todoist_create_project(auth=auth, name=name))
    await self.cache.delete_prefix(user_scoped_key(user_id, "todoist", "projects"))
    logger.info("Created Todoist project %s", name)
    return created

  async def get_or_create_project(self, db: AsyncSession, project_name: str, user_id: str) -> ProjectSummary:
    auth, _ = await self._auth(db, user_id, "create a Todoist project")
    project = await self._find_or_create_project(auth, user_id, project_name)
    return ProjectSummary(source_id=project.id, name=project.name)

  async def search_projects(self, db: AsyncSession, matches: str, user_id: str) -> list[ProjectSummary]:
    auth, _ = await self._auth(db, user_id, "search Todoist projects")
    needle = matches.lower()
    return [
      ProjectSummary(source_id=p.id, name=p.name)
      for p in await self.list_projects(auth, user_id)
      if needle in p.name.lower() and not p.is_archived
    ]

  async def create_task(self, db: AsyncSession, creation: TaskCreation, user_id: str) -> ThirdPartyItem:
    auth, connection_id = await self._auth(db, user_id, "create a Todoist task")
    project = await self._find_or_create_project(auth, user_id, creation.project_name or INBOX_PROJECT)
    fields: dict[str, Any] = {
      "content": creation.title,
      "description": creation.body or "",
      "project_id": project.id,
      "priority": TodoistItem.todoist_priority(creation.priority),
      **_due_fields(creation.due_at),
    }
    item = TodoistItem.model_validate(await todoist_create_task(auth=auth, fields=fields))
    logger.info("Created Todoist task %s in project %s", item.id, project.name)
    return self._build_item(item, user_id, connection_id)

  async def third_party_item_into_task(
    self,
    db: AsyncSession,
    payload: TodoistItem,
    item: ThirdPartyItem,
    task_creation_config: TaskCreationConfig | None,
    user_id: str,
  ) -> Task:
    auth, _ = await self._auth(db, user_id, "read Todoist projects")
    if payload.is_deleted:
      status = TaskStatus.deleted
    elif payload.checked:
      status = TaskStatus.done
    else:
      status = TaskStatus.active
    due = payload.due
    return Task(
      title=payload.content,
      body=payload.description,
      status=status.value,
      completed_at=payload.completed_at,
      priority=int(payload.task_priority()),
      due_at=format_due_date(parse_due_date(due.date)) if due is not None else None,
      tags=list(payload.labels),
      parent_id=payload.parent_id,
      project=await self._project_name(auth, user_id, payload.project_id),
      is_recurring=due.is_recurring if due is not None else False,
      kind=self.task_source_kind.value,
      user_id=user_id,
      created_at=payload.added_at,
      updated_at=payload.updated_at or payload.added_at,
    )

  def third_party_item_into_notification(
    self,
    payload: TodoistItem,
    item: ThirdPartyItem,
    user_id: str,
    existing_status: NotificationStatus | None = None,
  ) -> Notification:
    return Notification(
      title=payload.content,
      status=payload.notification_status().value,
      kind=self.notification_source_kind.value,
      created_at=payload.added_at,
      updated_at=payload.updated_at or payload.added_at,
      user_id=user_id,
    )

  async def delete_task(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    auth, _ = await self._auth(db, user_id, "delete a Todoist task")
    try:
      await todoist_delete_task(auth=auth, task_id=item.source_id)
    except ProviderApiError as exc:
      if not exc.not_found:
        raise

  async def complete_task(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    auth, _ = await self._auth(db, user_id, "complete a Todoist task")
    try:
      await todoist_close_task(auth=auth, task_id=item.source_id)
    except ProviderApiError as exc:
      if not exc.not_found:
        raise

  async def uncomplete_task(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    auth, _ = await self._auth(db, user_id, "uncomplete a Todoist task")
    await todoist_reopen_task(auth=auth, task_id=item.source_id)

  async def update_task(self, db: AsyncSession, item: ThirdPartyItem, patch: TaskPatch, user_id: str) -> None:
    auth, _ = await self._auth(db, user_id, "update a Todoist task")
    set_fields = patch.model_fields_set
    fields: dict[str, Any] = {}
    if "title" in set_fields and patch.title:
      fields["content"] = patch.title
    if "body" in set_fields and patch.body is not None:
      fields["description"] = patch.body
    if "priority" in set_fields and patch.priority is not None:
      fields["priority"] = TodoistItem.todoist_priority(patch.priority)
    if "due_at" in set_fields:
      fields.update(_due_fields(patch.due_at) if patch.due_at else {"due_string": "no date"})
    if fields:
      await todoist_update_task(auth=auth, task_id=item.source_id, fields=fields)
    if "project_name" in set_fields and patch.project_name:
      project = await self._find_or_create_project(auth, user_id, patch.project_name)
      await todoist_move_task(auth=auth, task_id=item.source_id, project_id=project.id)

  async def delete_notification_from_source(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    await self.delete_task(db, item, user_id)

  async def unsubscribe_notification_from_source(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    raise UnsupportedAction(f"Cannot unsubscribe from Todoist task {item.source_id}")

  async def snooze_notification_from_source(
    self, db: AsyncSession, item: ThirdPartyItem, snoozed_until: datetime, user_id: str
  ) -> None:
    return None

  def is_supporting_snoozed_notifications(self) -> bool:
    return False
