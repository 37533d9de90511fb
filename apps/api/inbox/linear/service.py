from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from inbox.config import settings
from inbox.http import ProviderApiError, ProviderAuth
from inbox.integration_connections.service import IntegrationConnectionService
from inbox.linear.client import (
  linear_archive_notification,
  linear_auth,
  linear_issue_team_states,
  linear_list_assigned_issues,
  linear_list_notifications,
  linear_snooze_notification,
  linear_unsubscribe_issue,
  linear_update_issue,
)
from inbox.linear.models import LinearIssue, LinearNotification, LinearWorkflowStateType
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
from inbox.tasks.types import TaskCreationConfig, TaskPatch, format_due_date
from inbox.third_party.item import build_item

logger = logging.getLogger(__name__)


def _normalize_issue(raw: dict[str, Any]) -> dict[str, Any]:
  labels = raw.get("labels")
  if isinstance(labels, dict):
    raw = {**raw, "labels": [n.get("name") for n in labels.get("nodes") or [] if n.get("name")]}
  return raw


def _normalize_notification(raw: dict[str, Any]) -> dict[str, Any]:
  issue = raw.get("issue")
  if isinstance(issue, dict):
    raw = {**raw, "issue": _normalize_issue(issue)}
  return raw


class LinearService:
  provider_kind = IntegrationProviderKind.linear
  notification_source_kind = NotificationSourceKind.linear
  task_source_kind = TaskSourceKind.linear

  def __init__(
    self,
    integration_connections: IntegrationConnectionService,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    page_size: int | None = None,
  ) -> None:
    self.integration_connections = integration_connections
    self.transport = transport
    self.page_size = page_size or settings.page_size

  async def _auth(self, db: AsyncSession, user_id: str, action: str) -> tuple[ProviderAuth, str]:
    token, connection = await self.integration_connections.require_access_token(db, self.provider_kind, user_id, action)
    return linear_auth(token, self.transport), connection.id

  def third_party_item_source_kind(self) -> ThirdPartyItemKind:
    return ThirdPartyItemKind.linear_notification

  def is_sync_incremental(self) -> bool:
    return False

  async def fetch_items(
    self, db: AsyncSession, user_id: str, last_sync_completed_at: datetime | None
  ) -> list[ThirdPartyItem]:
    auth, connection_id = await self._auth(db, user_id, "fetch Linear notifications")
    items: list[ThirdPartyItem] = []
    cursor: str | None = None
    while True:
      nodes, cursor = await linear_list_notifications(auth=auth, first=self.page_size, after=cursor)
      for raw in nodes:
        notification = LinearNotification.model_validate(_normalize_notification(raw))
        items.append(
          build_item(
            source_id=notification.id,
            payload=notification,
            user_id=user_id,
            integration_connection_id=connection_id,
            updated_at=notification.updated_at,
          )
        )
      if cursor is None:
        break
    return items

  async def fetch_assigned_issues(self, db: AsyncSession, user_id: str) -> list[ThirdPartyItem]:
    auth, connection_id = await self._auth(db, user_id, "fetch Linear issues")
    items: list[ThirdPartyItem] = []
    cursor: str | None = None
    while True:
      nodes, cursor = await linear_list_assigned_issues(auth=auth, first=self.page_size, after=cursor)
      for raw in nodes:
        issue = LinearIssue.model_validate(_normalize_issue(raw))
        items.append(
          build_item(
            source_id=issue.id,
            payload=issue,
            user_id=user_id,
            integration_connection_id=connection_id,
            created_at=issue.created_at,
            updated_at=issue.updated_at,
          )
        )
      if cursor is None:
        break
    return items

  def third_party_item_into_notification(
    self,
    payload: LinearNotification,
    item: ThirdPartyItem,
    user_id: str,
    existing_status: NotificationStatus | None = None,
  ) -> Notification:
    return Notification(
      title=payload.display_title(),
      status=(NotificationStatus.read if payload.read_at else NotificationStatus.unread).value,
      kind=self.notification_source_kind.value,
      created_at=payload.updated_at,
      updated_at=payload.updated_at,
      last_read_at=payload.read_at,
      snoozed_until=payload.snoozed_until_at,
      user_id=user_id,
    )

  async def delete_notification_from_source(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    auth, _ = await self._auth(db, user_id, "delete a Linear notification")
    try:
      await linear_archive_notification(auth=auth, notification_id=item.source_id)
    except ProviderApiError as exc:
      if not exc.not_found:
        raise

  async def unsubscribe_notification_from_source(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    auth, _ = await self._auth(db, user_id, "unsubscribe from a Linear notification")
    issue_id = (item.data.get("issue") or {}).get("id")
    try:
      if issue_id:
        await linear_unsubscribe_issue(auth=auth, issue_id=issue_id)
      await linear_archive_notification(auth=auth, notification_id=item.source_id)
    except ProviderApiError as exc:
      if not exc.not_found:
        raise

  async def snooze_notification_from_source(
    self, db: AsyncSession, item: ThirdPartyItem, snoozed_until: datetime, user_id: str
  ) -> None:
    auth, _ = await self._auth(db, user_id, "snooze a Linear notification")
    until = snoozed_until.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
    await linear_snooze_notification(auth=auth, notification_id=item.source_id, snoozed_until_at=until)

  def is_supporting_snoozed_notifications(self) -> bool:
    return True

  async def third_party_item_into_task(
    self,
    db: AsyncSession,
    payload: LinearIssue,
    item: ThirdPartyItem,
    task_creation_config: TaskCreationConfig | None,
    user_id: str,
  ) -> Task:
    if payload.state.type == LinearWorkflowStateType.canceled:
      status = TaskStatus.deleted
    elif payload.state.type == LinearWorkflowStateType.completed:
      status = TaskStatus.done
    else:
      status = TaskStatus.active
    due_at = format_due_date(payload.due_date)
    if due_at is None and task_creation_config is not None and task_creation_config.default_due_at is not None:
      due_at = task_creation_config.default_due_at.as_due_date()
    project = payload.project.name if payload.project is not None else payload.team.name
    if task_creation_config is not None and task_creation_config.target_project is not None:
      project = task_creation_config.target_project.name
    return Task(
      title=f"[{payload.identifier}]({payload.url}) {payload.title}",
      body=payload.description or "",
      status=status.value,
      completed_at=payload.completed_at or payload.canceled_at,
      priority=int(payload.task_priority()),
      due_at=due_at,
      tags=list(payload.labels),
      project=project,
      is_recurring=False,
      kind=self.task_source_kind.value,
      user_id=user_id,
      created_at=payload.created_at,
      updated_at=payload.updated_at,
    )

  async def _move_issue_to_state_type(
    self, db: AsyncSession, item: ThirdPartyItem, user_id: str, state_types: tuple[str, ...]
  ) -> None:
    auth, _ = await self._auth(db, user_id, "update a Linear issue")
    try:
      states = await linear_issue_team_states(auth=auth, issue_id=item.source_id)
      candidates = sorted(
        (s for s in states if s.get("type") in state_types),
        key=lambda s: (state_types.index(s["type"]), s.get("position") or 0),
      )
      if not candidates:
        logger.warning("Linear issue %s team has no %s state", item.source_id, "/".join(state_types))
        return
      await linear_update_issue(auth=auth, issue_id=item.source_id, fields={"stateId": candidates[0]["id"]})
    except ProviderApiError as exc:
      if not exc.not_found:
        raise

  async def delete_task(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    await self._move_issue_to_state_type(db, item, user_id, ("canceled",))

  async def complete_task(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    await self._move_issue_to_state_type(db, item, user_id, ("completed",))

  async def uncomplete_task(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    await self._move_issue_to_state_type(db, item, user_id, ("unstarted", "started", "backlog"))

  async def update_task(self, db: AsyncSession, item: ThirdPartyItem, patch: TaskPatch, user_id: str) -> None:
    fields: dict[str, Any] = {}
    set_fields = patch.model_fields_set
    if "title" in set_fields and patch.title:
      fields["title"] = patch.title
    if "body" in set_fields and patch.body is not None:
      fields["description"] = patch.body
    if "due_at" in set_fields:
      fields["dueDate"] = patch.due_at[:10] if patch.due_at else None
    if "priority" in set_fields and patch.priority is not None:
      fields["priority"] = int(patch.priority)
    if not fields:
      return
    auth, _ = await self._auth(db, user_id, "update a Linear issue")
    await linear_update_issue(auth=auth, issue_id=item.source_id, fields=fields)


class LinearIssueSource:
  """Assigned Linear issues, synchronized as tasks."""

  provider_kind = IntegrationProviderKind.linear

  def __init__(self, linear: LinearService) -> None:
    self.linear = linear

  def third_party_item_source_kind(self) -> ThirdPartyItemKind:
    return ThirdPartyItemKind.linear_issue

  def is_sync_incremental(self) -> bool:
    return False

  async def fetch_items(
    self, db: AsyncSession, user_id: str, last_sync_completed_at: datetime | None
  ) -> list[ThirdPartyItem]:
    return await self.linear.fetch_assigned_issues(db, user_id)
