from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from inbox.google_calendar.models import AttendeeResponseStatus
from inbox.integration_connections.config import SyncType
from inbox.models import (
  IntegrationConnection,
  IntegrationConnectionStatus,
  IntegrationProviderKind,
  Notification,
  NotificationStatus,
  Task,
  TaskStatus,
  ThirdPartyItem,
)
from inbox.notifications.types import NotificationPatch
from inbox.sync.service import SyncResult
from inbox.tasks.types import ProjectSummary, TaskCreation, TaskPatch, TaskPriority
from inbox.third_party.item import item_html_url


class ThirdPartyItemOut(BaseModel):
  id: str
  sourceId: str
  kind: str
  data: dict[str, Any]
  userId: str
  integrationConnectionId: str
  sourceItemId: str | None = None
  htmlUrl: str | None = None
  createdAt: datetime
  updatedAt: datetime


class NotificationOut(BaseModel):
  id: str
  title: str
  status: NotificationStatus
  kind: str
  createdAt: datetime
  updatedAt: datetime
  lastReadAt: datetime | None = None
  snoozedUntil: datetime | None = None
  userId: str
  taskId: str | None = None
  sourceItem: ThirdPartyItemOut


class TaskOut(BaseModel):
  id: str
  title: str
  body: str
  status: TaskStatus
  completedAt: datetime | None = None
  priority: int
  dueAt: str | None = None
  tags: list[str] = []
  parentId: str | None = None
  project: str
  isRecurring: bool = False
  kind: str
  userId: str
  sourceItem: ThirdPartyItemOut
  sinkItem: ThirdPartyItemOut | None = None
  createdAt: datetime
  updatedAt: datetime


class IntegrationConnectionOut(BaseModel):
  id: str
  providerKind: IntegrationProviderKind
  status: IntegrationConnectionStatus
  failureMessage: str | None = None
  providerUserId: str | None = None
  tokenHint: str = ""
  config: dict[str, Any]
  context: dict[str, Any] | None = None
  lastNotificationsSyncStartedAt: datetime | None = None
  lastNotificationsSyncCompletedAt: datetime | None = None
  lastNotificationsSyncFailedAt: datetime | None = None
  lastNotificationsSyncFailureMessage: str | None = None
  notificationsSyncFailures: int = 0
  lastTasksSyncStartedAt: datetime | None = None
  lastTasksSyncCompletedAt: datetime | None = None
  lastTasksSyncFailedAt: datetime | None = None
  lastTasksSyncFailureMessage: str | None = None
  tasksSyncFailures: int = 0
  createdAt: datetime
  updatedAt: datetime


class SyncResultOut(BaseModel):
  connectionId: str
  providerKind: str
  syncType: SyncType
  fetched: int
  modified: int
  notificationIds: list[str]
  taskIds: list[str]
  skipped: str | None = None
  error: str | None = None


class ProjectSummaryOut(BaseModel):
  sourceId: str
  name: str


class NotificationPatchIn(BaseModel):
  status: NotificationStatus | None = None
  snoozedUntil: datetime | None = None
  taskId: str | None = None

  def to_patch(self) -> NotificationPatch:
    fields = self.model_fields_set
    values: dict[str, Any] = {}
    if "status" in fields:
      values["status"] = self.status
    if "snoozedUntil" in fields:
      values["snoozed_until"] = self.snoozedUntil
    if "taskId" in fields:
      values["task_id"] = self.taskId
    return NotificationPatch(**values)


class TaskCreationIn(BaseModel):
  title: str = Field(min_length=1, max_length=500)
  body: str | None = None
  projectName: str | None = None
  dueAt: str | None = None
  priority: TaskPriority = TaskPriority.P4

  def to_creation(self) -> TaskCreation:
    return TaskCreation(
      title=self.title, body=self.body, project_name=self.projectName, due_at=self.dueAt, priority=self.priority
    )


class TaskPatchIn(BaseModel):
  status: TaskStatus | None = None
  projectName: str | None = None
  dueAt: str | None = None
  priority: TaskPriority | None = None
  title: str | None = Field(default=None, min_length=1, max_length=500)
  body: str | None = None
  sinkItemId: str | None = None

  def to_patch(self) -> TaskPatch:
    names = {
      "status": "status",
      "projectName": "project_name",
      "dueAt": "due_at",
      "priority": "priority",
      "title": "title",
      "body": "body",
      "sinkItemId": "sink_item_id",
    }
    return TaskPatch(**{names[k]: getattr(self, k) for k in self.model_fields_set})


class IntegrationConnectionCreateIn(BaseModel):
  providerKind: IntegrationProviderKind
  accessToken: str | None = None
  providerUserId: str | None = None
  config: dict[str, Any] | None = None
  context: dict[str, Any] | None = None


class AccessTokenIn(BaseModel):
  accessToken: str = Field(min_length=1)
  providerUserId: str | None = None


class IntegrationConnectionConfigIn(BaseModel):
  config: dict[str, Any]


class IntegrationConnectionContextIn(BaseModel):
  context: dict[str, Any]


class IntegrationConnectionStatusIn(BaseModel):
  status: IntegrationConnectionStatus
  failureMessage: str | None = None


class WebPageIn(BaseModel):
  url: str = Field(min_length=1, max_length=4096)
  title: str = Field(min_length=1, max_length=1000)
  favicon: str | None = None


class InvitationAnswerIn(BaseModel):
  responseStatus: AttendeeResponseStatus


def third_party_item_out(item: ThirdPartyItem) -> ThirdPartyItemOut:
  return ThirdPartyItemOut(
    id=item.id,
    sourceId=item.source_id,
    kind=item.kind,
    data=item.data or {},
    userId=item.user_id,
    integrationConnectionId=item.integration_connection_id,
    sourceItemId=item.source_item_id,
    htmlUrl=item_html_url(item),
    createdAt=item.created_at,
    updatedAt=item.updated_at,
  )


def notification_out(n: Notification) -> NotificationOut:
  return NotificationOut(
    id=n.id,
    title=n.title,
    status=NotificationStatus(n.status),
    kind=n.kind,
    createdAt=n.created_at,
    updatedAt=n.updated_at,
    lastReadAt=n.last_read_at,
    snoozedUntil=n.snoozed_until,
    userId=n.user_id,
    taskId=n.task_id,
    sourceItem=third_party_item_out(n.source_item),
  )


def task_out(t: Task) -> TaskOut:
  return TaskOut(
    id=t.id,
    title=t.title,
    body=t.body or "",
    status=TaskStatus(t.status),
    completedAt=t.completed_at,
    priority=t.priority,
    dueAt=t.due_at,
    tags=list(t.tags or []),
    parentId=t.parent_id,
    project=t.project,
    isRecurring=bool(t.is_recurring),
    kind=t.kind,
    userId=t.user_id,
    sourceItem=third_party_item_out(t.source_item),
    sinkItem=third_party_item_out(t.sink_item) if t.sink_item is not None else None,
    createdAt=t.created_at,
    updatedAt=t.updated_at,
  )


def integration_connection_out(c: IntegrationConnection) -> IntegrationConnectionOut:
  return IntegrationConnectionOut(
    id=c.id,
    providerKind=IntegrationProviderKind(c.provider_kind),
    status=IntegrationConnectionStatus(c.status),
    failureMessage=c.failure_message,
    providerUserId=c.provider_user_id,
    tokenHint=c.token_hint or "",
    config=c.config or {},
    context=c.context,
    lastNotificationsSyncStartedAt=c.last_notifications_sync_started_at,
    lastNotificationsSyncCompletedAt=c.last_notifications_sync_completed_at,
    lastNotificationsSyncFailedAt=c.last_notifications_sync_failed_at,
    lastNotificationsSyncFailureMessage=c.last_notifications_sync_failure_message,
    notificationsSyncFailures=c.notifications_sync_failures or 0,
    lastTasksSyncStartedAt=c.last_tasks_sync_started_at,
    lastTasksSyncCompletedAt=c.last_tasks_sync_completed_at,
    lastTasksSyncFailedAt=c.last_tasks_sync_failed_at,
    lastTasksSyncFailureMessage=c.last_tasks_sync_failure_message,
    tasksSyncFailures=c.tasks_sync_failures or 0,
    createdAt=c.created_at,
    updatedAt=c.updated_at,
  )


def sync_result_out(r: SyncResult) -> SyncResultOut:
  return SyncResultOut(
    connectionId=r.connection_id,
    providerKind=r.provider_kind,
    syncType=r.sync_type,
    fetched=r.fetched,
    modified=r.modified,
    notificationIds=list(r.notifications),
    taskIds=list(r.tasks),
    skipped=r.skipped,
    error=r.error,
  )


def project_summary_out(p: ProjectSummary) -> ProjectSummaryOut:
  return ProjectSummaryOut(sourceId=p.source_id, name=p.name)
