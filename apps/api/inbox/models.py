from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, TypeDecorator, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def new_id() -> str:
  return str(uuid.uuid4())


class UtcDateTime(TypeDecorator):
  """Timezone-aware UTC datetimes, also on backends that store naive values."""

  impl = DateTime(timezone=True)
  cache_ok = True

  def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
    if value is None:
      return None
    if value.tzinfo is None:
      return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

  def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
    if value is None:
      return None
    if value.tzinfo is None:
      return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UUIDStr = UUID(as_uuid=False).with_variant(String(36), "sqlite")
JSONDoc = JSONB().with_variant(JSON(), "sqlite")


class IntegrationProviderKind(StrEnum):
  github = "Github"
  linear = "Linear"
  google_calendar = "GoogleCalendar"
  google_drive = "GoogleDrive"
  google_mail = "GoogleMail"
  slack = "Slack"
  todoist = "Todoist"
  ticktick = "TickTick"
  api = "API"


class IntegrationConnectionStatus(StrEnum):
  created = "Created"
  validated = "Validated"
  failing = "Failing"


class ThirdPartyItemKind(StrEnum):
  github_notification = "GithubNotification"
  slack_star = "SlackStar"
  slack_reaction = "SlackReaction"
  slack_thread = "SlackThread"
  google_mail_thread = "GoogleMailThread"
  google_calendar_event = "GoogleCalendarEvent"
  google_drive_comment = "GoogleDriveComment"
  linear_notification = "LinearNotification"
  linear_issue = "LinearIssue"
  todoist_item = "TodoistItem"
  ticktick_item = "TickTickItem"
  web_page = "WebPage"


class NotificationStatus(StrEnum):
  unread = "Unread"
  read = "Read"
  deleted = "Deleted"
  unsubscribed = "Unsubscribed"


class NotificationSourceKind(StrEnum):
  github = "Github"
  linear = "Linear"
  google_calendar = "GoogleCalendar"
  google_drive = "GoogleDrive"
  google_mail = "GoogleMail"
  slack = "Slack"
  todoist = "Todoist"
  ticktick = "TickTick"
  api = "API"


class TaskStatus(StrEnum):
  active = "Active"
  done = "Done"
  deleted = "Deleted"


class TaskSourceKind(StrEnum):
  todoist = "Todoist"
  ticktick = "TickTick"
  slack = "Slack"
  linear = "Linear"


class Base(DeclarativeBase):
  pass


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(UUIDStr, primary_key=True, default=new_id)
  email: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  api_token_hash: Mapped[str | None] = mapped_column(String, nullable=True, unique=True, index=True)
  active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, onupdate=utcnow, nullable=False)


class IntegrationConnection(Base):
  __tablename__ = "integration_connections"
  __table_args__ = (UniqueConstraint("user_id", "provider_kind", name="ux_integration_connections_user_provider"),)

  id: Mapped[str] = mapped_column(UUIDStr, primary_key=True, default=new_id)
  user_id: Mapped[str] = mapped_column(UUIDStr, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
  provider_kind: Mapped[str] = mapped_column(String, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, default=IntegrationConnectionStatus.created)
  failure_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  provider_user_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  access_token_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
  token_hint: Mapped[str] = mapped_column(String, nullable=False, default="")
  config: Mapped[dict[str, Any]] = mapped_column(JSONDoc, nullable=False, default=dict)
  context: Mapped[dict[str, Any] | None] = mapped_column(JSONDoc, nullable=True)

  last_notifications_sync_scheduled_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
  last_notifications_sync_started_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
  last_notifications_sync_completed_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
  last_notifications_sync_failed_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
  first_notifications_sync_failed_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
  last_notifications_sync_failure_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  notifications_sync_failures: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

  last_tasks_sync_scheduled_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
  last_tasks_sync_started_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
  last_tasks_sync_completed_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
  last_tasks_sync_failed_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
  first_tasks_sync_failed_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
  last_tasks_sync_failure_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  tasks_sync_failures: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

  created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, onupdate=utcnow, nullable=False)


class ThirdPartyItem(Base):
  __tablename__ = "third_party_items"
  __table_args__ = (
    UniqueConstraint(
      "user_id", "source_id", "integration_connection_id", name="ux_third_party_items_user_source_connection"
    ),
  )

  id: Mapped[str] = mapped_column(UUIDStr, primary_key=True, default=new_id)
  source_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  kind: Mapped[str] = mapped_column(String, nullable=False, index=True)
  data: Mapped[dict[str, Any]] = mapped_column(JSONDoc, nullable=False, default=dict)
  user_id: Mapped[str] = mapped_column(UUIDStr, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
  integration_connection_id: Mapped[str] = mapped_column(
    UUIDStr, ForeignKey("integration_connections.id", ondelete="CASCADE"), nullable=False, index=True
  )
  source_item_id: Mapped[str | None] = mapped_column(
    UUIDStr, ForeignKey("third_party_items.id", ondelete="SET NULL"), nullable=True
  )
  # Fetched and saved, notification or task not derived yet
  derivation_pending: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False)

  source_item: Mapped[ThirdPartyItem | None] = relationship(
    "ThirdPartyItem", remote_side=[id], lazy="selectin", join_depth=2
  )


class Task(Base):
  __tablename__ = "tasks"

  id: Mapped[str] = mapped_column(UUIDStr, primary_key=True, default=new_id)
  title: Mapped[str] = mapped_column(String, nullable=False)
  body: Mapped[str] = mapped_column(Text, nullable=False, default="")
  status: Mapped[str] = mapped_column(String, nullable=False, default=TaskStatus.active)
  completed_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
  priority: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
  # "YYYY-MM-DD" or an ISO 8601 datetime
  due_at: Mapped[str | None] = mapped_column(String, nullable=True)
  tags: Mapped[list[str]] = mapped_column(JSONDoc, nullable=False, default=list)
  parent_id: Mapped[str | None] = mapped_column(String, nullable=True)
  project: Mapped[str] = mapped_column(String, nullable=False, default="Inbox")
  is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  kind: Mapped[str] = mapped_column(String, nullable=False)
  user_id: Mapped[str] = mapped_column(UUIDStr, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
  source_item_id: Mapped[str] = mapped_column(
    UUIDStr, ForeignKey("third_party_items.id", ondelete="CASCADE"), nullable=False, unique=True
  )
  sink_item_id: Mapped[str | None] = mapped_column(
    UUIDStr, ForeignKey("third_party_items.id", ondelete="SET NULL"), nullable=True, index=True
  )
  created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False)

  source_item: Mapped[ThirdPartyItem] = relationship(foreign_keys=[source_item_id], lazy="selectin")
  sink_item: Mapped[ThirdPartyItem | None] = relationship(foreign_keys=[sink_item_id], lazy="selectin")


class Notification(Base):
  __tablename__ = "notifications"

  id: Mapped[str] = mapped_column(UUIDStr, primary_key=True, default=new_id)
  title: Mapped[str] = mapped_column(String, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, default=NotificationStatus.unread, index=True)
  kind: Mapped[str] = mapped_column(String, nullable=False)
  created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False)
  last_read_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
  snoozed_until: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
  user_id: Mapped[str] = mapped_column(UUIDStr, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
  task_id: Mapped[str | None] = mapped_column(UUIDStr, ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True)
  source_item_id: Mapped[str] = mapped_column(
    UUIDStr, ForeignKey("third_party_items.id", ondelete="CASCADE"), nullable=False, unique=True
  )

  source_item: Mapped[ThirdPartyItem] = relationship(lazy="selectin")
