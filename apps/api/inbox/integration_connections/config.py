"""Per-provider configuration and sync context stored on ``IntegrationConnection``."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, Literal, Union

from pydantic import BaseModel, Field

from inbox.errors import InvalidInputData
from inbox.models import IntegrationConnection, IntegrationProviderKind, ThirdPartyItemKind
from inbox.tasks.types import PresetDueDate, ProjectSummary, TaskCreationConfig, TaskPriority


class GithubConfig(BaseModel):
  sync_notifications_enabled: bool = True


class LinearSyncTaskConfig(BaseModel):
  enabled: bool = False
  target_project: ProjectSummary | None = None
  default_due_at: PresetDueDate | None = None


class LinearConfig(BaseModel):
  sync_notifications_enabled: bool = True
  sync_task_config: LinearSyncTaskConfig = Field(default_factory=LinearSyncTaskConfig)


class GoogleMailLabel(BaseModel):
  id: str
  name: str


class GoogleMailConfig(BaseModel):
  sync_notifications_enabled: bool = False
  synced_label: GoogleMailLabel = Field(default_factory=lambda: GoogleMailLabel(id="STARRED", name="STARRED"))


class GoogleCalendarConfig(BaseModel):
  sync_event_details_enabled: bool = True


class GoogleDriveConfig(BaseModel):
  sync_notifications_enabled: bool = True


class SlackAsNotifications(BaseModel):
  type: Literal["AsNotifications"] = "AsNotifications"


class SlackAsTasks(BaseModel):
  type: Literal["AsTasks"] = "AsTasks"
  target_project: ProjectSummary | None = None
  default_due_at: PresetDueDate | None = None
  default_priority: TaskPriority = TaskPriority.P4


SlackSyncType = Union[SlackAsNotifications, SlackAsTasks]


class SlackStarConfig(BaseModel):
  sync_enabled: bool = False
  sync_type: SlackSyncType = Field(default_factory=SlackAsNotifications, discriminator="type")


class SlackReactionConfig(BaseModel):
  sync_enabled: bool = False
  reaction_name: str = "eyes"
  sync_type: SlackSyncType = Field(default_factory=SlackAsNotifications, discriminator="type")


class SlackMessageConfig(BaseModel):
  sync_enabled: bool = True
  is_2way_sync: bool = False


class SlackConfig(BaseModel):
  star_config: SlackStarConfig = Field(default_factory=SlackStarConfig)
  reaction_config: SlackReactionConfig = Field(default_factory=SlackReactionConfig)
  message_config: SlackMessageConfig = Field(default_factory=SlackMessageConfig)


class TodoistConfig(BaseModel):
  sync_tasks_enabled: bool = True
  create_notification_from_inbox_task: bool = False


class TickTickConfig(BaseModel):
  sync_tasks_enabled: bool = True
  create_notification_from_inbox_task: bool = False
  default_project: ProjectSummary | None = None
  default_due_at: PresetDueDate | None = None
  default_priority: TaskPriority | None = None


class ApiConfig(BaseModel):
  pass


class TodoistContext(BaseModel):
  items_sync_token: str | None = None


class TickTickContext(BaseModel):
  last_sync_at: datetime | None = None


class GoogleMailContext(BaseModel):
  user_email_address: str
  labels: list[GoogleMailLabel] = Field(default_factory=list)


class GoogleDriveContext(BaseModel):
  user_email_address: str
  user_display_name: str


class SlackContext(BaseModel):
  team_id: str


CONFIG_MODELS: dict[IntegrationProviderKind, type[BaseModel]] = {
  IntegrationProviderKind.github: GithubConfig,
  IntegrationProviderKind.linear: LinearConfig,
  IntegrationProviderKind.google_mail: GoogleMailConfig,
  IntegrationProviderKind.google_calendar: GoogleCalendarConfig,
  IntegrationProviderKind.google_drive: GoogleDriveConfig,
  IntegrationProviderKind.slack: SlackConfig,
  IntegrationProviderKind.todoist: TodoistConfig,
  IntegrationProviderKind.ticktick: TickTickConfig,
  IntegrationProviderKind.api: ApiConfig,
}

CONTEXT_MODELS: dict[IntegrationProviderKind, type[BaseModel]] = {
  IntegrationProviderKind.todoist: TodoistContext,
  IntegrationProviderKind.ticktick: TickTickContext,
  IntegrationProviderKind.google_mail: GoogleMailContext,
  IntegrationProviderKind.google_drive: GoogleDriveContext,
  IntegrationProviderKind.slack: SlackContext,
}


class SyncType(StrEnum):
  notifications = "notifications"
  tasks = "tasks"


def default_config(kind: IntegrationProviderKind) -> dict[str, Any]:
  return CONFIG_MODELS[kind]().model_dump(mode="json")


def validate_config(kind: IntegrationProviderKind, raw: dict[str, Any]) -> dict[str, Any]:
  try:
    return CONFIG_MODELS[kind].model_validate(raw).model_dump(mode="json")
  except ValueError as exc:
    raise InvalidInputData(f"Invalid {kind} configuration: {exc}") from exc


def connection_config(connection: IntegrationConnection) -> Any:
  kind = IntegrationProviderKind(connection.provider_kind)
  return CONFIG_MODELS[kind].model_validate(connection.config or {})


def connection_context(connection: IntegrationConnection) -> Any | None:
  kind = IntegrationProviderKind(connection.provider_kind)
  model = CONTEXT_MODELS.get(kind)
  if model is None or not connection.context:
    return None
  return model.model_validate(connection.context)


def is_sync_notifications_enabled(connection: IntegrationConnection) -> bool:
  config = connection_config(connection)
  match IntegrationProviderKind(connection.provider_kind):
    case (
      IntegrationProviderKind.github
      | IntegrationProviderKind.linear
      | IntegrationProviderKind.google_mail
      | IntegrationProviderKind.google_drive
    ):
      return config.sync_notifications_enabled
    case IntegrationProviderKind.slack:
      # Slack notifications only arrive through webhook events
      return False
    case (
      IntegrationProviderKind.google_calendar
      | IntegrationProviderKind.todoist
      | IntegrationProviderKind.ticktick
      | IntegrationProviderKind.api
    ):
      return False


def is_sync_event_details_enabled(connection: IntegrationConnection) -> bool:
  if connection.provider_kind != IntegrationProviderKind.google_calendar:
    return False
  return connection_config(connection).sync_event_details_enabled


def is_sync_tasks_enabled(connection: IntegrationConnection) -> bool:
  config = connection_config(connection)
  match IntegrationProviderKind(connection.provider_kind):
    case IntegrationProviderKind.todoist | IntegrationProviderKind.ticktick:
      return config.sync_tasks_enabled
    case IntegrationProviderKind.linear:
      return config.sync_task_config.enabled
    case _:
      return False


def should_create_notification_from_inbox_task(connection: IntegrationConnection) -> bool:
  config = connection_config(connection)
  if connection.provider_kind in (IntegrationProviderKind.todoist, IntegrationProviderKind.ticktick):
    return config.create_notification_from_inbox_task
  return False


def should_create_notification(connection: IntegrationConnection, item_kind: ThirdPartyItemKind) -> bool:
  """Whether items of ``item_kind`` coming through ``connection`` turn into notifications."""
  match item_kind:
    case ThirdPartyItemKind.slack_star | ThirdPartyItemKind.slack_reaction:
      return isinstance(slack_sync_type_for(connection_config(connection), item_kind), SlackAsNotifications)
    case ThirdPartyItemKind.slack_thread:
      return connection_config(connection).message_config.sync_enabled
    case ThirdPartyItemKind.todoist_item | ThirdPartyItemKind.ticktick_item:
      return should_create_notification_from_inbox_task(connection)
    case ThirdPartyItemKind.linear_issue:
      return False
    case ThirdPartyItemKind.google_calendar_event | ThirdPartyItemKind.web_page:
      return True
    case _:
      return is_sync_notifications_enabled(connection)


def slack_sync_type_for(config: SlackConfig, item_kind: ThirdPartyItemKind) -> SlackSyncType | None:
  if item_kind == ThirdPartyItemKind.slack_star:
    return config.star_config.sync_type if config.star_config.sync_enabled else None
  if item_kind == ThirdPartyItemKind.slack_reaction:
    return config.reaction_config.sync_type if config.reaction_config.sync_enabled else None
  return None


def get_task_creation_default_values(
  connection: IntegrationConnection, item_kind: ThirdPartyItemKind
) -> TaskCreationConfig | None:
  config = connection_config(connection)
  match IntegrationProviderKind(connection.provider_kind):
    case IntegrationProviderKind.slack:
      sync_type = slack_sync_type_for(config, item_kind)
      if isinstance(sync_type, SlackAsTasks):
        return TaskCreationConfig(
          target_project=sync_type.target_project,
          default_due_at=sync_type.default_due_at,
          default_priority=sync_type.default_priority,
        )
      return None
    case IntegrationProviderKind.linear:
      if not config.sync_task_config.enabled:
        return None
      return TaskCreationConfig(
        target_project=config.sync_task_config.target_project,
        default_due_at=config.sync_task_config.default_due_at,
      )
    case IntegrationProviderKind.ticktick:
      return TaskCreationConfig(
        target_project=config.default_project,
        default_due_at=config.default_due_at,
        default_priority=config.default_priority or TaskPriority.P4,
      )
    case _:
      return None
