"""Typed payloads of ``ThirdPartyItem`` rows and the result of an upsert.

A row stores its payload as ``kind`` + ``data``; ``item_payload`` turns it back into the pydantic
model registered for that kind.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel

from inbox.errors import InvalidInputData
from inbox.github.models import GithubNotification
from inbox.google_calendar.models import GoogleCalendarEvent
from inbox.google_drive.models import GoogleDriveComment
from inbox.google_mail.models import GoogleMailThread
from inbox.linear.models import LinearIssue, LinearWorkflowState, LinearWorkflowStateType, LinearNotification
from inbox.models import IntegrationProviderKind, ThirdPartyItem, ThirdPartyItemKind
from inbox.slack.models import SlackReaction, SlackReactionState, SlackStar, SlackStarState, SlackThread
from inbox.ticktick.models import TickTickItem, TickTickItemStatus
from inbox.todoist.models import TodoistItem
from inbox.web_page.models import WebPage

PAYLOAD_MODELS: dict[ThirdPartyItemKind, type[BaseModel]] = {
  ThirdPartyItemKind.github_notification: GithubNotification,
  ThirdPartyItemKind.slack_star: SlackStar,
  ThirdPartyItemKind.slack_reaction: SlackReaction,
  ThirdPartyItemKind.slack_thread: SlackThread,
  ThirdPartyItemKind.google_mail_thread: GoogleMailThread,
  ThirdPartyItemKind.google_calendar_event: GoogleCalendarEvent,
  ThirdPartyItemKind.google_drive_comment: GoogleDriveComment,
  ThirdPartyItemKind.linear_notification: LinearNotification,
  ThirdPartyItemKind.linear_issue: LinearIssue,
  ThirdPartyItemKind.todoist_item: TodoistItem,
  ThirdPartyItemKind.ticktick_item: TickTickItem,
  ThirdPartyItemKind.web_page: WebPage,
}

ITEM_PROVIDERS: dict[ThirdPartyItemKind, IntegrationProviderKind] = {
  ThirdPartyItemKind.github_notification: IntegrationProviderKind.github,
  ThirdPartyItemKind.slack_star: IntegrationProviderKind.slack,
  ThirdPartyItemKind.slack_reaction: IntegrationProviderKind.slack,
  ThirdPartyItemKind.slack_thread: IntegrationProviderKind.slack,
  ThirdPartyItemKind.google_mail_thread: IntegrationProviderKind.google_mail,
  ThirdPartyItemKind.google_calendar_event: IntegrationProviderKind.google_calendar,
  ThirdPartyItemKind.google_drive_comment: IntegrationProviderKind.google_drive,
  ThirdPartyItemKind.linear_notification: IntegrationProviderKind.linear,
  ThirdPartyItemKind.linear_issue: IntegrationProviderKind.linear,
  ThirdPartyItemKind.todoist_item: IntegrationProviderKind.todoist,
  ThirdPartyItemKind.ticktick_item: IntegrationProviderKind.ticktick,
  ThirdPartyItemKind.web_page: IntegrationProviderKind.api,
}


def payload_kind(payload: BaseModel) -> ThirdPartyItemKind:
  for kind, model in PAYLOAD_MODELS.items():
    if type(payload) is model:
      return kind
  raise InvalidInputData(f"Unknown third party item payload {type(payload).__name__}")


def item_payload(item: ThirdPartyItem) -> Any:
  return PAYLOAD_MODELS[ThirdPartyItemKind(item.kind)].model_validate(item.data)


def item_provider(item: ThirdPartyItem) -> IntegrationProviderKind:
  return ITEM_PROVIDERS[ThirdPartyItemKind(item.kind)]


def item_html_url(item: ThirdPartyItem) -> str | None:
  payload = item_payload(item)
  match payload:
    case GoogleCalendarEvent():
      return payload.html_link
    case LinearIssue() | WebPage():
      return payload.url
    case _:
      return payload.html_url()


def build_item(
  *,
  source_id: str,
  payload: BaseModel,
  user_id: str,
  integration_connection_id: str,
  source_item: ThirdPartyItem | None = None,
  created_at: datetime | None = None,
  updated_at: datetime | None = None,
) -> ThirdPartyItem:
  """A transient row; it only reaches the database through the upsert."""
  now = datetime.now(timezone.utc).replace(microsecond=0)
  item = ThirdPartyItem(
    source_id=source_id,
    kind=payload_kind(payload).value,
    data=payload.model_dump(mode="json"),
    user_id=user_id,
    integration_connection_id=integration_connection_id,
    created_at=created_at or now,
    updated_at=updated_at or now,
  )
  if source_item is not None:
    item.source_item_id = source_item.id
  return item


def snapshot(item: ThirdPartyItem) -> ThirdPartyItem:
  """Detached copy of a row, including its ``source_item`` chain."""
  copy = ThirdPartyItem(
    id=item.id,
    source_id=item.source_id,
    kind=item.kind,
    data=dict(item.data or {}),
    user_id=item.user_id,
    integration_connection_id=item.integration_connection_id,
    source_item_id=item.source_item_id,
    created_at=item.created_at,
    updated_at=item.updated_at,
  )
  parent = item.__dict__.get("source_item")
  if parent is not None:
    copy.source_item = snapshot(parent)
  return copy


def with_payload(item: ThirdPartyItem, payload: BaseModel) -> ThirdPartyItem:
  copy = snapshot(item)
  copy.data = payload.model_dump(mode="json")
  return copy


def marked_as_done(item: ThirdPartyItem) -> ThirdPartyItem:
  """Copy of ``item`` whose payload says the upstream object is done or gone."""
  payload = item_payload(item)
  now = datetime.now(timezone.utc).replace(microsecond=0)
  match payload:
    case TodoistItem():
      payload.checked = True
      payload.completed_at = payload.completed_at or now
    case TickTickItem():
      payload.status = TickTickItemStatus.completed
      payload.completed_time = payload.completed_time or now
    case SlackStar():
      payload.state = SlackStarState.star_removed
    case SlackReaction():
      payload.state = SlackReactionState.reaction_removed
    case SlackThread():
      payload.last_read = payload.last_message_ts()
    case LinearIssue():
      payload.state = LinearWorkflowState(name="Done", type=LinearWorkflowStateType.completed)
      payload.completed_at = payload.completed_at or now
    case _:
      return snapshot(item)
  return with_payload(item, payload)


@dataclass(frozen=True)
class UpsertStatus:
  new: ThirdPartyItem

  def value(self) -> ThirdPartyItem:
    return self.new

  def modified_value(self) -> ThirdPartyItem | None:
    return self.new if self.is_modified() else None

  def is_modified(self) -> bool:
    return True


@dataclass(frozen=True)
class Created(UpsertStatus):
  pass


@dataclass(frozen=True)
class Updated(UpsertStatus):
  old: ThirdPartyItem | None = None


@dataclass(frozen=True)
class Untouched(UpsertStatus):
  def is_modified(self) -> bool:
    return False
