from __future__ import annotations

import logging
from datetime import datetime

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from inbox.errors import InvalidInputData
from inbox.google_calendar.client import (
  google_calendar_auth,
  google_calendar_delete_event,
  google_calendar_find_event,
  google_calendar_patch_event_attendees,
)
from inbox.google_calendar.models import AttendeeResponseStatus, GoogleCalendarEvent
from inbox.http import ProviderApiError
from inbox.integration_connections.config import is_sync_event_details_enabled
from inbox.integration_connections.service import IntegrationConnectionService
from inbox.models import (
  IntegrationProviderKind,
  Notification,
  NotificationSourceKind,
  NotificationStatus,
  ThirdPartyItem,
  ThirdPartyItemKind,
)
from inbox.third_party.item import build_item, item_payload

logger = logging.getLogger(__name__)


class GoogleCalendarService:
  """Calendar events are never listed; they are looked up from the invitations found in Google Mail."""

  provider_kind = IntegrationProviderKind.google_calendar
  notification_source_kind = NotificationSourceKind.google_calendar

  def __init__(
    self,
    integration_connections: IntegrationConnectionService,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
  ) -> None:
    self.integration_connections = integration_connections
    self.transport = transport

  async def fetch_event_item(
    self, db: AsyncSession, ical_uid: str, source_item: ThirdPartyItem, user_id: str
  ) -> ThirdPartyItem | None:
    found = await self.integration_connections.find_access_token(db, self.provider_kind, user_id)
    if found is None:
      return None
    token, connection = found
    if not is_sync_event_details_enabled(connection):
      return None
    raw = await google_calendar_find_event(auth=google_calendar_auth(token, self.transport), ical_uid=ical_uid)
    if raw is None:
      logger.warning("No Google Calendar event found for invitation %s", ical_uid)
      return None
    event = GoogleCalendarEvent.model_validate(raw)
    return build_item(
      source_id=event.id,
      payload=event,
      user_id=user_id,
      integration_connection_id=connection.id,
      source_item=source_item,
      created_at=event.created,
      updated_at=event.updated,
    )

  def third_party_item_into_notification(
    self,
    payload: GoogleCalendarEvent,
    item: ThirdPartyItem,
    user_id: str,
    existing_status: NotificationStatus | None = None,
  ) -> Notification:
    return Notification(
      title=payload.title(),
      status=payload.notification_status().value,
      kind=self.notification_source_kind.value,
      created_at=payload.created,
      updated_at=payload.updated,
      user_id=user_id,
    )

  async def delete_notification_from_source(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    return None

  async def unsubscribe_notification_from_source(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    token, _ = await self.integration_connections.require_access_token(
      db, self.provider_kind, user_id, "unsubscribe from a Google Calendar event"
    )
    try:
      await google_calendar_delete_event(auth=google_calendar_auth(token, self.transport), event_id=item.source_id)
    except ProviderApiError as exc:
      if not exc.not_found:
        raise

  async def snooze_notification_from_source(
    self, db: AsyncSession, item: ThirdPartyItem, snoozed_until: datetime, user_id: str
  ) -> None:
    return None

  def is_supporting_snoozed_notifications(self) -> bool:
    return False

  async def answer_invitation(
    self, db: AsyncSession, item: ThirdPartyItem, response_status: AttendeeResponseStatus, user_id: str
  ) -> GoogleCalendarEvent:
    if item.kind != ThirdPartyItemKind.google_calendar_event:
      raise InvalidInputData(f"Cannot answer an invitation of a {item.kind} item")
    event: GoogleCalendarEvent = item_payload(item)
    if event.self_attendee() is None:
      raise InvalidInputData(f"User is not an attendee of Google Calendar event {event.id}")
    token, _ = await self.integration_connections.require_access_token(
      db, self.provider_kind, user_id, "answer a Google Calendar invitation"
    )
    attendees = []
    for attendee in event.attendees:
      if attendee.is_self:
        attendee = attendee.model_copy(update={"response_status": response_status})
      attendees.append(attendee.model_dump(mode="json", by_alias=True, exclude_none=True))
    raw = await google_calendar_patch_event_attendees(
      auth=google_calendar_auth(token, self.transport), event_id=event.id, attendees=attendees
    )
    return GoogleCalendarEvent.model_validate(raw)
