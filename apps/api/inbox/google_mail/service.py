from __future__ import annotations

import logging
from datetime import datetime

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from inbox.config import settings
from inbox.google_calendar.service import GoogleCalendarService
from inbox.google_mail.client import (
  google_mail_auth,
  google_mail_get_profile,
  google_mail_get_thread,
  google_mail_list_labels,
  google_mail_list_threads,
  google_mail_modify_thread,
)
from inbox.google_mail.models import INBOX_LABEL, GoogleMailThread
from inbox.integration_connections.config import (
  GoogleMailConfig,
  GoogleMailContext,
  GoogleMailLabel,
  connection_config,
  connection_context,
)
from inbox.integration_connections.service import IntegrationConnectionService
from inbox.models import (
  IntegrationConnection,
  IntegrationProviderKind,
  Notification,
  NotificationSourceKind,
  NotificationStatus,
  ThirdPartyItem,
  ThirdPartyItemKind,
)
from inbox.notifications.service import get_notification_for_source_id
from inbox.third_party.item import build_item, item_payload

logger = logging.getLogger(__name__)


class GoogleMailService:
  provider_kind = IntegrationProviderKind.google_mail
  notification_source_kind = NotificationSourceKind.google_mail

  def __init__(
    self,
    integration_connections: IntegrationConnectionService,
    *,
    google_calendar: GoogleCalendarService | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    page_size: int | None = None,
  ) -> None:
    self.integration_connections = integration_connections
    self.google_calendar = google_calendar
    self.transport = transport
    self.page_size = page_size or settings.page_size

  def third_party_item_source_kind(self) -> ThirdPartyItemKind:
    return ThirdPartyItemKind.google_mail_thread

  def is_sync_incremental(self) -> bool:
    return False

  async def _refresh_context(self, db: AsyncSession, auth, connection: IntegrationConnection) -> GoogleMailContext:
    context: GoogleMailContext | None = connection_context(connection)
    email = context.user_email_address if context is not None else None
    if not email:
      profile = await google_mail_get_profile(auth=auth)
      email = profile.get("emailAddress") or ""
    labels = [
      GoogleMailLabel(id=raw["id"], name=raw.get("name") or raw["id"])
      for raw in await google_mail_list_labels(auth=auth)
      if raw.get("id")
    ]
    context = GoogleMailContext(user_email_address=email, labels=labels)
    await self.integration_connections.update_integration_connection_context(db, connection.id, context)
    return context

  async def fetch_items(
    self, db: AsyncSession, user_id: str, last_sync_completed_at: datetime | None
  ) -> list[ThirdPartyItem]:
    token, connection = await self.integration_connections.require_access_token(
      db, self.provider_kind, user_id, "fetch Google Mail threads"
    )
    auth = google_mail_auth(token, self.transport)
    context = await self._refresh_context(db, auth, connection)
    config: GoogleMailConfig = connection_config(connection)
    synced_label = config.synced_label.id

    threads: list[GoogleMailThread] = []
    page_token: str | None = None
    while True:
      listed, page_token = await google_mail_list_threads(
        auth=auth, label_ids=[synced_label], max_results=self.page_size, page_token=page_token
      )
      for summary in listed:
        raw = await google_mail_get_thread(auth=auth, thread_id=summary["id"])
        threads.append(GoogleMailThread.model_validate({**raw, "user_email_address": context.user_email_address}))
      if not page_token:
        break

    items: list[ThirdPartyItem] = []
    for thread in threads:
      existing = await get_notification_for_source_id(db, thread.id, user_id, self.notification_source_kind)
      if existing is not None and thread.stays_unsubscribed(existing.status):
        # An unsubscribed thread stays out of the inbox until the user is addressed directly again
        thread.remove_labels([INBOX_LABEL, synced_label])
        await google_mail_modify_thread(
          auth=auth, thread_id=thread.id, add_label_ids=[], remove_label_ids=[INBOX_LABEL, synced_label]
        )
      items.append(
        build_item(
          source_id=thread.id,
          payload=thread,
          user_id=user_id,
          integration_connection_id=connection.id,
          created_at=thread.first_message.internal_date,
          updated_at=thread.last_message.internal_date,
        )
      )
    logger.info("Fetched %s Google Mail threads labelled %s", len(items), config.synced_label.name)
    return items

  async def fetch_derived_items(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> list[ThirdPartyItem]:
    """Calendar events of the invitations found in a saved thread."""
    if self.google_calendar is None or item.kind != ThirdPartyItemKind.google_mail_thread:
      return []
    ical_uid = item_payload(item).calendar_invitation_uid()
    if not ical_uid:
      return []
    event = await self.google_calendar.fetch_event_item(db, ical_uid, item, user_id)
    return [event] if event is not None else []

  def third_party_item_into_notification(
    self,
    payload: GoogleMailThread,
    item: ThirdPartyItem,
    user_id: str,
    existing_status: NotificationStatus | None = None,
  ) -> Notification:
    return Notification(
      title=payload.subject(),
      status=payload.notification_status(existing_status).value,
      kind=self.notification_source_kind.value,
      created_at=payload.first_message.internal_date,
      updated_at=payload.last_message.internal_date,
      last_read_at=payload.last_read_at(),
      user_id=user_id,
    )

  async def _archive_thread(self, db: AsyncSession, item: ThirdPartyItem, user_id: str, action: str) -> None:
    token, connection = await self.integration_connections.require_access_token(db, self.provider_kind, user_id, action)
    config: GoogleMailConfig = connection_config(connection)
    await google_mail_modify_thread(
      auth=google_mail_auth(token, self.transport),
      thread_id=item.source_id,
      add_label_ids=[],
      remove_label_ids=[INBOX_LABEL, config.synced_label.id],
    )

  async def delete_notification_from_source(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    await self._archive_thread(db, item, user_id, "delete a Google Mail notification")

  async def unsubscribe_notification_from_source(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    await self._archive_thread(db, item, user_id, "unsubscribe from a Google Mail notification")

  async def snooze_notification_from_source(
    self, db: AsyncSession, item: ThirdPartyItem, snoozed_until: datetime, user_id: str
  ) -> None:
    # Gmail threads cannot be snoozed through the API
    return None

  def is_supporting_snoozed_notifications(self) -> bool:
    return False
