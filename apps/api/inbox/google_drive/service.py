from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from inbox.config import settings
from inbox.google_drive.client import (
  google_drive_auth,
  google_drive_get_user,
  google_drive_list_comments,
  google_drive_list_files_modified_since,
)
from inbox.google_drive.models import GoogleDriveComment, GoogleDriveFile
from inbox.http import ProviderAuth
from inbox.integration_connections.config import GoogleDriveContext, connection_context
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
from inbox.third_party.item import build_item

logger = logging.getLogger(__name__)


def should_create_item(existing: Notification | None, comment: GoogleDriveComment) -> bool:
  """Whether a fetched comment is news for the user, given the notification already derived from it."""
  last_update = existing.source_item.updated_at if existing is not None and existing.source_item else None
  if last_update is not None and existing.status != NotificationStatus.unsubscribed:
    return comment.modified_time > last_update
  return comment.is_user_mentioned(last_update)


class GoogleDriveService:
  provider_kind = IntegrationProviderKind.google_drive
  notification_source_kind = NotificationSourceKind.google_drive

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

  def third_party_item_source_kind(self) -> ThirdPartyItemKind:
    return ThirdPartyItemKind.google_drive_comment

  def is_sync_incremental(self) -> bool:
    return True

  async def _user_context(
    self, db: AsyncSession, auth: ProviderAuth, connection: IntegrationConnection
  ) -> GoogleDriveContext:
    context: GoogleDriveContext | None = connection_context(connection)
    if context is not None:
      return context
    user = await google_drive_get_user(auth=auth)
    context = GoogleDriveContext(
      user_email_address=user.get("emailAddress") or "",
      user_display_name=user.get("displayName") or "",
    )
    await self.integration_connections.update_integration_connection_context(db, connection.id, context)
    return context

  async def _files_modified_since(self, auth: ProviderAuth, since: datetime) -> list[GoogleDriveFile]:
    files: list[GoogleDriveFile] = []
    page_token: str | None = None
    while True:
      raw, page_token = await google_drive_list_files_modified_since(
        auth=auth, modified_since=since, page_size=self.page_size, page_token=page_token
      )
      files.extend(GoogleDriveFile.model_validate(f) for f in raw)
      if not page_token:
        return files

  async def _comments(self, auth: ProviderAuth, file_id: str) -> list[dict[str, Any]]:
    comments: list[dict[str, Any]] = []
    page_token: str | None = None
    while True:
      raw, page_token = await google_drive_list_comments(
        auth=auth, file_id=file_id, page_size=self.page_size, page_token=page_token
      )
      comments.extend(raw)
      if not page_token:
        return comments

  async def fetch_items(
    self, db: AsyncSession, user_id: str, last_sync_completed_at: datetime | None
  ) -> list[ThirdPartyItem]:
    token, connection = await self.integration_connections.require_access_token(
      db, self.provider_kind, user_id, "fetch Google Drive comments"
    )
    auth = google_drive_auth(token, self.transport)
    context = await self._user_context(db, auth, connection)
    files = await self._files_modified_since(auth, last_sync_completed_at or connection.created_at)

    items: list[ThirdPartyItem] = []
    for file in files:
      for raw in await self._comments(auth, file.id):
        comment = GoogleDriveComment.model_validate(
          {
            **raw,
            "file_id": file.id,
            "file_name": file.name,
            "file_mime_type": file.mime_type,
            "user_email_address": context.user_email_address,
            "user_display_name": context.user_display_name,
          }
        )
        existing = await get_notification_for_source_id(db, comment.source_id, user_id, self.notification_source_kind)
        if not should_create_item(existing, comment):
          continue
        items.append(
          build_item(
            source_id=comment.source_id,
            payload=comment,
            user_id=user_id,
            integration_connection_id=connection.id,
            created_at=comment.created_time,
            updated_at=comment.modified_time,
          )
        )
    logger.info("Fetched %s Google Drive comments in %s files", len(items), len(files))
    return items

  def third_party_item_into_notification(
    self,
    payload: GoogleDriveComment,
    item: ThirdPartyItem,
    user_id: str,
    existing_status: NotificationStatus | None = None,
  ) -> Notification:
    return Notification(
      title=payload.title(),
      status=payload.notification_status().value,
      kind=self.notification_source_kind.value,
      created_at=payload.created_time,
      updated_at=payload.modified_time,
      user_id=user_id,
    )

  async def delete_notification_from_source(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    return None

  async def unsubscribe_notification_from_source(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    return None

  async def snooze_notification_from_source(
    self, db: AsyncSession, item: ThirdPartyItem, snoozed_until: datetime, user_id: str
  ) -> None:
    return None

  def is_supporting_snoozed_notifications(self) -> bool:
    return False
