from __future__ import annotations

import logging
from datetime import datetime

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from inbox.config import settings
from inbox.github.client import (
  github_auth,
  github_list_notifications,
  github_mark_thread_as_read,
  github_unsubscribe_thread,
)
from inbox.github.models import GithubNotification
from inbox.http import ProviderApiError
from inbox.integration_connections.service import IntegrationConnectionService
from inbox.models import (
  IntegrationProviderKind,
  Notification,
  NotificationSourceKind,
  NotificationStatus,
  ThirdPartyItem,
  ThirdPartyItemKind,
)
from inbox.third_party.item import build_item

logger = logging.getLogger(__name__)


class GithubService:
  provider_kind = IntegrationProviderKind.github
  notification_source_kind = NotificationSourceKind.github

  def __init__(
    self,
    integration_connections: IntegrationConnectionService,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    page_size: int | None = None,
  ) -> None:
    self.integration_connections = integration_connections
    self.transport = transport
    self.page_size = page_size or min(settings.page_size, 50)

  def third_party_item_source_kind(self) -> ThirdPartyItemKind:
    return ThirdPartyItemKind.github_notification

  def is_sync_incremental(self) -> bool:
    return False

  async def fetch_items(
    self, db: AsyncSession, user_id: str, last_sync_completed_at: datetime | None
  ) -> list[ThirdPartyItem]:
    token, connection = await self.integration_connections.require_access_token(
      db, self.provider_kind, user_id, "fetch Github notifications"
    )
    auth = github_auth(token, self.transport)
    items: list[ThirdPartyItem] = []
    page = 1
    while True:
      raw = await github_list_notifications(auth=auth, page=page, per_page=self.page_size)
      for r in raw:
        notification = GithubNotification.model_validate(r)
        items.append(
          build_item(
            source_id=notification.id,
            payload=notification,
            user_id=user_id,
            integration_connection_id=connection.id,
            updated_at=notification.updated_at,
          )
        )
      if len(raw) < self.page_size:
        break
      page += 1
    logger.info("Fetched %s Github notifications", len(items))
    return items

  def third_party_item_into_notification(
    self,
    payload: GithubNotification,
    item: ThirdPartyItem,
    user_id: str,
    existing_status: NotificationStatus | None = None,
  ) -> Notification:
    return Notification(
      title=payload.subject.title,
      status=(NotificationStatus.unread if payload.unread else NotificationStatus.read).value,
      kind=self.notification_source_kind.value,
      created_at=payload.updated_at,
      updated_at=payload.updated_at,
      last_read_at=payload.last_read_at,
      user_id=user_id,
    )

  async def delete_notification_from_source(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    token, _ = await self.integration_connections.require_access_token(
      db, self.provider_kind, user_id, "delete a Github notification"
    )
    try:
      await github_mark_thread_as_read(auth=github_auth(token, self.transport), thread_id=item.source_id)
    except ProviderApiError as exc:
      if not exc.not_found:
        raise

  async def unsubscribe_notification_from_source(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    token, _ = await self.integration_connections.require_access_token(
      db, self.provider_kind, user_id, "unsubscribe from a Github notification"
    )
    auth = github_auth(token, self.transport)
    try:
      await github_unsubscribe_thread(auth=auth, thread_id=item.source_id)
      await github_mark_thread_as_read(auth=auth, thread_id=item.source_id)
    except ProviderApiError as exc:
      if not exc.not_found:
        raise

  async def snooze_notification_from_source(
    self, db: AsyncSession, item: ThirdPartyItem, snoozed_until: datetime, user_id: str
  ) -> None:
    # Github has no snooze
    return None

  def is_supporting_snoozed_notifications(self) -> bool:
    return False
