from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

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
from inbox.third_party.item import build_item
from inbox.web_page.models import WebPage

logger = logging.getLogger(__name__)


class WebPageService:
  """Pages pushed through the API; they only exist in the inbox."""

  provider_kind = IntegrationProviderKind.api
  notification_source_kind = NotificationSourceKind.api

  def __init__(self, integration_connections: IntegrationConnectionService) -> None:
    self.integration_connections = integration_connections

  async def api_connection(self, db: AsyncSession, user_id: str) -> IntegrationConnection:
    connection = await self.integration_connections.get_integration_connection_for_provider(
      db, self.provider_kind, user_id
    )
    if connection is None:
      connection = await self.integration_connections.create_integration_connection(
        db, user_id=user_id, provider_kind=self.provider_kind
      )
    return connection

  async def build_web_page_item(self, db: AsyncSession, page: WebPage, user_id: str) -> ThirdPartyItem:
    connection = await self.api_connection(db, user_id)
    return build_item(source_id=page.url, payload=page, user_id=user_id, integration_connection_id=connection.id)

  def third_party_item_source_kind(self) -> ThirdPartyItemKind:
    return ThirdPartyItemKind.web_page

  def third_party_item_into_notification(
    self,
    payload: WebPage,
    item: ThirdPartyItem,
    user_id: str,
    existing_status: NotificationStatus | None = None,
  ) -> Notification:
    return Notification(
      title=payload.title,
      status=NotificationStatus.unread.value,
      kind=self.notification_source_kind.value,
      created_at=item.created_at,
      updated_at=item.updated_at,
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
