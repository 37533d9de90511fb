"""Dispatch of Slack ``event_callback`` payloads to the connections they concern."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from inbox.integration_connections.config import SlackAsTasks, connection_config, slack_sync_type_for
from inbox.integration_connections.service import IntegrationConnectionService
from inbox.models import IntegrationConnection, IntegrationProviderKind, ThirdPartyItem, ThirdPartyItemKind
from inbox.notifications.service import NotificationService
from inbox.slack.service import SlackService, find_mentioned_ids
from inbox.third_party.service import ThirdPartyItemService

logger = logging.getLogger(__name__)

STAR_EVENTS = ("star_added", "star_removed")
REACTION_EVENTS = ("reaction_added", "reaction_removed")


class SlackEventHandler:
  def __init__(
    self,
    slack: SlackService,
    integration_connections: IntegrationConnectionService,
    third_party_item_service: ThirdPartyItemService,
    notification_service: NotificationService,
  ) -> None:
    self.slack = slack
    self.integration_connections = integration_connections
    self.third_party_item_service = third_party_item_service
    self.notification_service = notification_service

  async def handle_event(self, db: AsyncSession, body: dict[str, Any]) -> None:
    event = body.get("event") or {}
    event_type = event.get("type")
    if event_type in STAR_EVENTS or event_type in REACTION_EVENTS:
      await self._handle_star_or_reaction(db, body)
    elif event_type == "message":
      await self._handle_message(db, body)
    else:
      logger.info("Ignoring Slack %s event", event_type)

  async def _team_connections(
    self, db: AsyncSession, team_id: str, provider_user_ids: list[str]
  ) -> list[IntegrationConnection]:
    connections = await self.integration_connections.find_connections_for_provider_user_ids(
      db, IntegrationProviderKind.slack, provider_user_ids
    )
    return [c for c in connections if (c.context or {}).get("team_id") == team_id]

  async def _handle_star_or_reaction(self, db: AsyncSession, body: dict[str, Any]) -> None:
    event = body["event"]
    kind = ThirdPartyItemKind.slack_star if event["type"] in STAR_EVENTS else ThirdPartyItemKind.slack_reaction
    for connection in await self._team_connections(db, body.get("team_id") or "", [event.get("user") or ""]):
      config = connection_config(connection)
      sync_type = slack_sync_type_for(config, kind)
      if sync_type is None:
        continue
      if kind == ThirdPartyItemKind.slack_reaction and event.get("reaction") != config.reaction_config.reaction_name:
        continue
      item = await self.slack.fetch_item_from_event(db, body, connection.user_id)
      if item is None:
        continue
      if isinstance(sync_type, SlackAsTasks):
        await self.third_party_item_service.create_task_item(db, item, connection.user_id)
      else:
        await self._save_notification(db, item, connection.user_id)

  async def _handle_message(self, db: AsyncSession, body: dict[str, Any]) -> None:
    event = body["event"]
    team_id = body.get("team_id") or ""
    user_ids, usergroup_ids = find_mentioned_ids(event.get("text"))
    user_ids |= await self.slack.list_usergroup_users(db, team_id, usergroup_ids)

    handled: set[str] = set()
    for connection in await self._team_connections(db, team_id, sorted(user_ids)):
      handled.add(connection.id)
      await self._save_thread_if_enabled(db, body, connection, None)

    thread_ts = event.get("thread_ts")
    if not thread_ts:
      return
    # Members already following the thread get its new replies even without a mention
    for existing in await self.third_party_item_service.find_third_party_items_for_source_id(
      db, ThirdPartyItemKind.slack_thread, thread_ts
    ):
      if existing.integration_connection_id in handled:
        continue
      connection = await self.integration_connections.get_integration_connection(db, existing.integration_connection_id)
      if connection is None:
        continue
      handled.add(connection.id)
      await self._save_thread_if_enabled(db, body, connection, existing)

  async def _save_thread_if_enabled(
    self,
    db: AsyncSession,
    body: dict[str, Any],
    connection: IntegrationConnection,
    existing: ThirdPartyItem | None,
  ) -> None:
    message_config = connection_config(connection).message_config
    if not message_config.sync_enabled:
      return
    item = await self.slack.fetch_item_from_event(
      db, body, connection.user_id, None if message_config.is_2way_sync else existing
    )
    if item is not None:
      await self._save_notification(db, item, connection.user_id)

  async def _save_notification(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    upsert = await self.third_party_item_service.create_or_update_third_party_item(db, item)
    saved = upsert.modified_value()
    if saved is None:
      return
    await self.notification_service.create_notification_from_third_party_item(db, saved, self.slack, user_id)
