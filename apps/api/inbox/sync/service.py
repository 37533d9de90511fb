"""Sync orchestrator: pulls every connection's items and derives notifications and tasks.

A connection is synchronized in two steps. The fetched items are saved in one transaction together
with the provider context (sync tokens) the fetch advanced, the modified ones flagged as pending
derivation. Each pending item then gets its notification or task in its own transaction. A failure
rolls back the step in flight, records the failure on the connection and moves on to the next
connection; items left pending are derived again by the next run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from inbox.config import settings
from inbox.errors import error_text
from inbox.integration_connections.config import SyncType, is_sync_notifications_enabled, is_sync_tasks_enabled
from inbox.integration_connections.service import IntegrationConnectionService
from inbox.logging import bind_sync_context, clear_sync_context
from inbox.models import IntegrationConnection, IntegrationConnectionStatus, IntegrationProviderKind, ThirdPartyItem
from inbox.notifications.service import NotificationService
from inbox.tasks.service import TaskService
from inbox.third_party.item import UpsertStatus
from inbox.third_party.registry import ProviderRegistry
from inbox.third_party.service import ThirdPartyItemService
from inbox.third_party.sources import DerivedItemSource, ItemSource, NotificationSource

logger = logging.getLogger(__name__)


def _now() -> datetime:
  return datetime.now(timezone.utc)


@dataclass
class SyncResult:
  connection_id: str
  provider_kind: str
  sync_type: SyncType
  fetched: int = 0
  modified: int = 0
  notifications: list[str] = field(default_factory=list)
  tasks: list[str] = field(default_factory=list)
  skipped: str | None = None
  error: str | None = None

  @property
  def ok(self) -> bool:
    return self.error is None


class SyncService:
  def __init__(
    self,
    providers: ProviderRegistry,
    integration_connections: IntegrationConnectionService,
    third_party_item_service: ThirdPartyItemService,
    notification_service: NotificationService,
    task_service: TaskService,
  ) -> None:
    self.providers = providers
    self.integration_connections = integration_connections
    self.third_party_item_service = third_party_item_service
    self.notification_service = notification_service
    self.task_service = task_service

  async def sync_notifications(
    self,
    db: AsyncSession,
    source_kind: IntegrationProviderKind | None = None,
    user_id: str | None = None,
  ) -> list[SyncResult]:
    return await self._sync_all(db, SyncType.notifications, source_kind, user_id)

  async def sync_tasks(
    self,
    db: AsyncSession,
    source_kind: IntegrationProviderKind | None = None,
    user_id: str | None = None,
  ) -> list[SyncResult]:
    return await self._sync_all(db, SyncType.tasks, source_kind, user_id)

  async def _sync_all(
    self,
    db: AsyncSession,
    sync_type: SyncType,
    source_kind: IntegrationProviderKind | None,
    user_id: str | None,
  ) -> list[SyncResult]:
    results: list[SyncResult] = []
    for source in self.providers.item_sources(sync_type):
      if source_kind is not None and source.provider_kind != source_kind:
        continue
      connections = await self.integration_connections.list_integration_connections(
        db, user_id=user_id, provider_kind=source.provider_kind, status=IntegrationConnectionStatus.validated
      )
      # A failed connection rolls the session back and expires the loaded rows
      for connection_id in [c.id for c in connections]:
        connection = await self.integration_connections.get_integration_connection(db, connection_id)
        if connection is not None:
          results.append(await self.sync_connection(db, source, connection, sync_type))
    return results

  def _is_enabled(self, connection: IntegrationConnection, sync_type: SyncType) -> bool:
    if sync_type == SyncType.tasks:
      return is_sync_tasks_enabled(connection)
    return is_sync_notifications_enabled(connection)

  async def sync_connection(
    self,
    db: AsyncSession,
    source: ItemSource,
    connection: IntegrationConnection,
    sync_type: SyncType,
  ) -> SyncResult:
    connection_id = connection.id
    user_id = connection.user_id
    result = SyncResult(connection_id=connection_id, provider_kind=connection.provider_kind, sync_type=sync_type)
    if connection.status != IntegrationConnectionStatus.validated or not connection.access_token_encrypted:
      result.skipped = "not connected"
      return result
    if not self._is_enabled(connection, sync_type):
      result.skipped = "disabled"
      return result

    started = await self.integration_connections.start_sync(db, connection, sync_type)
    await db.commit()
    if not started:
      logger.info("%s sync of connection %s already in progress, skipping", sync_type, connection_id)
      result.skipped = "in progress"
      return result

    bind_sync_context(user_id=user_id, provider=connection.provider_kind, connection_id=connection_id)
    try:
      try:
        pending = await self._save_items(db, source, connection, sync_type, result)
        await db.commit()
      except Exception as exc:
        await self._record_failure(db, connection_id, sync_type, result, exc)
        return result

      for item in pending:
        counts = (len(result.notifications), len(result.tasks))
        try:
          await self._derive_item(db, source, item, user_id, sync_type, result)
          item.derivation_pending = False
          await db.commit()
        except Exception as exc:
          del result.notifications[counts[0] :]
          del result.tasks[counts[1] :]
          await self._record_failure(db, connection_id, sync_type, result, exc)
          return result

      await self.integration_connections.complete_sync(db, connection, sync_type)
      await db.commit()
      logger.info(
        "%s sync of connection %s done: %s fetched, %s modified",
        sync_type,
        connection_id,
        result.fetched,
        result.modified,
      )
      return result
    finally:
      clear_sync_context()

  async def _record_failure(
    self, db: AsyncSession, connection_id: str, sync_type: SyncType, result: SyncResult, exc: Exception
  ) -> None:
    """Roll back the unit of work in flight and record the failure on the connection."""
    await db.rollback()
    connection = await self.integration_connections.get_integration_connection(db, connection_id)
    if connection is None:
      raise exc
    result.error = error_text(exc)
    await self.integration_connections.error_sync(db, connection, sync_type, result.error)
    await db.commit()
    logger.warning("%s sync of connection %s failed: %s", sync_type, connection_id, result.error, exc_info=exc)

  async def _save_items(
    self,
    db: AsyncSession,
    source: ItemSource,
    connection: IntegrationConnection,
    sync_type: SyncType,
    result: SyncResult,
  ) -> list[ThirdPartyItem]:
    """Upsert the fetched items along with the provider context the fetch updated.

    Modified items are flagged as pending derivation. Returns the items still pending from earlier
    runs followed by this run's modified items, in the order the source returned them.
    """
    last_completed = self.integration_connections.last_sync_completed_at(connection, sync_type)
    upserts = await self.third_party_item_service.sync_items(db, source, connection, last_completed)
    result.fetched = len(upserts)
    modified = [u.modified_value() for u in upserts if u.is_modified()]
    result.modified = len(modified)
    for item in modified:
      item.derivation_pending = True

    if not source.is_sync_incremental() and isinstance(source, NotificationSource):
      await self.notification_service.delete_stale_notifications_status_from_source_ids(
        db,
        _source_ids(upserts),
        source.notification_source_kind,
        connection.user_id,
        connection.id,
      )

    modified_ids = {item.id for item in modified}
    earlier = await self.third_party_item_service.list_items_pending_derivation(
      db, connection.id, source.third_party_item_source_kind()
    )
    return [item for item in earlier if item.id not in modified_ids] + modified

  async def _derive_item(
    self,
    db: AsyncSession,
    source: ItemSource,
    item: ThirdPartyItem,
    user_id: str,
    sync_type: SyncType,
    result: SyncResult,
  ) -> None:
    if sync_type == SyncType.tasks:
      adapter = self.providers.task_source_for_item(item)
      task = await self.task_service.create_task_from_third_party_item(db, item, adapter, user_id)
      if task is not None:
        result.tasks.append(task.id)
      return

    await self._derive_notification(db, item, user_id, result)
    if isinstance(source, DerivedItemSource):
      for derived in await source.fetch_derived_items(db, item, user_id):
        upsert = await self.third_party_item_service.create_or_update_third_party_item(db, derived)
        if upsert.is_modified():
          await self._derive_notification(db, upsert.value(), user_id, result)

  async def _derive_notification(self, db: AsyncSession, item: ThirdPartyItem, user_id: str, result: SyncResult) -> None:
    adapter = self.providers.notification_source_for_item(item)
    notification = await self.notification_service.create_notification_from_third_party_item(db, item, adapter, user_id)
    if notification is not None:
      result.notifications.append(notification.id)

  async def trigger_sync_for_integration_connections(self, db: AsyncSession, user_id: str) -> list[SyncResult]:
    """Sync the user's connections whose last scheduled sync is older than the minimum interval."""
    intervals = {
      SyncType.notifications: timedelta(minutes=settings.min_sync_notifications_interval_minutes),
      SyncType.tasks: timedelta(minutes=settings.min_sync_tasks_interval_minutes),
    }
    now = _now()
    results: list[SyncResult] = []
    for sync_type, interval in intervals.items():
      for source in self.providers.item_sources(sync_type):
        connection = await self.integration_connections.get_integration_connection_for_provider(
          db, source.provider_kind, user_id
        )
        if connection is None or connection.status != IntegrationConnectionStatus.validated:
          continue
        if not self._is_enabled(connection, sync_type):
          continue
        scheduled_at = getattr(connection, f"last_{sync_type.value}_sync_scheduled_at")
        if scheduled_at is not None and now - scheduled_at < interval:
          continue
        await self.integration_connections.schedule_sync(db, connection, sync_type)
        results.append(await self.sync_connection(db, source, connection, sync_type))
    return results


def _source_ids(upserts: list[UpsertStatus]) -> list[str]:
  return [u.value().source_id for u in upserts]
