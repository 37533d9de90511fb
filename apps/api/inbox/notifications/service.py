from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from inbox.errors import Forbidden, NotFound, UnsupportedAction
from inbox.integration_connections.config import should_create_notification
from inbox.models import (
  IntegrationConnection,
  Notification,
  NotificationSourceKind,
  NotificationStatus,
  Task,
  ThirdPartyItem,
  ThirdPartyItemKind,
)
from inbox.notifications.types import NotificationPatch
from inbox.tasks.types import TaskCreation, TaskPriority
from inbox.third_party.item import item_html_url, item_payload
from inbox.third_party.sources import NotificationSource

if TYPE_CHECKING:
  from inbox.tasks.service import TaskService
  from inbox.third_party.registry import ProviderRegistry
  from inbox.third_party.service import ThirdPartyItemService

logger = logging.getLogger(__name__)

_LIVE_STATUSES = (NotificationStatus.unread.value, NotificationStatus.read.value)


def _now() -> datetime:
  return datetime.now(timezone.utc)


async def get_notification_for_source_id(
  db: AsyncSession, source_id: str, user_id: str, kind: NotificationSourceKind | None = None
) -> Notification | None:
  q = (
    select(Notification)
    .join(ThirdPartyItem, ThirdPartyItem.id == Notification.source_item_id)
    .where(and_(ThirdPartyItem.source_id == source_id, Notification.user_id == user_id))
  )
  if kind is not None:
    q = q.where(Notification.kind == kind.value)
  res = await db.execute(q.order_by(Notification.updated_at.desc()).limit(1))
  return res.scalars().first()


class NotificationService:
  task_service: TaskService
  third_party_item_service: ThirdPartyItemService

  def __init__(self, providers: ProviderRegistry) -> None:
    self.providers = providers

  async def get_notification(self, db: AsyncSession, notification_id: str) -> Notification | None:
    res = await db.execute(select(Notification).where(Notification.id == notification_id))
    return res.scalar_one_or_none()

  async def get_user_notification(self, db: AsyncSession, notification_id: str, user_id: str) -> Notification:
    notification = await self.get_notification(db, notification_id)
    if notification is None:
      raise NotFound(f"Notification {notification_id} not found")
    if notification.user_id != user_id:
      raise Forbidden(f"Notification {notification_id} belongs to another user")
    return notification

  async def get_notification_for_source_id(
    self, db: AsyncSession, source_id: str, user_id: str, kind: NotificationSourceKind | None = None
  ) -> Notification | None:
    return await get_notification_for_source_id(db, source_id, user_id, kind)

  async def get_notification_for_source_item(self, db: AsyncSession, source_item_id: str) -> Notification | None:
    res = await db.execute(select(Notification).where(Notification.source_item_id == source_item_id))
    return res.scalar_one_or_none()

  async def list_notifications(
    self,
    db: AsyncSession,
    user_id: str,
    *,
    statuses: list[NotificationStatus] | None = None,
    include_snoozed: bool = False,
    kinds: list[NotificationSourceKind] | None = None,
    task_id: str | None = None,
    limit: int = 100,
    offset: int = 0,
  ) -> list[Notification]:
    q = select(Notification).where(Notification.user_id == user_id)
    if statuses:
      q = q.where(Notification.status.in_([s.value for s in statuses]))
    if kinds:
      q = q.where(Notification.kind.in_([k.value for k in kinds]))
    if task_id is not None:
      q = q.where(Notification.task_id == task_id)
    if not include_snoozed:
      q = q.where((Notification.snoozed_until.is_(None)) | (Notification.snoozed_until <= _now()))
    q = q.order_by(Notification.updated_at.desc()).limit(limit).offset(offset)
    res = await db.execute(q)
    return list(res.scalars().all())

  async def create_notification_from_third_party_item(
    self,
    db: AsyncSession,
    item: ThirdPartyItem,
    adapter: NotificationSource,
    user_id: str,
  ) -> Notification | None:
    """Derive the notification of ``item``, updating the existing one in place.

    ``snoozed_until`` and ``task_id`` of an existing notification are left as they are.
    """
    connection = await db.get(IntegrationConnection, item.integration_connection_id)
    if connection is None or not should_create_notification(connection, ThirdPartyItemKind(item.kind)):
      return None

    existing = await self.get_notification_for_source_item(db, item.id)
    derived = adapter.third_party_item_into_notification(
      item_payload(item),
      item,
      user_id,
      NotificationStatus(existing.status) if existing is not None else None,
    )
    if derived is None:
      return None

    if existing is not None:
      existing.title = derived.title
      existing.status = derived.status
      existing.kind = derived.kind
      existing.updated_at = derived.updated_at or _now()
      existing.last_read_at = derived.last_read_at
      existing.source_item = item
      await db.flush()
      logger.debug("Updated notification %s from %s item %s", existing.id, item.kind, item.source_id)
      return existing

    derived.user_id = user_id
    derived.source_item_id = item.id
    derived.source_item = item
    derived.created_at = derived.created_at or _now()
    derived.updated_at = derived.updated_at or _now()
    db.add(derived)
    await db.flush()
    logger.debug("Created notification %s from %s item %s", derived.id, item.kind, item.source_id)
    return derived

  async def patch_notification(
    self,
    db: AsyncSession,
    notification_id: str,
    patch: NotificationPatch,
    user_id: str,
    *,
    apply_to_source: bool = True,
  ) -> Notification:
    notification = await self.get_user_notification(db, notification_id, user_id)
    if patch.is_empty():
      return notification

    fields = patch.model_fields_set
    new_status = patch.status if "status" in fields else None
    if apply_to_source:
      # The upstream call goes first; a failure leaves the row as it was.
      adapter = self.providers.notification_source_for_item(notification.source_item)
      if new_status is not None and new_status != notification.status:
        if new_status == NotificationStatus.deleted:
          await adapter.delete_notification_from_source(db, notification.source_item, user_id)
        elif new_status == NotificationStatus.unsubscribed:
          await adapter.unsubscribe_notification_from_source(db, notification.source_item, user_id)
      if "snoozed_until" in fields and patch.snoozed_until is not None and patch.snoozed_until != notification.snoozed_until:
        if adapter.is_supporting_snoozed_notifications():
          await adapter.snooze_notification_from_source(db, notification.source_item, patch.snoozed_until, user_id)

    if new_status is not None:
      if new_status == NotificationStatus.read and notification.status != NotificationStatus.read:
        notification.last_read_at = _now()
      notification.status = new_status.value
    if "snoozed_until" in fields:
      notification.snoozed_until = patch.snoozed_until
    if "task_id" in fields:
      notification.task_id = patch.task_id
    notification.updated_at = _now()
    await db.flush()
    return notification

  async def delete_stale_notifications_status_from_source_ids(
    self,
    db: AsyncSession,
    active_source_ids: list[str],
    kind: NotificationSourceKind,
    user_id: str,
    integration_connection_id: str,
  ) -> list[Notification]:
    """Mark as deleted the live notifications whose item is no longer returned by the source."""
    q = (
      select(Notification)
      .join(ThirdPartyItem, ThirdPartyItem.id == Notification.source_item_id)
      .where(
        and_(
          Notification.user_id == user_id,
          Notification.kind == kind.value,
          Notification.status.in_(_LIVE_STATUSES),
          ThirdPartyItem.integration_connection_id == integration_connection_id,
        )
      )
    )
    if active_source_ids:
      q = q.where(ThirdPartyItem.source_id.not_in(active_source_ids))
    res = await db.execute(q)
    stale = list(res.scalars().all())
    now = _now()
    for n in stale:
      n.status = NotificationStatus.deleted.value
      n.updated_at = now
    if stale:
      await db.flush()
      logger.info("Marked %s stale %s notifications as deleted", len(stale), kind)
    return stale

  async def link_notification_with_task(
    self, db: AsyncSession, notification_id: str, task_id: str, user_id: str
  ) -> Notification:
    return await self.patch_notification(
      db, notification_id, NotificationPatch(task_id=task_id), user_id, apply_to_source=False
    )

  async def create_task_from_notification(
    self,
    db: AsyncSession,
    notification_id: str,
    user_id: str,
    creation: TaskCreation | None = None,
  ) -> Task:
    """Archive the notification upstream, then push it into the user's task sink."""
    notification = await self.get_user_notification(db, notification_id, user_id)
    if notification.task_id is not None:
      raise UnsupportedAction(f"Notification {notification_id} is already linked to task {notification.task_id}")
    sink = await self.providers.task_sink_for_user(db, user_id)
    if sink is None:
      raise UnsupportedAction("No task management integration is connected")

    # A failing upstream archive must not leave a task behind in the sink
    if notification.status != NotificationStatus.deleted:
      adapter = self.providers.notification_source_for_item(notification.source_item)
      await adapter.delete_notification_from_source(db, notification.source_item, user_id)

    if creation is None:
      url = item_html_url(notification.source_item)
      creation = TaskCreation(title=notification.title, body=url, priority=TaskPriority.P4)
    sink_item = await sink.create_task(db, creation, user_id)
    upsert = await self.third_party_item_service.create_or_update_third_party_item(db, sink_item)
    task = await self.task_service.create_task_from_third_party_item(db, upsert.value(), sink, user_id)
    if task is None:
      raise UnsupportedAction(f"Cannot create a task from notification {notification_id}")
    await self.patch_notification(
      db,
      notification.id,
      NotificationPatch(status=NotificationStatus.deleted, task_id=task.id),
      user_id,
      apply_to_source=False,
    )
    return task
