from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import and_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from inbox.errors import InvalidInputData
from inbox.models import IntegrationConnection, Task, TaskStatus, ThirdPartyItem, ThirdPartyItemKind, new_id
from inbox.tasks.types import TaskCreationConfig
from inbox.third_party.item import Created, Untouched, Updated, UpsertStatus, marked_as_done, snapshot
from inbox.third_party.sources import ItemSource

if TYPE_CHECKING:
  from inbox.tasks.service import TaskService
  from inbox.third_party.registry import ProviderRegistry

logger = logging.getLogger(__name__)

TASK_ITEM_KINDS = (
  ThirdPartyItemKind.todoist_item,
  ThirdPartyItemKind.ticktick_item,
  ThirdPartyItemKind.slack_star,
  ThirdPartyItemKind.slack_reaction,
  ThirdPartyItemKind.linear_issue,
)


def _insert_for(db: AsyncSession):
  dialect = db.get_bind().dialect.name
  if dialect == "postgresql":
    return postgresql.insert
  if dialect == "sqlite":
    return sqlite.insert
  raise InvalidInputData(f"Unsupported database dialect {dialect}")


class ThirdPartyItemService:
  task_service: TaskService

  def __init__(self, providers: ProviderRegistry) -> None:
    self.providers = providers

  async def get_third_party_item(self, db: AsyncSession, item_id: str) -> ThirdPartyItem | None:
    res = await db.execute(select(ThirdPartyItem).where(ThirdPartyItem.id == item_id))
    return res.scalar_one_or_none()

  async def get_third_party_item_by_source_id(
    self, db: AsyncSession, user_id: str, source_id: str, integration_connection_id: str
  ) -> ThirdPartyItem | None:
    res = await db.execute(
      select(ThirdPartyItem).where(
        and_(
          ThirdPartyItem.user_id == user_id,
          ThirdPartyItem.source_id == source_id,
          ThirdPartyItem.integration_connection_id == integration_connection_id,
        )
      )
    )
    return res.scalar_one_or_none()

  async def find_third_party_items_for_source_id(
    self, db: AsyncSession, kind: ThirdPartyItemKind, source_id: str, user_id: str | None = None
  ) -> list[ThirdPartyItem]:
    """Items of every user and connection sharing a source id, e.g. one Slack thread seen by several members."""
    q = select(ThirdPartyItem).where(and_(ThirdPartyItem.kind == kind.value, ThirdPartyItem.source_id == source_id))
    if user_id is not None:
      q = q.where(ThirdPartyItem.user_id == user_id)
    res = await db.execute(q)
    return list(res.scalars().all())

  async def list_third_party_items(
    self,
    db: AsyncSession,
    user_id: str,
    *,
    kind: ThirdPartyItemKind | None = None,
    limit: int = 100,
    offset: int = 0,
  ) -> list[ThirdPartyItem]:
    q = select(ThirdPartyItem).where(ThirdPartyItem.user_id == user_id)
    if kind is not None:
      q = q.where(ThirdPartyItem.kind == kind.value)
    res = await db.execute(q.order_by(ThirdPartyItem.updated_at.desc()).limit(limit).offset(offset))
    return list(res.scalars().all())

  async def list_items_pending_derivation(
    self, db: AsyncSession, integration_connection_id: str, kind: ThirdPartyItemKind
  ) -> list[ThirdPartyItem]:
    res = await db.execute(
      select(ThirdPartyItem)
      .where(
        and_(
          ThirdPartyItem.integration_connection_id == integration_connection_id,
          ThirdPartyItem.kind == kind.value,
          ThirdPartyItem.derivation_pending.is_(True),
        )
      )
      .order_by(ThirdPartyItem.updated_at)
    )
    return list(res.scalars().all())

  async def create_or_update_third_party_item(self, db: AsyncSession, item: ThirdPartyItem) -> UpsertStatus:
    """Insert ``item`` or update the row with the same (user, source id, connection).

    Equal data leaves the row untouched. Concurrent writers on the same key are serialized by the
    unique constraint; the last one wins on ``data``.
    """
    existing = await self.get_third_party_item_by_source_id(
      db, item.user_id, item.source_id, item.integration_connection_id
    )
    source_item_id = item.source_item_id
    if (
      existing is not None
      and existing.kind == item.kind
      and existing.data == item.data
      and (source_item_id is None or existing.source_item_id == source_item_id)
    ):
      return Untouched(existing)

    old = snapshot(existing) if existing is not None else None
    now = datetime.now(timezone.utc)
    values = {
      "id": new_id(),
      "source_id": item.source_id,
      "kind": item.kind,
      "data": item.data,
      "user_id": item.user_id,
      "integration_connection_id": item.integration_connection_id,
      "source_item_id": source_item_id,
      "created_at": item.created_at or now,
      "updated_at": item.updated_at or now,
    }
    update = {"kind": item.kind, "data": item.data, "updated_at": values["updated_at"]}
    if source_item_id is not None:
      update["source_item_id"] = source_item_id
    stmt = _insert_for(db)(ThirdPartyItem).values(**values)
    stmt = stmt.on_conflict_do_update(
      index_elements=[ThirdPartyItem.user_id, ThirdPartyItem.source_id, ThirdPartyItem.integration_connection_id],
      set_=update,
    )
    await db.execute(stmt)

    res = await db.execute(
      select(ThirdPartyItem)
      .where(
        and_(
          ThirdPartyItem.user_id == item.user_id,
          ThirdPartyItem.source_id == item.source_id,
          ThirdPartyItem.integration_connection_id == item.integration_connection_id,
        )
      )
      .execution_options(populate_existing=True)
    )
    saved = res.scalar_one()
    if old is None and saved.id == values["id"]:
      logger.debug("Created %s item %s", saved.kind, saved.source_id)
      return Created(saved)
    logger.debug("Updated %s item %s", saved.kind, saved.source_id)
    return Updated(saved, old)

  async def _stale_task_items(
    self, db: AsyncSession, connection: IntegrationConnection, kind: ThirdPartyItemKind, active_source_ids: set[str]
  ) -> list[ThirdPartyItem]:
    q = (
      select(ThirdPartyItem)
      .join(Task, Task.source_item_id == ThirdPartyItem.id)
      .where(
        and_(
          ThirdPartyItem.integration_connection_id == connection.id,
          ThirdPartyItem.kind == kind.value,
          Task.status == TaskStatus.active.value,
        )
      )
    )
    if active_source_ids:
      q = q.where(ThirdPartyItem.source_id.not_in(active_source_ids))
    res = await db.execute(q)
    return list(res.scalars().all())

  async def sync_items(
    self,
    db: AsyncSession,
    adapter: ItemSource,
    connection: IntegrationConnection,
    last_sync_completed_at: datetime | None,
  ) -> list[UpsertStatus]:
    """Fetch every item of ``adapter`` and upsert them in the order the source returned them.

    For full (non incremental) task sources, items with an active task that the source no longer
    returns are marked as done.
    """
    items = await adapter.fetch_items(db, connection.user_id, last_sync_completed_at)
    results: list[UpsertStatus] = []
    for item in items:
      results.append(await self.create_or_update_third_party_item(db, item))

    kind = adapter.third_party_item_source_kind()
    if not adapter.is_sync_incremental() and kind in TASK_ITEM_KINDS:
      active = {r.value().source_id for r in results}
      for stale in await self._stale_task_items(db, connection, kind, active):
        logger.info("%s item %s is gone from the source, marking it as done", kind, stale.source_id)
        results.append(await self.create_or_update_third_party_item(db, marked_as_done(stale)))
    return results

  async def create_task_item(
    self,
    db: AsyncSession,
    item: ThirdPartyItem,
    user_id: str,
  ) -> Task | None:
    """Save ``item`` and derive its task."""
    kind = ThirdPartyItemKind(item.kind)
    if kind not in TASK_ITEM_KINDS:
      raise InvalidInputData(f"Cannot create a task from a {kind} item")
    upsert = await self.create_or_update_third_party_item(db, item)
    adapter = self.providers.task_source_for_item(upsert.value())
    if not upsert.is_modified():
      return await self.task_service.get_task_for_item(db, upsert.value())
    return await self.task_service.create_task_from_third_party_item(db, upsert.value(), adapter, user_id)

  async def create_sink_item_from_task(
    self,
    db: AsyncSession,
    task: Task,
    user_id: str,
    *,
    creation_config: TaskCreationConfig | None = None,
    overwrite: bool = False,
  ) -> ThirdPartyItem | None:
    return await self.task_service.create_sink_item_for_task(
      db, task, user_id, creation_config, overwrite=overwrite
    )

