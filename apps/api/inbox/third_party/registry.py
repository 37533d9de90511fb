from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from inbox.errors import UnsupportedAction
from inbox.integration_connections.config import SyncType
from inbox.models import IntegrationConnectionStatus, IntegrationProviderKind, ThirdPartyItem, ThirdPartyItemKind
from inbox.third_party.item import ITEM_PROVIDERS
from inbox.third_party.sources import ItemSource, NotificationSource, TaskSink, TaskSource

# Task managers a locally derived task can be pushed to, in order of preference.
TASK_SINK_PROVIDERS = (IntegrationProviderKind.todoist, IntegrationProviderKind.ticktick)

TASK_ITEM_KINDS = frozenset(
  {ThirdPartyItemKind.todoist_item, ThirdPartyItemKind.ticktick_item, ThirdPartyItemKind.linear_issue}
)
NOTIFICATION_ITEM_KINDS = frozenset(
  {
    ThirdPartyItemKind.github_notification,
    ThirdPartyItemKind.linear_notification,
    ThirdPartyItemKind.google_mail_thread,
    ThirdPartyItemKind.google_drive_comment,
  }
)


class ProviderRegistry:
  """Provider adapters keyed by ``IntegrationProviderKind``; every kind must be registered."""

  def __init__(
    self,
    adapters: dict[IntegrationProviderKind, object],
    integration_connections,
    *,
    task_item_sources: dict[IntegrationProviderKind, ItemSource] | None = None,
  ) -> None:
    missing = set(IntegrationProviderKind) - set(adapters)
    if missing:
      raise ValueError(f"No adapter registered for {sorted(missing)}")
    self._adapters = adapters
    # Providers whose task items come from a different feed than their notifications
    self._task_item_sources = task_item_sources or {}
    self.integration_connections = integration_connections

  def adapter(self, kind: IntegrationProviderKind):
    return self._adapters[kind]

  def item_source(self, kind: IntegrationProviderKind, sync_type: SyncType = SyncType.notifications) -> ItemSource:
    adapter = self._adapters[kind]
    if sync_type == SyncType.tasks:
      adapter = self._task_item_sources.get(kind, adapter)
    if not isinstance(adapter, ItemSource):
      raise UnsupportedAction(f"{kind} items cannot be synchronized")
    return adapter

  def item_sources(self, sync_type: SyncType) -> list[ItemSource]:
    """Adapters whose fetched items feed the given sync type."""
    kinds = TASK_ITEM_KINDS if sync_type == SyncType.tasks else NOTIFICATION_ITEM_KINDS
    sources: list[ItemSource] = []
    for kind in IntegrationProviderKind:
      try:
        source = self.item_source(kind, sync_type)
      except UnsupportedAction:
        continue
      if source.third_party_item_source_kind() in kinds:
        sources.append(source)
    return sources

  def notification_source_for_item(self, item: ThirdPartyItem) -> NotificationSource:
    kind = ITEM_PROVIDERS[ThirdPartyItemKind(item.kind)]
    adapter = self._adapters[kind]
    if not isinstance(adapter, NotificationSource):
      raise UnsupportedAction(f"{kind} is not a notification source")
    return adapter

  def task_source_for_item(self, item: ThirdPartyItem | None, *, required: bool = True) -> TaskSource | None:
    adapter = self._adapters[ITEM_PROVIDERS[ThirdPartyItemKind(item.kind)]] if item is not None else None
    if isinstance(adapter, TaskSource):
      return adapter
    if required:
      raise UnsupportedAction(f"{item.kind if item is not None else 'No'} item cannot be managed as a task")
    return None

  async def task_sink_for_user(self, db: AsyncSession, user_id: str) -> TaskSink | None:
    for kind in TASK_SINK_PROVIDERS:
      connection = await self.integration_connections.get_integration_connection_for_provider(db, kind, user_id)
      if connection is not None and connection.status == IntegrationConnectionStatus.validated:
        adapter = self._adapters[kind]
        if isinstance(adapter, TaskSink):
          return adapter
    return None
