"""Capabilities a provider adapter can implement.

Adapters are plain classes; the services test for a capability with ``isinstance`` against these
runtime-checkable protocols.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from sqlalchemy.ext.asyncio import AsyncSession

from inbox.models import (
  IntegrationProviderKind,
  Notification,
  NotificationSourceKind,
  NotificationStatus,
  Task,
  TaskSourceKind,
  ThirdPartyItem,
  ThirdPartyItemKind,
)
from inbox.tasks.types import ProjectSummary, TaskCreation, TaskCreationConfig, TaskPatch


@runtime_checkable
class ItemSource(Protocol):
  provider_kind: IntegrationProviderKind

  def third_party_item_source_kind(self) -> ThirdPartyItemKind: ...

  def is_sync_incremental(self) -> bool: ...

  async def fetch_items(
    self, db: AsyncSession, user_id: str, last_sync_completed_at: datetime | None
  ) -> list[ThirdPartyItem]: ...


@runtime_checkable
class NotificationSource(Protocol):
  provider_kind: IntegrationProviderKind
  notification_source_kind: NotificationSourceKind

  def third_party_item_into_notification(
    self,
    payload: Any,
    item: ThirdPartyItem,
    user_id: str,
    existing_status: NotificationStatus | None = None,
  ) -> Notification | None: ...

  async def delete_notification_from_source(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None: ...

  async def unsubscribe_notification_from_source(
    self, db: AsyncSession, item: ThirdPartyItem, user_id: str
  ) -> None: ...

  async def snooze_notification_from_source(
    self, db: AsyncSession, item: ThirdPartyItem, snoozed_until: datetime, user_id: str
  ) -> None: ...

  def is_supporting_snoozed_notifications(self) -> bool: ...


@runtime_checkable
class TaskSource(Protocol):
  provider_kind: IntegrationProviderKind
  task_source_kind: TaskSourceKind

  async def third_party_item_into_task(
    self,
    db: AsyncSession,
    payload: Any,
    item: ThirdPartyItem,
    task_creation_config: TaskCreationConfig | None,
    user_id: str,
  ) -> Task: ...

  async def delete_task(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None: ...

  async def complete_task(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None: ...

  async def uncomplete_task(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None: ...

  async def update_task(self, db: AsyncSession, item: ThirdPartyItem, patch: TaskPatch, user_id: str) -> None: ...


@runtime_checkable
class TaskSink(Protocol):
  provider_kind: IntegrationProviderKind

  async def create_task(self, db: AsyncSession, creation: TaskCreation, user_id: str) -> ThirdPartyItem: ...

  async def get_or_create_project(self, db: AsyncSession, project_name: str, user_id: str) -> ProjectSummary: ...

  async def search_projects(self, db: AsyncSession, matches: str, user_id: str) -> list[ProjectSummary]: ...


@runtime_checkable
class DerivedItemSource(Protocol):
  """An item source whose saved items can reference items of another provider."""

  async def fetch_derived_items(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> list[ThirdPartyItem]: ...
