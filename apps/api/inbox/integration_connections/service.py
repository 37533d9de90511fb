from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import BaseModel
from sqlalchemy import ColumnElement, and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from inbox.config import settings
from inbox.errors import AlreadyExists, InvalidInputData, NotFound, Unauthenticated
from inbox.integration_connections.config import SyncType, default_config, validate_config
from inbox.models import IntegrationConnection, IntegrationConnectionStatus, IntegrationProviderKind
from inbox.security import decrypt_integration_secret, encrypt_secret, token_hint

logger = logging.getLogger(__name__)

TOO_MANY_SYNC_FAILURES_MESSAGE = (
  "Synchronization has been failing for too long. Please reconnect the integration."
)


def _now() -> datetime:
  return datetime.now(timezone.utc)


def _sync_field(sync_type: SyncType, name: str) -> str:
  return name.replace("*", sync_type.value)


def sync_claimable(sync_type: SyncType, now: datetime) -> ColumnElement[bool]:
  """No run started within the cooldown window is still going: none started, or the last one completed or failed."""
  started = getattr(IntegrationConnection, _sync_field(sync_type, "last_*_sync_started_at"))
  completed = getattr(IntegrationConnection, _sync_field(sync_type, "last_*_sync_completed_at"))
  failed = getattr(IntegrationConnection, _sync_field(sync_type, "last_*_sync_failed_at"))
  return or_(
    started.is_(None),
    started <= now - timedelta(seconds=settings.sync_cooldown_seconds),
    completed >= started,
    failed >= started,
  )


class IntegrationConnectionService:
  async def create_integration_connection(
    self,
    db: AsyncSession,
    *,
    user_id: str,
    provider_kind: IntegrationProviderKind,
    access_token: str | None = None,
    provider_user_id: str | None = None,
    config: dict[str, Any] | None = None,
    context: BaseModel | None = None,
  ) -> IntegrationConnection:
    existing = await self.get_integration_connection_for_provider(db, provider_kind, user_id)
    if existing is not None:
      raise AlreadyExists(f"An integration connection for {provider_kind} already exists for user {user_id}")

    connection = IntegrationConnection(
      user_id=user_id,
      provider_kind=provider_kind.value,
      status=IntegrationConnectionStatus.created.value,
      provider_user_id=provider_user_id,
      config=validate_config(provider_kind, config) if config is not None else default_config(provider_kind),
      context=context.model_dump(mode="json") if context is not None else None,
    )
    if access_token:
      connection.access_token_encrypted = encrypt_secret(access_token)
      connection.token_hint = token_hint(access_token)
      connection.status = IntegrationConnectionStatus.validated.value
    db.add(connection)
    await db.flush()
    logger.info("Created %s integration connection %s for user %s", provider_kind, connection.id, user_id)
    return connection

  async def get_integration_connection(self, db: AsyncSession, connection_id: str) -> IntegrationConnection | None:
    res = await db.execute(select(IntegrationConnection).where(IntegrationConnection.id == connection_id))
    return res.scalar_one_or_none()

  async def get_user_integration_connection(
    self, db: AsyncSession, connection_id: str, user_id: str
  ) -> IntegrationConnection:
    connection = await self.get_integration_connection(db, connection_id)
    if connection is None or connection.user_id != user_id:
      raise NotFound(f"Integration connection {connection_id} not found")
    return connection

  async def get_integration_connection_for_provider(
    self, db: AsyncSession, provider_kind: IntegrationProviderKind, user_id: str
  ) -> IntegrationConnection | None:
    res = await db.execute(
      select(IntegrationConnection).where(
        and_(IntegrationConnection.user_id == user_id, IntegrationConnection.provider_kind == provider_kind.value)
      )
    )
    return res.scalar_one_or_none()

  async def list_integration_connections(
    self,
    db: AsyncSession,
    *,
    user_id: str | None = None,
    provider_kind: IntegrationProviderKind | None = None,
    status: IntegrationConnectionStatus | None = None,
  ) -> list[IntegrationConnection]:
    q = select(IntegrationConnection)
    if user_id is not None:
      q = q.where(IntegrationConnection.user_id == user_id)
    if provider_kind is not None:
      q = q.where(IntegrationConnection.provider_kind == provider_kind.value)
    if status is not None:
      q = q.where(IntegrationConnection.status == status.value)
    res = await db.execute(q.order_by(IntegrationConnection.created_at.asc()))
    return list(res.scalars().all())

  async def find_access_token(
    self, db: AsyncSession, provider_kind: IntegrationProviderKind, user_id: str
  ) -> tuple[str, IntegrationConnection] | None:
    connection = await self.get_integration_connection_for_provider(db, provider_kind, user_id)
    if connection is None or connection.status != IntegrationConnectionStatus.validated:
      return None
    if not connection.access_token_encrypted:
      return None
    return decrypt_integration_secret(connection.access_token_encrypted), connection

  async def require_access_token(
    self, db: AsyncSession, provider_kind: IntegrationProviderKind, user_id: str, action: str
  ) -> tuple[str, IntegrationConnection]:
    found = await self.find_access_token(db, provider_kind, user_id)
    if found is None:
      raise Unauthenticated(f"Cannot {action} without a {provider_kind} access token")
    return found

  async def find_connection_for_slack_team(
    self, db: AsyncSession, team_id: str, user_id: str | None = None
  ) -> list[IntegrationConnection]:
    q = select(IntegrationConnection).where(
      and_(
        IntegrationConnection.provider_kind == IntegrationProviderKind.slack.value,
        IntegrationConnection.status == IntegrationConnectionStatus.validated.value,
      )
    )
    if user_id is not None:
      q = q.where(IntegrationConnection.user_id == user_id)
    res = await db.execute(q)
    return [c for c in res.scalars().all() if (c.context or {}).get("team_id") == team_id]

  async def find_connections_for_provider_user_ids(
    self, db: AsyncSession, provider_kind: IntegrationProviderKind, provider_user_ids: list[str]
  ) -> list[IntegrationConnection]:
    if not provider_user_ids:
      return []
    res = await db.execute(
      select(IntegrationConnection).where(
        and_(
          IntegrationConnection.provider_kind == provider_kind.value,
          IntegrationConnection.provider_user_id.in_(provider_user_ids),
          IntegrationConnection.status == IntegrationConnectionStatus.validated.value,
        )
      )
    )
    return list(res.scalars().all())

  async def set_access_token(
    self, db: AsyncSession, connection: IntegrationConnection, access_token: str, *, provider_user_id: str | None = None
  ) -> IntegrationConnection:
    if not access_token.strip():
      raise InvalidInputData("accessToken is required")
    connection.access_token_encrypted = encrypt_secret(access_token.strip())
    connection.token_hint = token_hint(access_token)
    if provider_user_id is not None:
      connection.provider_user_id = provider_user_id
    connection.status = IntegrationConnectionStatus.validated.value
    connection.failure_message = None
    await db.flush()
    return connection

  async def disconnect_integration_connection(
    self, db: AsyncSession, connection: IntegrationConnection
  ) -> IntegrationConnection:
    connection.access_token_encrypted = None
    connection.token_hint = ""
    connection.context = None
    connection.status = IntegrationConnectionStatus.created.value
    connection.failure_message = None
    await db.flush()
    return connection

  async def update_integration_connection_config(
    self, db: AsyncSession, connection: IntegrationConnection, config: dict[str, Any]
  ) -> IntegrationConnection:
    connection.config = validate_config(IntegrationProviderKind(connection.provider_kind), config)
    await db.flush()
    return connection

  async def update_integration_connection_context(
    self, db: AsyncSession, connection_id: str, context: BaseModel
  ) -> IntegrationConnection:
    connection = await self.get_integration_connection(db, connection_id)
    if connection is None:
      raise NotFound(f"Integration connection {connection_id} not found")
    connection.context = context.model_dump(mode="json")
    await db.flush()
    return connection

  async def update_integration_connection_status(
    self,
    db: AsyncSession,
    connection: IntegrationConnection,
    status: IntegrationConnectionStatus,
    failure_message: str | None = None,
  ) -> IntegrationConnection:
    connection.status = status.value
    connection.failure_message = failure_message
    await db.flush()
    return connection

  async def schedule_sync(self, db: AsyncSession, connection: IntegrationConnection, sync_type: SyncType) -> None:
    setattr(connection, _sync_field(sync_type, "last_*_sync_scheduled_at"), _now())
    await db.flush()

  async def start_sync(
    self, db: AsyncSession, connection: IntegrationConnection, sync_type: SyncType, *, now: datetime | None = None
  ) -> bool:
    """Record the start of a run unless another one is in progress; False when the run is not ours."""
    now = now or _now()
    field = _sync_field(sync_type, "last_*_sync_started_at")
    res = await db.execute(
      update(IntegrationConnection)
      .where(and_(IntegrationConnection.id == connection.id, sync_claimable(sync_type, now)))
      .values({field: now})
      .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
      return False
    set_committed_value(connection, field, now)
    return True

  async def complete_sync(self, db: AsyncSession, connection: IntegrationConnection, sync_type: SyncType) -> None:
    setattr(connection, _sync_field(sync_type, "last_*_sync_completed_at"), _now())
    setattr(connection, _sync_field(sync_type, "*_sync_failures"), 0)
    setattr(connection, _sync_field(sync_type, "last_*_sync_failure_message"), None)
    setattr(connection, _sync_field(sync_type, "last_*_sync_failed_at"), None)
    setattr(connection, _sync_field(sync_type, "first_*_sync_failed_at"), None)
    await db.flush()

  async def error_sync(
    self, db: AsyncSession, connection: IntegrationConnection, sync_type: SyncType, failure_message: str
  ) -> None:
    now = _now()
    first_failed_at = getattr(connection, _sync_field(sync_type, "first_*_sync_failed_at"))
    setattr(connection, _sync_field(sync_type, "last_*_sync_failed_at"), now)
    failures = getattr(connection, _sync_field(sync_type, "*_sync_failures")) or 0
    setattr(connection, _sync_field(sync_type, "*_sync_failures"), failures + 1)
    setattr(connection, _sync_field(sync_type, "last_*_sync_failure_message"), failure_message)
    if first_failed_at is None:
      setattr(connection, _sync_field(sync_type, "first_*_sync_failed_at"), now)
    elif now - first_failed_at > timedelta(hours=settings.sync_failure_window_hours):
      logger.warning(
        "%s sync of connection %s failing since %s, marking it as failing",
        sync_type,
        connection.id,
        first_failed_at.isoformat(),
      )
      connection.status = IntegrationConnectionStatus.failing.value
      connection.failure_message = TOO_MANY_SYNC_FAILURES_MESSAGE
    await db.flush()

  def last_sync_completed_at(self, connection: IntegrationConnection, sync_type: SyncType) -> datetime | None:
    return getattr(connection, _sync_field(sync_type, "last_*_sync_completed_at"))
