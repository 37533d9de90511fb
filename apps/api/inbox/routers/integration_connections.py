from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from inbox.deps import get_current_user, get_db, get_services
from inbox.errors import InvalidInputData
from inbox.integration_connections.config import CONTEXT_MODELS
from inbox.models import IntegrationProviderKind, User
from inbox.schemas import (
  AccessTokenIn,
  IntegrationConnectionConfigIn,
  IntegrationConnectionContextIn,
  IntegrationConnectionCreateIn,
  IntegrationConnectionOut,
  IntegrationConnectionStatusIn,
  SyncResultOut,
  integration_connection_out,
  sync_result_out,
)
from inbox.services import Services

router = APIRouter(prefix="/integration-connections", tags=["integration-connections"])


def _context_model(kind: IntegrationProviderKind, raw: dict):
  model = CONTEXT_MODELS.get(kind)
  if model is None:
    raise InvalidInputData(f"{kind} connections have no context")
  try:
    return model.model_validate(raw)
  except ValueError as exc:
    raise InvalidInputData(f"Invalid {kind} context: {exc}") from exc


@router.get("", response_model=list[IntegrationConnectionOut])
async def list_connections(
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  services: Services = Depends(get_services),
) -> list[IntegrationConnectionOut]:
  connections = await services.integration_connections.list_integration_connections(db, user_id=actor.id)
  return [integration_connection_out(c) for c in connections]


@router.post("", response_model=IntegrationConnectionOut)
async def create_connection(
  payload: IntegrationConnectionCreateIn,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  services: Services = Depends(get_services),
) -> IntegrationConnectionOut:
  context = _context_model(payload.providerKind, payload.context) if payload.context is not None else None
  connection = await services.integration_connections.create_integration_connection(
    db,
    user_id=actor.id,
    provider_kind=payload.providerKind,
    access_token=payload.accessToken,
    provider_user_id=payload.providerUserId,
    config=payload.config,
    context=context,
  )
  await db.commit()
  return integration_connection_out(connection)


@router.post("/sync", response_model=list[SyncResultOut])
async def trigger_sync(
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  services: Services = Depends(get_services),
) -> list[SyncResultOut]:
  results = await services.sync.trigger_sync_for_integration_connections(db, actor.id)
  await db.commit()
  return [sync_result_out(r) for r in results]


@router.get("/{connection_id}", response_model=IntegrationConnectionOut)
async def get_connection(
  connection_id: str,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  services: Services = Depends(get_services),
) -> IntegrationConnectionOut:
  connection = await services.integration_connections.get_user_integration_connection(db, connection_id, actor.id)
  return integration_connection_out(connection)


@router.put("/{connection_id}/access-token", response_model=IntegrationConnectionOut)
async def set_access_token(
  connection_id: str,
  payload: AccessTokenIn,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  services: Services = Depends(get_services),
) -> IntegrationConnectionOut:
  connection = await services.integration_connections.get_user_integration_connection(db, connection_id, actor.id)
  connection = await services.integration_connections.set_access_token(
    db, connection, payload.accessToken, provider_user_id=payload.providerUserId
  )
  await db.commit()
  return integration_connection_out(connection)


@router.delete("/{connection_id}/access-token", response_model=IntegrationConnectionOut)
async def disconnect(
  connection_id: str,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  services: Services = Depends(get_services),
) -> IntegrationConnectionOut:
  connection = await services.integration_connections.get_user_integration_connection(db, connection_id, actor.id)
  connection = await services.integration_connections.disconnect_integration_connection(db, connection)
  await db.commit()
  return integration_connection_out(connection)


@router.put("/{connection_id}/config", response_model=IntegrationConnectionOut)
async def update_config(
  connection_id: str,
  payload: IntegrationConnectionConfigIn,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  services: Services = Depends(get_services),
) -> IntegrationConnectionOut:
  connection = await services.integration_connections.get_user_integration_connection(db, connection_id, actor.id)
  connection = await services.integration_connections.update_integration_connection_config(db, connection, payload.config)
  await db.commit()
  return integration_connection_out(connection)


@router.put("/{connection_id}/context", response_model=IntegrationConnectionOut)
async def update_context(
  connection_id: str,
  payload: IntegrationConnectionContextIn,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  services: Services = Depends(get_services),
) -> IntegrationConnectionOut:
  connection = await services.integration_connections.get_user_integration_connection(db, connection_id, actor.id)
  context = _context_model(IntegrationProviderKind(connection.provider_kind), payload.context)
  connection = await services.integration_connections.update_integration_connection_context(db, connection.id, context)
  await db.commit()
  return integration_connection_out(connection)


@router.patch("/{connection_id}/status", response_model=IntegrationConnectionOut)
async def update_status(
  connection_id: str,
  payload: IntegrationConnectionStatusIn,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  services: Services = Depends(get_services),
) -> IntegrationConnectionOut:
  connection = await services.integration_connections.get_user_integration_connection(db, connection_id, actor.id)
  connection = await services.integration_connections.update_integration_connection_status(
    db, connection, payload.status, payload.failureMessage
  )
  await db.commit()
  return integration_connection_out(connection)
