from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from inbox.deps import get_current_user, get_db, get_services
from inbox.errors import NotFound
from inbox.models import IntegrationProviderKind, ThirdPartyItem, ThirdPartyItemKind, User
from inbox.schemas import InvitationAnswerIn, ThirdPartyItemOut, third_party_item_out
from inbox.services import Services
from inbox.third_party.item import with_payload

router = APIRouter(prefix="/third-party", tags=["third-party"])


async def _user_item(db: AsyncSession, services: Services, item_id: str, user_id: str) -> ThirdPartyItem:
  item = await services.third_party_items.get_third_party_item(db, item_id)
  if item is None or item.user_id != user_id:
    raise NotFound(f"Third party item {item_id} not found")
  return item


@router.get("/items", response_model=list[ThirdPartyItemOut])
async def list_items(
  kind: ThirdPartyItemKind | None = None,
  limit: int = Query(default=100, ge=1, le=500),
  offset: int = Query(default=0, ge=0),
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  services: Services = Depends(get_services),
) -> list[ThirdPartyItemOut]:
  items = await services.third_party_items.list_third_party_items(db, actor.id, kind=kind, limit=limit, offset=offset)
  return [third_party_item_out(i) for i in items]


@router.get("/items/{item_id}", response_model=ThirdPartyItemOut)
async def get_item(
  item_id: str,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  services: Services = Depends(get_services),
) -> ThirdPartyItemOut:
  return third_party_item_out(await _user_item(db, services, item_id, actor.id))


@router.post("/items/{item_id}/invitation", response_model=ThirdPartyItemOut)
async def answer_invitation(
  item_id: str,
  payload: InvitationAnswerIn,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  services: Services = Depends(get_services),
) -> ThirdPartyItemOut:
  item = await _user_item(db, services, item_id, actor.id)
  calendar = services.adapter(IntegrationProviderKind.google_calendar)
  event = await calendar.answer_invitation(db, item, payload.responseStatus, actor.id)
  upsert = await services.third_party_items.create_or_update_third_party_item(db, with_payload(item, event))
  if upsert.is_modified():
    await services.notifications.create_notification_from_third_party_item(db, upsert.value(), calendar, actor.id)
  await db.commit()
  return third_party_item_out(upsert.value())
