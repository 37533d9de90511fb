from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from inbox.deps import get_db, get_services
from inbox.services import Services

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/slack/events")
async def slack_events(
  request: Request,
  db: AsyncSession = Depends(get_db),
  services: Services = Depends(get_services),
) -> dict[str, Any]:
  """Slack Events API callback; requests are expected to be verified upstream."""
  try:
    body = json.loads(await request.body() or b"{}")
  except ValueError:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body") from None

  if body.get("type") == "url_verification":
    return {"challenge": body.get("challenge")}
  if body.get("type") != "event_callback":
    return {"ok": True, "ignored": True}

  await services.slack_events.handle_event(db, body)
  await db.commit()
  return {"ok": True}
