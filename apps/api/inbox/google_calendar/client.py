from __future__ import annotations

from typing import Any

import httpx

from inbox.config import settings
from inbox.http import ProviderAuth, request_json

PROVIDER = "GoogleCalendar"
PRIMARY_CALENDAR = "primary"


def google_calendar_auth(token: str, transport: httpx.AsyncBaseTransport | None = None) -> ProviderAuth:
  return ProviderAuth(base_url=settings.google_calendar_base_url, token=token, transport=transport)


async def google_calendar_find_event(
  *, auth: ProviderAuth, ical_uid: str, calendar_id: str = PRIMARY_CALENDAR
) -> dict[str, Any] | None:
  async with auth.httpx_client() as client:
    data = await request_json(
      client,
      PROVIDER,
      "GET",
      f"/calendars/{calendar_id}/events",
      params={"iCalUID": ical_uid, "maxResults": 1},
    )
  items = (data or {}).get("items") or []
  return items[0] if items else None


async def google_calendar_delete_event(*, auth: ProviderAuth, event_id: str, calendar_id: str = PRIMARY_CALENDAR) -> None:
  async with auth.httpx_client() as client:
    await request_json(client, PROVIDER, "DELETE", f"/calendars/{calendar_id}/events/{event_id}")


async def google_calendar_patch_event_attendees(
  *, auth: ProviderAuth, event_id: str, attendees: list[dict[str, Any]], calendar_id: str = PRIMARY_CALENDAR
) -> dict[str, Any]:
  async with auth.httpx_client() as client:
    data = await request_json(
      client,
      PROVIDER,
      "PATCH",
      f"/calendars/{calendar_id}/events/{event_id}",
      json={"attendees": attendees},
    )
  return data if isinstance(data, dict) else {}
