from __future__ import annotations

from typing import Any

import httpx

from inbox.config import settings
from inbox.http import ProviderApiError, ProviderAuth, request_json

PROVIDER = "GoogleMail"


def google_mail_auth(token: str, transport: httpx.AsyncBaseTransport | None = None) -> ProviderAuth:
  return ProviderAuth(base_url=settings.google_mail_base_url, token=token, transport=transport)


async def google_mail_get_profile(*, auth: ProviderAuth) -> dict[str, Any]:
  async with auth.httpx_client() as client:
    data = await request_json(client, PROVIDER, "GET", "/users/me/profile", params={"prettyPrint": "false"})
  return data if isinstance(data, dict) else {}


async def google_mail_list_labels(*, auth: ProviderAuth) -> list[dict[str, Any]]:
  async with auth.httpx_client() as client:
    data = await request_json(client, PROVIDER, "GET", "/users/me/labels", params={"prettyPrint": "false"})
  return list((data or {}).get("labels") or [])


async def google_mail_list_threads(
  *, auth: ProviderAuth, label_ids: list[str], max_results: int, page_token: str | None = None
) -> tuple[list[dict[str, Any]], str | None]:
  params: list[tuple[str, Any]] = [("prettyPrint", "false"), ("maxResults", max_results)]
  params.extend(("labelIds", label) for label in label_ids)
  if page_token:
    params.append(("pageToken", page_token))
  async with auth.httpx_client() as client:
    data = await request_json(client, PROVIDER, "GET", "/users/me/threads", params=params)
  data = data or {}
  return list(data.get("threads") or []), data.get("nextPageToken")


async def google_mail_get_thread(*, auth: ProviderAuth, thread_id: str) -> dict[str, Any]:
  async with auth.httpx_client() as client:
    data = await request_json(
      client,
      PROVIDER,
      "GET",
      f"/users/me/threads/{thread_id}",
      params={"prettyPrint": "false", "format": "full"},
    )
  return data if isinstance(data, dict) else {}


async def google_mail_modify_thread(
  *, auth: ProviderAuth, thread_id: str, add_label_ids: list[str], remove_label_ids: list[str]
) -> None:
  """Change the labels of every message of a thread; an unknown thread is not an error."""
  try:
    async with auth.httpx_client() as client:
      await request_json(
        client,
        PROVIDER,
        "POST",
        f"/users/me/threads/{thread_id}/modify",
        json={"addLabelIds": add_label_ids, "removeLabelIds": remove_label_ids},
      )
  except ProviderApiError as exc:
    if not exc.not_found:
      raise
