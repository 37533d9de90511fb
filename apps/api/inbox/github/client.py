from __future__ import annotations

from typing import Any

import httpx

from inbox.config import settings
from inbox.http import ProviderAuth, request_json

PROVIDER = "Github"
GITHUB_HEADERS = {
  "Accept": "application/vnd.github+json",
  "X-GitHub-Api-Version": "2022-11-28",
}


def github_auth(token: str, transport: httpx.AsyncBaseTransport | None = None) -> ProviderAuth:
  return ProviderAuth(base_url=settings.github_base_url, token=token, transport=transport, headers=GITHUB_HEADERS)


async def github_list_notifications(*, auth: ProviderAuth, page: int = 1, per_page: int = 50) -> list[dict[str, Any]]:
  async with auth.httpx_client() as client:
    data = await request_json(
      client,
      PROVIDER,
      "GET",
      "/notifications",
      params={"all": "false", "page": page, "per_page": per_page},
    )
  return data if isinstance(data, list) else []


async def github_mark_thread_as_read(*, auth: ProviderAuth, thread_id: str) -> None:
  async with auth.httpx_client() as client:
    await request_json(client, PROVIDER, "PATCH", f"/notifications/threads/{thread_id}")


async def github_unsubscribe_thread(*, auth: ProviderAuth, thread_id: str) -> None:
  async with auth.httpx_client() as client:
    await request_json(
      client, PROVIDER, "PUT", f"/notifications/threads/{thread_id}/subscription", json={"ignored": True}
    )
