from __future__ import annotations

import json
from typing import Any

import httpx

from inbox.config import settings
from inbox.http import ProviderAuth, request_json

PROVIDER = "Todoist"
FULL_SYNC_TOKEN = "*"


def todoist_auth(token: str, transport: httpx.AsyncBaseTransport | None = None) -> ProviderAuth:
  return ProviderAuth(base_url=settings.todoist_base_url, token=token, transport=transport)


async def todoist_sync(
  *, auth: ProviderAuth, resource_types: list[str], sync_token: str | None = None
) -> dict[str, Any]:
  async with auth.httpx_client() as client:
    data = await request_json(
      client,
      PROVIDER,
      "POST",
      "/sync",
      data={"sync_token": sync_token or FULL_SYNC_TOKEN, "resource_types": json.dumps(resource_types)},
    )
  return data or {}


async def todoist_create_task(*, auth: ProviderAuth, fields: dict[str, Any]) -> dict[str, Any]:
  async with auth.httpx_client() as client:
    return await request_json(client, PROVIDER, "POST", "/tasks", json=fields)


async def todoist_update_task(*, auth: ProviderAuth, task_id: str, fields: dict[str, Any]) -> None:
  async with auth.httpx_client() as client:
    await request_json(client, PROVIDER, "POST", f"/tasks/{task_id}", json=fields)


async def todoist_move_task(*, auth: ProviderAuth, task_id: str, project_id: str) -> None:
  async with auth.httpx_client() as client:
    await request_json(client, PROVIDER, "POST", f"/tasks/{task_id}/move", json={"project_id": project_id})


async def todoist_close_task(*, auth: ProviderAuth, task_id: str) -> None:
  async with auth.httpx_client() as client:
    await request_json(client, PROVIDER, "POST", f"/tasks/{task_id}/close")


async def todoist_reopen_task(*, auth: ProviderAuth, task_id: str) -> None:
  async with auth.httpx_client() as client:
    await request_json(client, PROVIDER, "POST", f"/tasks/{task_id}/reopen")


async def todoist_delete_task(*, auth: ProviderAuth, task_id: str) -> None:
  async with auth.httpx_client() as client:
    await request_json(client, PROVIDER, "DELETE", f"/tasks/{task_id}")


async def todoist_create_project(*, auth: ProviderAuth, name: str) -> dict[str, Any]:
  async with auth.httpx_client() as client:
    return await request_json(client, PROVIDER, "POST", "/projects", json={"name": name})
