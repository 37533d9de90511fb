from __future__ import annotations

from typing import Any

import httpx

from inbox.config import settings
from inbox.http import ProviderApiError, ProviderAuth, request_json

PROVIDER = "TickTick"


def ticktick_auth(token: str, transport: httpx.AsyncBaseTransport | None = None) -> ProviderAuth:
  return ProviderAuth(base_url=settings.ticktick_base_url, token=token, transport=transport)


async def ticktick_list_projects(*, auth: ProviderAuth) -> list[dict[str, Any]]:
  async with auth.httpx_client() as client:
    return await request_json(client, PROVIDER, "GET", "/project") or []


async def ticktick_list_project_tasks(*, auth: ProviderAuth, project_id: str) -> list[dict[str, Any]]:
  async with auth.httpx_client() as client:
    data = await request_json(client, PROVIDER, "GET", f"/project/{project_id}/data")
  return (data or {}).get("tasks") or []


async def ticktick_get_task(*, auth: ProviderAuth, project_id: str, task_id: str) -> dict[str, Any] | None:
  try:
    async with auth.httpx_client() as client:
      return await request_json(client, PROVIDER, "GET", f"/project/{project_id}/task/{task_id}")
  except ProviderApiError as exc:
    if exc.not_found:
      return None
    raise


async def ticktick_create_task(*, auth: ProviderAuth, fields: dict[str, Any]) -> dict[str, Any]:
  async with auth.httpx_client() as client:
    return await request_json(client, PROVIDER, "POST", "/task", json=fields)


async def ticktick_update_task(*, auth: ProviderAuth, task_id: str, fields: dict[str, Any]) -> dict[str, Any]:
  async with auth.httpx_client() as client:
    return await request_json(client, PROVIDER, "POST", f"/task/{task_id}", json={"id": task_id, **fields})


async def ticktick_complete_task(*, auth: ProviderAuth, project_id: str, task_id: str) -> None:
  async with auth.httpx_client() as client:
    await request_json(client, PROVIDER, "POST", f"/project/{project_id}/task/{task_id}/complete")


async def ticktick_delete_task(*, auth: ProviderAuth, project_id: str, task_id: str) -> None:
  async with auth.httpx_client() as client:
    await request_json(client, PROVIDER, "DELETE", f"/project/{project_id}/task/{task_id}")


async def ticktick_create_project(*, auth: ProviderAuth, name: str) -> dict[str, Any]:
  async with auth.httpx_client() as client:
    return await request_json(client, PROVIDER, "POST", "/project", json={"name": name})
