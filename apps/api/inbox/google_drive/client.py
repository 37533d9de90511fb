from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx

from inbox.config import settings
from inbox.http import ProviderAuth, request_json

PROVIDER = "GoogleDrive"
FILE_FIELDS = "files(id,name,modifiedTime,mimeType),nextPageToken,incompleteSearch"
COMMENT_FIELDS = (
  "comments(id,content,htmlContent,quotedFileContent,author,createdTime,modifiedTime,resolved,replies),nextPageToken"
)


def google_drive_auth(token: str, transport: httpx.AsyncBaseTransport | None = None) -> ProviderAuth:
  return ProviderAuth(base_url=settings.google_drive_base_url, token=token, transport=transport)


async def google_drive_get_user(*, auth: ProviderAuth) -> dict[str, Any]:
  async with auth.httpx_client() as client:
    data = await request_json(client, PROVIDER, "GET", "/about", params={"fields": "user(emailAddress,displayName)"})
  return (data or {}).get("user") or {}


async def google_drive_list_files_modified_since(
  *, auth: ProviderAuth, modified_since: datetime, page_size: int, page_token: str | None = None
) -> tuple[list[dict[str, Any]], str | None]:
  since = modified_since.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
  params: dict[str, Any] = {
    "includeItemsFromAllDrives": "true",
    "supportsAllDrives": "true",
    "fields": FILE_FIELDS,
    "pageSize": page_size,
    "q": f'modifiedTime > "{since}"',
  }
  if page_token:
    params["pageToken"] = page_token
  async with auth.httpx_client() as client:
    data = await request_json(client, PROVIDER, "GET", "/files", params=params)
  data = data or {}
  return list(data.get("files") or []), data.get("nextPageToken")


async def google_drive_list_comments(
  *, auth: ProviderAuth, file_id: str, page_size: int, page_token: str | None = None
) -> tuple[list[dict[str, Any]], str | None]:
  params: dict[str, Any] = {"pageSize": page_size, "fields": COMMENT_FIELDS}
  if page_token:
    params["pageToken"] = page_token
  async with auth.httpx_client() as client:
    data = await request_json(client, PROVIDER, "GET", f"/files/{file_id}/comments", params=params)
  data = data or {}
  return list(data.get("comments") or []), data.get("nextPageToken")
