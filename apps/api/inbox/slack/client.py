"""Thin wrappers over the Slack Web API methods the inbox uses.

Slack answers HTTP 200 with ``{"ok": false, "error": ...}`` on failure; those are turned into
``ProviderApiError`` with a 404 status for the errors meaning the target is gone.
"""

from __future__ import annotations

from typing import Any

import httpx

from inbox.config import settings
from inbox.http import ProviderApiError, ProviderAuth, request_json

PROVIDER = "Slack"

NOT_FOUND_ERRORS = frozenset(
  {
    "message_not_found",
    "channel_not_found",
    "file_not_found",
    "not_starred",
    "no_reaction",
    "thread_not_found",
    "user_not_found",
    "bot_not_found",
  }
)


def slack_auth(token: str, transport: httpx.AsyncBaseTransport | None = None) -> ProviderAuth:
  return ProviderAuth(base_url=settings.slack_base_url, token=token, transport=transport)


async def slack_api(auth: ProviderAuth, method: str, *, post: bool = False, **params: Any) -> dict[str, Any]:
  params = {k: v for k, v in params.items() if v is not None}
  async with auth.httpx_client() as client:
    if post:
      data = await request_json(client, PROVIDER, "POST", f"/{method}", json=params)
    else:
      data = await request_json(client, PROVIDER, "GET", f"/{method}", params=params)
  data = data or {}
  if not data.get("ok", False):
    error = str(data.get("error") or "unknown_error")
    status_code = 404 if error in NOT_FOUND_ERRORS else 400
    raise ProviderApiError(provider=PROVIDER, status_code=status_code, message=error, details={"method": method})
  return data


async def slack_get_permalink(*, auth: ProviderAuth, channel: str, message_ts: str) -> str:
  data = await slack_api(auth, "chat.getPermalink", channel=channel, message_ts=message_ts)
  return data["permalink"]


async def slack_fetch_message(*, auth: ProviderAuth, channel: str, ts: str) -> dict[str, Any]:
  data = await slack_api(auth, "conversations.history", channel=channel, latest=ts, inclusive="true", limit=1)
  messages = data.get("messages") or []
  if not messages:
    raise ProviderApiError(provider=PROVIDER, status_code=404, message="message_not_found")
  return messages[0]


async def slack_fetch_thread(*, auth: ProviderAuth, channel: str, thread_ts: str, limit: int) -> list[dict[str, Any]]:
  messages: list[dict[str, Any]] = []
  cursor: str | None = None
  while True:
    data = await slack_api(auth, "conversations.replies", channel=channel, ts=thread_ts, limit=limit, cursor=cursor)
    messages.extend(data.get("messages") or [])
    cursor = (data.get("response_metadata") or {}).get("next_cursor") or None
    if not data.get("has_more") or cursor is None:
      return messages


async def slack_fetch_channel(*, auth: ProviderAuth, channel: str) -> dict[str, Any]:
  data = await slack_api(auth, "conversations.info", channel=channel)
  return data["channel"]


async def slack_fetch_user(*, auth: ProviderAuth, user: str) -> dict[str, Any]:
  data = await slack_api(auth, "users.info", user=user)
  return data["user"]


async def slack_fetch_bot(*, auth: ProviderAuth, bot: str) -> dict[str, Any]:
  data = await slack_api(auth, "bots.info", bot=bot)
  return data["bot"]


async def slack_fetch_team(*, auth: ProviderAuth, team: str) -> dict[str, Any]:
  data = await slack_api(auth, "team.info", team=team)
  return data["team"]


async def slack_list_emojis(*, auth: ProviderAuth) -> dict[str, str]:
  data = await slack_api(auth, "emoji.list")
  return dict(data.get("emoji") or {})


async def slack_list_usergroup_users(*, auth: ProviderAuth, usergroup: str) -> list[str]:
  data = await slack_api(auth, "usergroups.users.list", usergroup=usergroup)
  return list(data.get("users") or [])


async def slack_stars_add(
  *, auth: ProviderAuth, channel: str | None, timestamp: str | None = None, file: str | None = None
) -> None:
  await slack_api(auth, "stars.add", post=True, channel=channel, timestamp=timestamp, file=file)


async def slack_stars_remove(
  *, auth: ProviderAuth, channel: str | None, timestamp: str | None = None, file: str | None = None
) -> None:
  await slack_api(auth, "stars.remove", post=True, channel=channel, timestamp=timestamp, file=file)


async def slack_reactions_add(*, auth: ProviderAuth, name: str, channel: str, timestamp: str) -> None:
  try:
    await slack_api(auth, "reactions.add", post=True, name=name, channel=channel, timestamp=timestamp)
  except ProviderApiError as exc:
    if exc.message != "already_reacted":
      raise


async def slack_reactions_remove(*, auth: ProviderAuth, name: str, channel: str, timestamp: str) -> None:
  await slack_api(auth, "reactions.remove", post=True, name=name, channel=channel, timestamp=timestamp)


async def slack_mark_conversation(*, auth: ProviderAuth, channel: str, ts: str) -> None:
  await slack_api(auth, "conversations.mark", post=True, channel=channel, ts=ts)
