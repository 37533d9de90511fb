from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from inbox.cache import Cache, user_scoped_key
from inbox.config import settings
from inbox.errors import InvalidInputData, UnsupportedAction
from inbox.http import ProviderApiError, ProviderAuth
from inbox.integration_connections.service import IntegrationConnectionService
from inbox.models import (
  IntegrationProviderKind,
  Notification,
  NotificationSourceKind,
  NotificationStatus,
  Task,
  TaskSourceKind,
  TaskStatus,
  ThirdPartyItem,
  ThirdPartyItemKind,
)
from inbox.slack.client import (
  slack_auth,
  slack_fetch_bot,
  slack_fetch_channel,
  slack_fetch_message,
  slack_fetch_team,
  slack_fetch_thread,
  slack_fetch_user,
  slack_get_permalink,
  slack_list_emojis,
  slack_list_usergroup_users,
  slack_mark_conversation,
  slack_reactions_add,
  slack_reactions_remove,
  slack_stars_add,
  slack_stars_remove,
)
from inbox.slack.models import (
  SlackChannelDetails,
  SlackChannelInfo,
  SlackFileDetails,
  SlackHistoryMessage,
  SlackMessageDetails,
  SlackMessageSender,
  SlackReaction,
  SlackReactionState,
  SlackStar,
  SlackStarState,
  SlackTeamInfo,
  SlackThread,
  truncate_with_ellipsis,
)
from inbox.tasks.types import TaskCreationConfig, TaskPatch
from inbox.third_party.item import build_item, item_payload

logger = logging.getLogger(__name__)

TASK_BODY_MAX_LENGTH = 16300
USER_MENTION_RE = re.compile(r"<@([UW][A-Z0-9]+)(?:\|[^>]*)?>")
USERGROUP_MENTION_RE = re.compile(r"<!subteam\^([A-Z0-9]+)(?:\|[^>]*)?>")


def _ts_to_datetime(ts: str | None) -> datetime:
  try:
    return datetime.fromtimestamp(float(ts), tz=timezone.utc)
  except (TypeError, ValueError):
    return datetime.now(timezone.utc)


def _channel_details_type(channel: SlackChannelInfo) -> str:
  if channel.is_im or channel.is_mpim:
    return "SlackIm"
  if channel.is_group or channel.is_private:
    return "SlackGroup"
  return "SlackChannel"


def find_mentioned_ids(text: str | None) -> tuple[set[str], set[str]]:
  """Slack user ids and user group ids mentioned in a message."""
  text = text or ""
  return set(USER_MENTION_RE.findall(text)), set(USERGROUP_MENTION_RE.findall(text))


class SlackService:
  provider_kind = IntegrationProviderKind.slack
  notification_source_kind = NotificationSourceKind.slack
  task_source_kind = TaskSourceKind.slack

  def __init__(
    self,
    integration_connections: IntegrationConnectionService,
    cache: Cache,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
  ) -> None:
    self.integration_connections = integration_connections
    self.cache = cache
    self.transport = transport

  async def _auth(self, db: AsyncSession, user_id: str, action: str) -> tuple[ProviderAuth, str]:
    token, connection = await self.integration_connections.require_access_token(db, self.provider_kind, user_id, action)
    return slack_auth(token, self.transport), connection.id

  async def _cached(self, key: str, ttl_seconds: int, fetch: Callable[[], Awaitable[Any]]) -> Any:
    value = await self.cache.get(key)
    if value is None:
      value = await fetch()
      await self.cache.set(key, value, ttl_seconds)
    return value

  async def get_permalink(self, auth: ProviderAuth, user_id: str, channel: str, ts: str) -> str:
    return await self._cached(
      user_scoped_key(user_id, "slack", "permalink", channel, ts),
      settings.cache_ttl_slack_permalink_seconds,
      lambda: slack_get_permalink(auth=auth, channel=channel, message_ts=ts),
    )

  async def fetch_message(self, auth: ProviderAuth, user_id: str, channel: str, ts: str) -> SlackHistoryMessage:
    raw = await self._cached(
      user_scoped_key(user_id, "slack", "message", channel, ts),
      settings.cache_ttl_slack_message_seconds,
      lambda: slack_fetch_message(auth=auth, channel=channel, ts=ts),
    )
    return SlackHistoryMessage.model_validate(raw)

  async def fetch_channel(self, auth: ProviderAuth, user_id: str, channel: str) -> SlackChannelInfo:
    raw = await self._cached(
      user_scoped_key(user_id, "slack", "channel", channel),
      settings.cache_ttl_slack_channel_seconds,
      lambda: slack_fetch_channel(auth=auth, channel=channel),
    )
    return SlackChannelInfo.model_validate(raw)

  async def fetch_user(self, auth: ProviderAuth, user_id: str, slack_user_id: str) -> SlackMessageSender:
    raw = await self._cached(
      user_scoped_key(user_id, "slack", "user", slack_user_id),
      settings.cache_ttl_slack_user_seconds,
      lambda: slack_fetch_user(auth=auth, user=slack_user_id),
    )
    profile = raw.get("profile") or {}
    return SlackMessageSender(
      type="User",
      id=raw["id"],
      name=profile.get("display_name") or profile.get("real_name") or raw.get("real_name") or raw.get("name") or raw["id"],
      avatar_url=profile.get("image_72"),
    )

  async def fetch_bot(self, auth: ProviderAuth, team_id: str, bot_id: str) -> SlackMessageSender:
    raw = await self._cached(
      f"slack:{team_id}:bot:{bot_id}",
      settings.cache_ttl_slack_bot_seconds,
      lambda: slack_fetch_bot(auth=auth, bot=bot_id),
    )
    return SlackMessageSender(
      type="Bot",
      id=raw.get("id") or bot_id,
      name=raw.get("name") or bot_id,
      avatar_url=(raw.get("icons") or {}).get("image_72"),
    )

  async def fetch_team(self, auth: ProviderAuth, team_id: str) -> SlackTeamInfo:
    raw = await self._cached(
      f"slack:{team_id}:team",
      settings.cache_ttl_slack_team_seconds,
      lambda: slack_fetch_team(auth=auth, team=team_id),
    )
    return SlackTeamInfo(
      id=raw.get("id") or team_id,
      name=raw.get("name"),
      domain=raw.get("domain"),
      icon_url=(raw.get("icon") or {}).get("image_68"),
    )

  async def fetch_emojis(self, auth: ProviderAuth, team_id: str) -> dict[str, str]:
    return await self._cached(
      f"slack:{team_id}:emojis",
      settings.cache_ttl_slack_emojis_seconds,
      lambda: slack_list_emojis(auth=auth),
    )

  async def _custom_emoji_url(self, auth: ProviderAuth, team_id: str, name: str) -> str | None:
    emojis = await self.fetch_emojis(auth, team_id)
    url = emojis.get(name)
    # Aliases point at another emoji of the workspace
    for _ in range(3):
      if url is None or not url.startswith("alias:"):
        break
      url = emojis.get(url.removeprefix("alias:"))
    return url

  async def _sender(
    self, auth: ProviderAuth, user_id: str, team_id: str, message: SlackHistoryMessage
  ) -> SlackMessageSender:
    if message.user:
      return await self.fetch_user(auth, user_id, message.user)
    if message.bot_id:
      return await self.fetch_bot(auth, team_id, message.bot_id)
    raise InvalidInputData(f"No user or bot found for Slack message {message.ts}")

  async def _message_details(
    self, auth: ProviderAuth, user_id: str, team_id: str, channel_id: str, ts: str, thread_ts: str | None = None
  ) -> SlackMessageDetails:
    message = await self.fetch_message(auth, user_id, channel_id, thread_ts or ts)
    return SlackMessageDetails(
      url=await self.get_permalink(auth, user_id, channel_id, ts),
      message=message,
      channel=await self.fetch_channel(auth, user_id, channel_id),
      sender=await self._sender(auth, user_id, team_id, message),
      team=await self.fetch_team(auth, team_id),
    )

  async def list_usergroup_users(self, db: AsyncSession, team_id: str, usergroup_ids: set[str]) -> set[str]:
    """Members of the mentioned user groups, resolved with the token of any connection of the team."""
    connections = await self.integration_connections.find_connection_for_slack_team(db, team_id)
    if not usergroup_ids or not connections:
      return set()
    found = await self.integration_connections.find_access_token(db, self.provider_kind, connections[0].user_id)
    if found is None:
      return set()
    auth = slack_auth(found[0], self.transport)
    users: set[str] = set()
    for usergroup in usergroup_ids:
      users.update(await slack_list_usergroup_users(auth=auth, usergroup=usergroup))
    return users

  async def fetch_item_from_event(
    self,
    db: AsyncSession,
    body: dict[str, Any],
    user_id: str,
    existing_thread: ThirdPartyItem | None = None,
  ) -> ThirdPartyItem | None:
    """Build the item a Slack ``event_callback`` is about, or None for unhandled events.

    ``existing_thread`` is the thread item already saved for a message event; its read state is
    kept as is when it is given.
    """
    event = body.get("event") or {}
    team_id = body.get("team_id") or ""
    event_type = event.get("type")
    match event_type:
      case "star_added" | "star_removed":
        state = SlackStarState.star_added if event_type == "star_added" else SlackStarState.star_removed
        return await self._item_from_star_event(db, team_id, event, state, user_id)
      case "reaction_added" | "reaction_removed":
        state = SlackReactionState.reaction_added if event_type == "reaction_added" else SlackReactionState.reaction_removed
        return await self._item_from_reaction_event(db, team_id, event, state, user_id)
      case "message":
        return await self._item_from_message_event(db, team_id, event, user_id, existing_thread)
      case _:
        logger.info("Ignoring Slack %s event", event_type)
        return None

  async def _item_from_star_event(
    self, db: AsyncSession, team_id: str, event: dict[str, Any], state: SlackStarState, user_id: str
  ) -> ThirdPartyItem | None:
    auth, connection_id = await self._auth(db, user_id, "fetch a Slack star")
    raw_item = event.get("item") or {}
    channel_id = raw_item.get("channel")
    match raw_item.get("type"):
      case "message":
        raw_message = raw_item.get("message") or {}
        details = await self._message_details(
          auth, user_id, team_id, channel_id, raw_message["ts"], raw_message.get("thread_ts")
        )
      case "file":
        raw_file = raw_item.get("file") or {}
        sender = await self.fetch_user(auth, user_id, raw_file["user"]) if raw_file.get("user") else None
        details = SlackFileDetails(
          id=raw_file["id"],
          title=raw_file.get("title"),
          channel=await self.fetch_channel(auth, user_id, channel_id),
          sender=sender,
          team=await self.fetch_team(auth, team_id),
        )
      case "channel" | "im" | "group":
        channel = await self.fetch_channel(auth, user_id, channel_id)
        details = SlackChannelDetails(
          type=_channel_details_type(channel), channel=channel, team=await self.fetch_team(auth, team_id)
        )
      case other:
        logger.info("Ignoring Slack star on a %s", other)
        return None
    star = SlackStar(state=state, created_at=_ts_to_datetime(event.get("event_ts")), item=details)
    return build_item(source_id=star.source_id, payload=star, user_id=user_id, integration_connection_id=connection_id)

  async def _item_from_reaction_event(
    self, db: AsyncSession, team_id: str, event: dict[str, Any], state: SlackReactionState, user_id: str
  ) -> ThirdPartyItem | None:
    raw_item = event.get("item") or {}
    if raw_item.get("type") != "message" or not raw_item.get("channel"):
      return None
    auth, connection_id = await self._auth(db, user_id, "fetch a Slack reaction")
    details = await self._message_details(auth, user_id, team_id, raw_item["channel"], raw_item["ts"])
    name = event.get("reaction") or ""
    reaction = SlackReaction(
      name=name,
      state=state,
      created_at=_ts_to_datetime(event.get("event_ts")),
      item=details,
      emoji_url=await self._custom_emoji_url(auth, team_id, name),
    )
    return build_item(
      source_id=reaction.source_id, payload=reaction, user_id=user_id, integration_connection_id=connection_id
    )

  async def _item_from_message_event(
    self,
    db: AsyncSession,
    team_id: str,
    event: dict[str, Any],
    user_id: str,
    existing_thread: ThirdPartyItem | None,
  ) -> ThirdPartyItem | None:
    channel_id = event.get("channel")
    thread_ts = event.get("thread_ts") or event.get("ts")
    if not channel_id or not thread_ts:
      return None
    auth, connection_id = await self._auth(db, user_id, "fetch a Slack thread")
    raw_messages = await slack_fetch_thread(
      auth=auth, channel=channel_id, thread_ts=thread_ts, limit=min(settings.page_size, 200)
    )
    if not raw_messages:
      return None
    messages = [SlackHistoryMessage.model_validate(m) for m in raw_messages]
    sender_profiles: dict[str, SlackMessageSender] = {}
    for message in messages:
      key = message.user or message.bot_id
      if key and key not in sender_profiles:
        sender_profiles[key] = await self._sender(auth, user_id, team_id, message)

    if existing_thread is not None:
      previous: SlackThread = item_payload(existing_thread)
      subscribed, last_read = previous.subscribed, previous.last_read
    else:
      root = raw_messages[0]
      subscribed, last_read = root.get("subscribed", True), root.get("last_read")
    thread = SlackThread(
      url=await self.get_permalink(auth, user_id, channel_id, thread_ts),
      messages=messages,
      subscribed=subscribed,
      last_read=last_read,
      channel=await self.fetch_channel(auth, user_id, channel_id),
      team=await self.fetch_team(auth, team_id),
      sender_profiles=sender_profiles,
    )
    return build_item(
      source_id=thread.source_id,
      payload=thread,
      user_id=user_id,
      integration_connection_id=connection_id,
      created_at=_ts_to_datetime(messages[0].ts),
      updated_at=_ts_to_datetime(messages[-1].ts),
    )

  def third_party_item_into_notification(
    self,
    payload: SlackStar | SlackReaction | SlackThread,
    item: ThirdPartyItem,
    user_id: str,
    existing_status: NotificationStatus | None = None,
  ) -> Notification:
    if isinstance(payload, SlackThread):
      created_at = _ts_to_datetime(payload.messages[0].ts)
      updated_at = _ts_to_datetime(payload.last_message_ts())
    else:
      created_at = updated_at = payload.created_at
    return Notification(
      title=payload.title(),
      status=payload.notification_status().value,
      kind=self.notification_source_kind.value,
      created_at=created_at,
      updated_at=updated_at,
      user_id=user_id,
    )

  async def _unstar(self, auth: ProviderAuth, star: SlackStar) -> None:
    channel, ts, file = star.channel_and_message()
    # Saved items can only be removed once Slack knows them as stars
    try:
      await slack_stars_add(auth=auth, channel=channel, timestamp=ts, file=file)
    except ProviderApiError as exc:
      if exc.message != "already_starred":
        raise
    try:
      await slack_stars_remove(auth=auth, channel=channel, timestamp=ts, file=file)
    except ProviderApiError as exc:
      if not exc.not_found:
        raise

  async def _star(self, auth: ProviderAuth, star: SlackStar) -> None:
    channel, ts, file = star.channel_and_message()
    try:
      await slack_stars_add(auth=auth, channel=channel, timestamp=ts, file=file)
    except ProviderApiError as exc:
      if exc.message != "already_starred":
        raise

  async def _remove_reaction(self, auth: ProviderAuth, reaction: SlackReaction) -> None:
    try:
      await slack_reactions_remove(
        auth=auth, name=reaction.name, channel=reaction.item.channel.id, timestamp=reaction.item.message.ts
      )
    except ProviderApiError as exc:
      if not exc.not_found:
        raise

  async def delete_notification_from_source(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    auth, _ = await self._auth(db, user_id, "delete a Slack notification")
    payload = item_payload(item)
    match payload:
      case SlackStar():
        await self._unstar(auth, payload)
      case SlackReaction():
        await self._remove_reaction(auth, payload)
      case SlackThread():
        try:
          await slack_mark_conversation(auth=auth, channel=payload.channel.id, ts=payload.last_message_ts())
        except ProviderApiError as exc:
          if not exc.not_found:
            raise

  async def unsubscribe_notification_from_source(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    if item.kind == ThirdPartyItemKind.slack_thread:
      raise UnsupportedAction("Slack threads cannot be unsubscribed from through the Slack API")
    await self.delete_notification_from_source(db, item, user_id)

  async def snooze_notification_from_source(
    self, db: AsyncSession, item: ThirdPartyItem, snoozed_until: datetime, user_id: str
  ) -> None:
    return None

  def is_supporting_snoozed_notifications(self) -> bool:
    return False

  async def third_party_item_into_task(
    self,
    db: AsyncSession,
    payload: SlackStar | SlackReaction,
    item: ThirdPartyItem,
    task_creation_config: TaskCreationConfig | None,
    user_id: str,
  ) -> Task:
    if task_creation_config is None:
      raise InvalidInputData(f"Cannot build a task from a {item.kind} item without task creation defaults")
    if isinstance(payload, SlackStar):
      done = payload.state == SlackStarState.star_removed
    elif isinstance(payload, SlackReaction):
      done = payload.state == SlackReactionState.reaction_removed
    else:
      raise UnsupportedAction(f"{item.kind} items cannot be managed as tasks")
    content = payload.item.content()
    project = task_creation_config.target_project.name if task_creation_config.target_project else "Inbox"
    due_at = task_creation_config.default_due_at.as_due_date() if task_creation_config.default_due_at else None
    return Task(
      title=f"[{truncate_with_ellipsis(content)}]({payload.html_url()})",
      body=content if len(content) <= TASK_BODY_MAX_LENGTH else content[: TASK_BODY_MAX_LENGTH - 3] + "...",
      status=(TaskStatus.done if done else TaskStatus.active).value,
      completed_at=datetime.now(timezone.utc) if done else None,
      priority=int(task_creation_config.default_priority),
      due_at=due_at,
      tags=[],
      project=project,
      is_recurring=False,
      kind=self.task_source_kind.value,
      user_id=user_id,
      created_at=payload.created_at,
      updated_at=payload.created_at,
    )

  async def complete_task(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    auth, _ = await self._auth(db, user_id, "complete a Slack task")
    payload = item_payload(item)
    match payload:
      case SlackStar():
        await self._unstar(auth, payload)
      case SlackReaction():
        await self._remove_reaction(auth, payload)
      case _:
        raise UnsupportedAction(f"{item.kind} items cannot be managed as tasks")

  async def delete_task(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    await self.complete_task(db, item, user_id)

  async def uncomplete_task(self, db: AsyncSession, item: ThirdPartyItem, user_id: str) -> None:
    auth, _ = await self._auth(db, user_id, "uncomplete a Slack task")
    payload = item_payload(item)
    match payload:
      case SlackStar():
        await self._star(auth, payload)
      case SlackReaction():
        await slack_reactions_add(
          auth=auth, name=payload.name, channel=payload.item.channel.id, timestamp=payload.item.message.ts
        )
      case _:
        raise UnsupportedAction(f"{item.kind} items cannot be managed as tasks")

  async def update_task(self, db: AsyncSession, item: ThirdPartyItem, patch: TaskPatch, user_id: str) -> None:
    # Nothing of a Slack star or reaction can be edited
    return None
