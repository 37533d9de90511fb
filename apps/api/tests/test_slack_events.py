from __future__ import annotations

import pytest
from sqlalchemy import select

from inbox.errors import UnsupportedAction
from inbox.integration_connections.config import SlackContext
from inbox.models import (
  IntegrationProviderKind,
  Notification,
  NotificationSourceKind,
  NotificationStatus,
  ThirdPartyItemKind,
)
from inbox.notifications.types import NotificationPatch
from tests.conftest import connect, create_user, json_body

SLACK = "https://slack.com/api"
TEAM_ID = "T0001"
CHANNEL_ID = "C0001"
MESSAGE_TS = "1700000000.000100"


def mock_slack_workspace(provider_api, *, text: str = "Ship the release <@U0001>") -> None:
  provider_api.on(
    "GET", f"{SLACK}/conversations.history", {"ok": True, "messages": [{"ts": MESSAGE_TS, "text": text, "user": "U0002"}]}
  )
  provider_api.on(
    "GET", f"{SLACK}/chat.getPermalink", {"ok": True, "permalink": f"https://acme.slack.com/archives/{CHANNEL_ID}/p1"}
  )
  provider_api.on(
    "GET", f"{SLACK}/conversations.info", {"ok": True, "channel": {"id": CHANNEL_ID, "name": "general", "is_channel": True}}
  )
  provider_api.on(
    "GET", f"{SLACK}/users.info", {"ok": True, "user": {"id": "U0002", "name": "bob", "profile": {"display_name": "Bob"}}}
  )
  provider_api.on("GET", f"{SLACK}/team.info", {"ok": True, "team": {"id": TEAM_ID, "name": "Acme", "domain": "acme"}})
  provider_api.on(
    "GET", f"{SLACK}/emoji.list", {"ok": True, "emoji": {"shipit": "https://emoji.slack-edge.com/T0001/shipit.png"}}
  )
  for method in ("stars.add", "stars.remove", "reactions.add", "reactions.remove", "conversations.mark"):
    provider_api.on("POST", f"{SLACK}/{method}", {"ok": True})


def star_event(event_type: str, user: str = "U0001") -> dict:
  return {
    "type": "event_callback",
    "team_id": TEAM_ID,
    "event": {
      "type": event_type,
      "user": user,
      "item": {"type": "message", "channel": CHANNEL_ID, "message": {"ts": MESSAGE_TS}},
      "event_ts": "1700000100.000000",
    },
  }


def reaction_event(event_type: str, reaction: str, user: str = "U0001") -> dict:
  return {
    "type": "event_callback",
    "team_id": TEAM_ID,
    "event": {
      "type": event_type,
      "user": user,
      "reaction": reaction,
      "item": {"type": "message", "channel": CHANNEL_ID, "ts": MESSAGE_TS},
      "event_ts": "1700000200.000000",
    },
  }


def message_event(ts: str, text: str, thread_ts: str | None = None) -> dict:
  event = {"type": "message", "channel": CHANNEL_ID, "user": "U0002", "text": text, "ts": ts}
  if thread_ts:
    event["thread_ts"] = thread_ts
  return {"type": "event_callback", "team_id": TEAM_ID, "event": event}


async def connect_slack(db, services, user, config: dict, provider_user_id: str = "U0001"):
  return await connect(
    db,
    services,
    user,
    IntegrationProviderKind.slack,
    config=config,
    context=SlackContext(team_id=TEAM_ID),
    provider_user_id=provider_user_id,
  )


async def _slack_notifications(db, user_id: str) -> list[Notification]:
  res = await db.execute(
    select(Notification).where(
      Notification.user_id == user_id, Notification.kind == NotificationSourceKind.slack.value
    )
  )
  return list(res.scalars().all())


@pytest.mark.anyio
async def test_star_added_then_removed_updates_one_notification(db, services, provider_api):
  user, _ = await create_user(db)
  await connect_slack(db, services, user, {"star_config": {"sync_enabled": True}})
  mock_slack_workspace(provider_api)

  await services.slack_events.handle_event(db, star_event("star_added"))
  await db.commit()
  [added] = await _slack_notifications(db, user.id)
  assert added.status == NotificationStatus.unread
  assert added.title == "Ship the release <@U0001>"
  assert added.source_item.kind == ThirdPartyItemKind.slack_star

  await services.slack_events.handle_event(db, star_event("star_removed"))
  await db.commit()
  [removed] = await _slack_notifications(db, user.id)
  assert removed.id == added.id
  assert removed.status == NotificationStatus.deleted


@pytest.mark.anyio
async def test_star_events_of_other_members_or_disabled_config_are_ignored(db, services, provider_api):
  user, _ = await create_user(db)
  await connect_slack(db, services, user, {"star_config": {"sync_enabled": False}})
  mock_slack_workspace(provider_api)

  await services.slack_events.handle_event(db, star_event("star_added"))
  await services.slack_events.handle_event(db, star_event("star_added", user="U9999"))
  await db.commit()

  assert await _slack_notifications(db, user.id) == []
  assert provider_api.requests == []


@pytest.mark.anyio
async def test_only_the_configured_reaction_is_synced(db, services, provider_api):
  user, _ = await create_user(db)
  await connect_slack(db, services, user, {"reaction_config": {"sync_enabled": True, "reaction_name": "shipit"}})
  mock_slack_workspace(provider_api)

  await services.slack_events.handle_event(db, reaction_event("reaction_added", "eyes"))
  await db.commit()
  assert await _slack_notifications(db, user.id) == []

  await services.slack_events.handle_event(db, reaction_event("reaction_added", "shipit"))
  await db.commit()
  [notification] = await _slack_notifications(db, user.id)
  assert notification.status == NotificationStatus.unread
  assert notification.source_item.data["emoji_url"] == "https://emoji.slack-edge.com/T0001/shipit.png"


@pytest.mark.anyio
async def test_deleting_a_star_notification_unstars_the_message(db, services, provider_api):
  user, _ = await create_user(db)
  await connect_slack(db, services, user, {"star_config": {"sync_enabled": True}})
  mock_slack_workspace(provider_api)
  await services.slack_events.handle_event(db, star_event("star_added"))
  [notification] = await _slack_notifications(db, user.id)

  await services.notifications.patch_notification(
    db, notification.id, NotificationPatch(status=NotificationStatus.deleted), user.id
  )
  await db.commit()

  [remove] = provider_api.calls("POST", f"{SLACK}/stars.remove")
  assert json_body(remove) == {"channel": CHANNEL_ID, "timestamp": MESSAGE_TS}
  assert notification.status == NotificationStatus.deleted


def _mock_thread(provider_api, messages: list[dict]) -> None:
  provider_api.on("GET", f"{SLACK}/conversations.replies", {"ok": True, "messages": messages, "has_more": False})


@pytest.mark.anyio
async def test_mentions_create_thread_notifications_followed_by_later_replies(db, services, provider_api):
  mentioned, _ = await create_user(db, email="mentioned@example.com")
  bystander, _ = await create_user(db, email="bystander@example.com")
  await connect_slack(db, services, mentioned, {}, provider_user_id="U0001")
  await connect_slack(db, services, bystander, {}, provider_user_id="U0003")
  mock_slack_workspace(provider_api)

  root = {"ts": MESSAGE_TS, "thread_ts": MESSAGE_TS, "text": "Can you review <@U0001>?", "user": "U0002"}
  _mock_thread(provider_api, [root])
  await services.slack_events.handle_event(db, message_event(MESSAGE_TS, root["text"]))
  await db.commit()

  [notification] = await _slack_notifications(db, mentioned.id)
  assert notification.status == NotificationStatus.unread
  assert notification.source_item.kind == ThirdPartyItemKind.slack_thread
  assert notification.source_item.source_id == MESSAGE_TS
  assert await _slack_notifications(db, bystander.id) == []

  reply = {"ts": "1700000300.000100", "thread_ts": MESSAGE_TS, "text": "Done", "user": "U0002"}
  _mock_thread(provider_api, [root, reply])
  await services.slack_events.handle_event(db, message_event(reply["ts"], "Done", thread_ts=MESSAGE_TS))
  await db.commit()

  [followed] = await _slack_notifications(db, mentioned.id)
  assert followed.id == notification.id
  assert [m["ts"] for m in followed.source_item.data["messages"]] == [MESSAGE_TS, reply["ts"]]
  assert await _slack_notifications(db, bystander.id) == []


@pytest.mark.anyio
async def test_user_group_mentions_reach_group_members(db, services, provider_api):
  member, _ = await create_user(db)
  await connect_slack(db, services, member, {}, provider_user_id="U0001")
  mock_slack_workspace(provider_api)
  provider_api.on("GET", f"{SLACK}/usergroups.users.list", {"ok": True, "users": ["U0001", "U0004"]})
  root = {"ts": MESSAGE_TS, "thread_ts": MESSAGE_TS, "text": "Heads up <!subteam^S0001|@oncall>", "user": "U0002"}
  _mock_thread(provider_api, [root])

  await services.slack_events.handle_event(db, message_event(MESSAGE_TS, root["text"]))
  await db.commit()

  [notification] = await _slack_notifications(db, member.id)
  assert notification.source_item.kind == ThirdPartyItemKind.slack_thread


@pytest.mark.anyio
async def test_slack_thread_cannot_be_unsubscribed(db, services, provider_api):
  user, _ = await create_user(db)
  await connect_slack(db, services, user, {}, provider_user_id="U0001")
  mock_slack_workspace(provider_api)
  root = {"ts": MESSAGE_TS, "thread_ts": MESSAGE_TS, "text": "Ping <@U0001>", "user": "U0002"}
  _mock_thread(provider_api, [root])
  await services.slack_events.handle_event(db, message_event(MESSAGE_TS, root["text"]))
  [notification] = await _slack_notifications(db, user.id)

  with pytest.raises(UnsupportedAction):
    await services.notifications.patch_notification(
      db, notification.id, NotificationPatch(status=NotificationStatus.unsubscribed), user.id
    )
  assert notification.status == NotificationStatus.unread
