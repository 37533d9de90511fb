from __future__ import annotations

import pytest

from inbox.models import NotificationStatus
from tests.conftest import create_user
from tests.test_slack_events import _slack_notifications, connect_slack, mock_slack_workspace, star_event


@pytest.mark.anyio
async def test_url_verification_echoes_the_challenge(client):
  r = await client.post("/webhooks/slack/events", json={"type": "url_verification", "challenge": "abc123"})
  assert r.status_code == 200
  assert r.json() == {"challenge": "abc123"}


@pytest.mark.anyio
async def test_unknown_payload_types_are_ignored(client):
  r = await client.post("/webhooks/slack/events", json={"type": "app_rate_limited"})
  assert r.json() == {"ok": True, "ignored": True}


@pytest.mark.anyio
async def test_malformed_body_is_rejected(client):
  r = await client.post(
    "/webhooks/slack/events", content=b"{not json", headers={"content-type": "application/json"}
  )
  assert r.status_code == 400


@pytest.mark.anyio
async def test_event_callback_reaches_the_slack_adapter(client, db, services, provider_api):
  user, _ = await create_user(db)
  await connect_slack(db, services, user, {"star_config": {"sync_enabled": True}})
  mock_slack_workspace(provider_api)

  r = await client.post("/webhooks/slack/events", json=star_event("star_added"))

  assert r.json() == {"ok": True}
  [notification] = await _slack_notifications(db, user.id)
  assert notification.status == NotificationStatus.unread
