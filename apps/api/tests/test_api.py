from __future__ import annotations

import pytest

from inbox.seed import seed
from tests.conftest import auth_headers, create_user


@pytest.mark.anyio
async def test_health(client):
  r = await client.get("/health")
  assert r.status_code == 200
  assert r.json() == {"ok": True}


@pytest.mark.anyio
async def test_requests_need_a_valid_token(client, db):
  await create_user(db)

  r = await client.get("/notifications")
  assert r.status_code == 401
  r = await client.get("/notifications", headers=auth_headers("not-a-token"))
  assert r.status_code == 401


@pytest.mark.anyio
async def test_web_page_notification_lifecycle(client, db):
  _, token = await create_user(db)
  headers = auth_headers(token)

  r = await client.post(
    "/notifications/web-pages",
    json={"url": "https://example.com/article", "title": "An article"},
    headers=headers,
  )
  assert r.status_code == 200
  created = r.json()
  assert created["title"] == "An article"
  assert created["status"] == "Unread"
  assert created["kind"] == "API"
  assert created["sourceItem"]["sourceId"] == "https://example.com/article"
  assert created["lastReadAt"] is None

  # posting the same page again does not create a second notification
  r = await client.post(
    "/notifications/web-pages",
    json={"url": "https://example.com/article", "title": "An article"},
    headers=headers,
  )
  assert r.json()["id"] == created["id"]

  r = await client.patch(f"/notifications/{created['id']}", json={"status": "Read"}, headers=headers)
  assert r.status_code == 200
  assert r.json()["status"] == "Read"
  assert r.json()["lastReadAt"] is not None

  r = await client.get("/notifications", params={"status": "Read"}, headers=headers)
  assert [n["id"] for n in r.json()] == [created["id"]]
  r = await client.get("/notifications", params={"status": "Unread"}, headers=headers)
  assert r.json() == []


@pytest.mark.anyio
async def test_notifications_of_other_users_are_forbidden(client, db):
  _, owner_token = await create_user(db, email="owner@example.com")
  _, other_token = await create_user(db, email="other@example.com")
  r = await client.post(
    "/notifications/web-pages",
    json={"url": "https://example.com/private", "title": "Private"},
    headers=auth_headers(owner_token),
  )
  notification_id = r.json()["id"]

  r = await client.get(f"/notifications/{notification_id}", headers=auth_headers(other_token))
  assert r.status_code == 403
  r = await client.patch(
    f"/notifications/{notification_id}", json={"status": "Deleted"}, headers=auth_headers(other_token)
  )
  assert r.status_code == 403
  assert r.json()["detail"]["type"] == "Forbidden"

  r = await client.get("/notifications/does-not-exist", headers=auth_headers(owner_token))
  assert r.status_code == 404


@pytest.mark.anyio
async def test_integration_connections_can_be_created_and_listed(client, db):
  _, token = await create_user(db)
  headers = auth_headers(token)

  r = await client.post(
    "/integration-connections",
    json={"providerKind": "Todoist", "accessToken": "todoist-secret-token"},
    headers=headers,
  )
  assert r.status_code == 200
  connection = r.json()
  assert connection["providerKind"] == "Todoist"
  assert connection["status"] == "Validated"
  assert connection["config"]["sync_tasks_enabled"] is True
  assert "todoist-secret-token" not in r.text

  r = await client.post("/integration-connections", json={"providerKind": "Todoist"}, headers=headers)
  assert r.status_code == 409

  r = await client.put(
    f"/integration-connections/{connection['id']}/config",
    json={"config": {"sync_tasks_enabled": False}},
    headers=headers,
  )
  assert r.status_code == 200
  assert r.json()["config"]["sync_tasks_enabled"] is False

  r = await client.delete(f"/integration-connections/{connection['id']}/access-token", headers=headers)
  assert r.json()["status"] == "Created"

  r = await client.get("/integration-connections", headers=headers)
  assert [c["id"] for c in r.json()] == [connection["id"]]


@pytest.mark.anyio
async def test_seed_rotates_the_bootstrap_token(client, monkeypatch):
  monkeypatch.setenv("SEED_USER_EMAIL", "seed@example.com")
  first = await seed()
  second = await seed()

  r = await client.get("/notifications", headers=auth_headers(first))
  assert r.status_code == 401
  r = await client.get("/notifications", headers=auth_headers(second))
  assert r.status_code == 200
  assert r.json() == []
