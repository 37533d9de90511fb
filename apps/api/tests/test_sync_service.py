from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from inbox.db import SessionLocal
from inbox.integration_connections.config import SyncType, TodoistContext
from inbox.integration_connections.service import TOO_MANY_SYNC_FAILURES_MESSAGE
from inbox.models import IntegrationConnectionStatus, IntegrationProviderKind
from tests.conftest import connect, create_user, form_body
from tests.test_task_sinks import TODOIST, TODOIST_PROJECTS

TODOIST_ITEM = {"id": "td-1", "project_id": "p-inbox", "content": "Pay rent", "added_at": "2026-10-01T10:00:00Z"}


def mock_todoist_per_token(provider_api, failing_token: str) -> None:
  def _sync(request: httpx.Request) -> httpx.Response:
    if request.headers["authorization"] == f"Bearer {failing_token}":
      return httpx.Response(500, json={"error": "Service Unavailable"})
    if '"projects"' in form_body(request)["resource_types"]:
      return httpx.Response(200, json={"projects": TODOIST_PROJECTS})
    return httpx.Response(200, json={"items": [TODOIST_ITEM], "sync_token": "tok-ok"})

  provider_api.on_request("POST", f"{TODOIST}/sync", _sync)


@pytest.mark.anyio
async def test_a_failing_connection_does_not_stop_the_others(db, services, provider_api):
  broken_user, _ = await create_user(db, email="broken@example.com")
  healthy_user, _ = await create_user(db, email="healthy@example.com")
  broken = await connect(
    db,
    services,
    broken_user,
    IntegrationProviderKind.todoist,
    access_token="broken-token",
    context=TodoistContext(items_sync_token="kept"),
  )
  healthy = await connect(db, services, healthy_user, IntegrationProviderKind.todoist, access_token="healthy-token")
  broken_id, healthy_id = broken.id, healthy.id
  mock_todoist_per_token(provider_api, "broken-token")

  results = await services.sync.sync_tasks(db, IntegrationProviderKind.todoist)

  by_connection = {r.connection_id: r for r in results}
  assert by_connection[broken_id].ok is False
  assert "Service Unavailable" in by_connection[broken_id].error
  assert by_connection[healthy_id].ok
  assert by_connection[healthy_id].modified == 1

  broken = await services.integration_connections.get_integration_connection(db, broken_id)
  assert broken.tasks_sync_failures == 1
  assert broken.last_tasks_sync_failed_at is not None
  assert broken.first_tasks_sync_failed_at is not None
  assert "Service Unavailable" in broken.last_tasks_sync_failure_message
  assert broken.context == {"items_sync_token": "kept"}
  assert broken.status == IntegrationConnectionStatus.validated
  assert await services.tasks.list_tasks(db, broken_user.id) == []

  healthy = await services.integration_connections.get_integration_connection(db, healthy_id)
  assert healthy.tasks_sync_failures == 0
  assert healthy.last_tasks_sync_completed_at is not None
  assert len(await services.tasks.list_tasks(db, healthy_user.id)) == 1


@pytest.mark.anyio
async def test_success_after_failures_resets_counters(db, services, provider_api):
  user, _ = await create_user(db)
  connection = await connect(db, services, user, IntegrationProviderKind.todoist, access_token="flaky-token")
  connection_id = connection.id
  mock_todoist_per_token(provider_api, "flaky-token")
  await services.sync.sync_tasks(db, IntegrationProviderKind.todoist, user.id)

  mock_todoist_per_token(provider_api, "another-token")
  [result] = await services.sync.sync_tasks(db, IntegrationProviderKind.todoist, user.id)

  assert result.ok
  connection = await services.integration_connections.get_integration_connection(db, connection_id)
  assert connection.tasks_sync_failures == 0
  assert connection.last_tasks_sync_failure_message is None
  assert connection.first_tasks_sync_failed_at is None


@pytest.mark.anyio
async def test_failures_over_the_window_mark_the_connection_as_failing(db, services, provider_api):
  user, _ = await create_user(db)
  connection = await connect(db, services, user, IntegrationProviderKind.todoist, access_token="broken-token")
  connection.first_tasks_sync_failed_at = datetime.now(timezone.utc) - timedelta(days=2)
  connection.tasks_sync_failures = 40
  await db.commit()
  connection_id = connection.id
  mock_todoist_per_token(provider_api, "broken-token")

  [result] = await services.sync.sync_tasks(db, IntegrationProviderKind.todoist, user.id)

  assert result.ok is False
  connection = await services.integration_connections.get_integration_connection(db, connection_id)
  assert connection.status == IntegrationConnectionStatus.failing
  assert connection.failure_message == TOO_MANY_SYNC_FAILURES_MESSAGE
  assert connection.tasks_sync_failures == 41


@pytest.mark.anyio
async def test_recent_unfinished_sync_blocks_a_new_one(db, services, provider_api):
  user, _ = await create_user(db)
  connection = await connect(db, services, user, IntegrationProviderKind.todoist)
  connection.last_tasks_sync_started_at = datetime.now(timezone.utc) - timedelta(seconds=10)
  await db.commit()
  mock_todoist_per_token(provider_api, "none")

  [result] = await services.sync.sync_tasks(db, IntegrationProviderKind.todoist, user.id)

  assert result.skipped == "in progress"
  assert provider_api.requests == []


@pytest.mark.anyio
async def test_stale_unfinished_sync_does_not_block(db, services, provider_api):
  user, _ = await create_user(db)
  connection = await connect(db, services, user, IntegrationProviderKind.todoist)
  connection.last_tasks_sync_started_at = datetime.now(timezone.utc) - timedelta(hours=1)
  await db.commit()
  mock_todoist_per_token(provider_api, "none")

  [result] = await services.sync.sync_tasks(db, IntegrationProviderKind.todoist, user.id)

  assert result.skipped is None
  assert result.ok


@pytest.mark.anyio
async def test_items_saved_by_a_failed_sync_are_derived_by_the_next_one(db, services, provider_api):
  user, _ = await create_user(db)
  connection = await connect(db, services, user, IntegrationProviderKind.todoist)
  connection_id = connection.id
  calls = {"items": 0, "projects": 0}

  def _sync(request: httpx.Request) -> httpx.Response:
    if '"projects"' in form_body(request)["resource_types"]:
      calls["projects"] += 1
      if calls["projects"] == 1:
        return httpx.Response(500, json={"error": "Service Unavailable"})
      return httpx.Response(200, json={"projects": TODOIST_PROJECTS})
    calls["items"] += 1
    if calls["items"] == 1:
      return httpx.Response(200, json={"items": [TODOIST_ITEM], "sync_token": "tok-1"})
    return httpx.Response(200, json={"items": [], "sync_token": "tok-2"})

  provider_api.on_request("POST", f"{TODOIST}/sync", _sync)

  [first] = await services.sync.sync_tasks(db, IntegrationProviderKind.todoist, user.id)

  assert first.ok is False
  assert (first.fetched, first.modified, first.tasks) == (1, 1, [])
  connection = await services.integration_connections.get_integration_connection(db, connection_id)
  assert connection.context == {"items_sync_token": "tok-1"}
  assert connection.tasks_sync_failures == 1
  [item] = await services.third_party_items.list_third_party_items(db, user.id)
  assert item.source_id == "td-1"
  assert item.derivation_pending is True
  assert await services.tasks.list_tasks(db, user.id) == []

  [second] = await services.sync.sync_tasks(db, IntegrationProviderKind.todoist, user.id)

  assert second.ok
  assert (second.fetched, second.modified) == (0, 0)
  [task] = await services.tasks.list_tasks(db, user.id)
  assert task.title == "Pay rent"
  assert second.tasks == [task.id]
  items_requests = [
    form_body(r) for r in provider_api.calls("POST", f"{TODOIST}/sync") if '"items"' in form_body(r)["resource_types"]
  ]
  assert [r["sync_token"] for r in items_requests][-1] == "tok-1"
  [item] = await services.third_party_items.list_third_party_items(db, user.id)
  assert item.derivation_pending is False


@pytest.mark.anyio
async def test_only_one_overlapping_sync_claims_the_run(db, services):
  user, _ = await create_user(db)
  connection = await connect(db, services, user, IntegrationProviderKind.todoist)
  now = datetime.now(timezone.utc)

  async with SessionLocal() as other:
    other_connection = await services.integration_connections.get_integration_connection(other, connection.id)
    assert await services.integration_connections.start_sync(other, other_connection, SyncType.tasks, now=now)
    await other.commit()

  assert not await services.integration_connections.start_sync(db, connection, SyncType.tasks, now=now)
  assert connection.last_tasks_sync_started_at is None
  later = now + timedelta(hours=1)
  assert await services.integration_connections.start_sync(db, connection, SyncType.tasks, now=later)
  assert connection.last_tasks_sync_started_at == later


@pytest.mark.anyio
async def test_a_finished_run_releases_the_claim(db, services):
  user, _ = await create_user(db)
  connection = await connect(db, services, user, IntegrationProviderKind.todoist)
  connections = services.integration_connections

  assert await connections.start_sync(db, connection, SyncType.notifications)
  await db.commit()
  assert not await connections.start_sync(db, connection, SyncType.notifications)
  await connections.error_sync(db, connection, SyncType.notifications, "boom")
  await db.commit()
  assert await connections.start_sync(db, connection, SyncType.notifications)
  await connections.complete_sync(db, connection, SyncType.notifications)
  await db.commit()
  assert await connections.start_sync(db, connection, SyncType.notifications)
@pytest.mark.anyio
async def test_disabled_and_disconnected_connections_are_skipped(db, services, provider_api):
  user, _ = await create_user(db)
  connection = await connect(db, services, user, IntegrationProviderKind.todoist, config={"sync_tasks_enabled": False})
  source = services.providers.item_source(IntegrationProviderKind.todoist, SyncType.tasks)

  result = await services.sync.sync_connection(db, source, connection, SyncType.tasks)
  assert result.skipped == "disabled"

  await services.integration_connections.disconnect_integration_connection(db, connection)
  result = await services.sync.sync_connection(db, source, connection, SyncType.tasks)
  assert result.skipped == "not connected"
  assert provider_api.requests == []


@pytest.mark.anyio
async def test_trigger_sync_honors_minimum_interval(db, services, provider_api):
  user, _ = await create_user(db)
  await connect(db, services, user, IntegrationProviderKind.todoist)
  mock_todoist_per_token(provider_api, "none")

  first = await services.sync.trigger_sync_for_integration_connections(db, user.id)
  second = await services.sync.trigger_sync_for_integration_connections(db, user.id)

  assert [(r.provider_kind, r.sync_type) for r in first] == [("Todoist", SyncType.tasks)]
  assert first[0].ok
  assert second == []
