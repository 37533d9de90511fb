from __future__ import annotations

import json

import httpx
import pytest

from inbox.errors import UnsupportedAction
from inbox.http import ProviderApiError
from inbox.models import IntegrationProviderKind, NotificationSourceKind, NotificationStatus, TaskStatus, ThirdPartyItemKind
from inbox.notifications.types import NotificationPatch
from inbox.tasks.types import TaskPatch
from tests.conftest import connect, create_user, form_body, json_body
from tests.test_google_mail_sync import (
  FIRST_MESSAGE_AT,
  GMAIL,
  SECOND_MESSAGE_AT,
  USER_EMAIL,
  _connect_gmail,
  _message,
  _mock_gmail,
  _sync,
  _thread,
)
from tests.test_slack_events import SLACK, connect_slack, mock_slack_workspace, reaction_event

TODOIST = "https://api.todoist.com/api/v1"
TICKTICK = "https://api.ticktick.com/open/v1"

TODOIST_PROJECTS = [
  {"id": "p-inbox", "name": "Inbox", "inbox_project": True},
  {"id": "p-work", "name": "Work"},
]


def mock_todoist(provider_api, items: list[dict] | None = None, *, sync_token: str = "sync-1") -> None:
  def _sync(request: httpx.Request) -> httpx.Response:
    resource_types = json.loads(form_body(request)["resource_types"])
    if resource_types == ["projects"]:
      return httpx.Response(200, json={"projects": TODOIST_PROJECTS, "sync_token": "projects"})
    return httpx.Response(200, json={"items": items or [], "sync_token": sync_token, "full_sync": True})

  provider_api.on_request("POST", f"{TODOIST}/sync", _sync)
  provider_api.on_request(
    "POST",
    f"{TODOIST}/tasks",
    lambda request: httpx.Response(
      200,
      json={
        "id": "td-9",
        "project_id": "p-inbox",
        "content": json_body(request)["content"],
        "description": json_body(request).get("description", ""),
        "priority": json_body(request).get("priority", 1),
        "added_at": "2026-10-19T09:00:00Z",
      },
    ),
  )
  for action in ("close", "reopen"):
    provider_api.on("POST", f"{TODOIST}/tasks/td-9/{action}", status_code=204)


@pytest.mark.anyio
async def test_slack_reaction_task_is_mirrored_to_todoist(db, services, provider_api):
  user, _ = await create_user(db)
  await connect_slack(
    db,
    services,
    user,
    {"reaction_config": {"sync_enabled": True, "reaction_name": "eyes", "sync_type": {"type": "AsTasks"}}},
  )
  await connect(db, services, user, IntegrationProviderKind.todoist)
  mock_slack_workspace(provider_api)
  mock_todoist(provider_api)

  await services.slack_events.handle_event(db, reaction_event("reaction_added", "eyes"))
  await db.commit()

  [task] = await services.tasks.list_tasks(db, user.id)
  assert task.status == TaskStatus.active
  assert task.source_item.kind == ThirdPartyItemKind.slack_reaction
  assert task.sink_item.kind == ThirdPartyItemKind.todoist_item
  assert task.sink_item.source_id == "td-9"
  [create] = provider_api.calls("POST", f"{TODOIST}/tasks")
  assert json_body(create)["project_id"] == "p-inbox"
  assert "https://acme.slack.com/archives/" in json_body(create)["description"]

  await services.tasks.patch_task(db, task.id, TaskPatch(status=TaskStatus.done), user.id)
  await db.commit()
  assert task.status == TaskStatus.done
  assert task.completed_at is not None
  assert len(provider_api.calls("POST", f"{TODOIST}/tasks/td-9/close")) == 1
  assert task.sink_item.data["checked"] is True

  await services.tasks.patch_task(db, task.id, TaskPatch(status=TaskStatus.active), user.id)
  await db.commit()
  assert task.status == TaskStatus.active
  assert task.completed_at is None
  assert len(provider_api.calls("POST", f"{TODOIST}/tasks/td-9/reopen")) == 1


@pytest.mark.anyio
async def test_removing_the_reaction_completes_the_task_and_its_sink(db, services, provider_api):
  user, _ = await create_user(db)
  await connect_slack(
    db,
    services,
    user,
    {"reaction_config": {"sync_enabled": True, "reaction_name": "eyes", "sync_type": {"type": "AsTasks"}}},
  )
  await connect(db, services, user, IntegrationProviderKind.todoist)
  mock_slack_workspace(provider_api)
  mock_todoist(provider_api)

  await services.slack_events.handle_event(db, reaction_event("reaction_added", "eyes"))
  await services.slack_events.handle_event(db, reaction_event("reaction_removed", "eyes"))
  await db.commit()

  [task] = await services.tasks.list_tasks(db, user.id)
  assert task.status == TaskStatus.done
  assert len(provider_api.calls("POST", f"{TODOIST}/tasks/td-9/close")) == 1
  assert provider_api.calls("POST", f"{SLACK}/reactions.remove") == []


@pytest.mark.anyio
async def test_todoist_sync_creates_tasks_and_stores_sync_token(db, services, provider_api):
  user, _ = await create_user(db)
  connection = await connect(db, services, user, IntegrationProviderKind.todoist)
  mock_todoist(
    provider_api,
    [
      {
        "id": "td-1",
        "project_id": "p-work",
        "content": "Write the report",
        "priority": 4,
        "labels": ["writing"],
        "added_at": "2026-10-01T10:00:00Z",
        "due": {"date": "2026-10-20", "is_recurring": False},
      }
    ],
    sync_token="sync-42",
  )

  [result] = await services.sync.sync_tasks(db, IntegrationProviderKind.todoist, user.id)

  assert result.ok
  assert (result.fetched, result.modified) == (1, 1)
  [task] = await services.tasks.list_tasks(db, user.id)
  assert result.tasks == [task.id]
  assert task.title == "Write the report"
  assert task.project == "Work"
  assert task.priority == 1
  assert task.due_at == "2026-10-20"
  assert task.tags == ["writing"]
  assert task.sink_item_id == task.source_item_id
  connection = await services.integration_connections.get_integration_connection(db, connection.id)
  assert connection.context == {"items_sync_token": "sync-42"}
  assert connection.last_tasks_sync_completed_at is not None


def mock_ticktick(provider_api, tasks: list[dict]) -> None:
  provider_api.on("GET", f"{TICKTICK}/project", [{"id": "p-home", "name": "Home"}])
  provider_api.on("GET", f"{TICKTICK}/project/inbox/data", {"tasks": tasks})
  provider_api.on("GET", f"{TICKTICK}/project/p-home/data", {"tasks": []})
  provider_api.on("POST", f"{TICKTICK}/project/inbox1234/task/tt-1/complete", status_code=200)


TICKTICK_TASK = {
  "id": "tt-1",
  "projectId": "inbox1234",
  "title": "Buy milk",
  "priority": 3,
  "status": 0,
  "isAllDay": True,
  "dueDate": "2026-10-21T22:00:00+0000",
  "createdTime": "2026-10-18T08:00:00+0000",
}


@pytest.mark.anyio
async def test_ticktick_task_cannot_be_uncompleted(db, services, provider_api):
  user, _ = await create_user(db)
  await connect(db, services, user, IntegrationProviderKind.ticktick)
  mock_ticktick(provider_api, [TICKTICK_TASK])

  [result] = await services.sync.sync_tasks(db, IntegrationProviderKind.ticktick, user.id)
  assert result.ok
  [task] = await services.tasks.list_tasks(db, user.id)
  assert task.project == "Inbox"
  assert task.priority == 2
  assert task.due_at == "2026-10-21"

  await services.tasks.patch_task(db, task.id, TaskPatch(status=TaskStatus.done), user.id)
  await db.commit()
  assert len(provider_api.calls("POST", f"{TICKTICK}/project/inbox1234/task/tt-1/complete")) == 1

  with pytest.raises(UnsupportedAction):
    await services.tasks.patch_task(db, task.id, TaskPatch(status=TaskStatus.active), user.id)
  task = await services.tasks.get_task(db, task.id)
  assert task.status == TaskStatus.done


@pytest.mark.anyio
async def test_ticktick_full_sync_completes_tasks_gone_upstream(db, services, provider_api):
  user, _ = await create_user(db)
  await connect(db, services, user, IntegrationProviderKind.ticktick)
  mock_ticktick(provider_api, [TICKTICK_TASK])
  await services.sync.sync_tasks(db, IntegrationProviderKind.ticktick, user.id)

  mock_ticktick(provider_api, [])
  [result] = await services.sync.sync_tasks(db, IntegrationProviderKind.ticktick, user.id)

  assert result.ok
  assert result.fetched == 1
  [task] = await services.tasks.list_tasks(db, user.id)
  assert task.status == TaskStatus.done
  assert task.source_item.data["status"] == 2


@pytest.mark.anyio
async def test_ticktick_inbox_notification_cannot_be_deleted_or_unsubscribed(db, services, provider_api):
  user, _ = await create_user(db)
  await connect(
    db, services, user, IntegrationProviderKind.ticktick, config={"create_notification_from_inbox_task": True}
  )
  mock_ticktick(provider_api, [TICKTICK_TASK])
  [result] = await services.sync.sync_tasks(db, IntegrationProviderKind.ticktick, user.id)
  assert result.ok
  notification = await services.notifications.get_notification_for_source_id(
    db, "tt-1", user.id, NotificationSourceKind.ticktick
  )
  [task] = await services.tasks.list_tasks(db, user.id)
  assert notification.task_id == task.id

  for status in (NotificationStatus.deleted, NotificationStatus.unsubscribed):
    with pytest.raises(UnsupportedAction):
      await services.notifications.patch_notification(db, notification.id, NotificationPatch(status=status), user.id)
    notification = await services.notifications.get_notification(db, notification.id)
    assert notification.status == NotificationStatus.unread


@pytest.mark.anyio
async def test_task_from_notification_waits_for_the_source_archive(db, services, provider_api):
  user = await _connect_gmail(db, services)
  user_id = user.id
  await connect(db, services, user, IntegrationProviderKind.todoist)
  mock_todoist(provider_api)
  _mock_gmail(
    provider_api,
    _thread(
      _message("m1", FIRST_MESSAGE_AT, ["INBOX", "STARRED"], sender="bob@example.com", to=USER_EMAIL),
      _message("m2", SECOND_MESSAGE_AT, ["INBOX", "STARRED", "UNREAD"], sender="bob@example.com", to=USER_EMAIL),
    ),
  )
  notification = await _sync(db, services, user)
  notification_id = notification.id
  provider_api.on("POST", f"{GMAIL}/threads/456/modify", {"error": "backendError"}, status_code=503)

  with pytest.raises(ProviderApiError):
    await services.notifications.create_task_from_notification(db, notification_id, user_id)
  await db.rollback()

  assert provider_api.calls("POST", f"{TODOIST}/tasks") == []
  assert await services.tasks.list_tasks(db, user_id) == []

  provider_api.on("POST", f"{GMAIL}/threads/456/modify", {})
  task = await services.notifications.create_task_from_notification(db, notification_id, user_id)
  await db.commit()

  assert len(provider_api.calls("POST", f"{TODOIST}/tasks")) == 1
  assert [t.id for t in await services.tasks.list_tasks(db, user_id)] == [task.id]
  notification = await services.notifications.get_notification(db, notification_id)
  assert notification.status == NotificationStatus.deleted
  assert notification.task_id == task.id
  assert len(provider_api.calls("POST", f"{GMAIL}/threads/456/modify")) == 2
