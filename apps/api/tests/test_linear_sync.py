from __future__ import annotations

import httpx
import pytest

from inbox.models import IntegrationProviderKind, NotificationSourceKind, NotificationStatus, TaskStatus
from inbox.notifications.types import NotificationPatch
from tests.conftest import connect, create_user, json_body

LINEAR = "https://api.linear.app/graphql"


def linear_issue(issue_id: str, state_type: str, *, priority: int = 2) -> dict:
  return {
    "id": issue_id,
    "identifier": f"ENG-{issue_id}",
    "title": f"Issue {issue_id}",
    "description": "Details",
    "url": f"https://linear.app/acme/issue/ENG-{issue_id}",
    "priority": priority,
    "createdAt": "2026-10-17T08:00:00Z",
    "updatedAt": "2026-10-18T08:00:00Z",
    "completedAt": "2026-10-18T08:00:00Z" if state_type == "completed" else None,
    "canceledAt": "2026-10-18T08:00:00Z" if state_type == "canceled" else None,
    "state": {"id": f"state-{state_type}", "name": state_type.title(), "type": state_type},
    "team": {"id": "team-1", "key": "ENG", "name": "Engineering"},
    "project": None,
    "labels": {"nodes": [{"name": "bug"}]},
  }


def linear_notification(notification_id: str, *, read_at: str | None = None) -> dict:
  return {
    "id": notification_id,
    "type": "issueAssignedToYou",
    "readAt": read_at,
    "updatedAt": "2026-10-18T09:00:00Z",
    "snoozedUntilAt": None,
    "actor": {"id": "u-2", "name": "Bob"},
    "issue": linear_issue(f"i-{notification_id}", "started"),
  }


def _page(nodes: list[dict]) -> dict:
  return {"nodes": nodes, "pageInfo": {"hasNextPage": False, "endCursor": None}}


def mock_linear(provider_api, *, notifications: list[dict] | None = None, issues: list[dict] | None = None) -> None:
  def _graphql(request: httpx.Request) -> httpx.Response:
    query = json_body(request)["query"]
    if "assignedIssues" in query:
      return httpx.Response(200, json={"data": {"viewer": {"assignedIssues": _page(issues or [])}}})
    if "notifications(" in query:
      return httpx.Response(200, json={"data": {"notifications": _page(notifications or [])}})
    if "notificationArchive" in query:
      return httpx.Response(200, json={"data": {"notificationArchive": {"success": True}}})
    return httpx.Response(200, json={"errors": [{"message": "Unexpected query"}]})

  provider_api.on_request("POST", LINEAR, _graphql)


@pytest.mark.anyio
async def test_linear_issue_states_map_to_task_statuses(db, services, provider_api):
  user, _ = await create_user(db)
  await connect(db, services, user, IntegrationProviderKind.linear, config={"sync_task_config": {"enabled": True}})
  mock_linear(
    provider_api,
    issues=[
      linear_issue("1", "started"),
      linear_issue("2", "unstarted"),
      linear_issue("3", "completed"),
      linear_issue("4", "canceled"),
    ],
  )

  [result] = await services.sync.sync_tasks(db, IntegrationProviderKind.linear, user.id)

  assert result.ok
  tasks = {t.title: t for t in await services.tasks.list_tasks(db, user.id)}
  statuses = {title.split(") ", 1)[1]: TaskStatus(t.status) for title, t in tasks.items()}
  assert statuses == {
    "Issue 1": TaskStatus.active,
    "Issue 2": TaskStatus.active,
    "Issue 3": TaskStatus.done,
    "Issue 4": TaskStatus.deleted,
  }
  started = tasks["[ENG-1](https://linear.app/acme/issue/ENG-1) Issue 1"]
  assert started.project == "Engineering"
  assert started.tags == ["bug"]
  assert tasks["[ENG-3](https://linear.app/acme/issue/ENG-3) Issue 3"].completed_at is not None


@pytest.mark.anyio
async def test_linear_read_notifications_are_read(db, services, provider_api):
  user, _ = await create_user(db)
  await connect(db, services, user, IntegrationProviderKind.linear)
  mock_linear(
    provider_api,
    notifications=[linear_notification("n1"), linear_notification("n2", read_at="2026-10-18T09:30:00Z")],
  )

  [result] = await services.sync.sync_notifications(db, IntegrationProviderKind.linear, user.id)

  assert result.ok
  unread = await services.notifications.get_notification_for_source_id(
    db, "n1", user.id, NotificationSourceKind.linear
  )
  read = await services.notifications.get_notification_for_source_id(db, "n2", user.id, NotificationSourceKind.linear)
  assert unread.status == NotificationStatus.unread
  assert unread.title == "ENG-i-n1 Issue i-n1"
  assert read.status == NotificationStatus.read
  assert read.last_read_at is not None


@pytest.mark.anyio
async def test_deleting_a_linear_notification_archives_it(db, services, provider_api):
  user, _ = await create_user(db)
  await connect(db, services, user, IntegrationProviderKind.linear)
  mock_linear(provider_api, notifications=[linear_notification("n1")])
  await services.sync.sync_notifications(db, IntegrationProviderKind.linear, user.id)
  notification = await services.notifications.get_notification_for_source_id(
    db, "n1", user.id, NotificationSourceKind.linear
  )

  patched = await services.notifications.patch_notification(
    db, notification.id, NotificationPatch(status=NotificationStatus.deleted), user.id
  )

  assert patched.status == NotificationStatus.deleted
  [archive] = [r for r in provider_api.requests if "notificationArchive" in json_body(r)["query"]]
  assert json_body(archive)["variables"] == {"id": "n1"}
