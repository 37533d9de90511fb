from __future__ import annotations

from typing import Any

import httpx

from inbox.config import settings
from inbox.http import ProviderApiError, ProviderAuth, request_json

PROVIDER = "Linear"

ISSUE_FIELDS = """
  id identifier title description url priority dueDate createdAt updatedAt completedAt canceledAt
  state { id name type color }
  team { id key name }
  project { id name url }
  assignee { id name avatarUrl url }
  labels { nodes { name } }
"""

NOTIFICATIONS_QUERY = (
  """
query Notifications($first: Int!, $after: String) {
  notifications(first: $first, after: $after) {
    nodes {
      id type readAt updatedAt snoozedUntilAt
      actor { id name avatarUrl url }
      ... on IssueNotification { issue { """
  + ISSUE_FIELDS
  + """ } }
      ... on ProjectNotification { project { id name url } }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""
)

ASSIGNED_ISSUES_QUERY = (
  """
query AssignedIssues($first: Int!, $after: String) {
  viewer {
    assignedIssues(first: $first, after: $after, filter: { state: { type: { nin: ["completed", "canceled"] } } }) {
      nodes { """
  + ISSUE_FIELDS
  + """ }
      pageInfo { hasNextPage endCursor }
    }
  }
}
"""
)

ISSUE_TEAM_STATES_QUERY = """
query IssueTeamStates($id: String!) {
  issue(id: $id) { id team { states { nodes { id name type position } } } }
}
"""

ARCHIVE_NOTIFICATION_MUTATION = """
mutation ArchiveNotification($id: String!) { notificationArchive(id: $id) { success } }
"""

SNOOZE_NOTIFICATION_MUTATION = """
mutation SnoozeNotification($id: String!, $snoozedUntilAt: DateTime!) {
  notificationUpdate(id: $id, input: { snoozedUntilAt: $snoozedUntilAt }) { success }
}
"""

UNSUBSCRIBE_ISSUE_MUTATION = """
mutation UnsubscribeIssue($id: String!) { issueUnsubscribe(id: $id) { success } }
"""

UPDATE_ISSUE_MUTATION = """
mutation UpdateIssue($id: String!, $input: IssueUpdateInput!) { issueUpdate(id: $id, input: $input) { success } }
"""


def linear_auth(token: str, transport: httpx.AsyncBaseTransport | None = None) -> ProviderAuth:
  return ProviderAuth(base_url=settings.linear_graphql_url, token=token, transport=transport)


async def linear_graphql(*, auth: ProviderAuth, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
  async with auth.httpx_client() as client:
    data = await request_json(client, PROVIDER, "POST", "", json={"query": query, "variables": variables or {}})
  if not isinstance(data, dict):
    raise ProviderApiError(provider=PROVIDER, status_code=502, message="Unexpected GraphQL response")
  errors = data.get("errors")
  if isinstance(errors, list) and errors:
    first = errors[0] if isinstance(errors[0], dict) else {}
    message = str(first.get("message") or "GraphQL request failed")
    code = (first.get("extensions") or {}).get("code") if isinstance(first.get("extensions"), dict) else None
    status_code = 404 if code == "ENTITY_NOT_FOUND" else 400
    raise ProviderApiError(provider=PROVIDER, status_code=status_code, message=message, details={"errors": errors})
  return data.get("data") or {}


async def linear_list_notifications(
  *, auth: ProviderAuth, first: int, after: str | None = None
) -> tuple[list[dict[str, Any]], str | None]:
  data = await linear_graphql(auth=auth, query=NOTIFICATIONS_QUERY, variables={"first": first, "after": after})
  conn = data.get("notifications") or {}
  page = conn.get("pageInfo") or {}
  return list(conn.get("nodes") or []), page.get("endCursor") if page.get("hasNextPage") else None


async def linear_list_assigned_issues(
  *, auth: ProviderAuth, first: int, after: str | None = None
) -> tuple[list[dict[str, Any]], str | None]:
  data = await linear_graphql(auth=auth, query=ASSIGNED_ISSUES_QUERY, variables={"first": first, "after": after})
  conn = (data.get("viewer") or {}).get("assignedIssues") or {}
  page = conn.get("pageInfo") or {}
  return list(conn.get("nodes") or []), page.get("endCursor") if page.get("hasNextPage") else None


async def linear_issue_team_states(*, auth: ProviderAuth, issue_id: str) -> list[dict[str, Any]]:
  data = await linear_graphql(auth=auth, query=ISSUE_TEAM_STATES_QUERY, variables={"id": issue_id})
  issue = data.get("issue") or {}
  return list(((issue.get("team") or {}).get("states") or {}).get("nodes") or [])


async def linear_archive_notification(*, auth: ProviderAuth, notification_id: str) -> None:
  await linear_graphql(auth=auth, query=ARCHIVE_NOTIFICATION_MUTATION, variables={"id": notification_id})


async def linear_snooze_notification(*, auth: ProviderAuth, notification_id: str, snoozed_until_at: str) -> None:
  await linear_graphql(
    auth=auth,
    query=SNOOZE_NOTIFICATION_MUTATION,
    variables={"id": notification_id, "snoozedUntilAt": snoozed_until_at},
  )


async def linear_unsubscribe_issue(*, auth: ProviderAuth, issue_id: str) -> None:
  await linear_graphql(auth=auth, query=UNSUBSCRIBE_ISSUE_MUTATION, variables={"id": issue_id})


async def linear_update_issue(*, auth: ProviderAuth, issue_id: str, fields: dict[str, Any]) -> None:
  await linear_graphql(auth=auth, query=UPDATE_ISSUE_MUTATION, variables={"id": issue_id, "input": fields})
