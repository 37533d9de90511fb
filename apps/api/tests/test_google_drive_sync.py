from __future__ import annotations

from datetime import datetime, timezone

import pytest

from inbox.google_drive.models import GoogleDriveComment
from inbox.google_drive.service import should_create_item
from inbox.models import IntegrationProviderKind, Notification, NotificationStatus, ThirdPartyItem
from tests.conftest import connect, create_user

DRIVE = "https://www.googleapis.com/drive/v3"
USER_EMAIL = "user@example.com"


def _comment(content: str, *, modified: str = "2026-10-18T10:00:00Z", replies: list[dict] | None = None) -> dict:
  return {
    "id": "c1",
    "content": content,
    "author": {"displayName": "Bob", "emailAddress": "bob@example.com"},
    "createdTime": "2026-10-18T09:00:00Z",
    "modifiedTime": modified,
    "resolved": False,
    "replies": replies or [],
  }


def _model(raw: dict) -> GoogleDriveComment:
  return GoogleDriveComment.model_validate(
    {
      **raw,
      "file_id": "f1",
      "file_name": "Roadmap",
      "file_mime_type": "application/vnd.google-apps.document",
      "user_email_address": USER_EMAIL,
      "user_display_name": "Test User",
    }
  )


def _mock_drive(provider_api, comments: list[dict]) -> None:
  provider_api.on("GET", f"{DRIVE}/about", {"user": {"emailAddress": USER_EMAIL, "displayName": "Test User"}})
  provider_api.on(
    "GET",
    f"{DRIVE}/files",
    {
      "files": [
        {
          "id": "f1",
          "name": "Roadmap",
          "mimeType": "application/vnd.google-apps.document",
          "modifiedTime": "2026-10-18T10:00:00Z",
        }
      ]
    },
  )
  provider_api.on("GET", f"{DRIVE}/files/f1/comments", {"comments": comments})


@pytest.mark.anyio
async def test_new_comment_needs_a_mention():
  assert should_create_item(None, _model(_comment("Looks good"))) is False
  assert should_create_item(None, _model(_comment(f"+{USER_EMAIL} can you check?"))) is True


@pytest.mark.anyio
async def test_known_comment_needs_newer_activity():
  comment = _model(_comment("Looks good", modified="2026-10-18T12:00:00Z"))
  item = ThirdPartyItem(updated_at=datetime(2026, 10, 18, 11, 0, tzinfo=timezone.utc))
  existing = Notification(status=NotificationStatus.read.value, source_item=item)
  assert should_create_item(existing, comment) is True

  item.updated_at = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
  assert should_create_item(existing, comment) is False


@pytest.mark.anyio
async def test_unsubscribed_comment_only_returns_for_new_mentions():
  reply = {
    "id": "r1",
    "content": "Anything else?",
    "author": {"displayName": "Bob", "emailAddress": "bob@example.com"},
    "createdTime": "2026-10-18T11:30:00Z",
    "modifiedTime": "2026-10-18T11:30:00Z",
  }
  comment = _model(_comment("Looks good", modified="2026-10-18T12:00:00Z", replies=[reply]))
  item = ThirdPartyItem(updated_at=datetime(2026, 10, 18, 11, 0, tzinfo=timezone.utc))
  existing = Notification(status=NotificationStatus.unsubscribed.value, source_item=item)
  assert should_create_item(existing, comment) is False

  mention = {**reply, "id": "r2", "content": f"+{USER_EMAIL} please"}
  comment = _model(_comment("Looks good", modified="2026-10-18T12:00:00Z", replies=[reply, mention]))
  assert should_create_item(existing, comment) is True


@pytest.mark.anyio
async def test_drive_sync_creates_one_notification_per_mentioning_comment(db, services, provider_api):
  user, _ = await create_user(db, email=USER_EMAIL)
  await connect(db, services, user, IntegrationProviderKind.google_drive)
  _mock_drive(provider_api, [_comment(f"+{USER_EMAIL} can you check?")])

  [first] = await services.sync.sync_notifications(db, IntegrationProviderKind.google_drive, user.id)
  [second] = await services.sync.sync_notifications(db, IntegrationProviderKind.google_drive, user.id)

  assert (first.fetched, first.modified, len(first.notifications)) == (1, 1, 1)
  assert (second.fetched, second.modified) == (0, 0)
  [notification] = await services.notifications.list_notifications(db, user.id)
  assert notification.title == "Comment on Roadmap"
  assert notification.status == NotificationStatus.unread
  assert notification.source_item.source_id == "f1#c1"


@pytest.mark.anyio
async def test_drive_sync_skips_comments_without_mention(db, services, provider_api):
  user, _ = await create_user(db, email=USER_EMAIL)
  await connect(db, services, user, IntegrationProviderKind.google_drive)
  _mock_drive(provider_api, [_comment("Looks good")])

  [result] = await services.sync.sync_notifications(db, IntegrationProviderKind.google_drive, user.id)

  assert result.ok
  assert result.fetched == 0
  assert await services.notifications.list_notifications(db, user.id) == []
