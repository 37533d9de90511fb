from __future__ import annotations

from datetime import datetime, timezone

import pytest

from inbox.models import IntegrationProviderKind, NotificationSourceKind, NotificationStatus
from tests.conftest import connect, create_user, json_body

GMAIL = "https://gmail.googleapis.com/gmail/v1/users/me"
USER_EMAIL = "user@example.com"

# 2023-09-13 20:27:16 UTC and one hour later
FIRST_MESSAGE_AT = "1694636836000"
SECOND_MESSAGE_AT = "1694640436000"


def _message(message_id: str, internal_date: str, labels: list[str], *, sender: str, to: str) -> dict:
  return {
    "id": message_id,
    "threadId": "456",
    "labelIds": labels,
    "snippet": "snippet",
    "internalDate": internal_date,
    "payload": {
      "mimeType": "text/plain",
      "headers": [
        {"name": "Subject", "value": "test 456"},
        {"name": "From", "value": sender},
        {"name": "To", "value": to},
      ],
      "body": {"size": 4, "data": "dGVzdA"},
    },
  }


def _thread(*messages: dict) -> dict:
  return {"id": "456", "historyId": "1", "messages": list(messages)}


def _mock_gmail(provider_api, thread: dict) -> None:
  provider_api.on("GET", f"{GMAIL}/profile", {"emailAddress": USER_EMAIL})
  provider_api.on("GET", f"{GMAIL}/labels", {"labels": [{"id": "STARRED", "name": "STARRED"}]})
  provider_api.on("GET", f"{GMAIL}/threads", {"threads": [{"id": "456"}]})
  provider_api.on("GET", f"{GMAIL}/threads/456", thread)
  provider_api.on("POST", f"{GMAIL}/threads/456/modify", {})


async def _sync(db, services, user):
  results = await services.sync.sync_notifications(db, IntegrationProviderKind.google_mail, user.id)
  assert [r.error for r in results] == [None]
  return await services.notifications.get_notification_for_source_id(
    db, "456", user.id, NotificationSourceKind.google_mail
  )


async def _connect_gmail(db, services):
  user, _ = await create_user(db, email=USER_EMAIL)
  await connect(db, services, user, IntegrationProviderKind.google_mail, config={"sync_notifications_enabled": True})
  return user


@pytest.mark.anyio
async def test_thread_with_first_unread_reply_keeps_previous_message_as_read_marker(db, services, provider_api):
  user = await _connect_gmail(db, services)
  _mock_gmail(
    provider_api,
    _thread(
      _message("m1", FIRST_MESSAGE_AT, ["INBOX", "STARRED"], sender="bob@example.com", to=USER_EMAIL),
      _message("m2", SECOND_MESSAGE_AT, ["INBOX", "STARRED", "UNREAD"], sender="bob@example.com", to=USER_EMAIL),
    ),
  )

  notification = await _sync(db, services, user)

  assert notification.title == "test 456"
  assert notification.status == NotificationStatus.unread
  assert notification.last_read_at == datetime(2023, 9, 13, 20, 27, 16, tzinfo=timezone.utc)


@pytest.mark.anyio
async def test_fully_read_thread_is_read_up_to_its_last_message(db, services, provider_api):
  user = await _connect_gmail(db, services)
  _mock_gmail(
    provider_api,
    _thread(
      _message("m1", FIRST_MESSAGE_AT, ["INBOX", "STARRED"], sender="bob@example.com", to=USER_EMAIL),
      _message("m2", SECOND_MESSAGE_AT, ["INBOX", "STARRED"], sender="bob@example.com", to=USER_EMAIL),
    ),
  )

  notification = await _sync(db, services, user)

  assert notification.status == NotificationStatus.read
  assert notification.last_read_at == datetime(2023, 9, 13, 21, 27, 16, tzinfo=timezone.utc)
  assert notification.source_item.data["user_email_address"] == USER_EMAIL


@pytest.mark.anyio
async def test_thread_status_follows_labels_and_last_sender(db, services, provider_api):
  user = await _connect_gmail(db, services)
  _mock_gmail(
    provider_api,
    _thread(
      _message("m1", FIRST_MESSAGE_AT, ["INBOX", "STARRED", "UNREAD"], sender="bob@example.com", to=USER_EMAIL),
      _message("m2", SECOND_MESSAGE_AT, ["INBOX", "STARRED"], sender=f"Me <{USER_EMAIL}>", to="bob@example.com"),
    ),
  )
  notification = await _sync(db, services, user)
  # the user already replied
  assert notification.status == NotificationStatus.deleted

  _mock_gmail(
    provider_api,
    _thread(_message("m1", FIRST_MESSAGE_AT, ["STARRED", "UNREAD"], sender="bob@example.com", to=USER_EMAIL)),
  )
  notification = await _sync(db, services, user)
  # archived in Gmail
  assert notification.status == NotificationStatus.unsubscribed


@pytest.mark.anyio
async def test_unsubscribed_thread_stays_archived_unless_user_is_addressed(db, services, provider_api):
  user = await _connect_gmail(db, services)
  first = _message("m1", FIRST_MESSAGE_AT, ["INBOX", "STARRED"], sender="bob@example.com", to=USER_EMAIL)
  _mock_gmail(provider_api, _thread(first))
  notification = await _sync(db, services, user)
  notification.status = NotificationStatus.unsubscribed.value
  await db.commit()

  # a reply to a mailing list the user is not addressed on
  _mock_gmail(
    provider_api,
    _thread(
      first,
      _message("m2", SECOND_MESSAGE_AT, ["INBOX", "STARRED", "UNREAD"], sender="bob@example.com", to="list@example.com"),
    ),
  )
  notification = await _sync(db, services, user)
  assert notification.status == NotificationStatus.unsubscribed
  modify_calls = provider_api.calls("POST", f"{GMAIL}/threads/456/modify")
  assert len(modify_calls) == 1
  assert json_body(modify_calls[0]) == {"addLabelIds": [], "removeLabelIds": ["INBOX", "STARRED"]}
  stored_labels = [m["label_ids"] for m in notification.source_item.data["messages"]]
  assert all("INBOX" not in labels and "STARRED" not in labels for labels in stored_labels)

  # a new message sent to the user brings the thread back
  _mock_gmail(
    provider_api,
    _thread(
      first,
      _message("m3", "1694644036000", ["INBOX", "STARRED", "UNREAD"], sender="bob@example.com", to=USER_EMAIL),
    ),
  )
  notification = await _sync(db, services, user)
  assert notification.status == NotificationStatus.unread


@pytest.mark.anyio
async def test_gmail_sync_is_skipped_when_disabled(db, services, provider_api):
  user, _ = await create_user(db, email=USER_EMAIL)
  await connect(db, services, user, IntegrationProviderKind.google_mail)

  results = await services.sync.sync_notifications(db, IntegrationProviderKind.google_mail, user.id)

  assert [r.skipped for r in results] == ["disabled"]
  assert provider_api.requests == []


@pytest.mark.anyio
async def test_internal_dates_keep_their_milliseconds(db, services, provider_api):
  user = await _connect_gmail(db, services)
  _mock_gmail(
    provider_api,
    _thread(
      _message("m1", "1694636836123", ["INBOX", "STARRED"], sender="bob@example.com", to=USER_EMAIL),
      _message("m2", "1694640436987", ["INBOX", "STARRED", "UNREAD"], sender="bob@example.com", to=USER_EMAIL),
    ),
  )

  notification = await _sync(db, services, user)

  assert notification.last_read_at == datetime(2023, 9, 13, 20, 27, 16, 123000, tzinfo=timezone.utc)
  stored = [m["internal_date"] for m in notification.source_item.data["messages"]]
  assert stored == ["1694636836123", "1694640436987"]

  [result] = await services.sync.sync_notifications(db, IntegrationProviderKind.google_mail, user.id)
  assert (result.fetched, result.modified) == (1, 0)
