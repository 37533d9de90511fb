from __future__ import annotations

import base64

import pytest

from inbox.google_calendar.models import GoogleCalendarEvent
from inbox.models import IntegrationProviderKind, NotificationSourceKind, NotificationStatus
from inbox.notifications.types import NotificationPatch
from tests.conftest import connect
from tests.test_google_mail_sync import FIRST_MESSAGE_AT, GMAIL, USER_EMAIL, _connect_gmail, _mock_gmail, _thread

CALENDAR = "https://www.googleapis.com/calendar/v3"
EVENTS = f"{CALENDAR}/calendars/primary/events"


def calendar_event(response_status: str | None = "needsAction") -> dict:
  attendees = [{"email": "bob@example.com", "organizer": True, "responseStatus": "accepted"}]
  if response_status is not None:
    attendees.append({"email": USER_EMAIL, "self": True, "responseStatus": response_status})
  return {
    "id": "evt1",
    "htmlLink": "https://www.google.com/calendar/event?eid=evt1",
    "iCalUID": "evt-uid-1@google.com",
    "summary": "Design review",
    "created": "2026-10-17T08:00:00Z",
    "updated": "2026-10-18T08:00:00Z",
    "start": {"dateTime": "2026-10-21T14:00:00Z"},
    "end": {"dateTime": "2026-10-21T15:00:00Z"},
    "attendees": attendees,
  }


def invitation_message() -> dict:
  ics = "BEGIN:VCALENDAR\r\nBEGIN:VEVENT\r\nUID:evt-uid-1@google.com\r\nEND:VEVENT\r\nEND:VCALENDAR\r\n"
  return {
    "id": "m1",
    "threadId": "456",
    "labelIds": ["INBOX", "STARRED", "UNREAD"],
    "internalDate": FIRST_MESSAGE_AT,
    "payload": {
      "mimeType": "multipart/mixed",
      "headers": [
        {"name": "Subject", "value": "Invitation: Design review"},
        {"name": "From", "value": "bob@example.com"},
        {"name": "To", "value": USER_EMAIL},
      ],
      "parts": [
        {"mimeType": "text/plain", "body": {"size": 4, "data": "dGVzdA"}},
        {
          "mimeType": "text/calendar",
          "body": {"size": len(ics), "data": base64.urlsafe_b64encode(ics.encode()).decode().rstrip("=")},
        },
      ],
    },
  }


async def _sync_invitation(db, services, provider_api, event: dict):
  user = await _connect_gmail(db, services)
  await connect(db, services, user, IntegrationProviderKind.google_calendar)
  _mock_gmail(provider_api, _thread(invitation_message()))
  provider_api.on("GET", EVENTS, {"items": [event]})
  [result] = await services.sync.sync_notifications(db, IntegrationProviderKind.google_mail, user.id)
  assert result.ok
  notification = await services.notifications.get_notification_for_source_id(
    db, "evt1", user.id, NotificationSourceKind.google_calendar
  )
  return user, notification


@pytest.mark.anyio
async def test_answered_invitations_are_read():
  for response_status in ("accepted", "declined"):
    event = GoogleCalendarEvent.model_validate(calendar_event(response_status))
    assert event.notification_status() == NotificationStatus.read
  for response_status in ("needsAction", "tentative", None):
    event = GoogleCalendarEvent.model_validate(calendar_event(response_status))
    assert event.notification_status() == NotificationStatus.unread


@pytest.mark.anyio
async def test_invitation_email_brings_in_its_calendar_event(db, services, provider_api):
  _, notification = await _sync_invitation(db, services, provider_api, calendar_event("needsAction"))

  assert notification.title == "Design review"
  assert notification.status == NotificationStatus.unread
  assert notification.source_item.source_item.source_id == "456"
  [lookup] = provider_api.calls("GET", EVENTS)
  assert lookup.url.params["iCalUID"] == "evt-uid-1@google.com"


@pytest.mark.anyio
async def test_accepted_invitation_event_is_read(db, services, provider_api):
  _, notification = await _sync_invitation(db, services, provider_api, calendar_event("accepted"))

  assert notification.status == NotificationStatus.read


@pytest.mark.anyio
async def test_unsubscribing_from_an_event_deletes_it(db, services, provider_api):
  user, notification = await _sync_invitation(db, services, provider_api, calendar_event())
  provider_api.on("DELETE", f"{EVENTS}/evt1", status_code=204)

  patched = await services.notifications.patch_notification(
    db, notification.id, NotificationPatch(status=NotificationStatus.unsubscribed), user.id
  )

  assert patched.status == NotificationStatus.unsubscribed
  assert len(provider_api.calls("DELETE", f"{EVENTS}/evt1")) == 1


@pytest.mark.anyio
async def test_deleting_an_event_notification_stays_local(db, services, provider_api):
  user, notification = await _sync_invitation(db, services, provider_api, calendar_event())
  before = len(provider_api.requests)

  patched = await services.notifications.patch_notification(
    db, notification.id, NotificationPatch(status=NotificationStatus.deleted), user.id
  )

  assert patched.status == NotificationStatus.deleted
  assert len(provider_api.requests) == before
  assert provider_api.calls("POST", f"{GMAIL}/threads/456/modify") == []
