from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from inbox.models import NotificationStatus


class _CalendarModel(BaseModel):
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AttendeeResponseStatus(StrEnum):
  needs_action = "needsAction"
  declined = "declined"
  tentative = "tentative"
  accepted = "accepted"


class EventStatus(StrEnum):
  confirmed = "confirmed"
  tentative = "tentative"
  cancelled = "cancelled"


class GoogleCalendarPerson(_CalendarModel):
  id: str | None = None
  email: str | None = None
  display_name: str | None = None
  is_self: bool = Field(False, alias="self")


class EventAttendee(_CalendarModel):
  id: str | None = None
  email: str | None = None
  display_name: str | None = None
  organizer: bool = False
  is_self: bool = Field(False, alias="self")
  optional: bool = False
  response_status: AttendeeResponseStatus = AttendeeResponseStatus.needs_action
  comment: str | None = None


class EventDateTime(_CalendarModel):
  day: date | None = Field(None, alias="date")
  date_time: datetime | None = None
  time_zone: str | None = None


class GoogleCalendarEvent(_CalendarModel):
  id: str
  etag: str | None = None
  html_link: str
  ical_uid: str = Field(alias="iCalUID")
  summary: str | None = None
  description: str | None = None
  location: str | None = None
  status: EventStatus = EventStatus.confirmed
  created: datetime
  updated: datetime
  creator: GoogleCalendarPerson | None = None
  organizer: GoogleCalendarPerson | None = None
  start: EventDateTime
  end: EventDateTime
  attendees: list[EventAttendee] = []
  hangout_link: str | None = None
  sequence: int = 0

  def title(self) -> str:
    return self.summary or "(No title)"

  def self_attendee(self) -> EventAttendee | None:
    for a in self.attendees:
      if a.is_self:
        return a
    return None

  def notification_status(self) -> NotificationStatus:
    attendee = self.self_attendee()
    if attendee is not None and attendee.response_status in (
      AttendeeResponseStatus.accepted,
      AttendeeResponseStatus.declined,
    ):
      return NotificationStatus.read
    return NotificationStatus.unread
