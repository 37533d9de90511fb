from __future__ import annotations

import base64
import binascii
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from inbox.models import NotificationStatus

DEFAULT_SUBJECT = "No subject"
UNREAD_LABEL = "UNREAD"
INBOX_LABEL = "INBOX"
STARRED_LABEL = "STARRED"
IMPORTANT_LABEL = "IMPORTANT"
DEFAULT_HTML_URL = "https://mail.google.com"
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class _GmailModel(BaseModel):
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GoogleMailMessageHeader(_GmailModel):
  name: str
  value: str


class GoogleMailMessageBody(_GmailModel):
  size: int = 0
  data: str | None = None
  attachment_id: str | None = None


class GoogleMailMessagePart(_GmailModel):
  mime_type: str
  filename: str | None = None
  headers: list[GoogleMailMessageHeader] = []
  body: GoogleMailMessageBody | None = None
  parts: list[GoogleMailMessagePart] = []

  def walk(self):
    yield self
    for p in self.parts:
      yield from p.walk()


class GoogleMailMessage(_GmailModel):
  id: str
  thread_id: str
  label_ids: list[str] = []
  snippet: str = ""
  payload: GoogleMailMessagePart
  size_estimate: int = 0
  history_id: str | None = None
  internal_date: datetime

  @field_validator("internal_date", mode="before")
  @classmethod
  def _parse_internal_date(cls, v: Any) -> Any:
    # Gmail sends epoch milliseconds as a string
    if isinstance(v, int) or (isinstance(v, str) and v.isdigit()):
      return EPOCH + timedelta(milliseconds=int(v))
    return v

  @field_serializer("internal_date")
  def _dump_internal_date(self, v: datetime) -> str:
    return str((v - EPOCH) // timedelta(milliseconds=1))

  def get_header(self, name: str) -> str | None:
    for h in self.payload.headers:
      if h.name.lower() == name.lower():
        return h.value
    return None

  def is_tagged_with(self, label_id: str) -> bool:
    return label_id in self.label_ids

  def calendar_invitation_uid(self) -> str | None:
    """UID of the iCalendar part of an invitation email, if any."""
    for part in self.payload.walk():
      if part.mime_type != "text/calendar" or part.body is None or not part.body.data:
        continue
      try:
        raw = base64.urlsafe_b64decode(part.body.data + "=" * (-len(part.body.data) % 4)).decode("utf-8", "replace")
      except (binascii.Error, ValueError):
        continue
      for line in raw.splitlines():
        if line.upper().startswith("UID:"):
          return line[4:].strip()
    return None


class GoogleMailThread(_GmailModel):
  id: str
  user_email_address: str = Field(alias="user_email_address")
  history_id: str | None = None
  messages: list[GoogleMailMessage]

  def html_url(self) -> str:
    if not self.user_email_address:
      return DEFAULT_HTML_URL
    return f"https://mail.google.com/mail/u/{self.user_email_address}/#inbox/{self.id}"

  @property
  def first_message(self) -> GoogleMailMessage:
    return self.messages[0]

  @property
  def last_message(self) -> GoogleMailMessage:
    return self.messages[-1]

  def subject(self) -> str:
    return self.first_message.get_header("Subject") or DEFAULT_SUBJECT

  def is_tagged_with(self, label_id: str) -> bool:
    return any(m.is_tagged_with(label_id) for m in self.messages)

  def first_unread_message_index(self) -> int | None:
    for i, m in enumerate(self.messages):
      if m.is_tagged_with(UNREAD_LABEL):
        return i
    return None

  def last_read_at(self) -> datetime | None:
    i = self.first_unread_message_index()
    if i is None:
      return self.last_message.internal_date
    if i == 0:
      return None
    return self.messages[i - 1].internal_date

  def has_directly_addressed_unread_message(self) -> bool:
    i = self.first_unread_message_index()
    if i is None:
      return False
    email = self.user_email_address.lower()
    return any(email in (m.get_header("To") or "").lower() for m in self.messages[i:])

  def is_last_message_from_user(self) -> bool:
    sender = (self.last_message.get_header("From") or "").lower()
    return bool(self.user_email_address) and self.user_email_address.lower() in sender

  def remove_labels(self, labels: list[str]) -> None:
    for m in self.messages:
      m.label_ids = [label for label in m.label_ids if label not in labels]

  def stays_unsubscribed(self, previous_status: NotificationStatus | str | None) -> bool:
    return previous_status == NotificationStatus.unsubscribed and not self.has_directly_addressed_unread_message()

  def notification_status(self, previous_status: NotificationStatus | str | None = None) -> NotificationStatus:
    if self.stays_unsubscribed(previous_status):
      return NotificationStatus.unsubscribed
    if previous_status != NotificationStatus.unsubscribed and not self.is_tagged_with(INBOX_LABEL):
      return NotificationStatus.unsubscribed
    if self.is_last_message_from_user():
      return NotificationStatus.deleted
    if self.is_tagged_with(UNREAD_LABEL):
      return NotificationStatus.unread
    return NotificationStatus.read

  def calendar_invitation_uid(self) -> str | None:
    for m in reversed(self.messages):
      uid = m.calendar_invitation_uid()
      if uid:
        return uid
    return None
