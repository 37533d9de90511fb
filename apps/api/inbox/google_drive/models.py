from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from inbox.models import NotificationStatus

DOCUMENT_MIME_TYPE = "application/vnd.google-apps.document"
SPREADSHEET_MIME_TYPE = "application/vnd.google-apps.spreadsheet"
PRESENTATION_MIME_TYPE = "application/vnd.google-apps.presentation"


class _DriveModel(BaseModel):
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GoogleDriveUser(_DriveModel):
  display_name: str
  email_address: str | None = None
  photo_link: str | None = None
  me: bool = False

  def matches(self, display_name: str, email_address: str) -> bool:
    if self.email_address:
      return self.email_address.lower() == email_address.lower()
    return self.display_name == display_name


class QuotedFileContent(_DriveModel):
  mime_type: str | None = None
  value: str | None = None


class GoogleDriveCommentReply(_DriveModel):
  id: str
  content: str = ""
  html_content: str | None = None
  author: GoogleDriveUser
  created_time: datetime
  modified_time: datetime
  action: str | None = None


class GoogleDriveFile(_DriveModel):
  id: str
  name: str
  mime_type: str
  modified_time: datetime


class GoogleDriveComment(_DriveModel):
  id: str
  file_id: str
  file_name: str
  file_mime_type: str
  content: str = ""
  html_content: str | None = None
  quoted_file_content: QuotedFileContent | None = None
  author: GoogleDriveUser
  created_time: datetime
  modified_time: datetime
  resolved: bool = False
  replies: list[GoogleDriveCommentReply] = []
  user_email_address: str
  user_display_name: str

  @property
  def source_id(self) -> str:
    return f"{self.file_id}#{self.id}"

  def title(self) -> str:
    return f"Comment on {self.file_name}"

  def html_url(self) -> str:
    segment = {
      DOCUMENT_MIME_TYPE: "document",
      SPREADSHEET_MIME_TYPE: "spreadsheets",
      PRESENTATION_MIME_TYPE: "presentation",
    }.get(self.file_mime_type, "file")
    return f"https://docs.google.com/{segment}/d/{self.file_id}/edit?disco={self.id}"

  def is_last_reply_from_user(self) -> bool:
    if not self.replies:
      return False
    return self.replies[-1].author.matches(self.user_display_name, self.user_email_address)

  def is_user_mentioned(self, after: datetime | None = None) -> bool:
    """Whether the user is involved in activity newer than ``after`` (all activity when None)."""
    if self.is_last_reply_from_user():
      return False
    email = self.user_email_address.lower()
    is_new_comment = after is None or self.created_time > after
    if is_new_comment:
      if self.author.matches(self.user_display_name, self.user_email_address):
        return bool(self.replies)
      if email in self.content.lower():
        return True
    for reply in self.replies:
      if after is not None and reply.created_time <= after:
        continue
      if reply.author.matches(self.user_display_name, self.user_email_address):
        return True
      if email in reply.content.lower():
        return True
    return False

  def notification_status(self) -> NotificationStatus:
    if self.is_last_reply_from_user():
      return NotificationStatus.deleted
    return NotificationStatus.unread
