from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from inbox.models import NotificationStatus
from inbox.tasks.types import TaskPriority

INBOX_PROJECT = "Inbox"


class TodoistItemDue(BaseModel):
  string: str | None = None
  # "YYYY-MM-DD" or a floating/UTC datetime
  date: str
  is_recurring: bool = False
  timezone: str | None = None
  lang: str | None = None


class TodoistItem(BaseModel):
  id: str
  parent_id: str | None = None
  project_id: str
  sync_id: str | None = None
  section_id: str | None = None
  content: str
  description: str = ""
  labels: list[str] = []
  child_order: int = 0
  day_order: int | None = None
  # Todoist priorities are inverted: 4 is the most urgent
  priority: int = 1
  checked: bool = False
  is_deleted: bool = False
  collapsed: bool = False
  completed_at: datetime | None = None
  added_at: datetime
  updated_at: datetime | None = None
  due: TodoistItemDue | None = None
  user_id: str | None = None

  def html_url(self) -> str:
    return f"https://todoist.com/showTask?id={self.id}"

  def task_priority(self) -> TaskPriority:
    return TaskPriority(5 - min(max(self.priority, 1), 4))

  @staticmethod
  def todoist_priority(priority: TaskPriority | int) -> int:
    return 5 - int(priority)

  def notification_status(self) -> NotificationStatus:
    if self.checked or self.is_deleted:
      return NotificationStatus.deleted
    return NotificationStatus.unread


class TodoistProject(BaseModel):
  id: str
  name: str
  inbox_project: bool = False
  is_archived: bool = False
  is_deleted: bool = False
  parent_id: str | None = None
