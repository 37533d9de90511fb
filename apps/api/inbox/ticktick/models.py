from __future__ import annotations

from datetime import datetime
from enum import IntEnum

from dateutil import parser as dateparser
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from inbox.models import NotificationStatus
from inbox.tasks.types import TaskPriority

NO_PROJECT = "No project"
INBOX_PROJECT = "Inbox"


class _TickTickModel(BaseModel):
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TickTickItemPriority(IntEnum):
  none = 0
  low = 1
  medium = 3
  high = 5

  def task_priority(self) -> TaskPriority:
    return {
      TickTickItemPriority.none: TaskPriority.P4,
      TickTickItemPriority.low: TaskPriority.P3,
      TickTickItemPriority.medium: TaskPriority.P2,
      TickTickItemPriority.high: TaskPriority.P1,
    }[self]

  @classmethod
  def from_task_priority(cls, priority: TaskPriority | int) -> TickTickItemPriority:
    return {
      TaskPriority.P1: cls.high,
      TaskPriority.P2: cls.medium,
      TaskPriority.P3: cls.low,
    }.get(TaskPriority(priority), cls.none)


class TickTickItemStatus(IntEnum):
  normal = 0
  completed = 2


class TickTickChecklistItem(_TickTickModel):
  id: str
  title: str = ""
  status: int = 0


class TickTickItem(_TickTickModel):
  id: str
  project_id: str
  title: str
  content: str | None = None
  desc: str | None = None
  all_day: bool | None = Field(default=None, alias="isAllDay")
  start_date: datetime | None = None
  due_date: datetime | None = None
  time_zone: str | None = None
  repeat_flag: str | None = None
  priority: TickTickItemPriority = TickTickItemPriority.none
  status: TickTickItemStatus = TickTickItemStatus.normal
  completed_time: datetime | None = None
  items: list[TickTickChecklistItem] = []
  tags: list[str] = []
  created_time: datetime | None = None
  modified_time: datetime | None = None
  # resolved name of project_id, filled by the adapter
  project_name: str | None = None

  @field_validator("start_date", "due_date", "completed_time", "created_time", "modified_time", mode="before")
  @classmethod
  def _parse_ticktick_date(cls, v: object) -> object:
    # TickTick sends "2019-11-13T03:00:00+0000"
    if isinstance(v, str) and v:
      return dateparser.isoparse(v)
    return v

  def html_url(self) -> str:
    return f"https://ticktick.com/webapp/#p/{self.project_id}/tasks/{self.id}"

  def is_completed(self) -> bool:
    return self.status == TickTickItemStatus.completed

  def notification_status(self) -> NotificationStatus:
    if self.is_completed():
      return NotificationStatus.deleted
    return NotificationStatus.unread


class TickTickProject(_TickTickModel):
  id: str
  name: str
  closed: bool | None = None
  kind: str | None = None
