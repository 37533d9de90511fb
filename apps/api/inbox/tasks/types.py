from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from enum import IntEnum, StrEnum

from pydantic import BaseModel

from inbox.models import TaskStatus


class TaskPriority(IntEnum):
  P1 = 1
  P2 = 2
  P3 = 3
  P4 = 4


class PresetDueDate(StrEnum):
  today = "Today"
  tomorrow = "Tomorrow"
  this_weekend = "ThisWeekend"
  next_week = "NextWeek"

  def as_due_date(self, today: date | None = None) -> str:
    d = today or datetime.now(timezone.utc).date()
    if self is PresetDueDate.today:
      return d.isoformat()
    if self is PresetDueDate.tomorrow:
      return (d + timedelta(days=1)).isoformat()
    if self is PresetDueDate.this_weekend:
      # Saturday of the current week, or today when already on the weekend
      if d.weekday() >= 5:
        return d.isoformat()
      return (d + timedelta(days=5 - d.weekday())).isoformat()
    return (d + timedelta(days=7 - d.weekday())).isoformat()


class ProjectSummary(BaseModel):
  source_id: str
  name: str


class TaskCreationConfig(BaseModel):
  target_project: ProjectSummary | None = None
  default_due_at: PresetDueDate | None = None
  default_priority: TaskPriority = TaskPriority.P4


class TaskCreation(BaseModel):
  title: str
  body: str | None = None
  project_name: str | None = None
  due_at: str | None = None
  priority: TaskPriority = TaskPriority.P4


class TaskPatch(BaseModel):
  """Partial update of a task; fields left unset are not touched."""

  status: TaskStatus | None = None
  project_name: str | None = None
  due_at: str | None = None
  priority: TaskPriority | None = None
  title: str | None = None
  body: str | None = None
  sink_item_id: str | None = None

  def is_empty(self) -> bool:
    return not self.model_fields_set


def parse_due_date(value: str | None) -> date | datetime | None:
  """Return a ``date`` for "YYYY-MM-DD" values and an aware ``datetime`` otherwise."""
  if not value:
    return None
  s = value.strip()
  if len(s) == 10:
    return date.fromisoformat(s)
  dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
  if dt.tzinfo is None:
    return dt.replace(tzinfo=timezone.utc)
  return dt


def format_due_date(value: date | datetime | None) -> str | None:
  if value is None:
    return None
  if isinstance(value, datetime):
    if value.tzinfo is None:
      value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
  return value.isoformat()


def due_date_as_datetime(value: str | None) -> datetime | None:
  parsed = parse_due_date(value)
  if parsed is None:
    return None
  if isinstance(parsed, datetime):
    return parsed
  return datetime.combine(parsed, time.min, tzinfo=timezone.utc)


def is_date_only(value: str | None) -> bool:
  return isinstance(parse_due_date(value), date) and not isinstance(parse_due_date(value), datetime)
