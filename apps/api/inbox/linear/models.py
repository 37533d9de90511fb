from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from inbox.tasks.types import TaskPriority


class _LinearModel(BaseModel):
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LinearWorkflowStateType(StrEnum):
  triage = "triage"
  backlog = "backlog"
  unstarted = "unstarted"
  started = "started"
  completed = "completed"
  canceled = "canceled"


class LinearWorkflowState(_LinearModel):
  id: str | None = None
  name: str
  type: LinearWorkflowStateType
  color: str | None = None


class LinearTeam(_LinearModel):
  id: str
  key: str
  name: str


class LinearProject(_LinearModel):
  id: str
  name: str
  url: str | None = None


class LinearUser(_LinearModel):
  id: str | None = None
  name: str
  avatar_url: str | None = None
  url: str | None = None


class LinearIssue(_LinearModel):
  id: str
  identifier: str
  title: str
  description: str | None = None
  url: str
  # 0 no priority, 1 urgent, 2 high, 3 medium, 4 low
  priority: int = 0
  due_date: date | None = None
  created_at: datetime
  updated_at: datetime
  completed_at: datetime | None = None
  canceled_at: datetime | None = None
  state: LinearWorkflowState
  team: LinearTeam
  project: LinearProject | None = None
  assignee: LinearUser | None = None
  labels: list[str] = []

  def task_priority(self) -> TaskPriority:
    return {1: TaskPriority.P1, 2: TaskPriority.P2, 3: TaskPriority.P3}.get(self.priority, TaskPriority.P4)

  def is_done(self) -> bool:
    return self.state.type in (LinearWorkflowStateType.completed, LinearWorkflowStateType.canceled)


class LinearNotification(_LinearModel):
  id: str
  type: str
  title: str | None = None
  read_at: datetime | None = None
  updated_at: datetime
  snoozed_until_at: datetime | None = None
  url: str | None = None
  actor: LinearUser | None = None
  issue: LinearIssue | None = None
  project: LinearProject | None = None

  def display_title(self) -> str:
    if self.issue is not None:
      return f"{self.issue.identifier} {self.issue.title}"
    if self.project is not None:
      return self.project.name
    return self.title or self.type

  def html_url(self) -> str | None:
    if self.issue is not None:
      return self.issue.url
    if self.project is not None and self.project.url:
      return self.project.url
    return self.url
