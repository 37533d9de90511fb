from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from inbox.models import NotificationStatus


class NotificationPatch(BaseModel):
  """Partial update of a notification; fields left unset are not touched."""

  status: NotificationStatus | None = None
  snoozed_until: datetime | None = None
  task_id: str | None = None

  def is_empty(self) -> bool:
    return not self.model_fields_set
