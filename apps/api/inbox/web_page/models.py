from __future__ import annotations

from pydantic import BaseModel


class WebPage(BaseModel):
  url: str
  title: str
  favicon: str | None = None
