from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class GithubUser(BaseModel):
  login: str
  id: int | None = None
  avatar_url: str | None = None
  html_url: str | None = None


class GithubRepository(BaseModel):
  id: int
  name: str
  full_name: str
  html_url: str
  private: bool = False
  owner: GithubUser | None = None


class GithubNotificationSubject(BaseModel):
  title: str
  url: str | None = None
  latest_comment_url: str | None = None
  type: str


class GithubNotification(BaseModel):
  id: str
  repository: GithubRepository
  subject: GithubNotificationSubject
  reason: str
  unread: bool
  updated_at: datetime
  last_read_at: datetime | None = None
  url: str
  subscription_url: str | None = None

  def html_url(self) -> str:
    """Browser url of the notification subject, falling back to the repository page."""
    api_url = self.subject.url
    if not api_url:
      return self.repository.html_url
    parts = api_url.split("/repos/", 1)
    if len(parts) != 2:
      return self.repository.html_url
    path = parts[1]
    # pulls/<n> is the only API path segment that differs from the web one
    path = path.replace("/pulls/", "/pull/")
    if "/commits/" in path or "/issues/" in path or "/pull/" in path or "/discussions/" in path:
      return f"https://github.com/{path}"
    if "/releases/" in path:
      return f"{self.repository.html_url}/releases"
    return self.repository.html_url
