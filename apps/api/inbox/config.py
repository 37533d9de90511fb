from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "postgresql+asyncpg://inbox:inbox@db:5432/inbox"
  fernet_key: str = "AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA="
  app_version: str = "v2026-10-19"
  build_sha: str = "dev"
  api_docs_enabled: bool = True

  log_level: str = "INFO"
  log_format: str = "console"  # console | json

  redis_url: str | None = "redis://redis:6379/0"
  cache_key_prefix: str = "inbox"

  user_agent: str = "universal-inbox/0.1"
  http_timeout_seconds: float = 30.0
  page_size: int = 100

  github_base_url: str = "https://api.github.com"
  linear_graphql_url: str = "https://api.linear.app/graphql"
  google_mail_base_url: str = "https://gmail.googleapis.com/gmail/v1"
  google_calendar_base_url: str = "https://www.googleapis.com/calendar/v3"
  google_drive_base_url: str = "https://www.googleapis.com/drive/v3"
  slack_base_url: str = "https://slack.com/api"
  todoist_base_url: str = "https://api.todoist.com/api/v1"
  ticktick_base_url: str = "https://api.ticktick.com/open/v1"

  # A sync of the same type started less than this many seconds ago, and neither completed
  # nor failed since, blocks a new run for the same connection.
  sync_cooldown_seconds: int = 120
  sync_failure_window_hours: int = 24
  min_sync_notifications_interval_minutes: int = 5
  min_sync_tasks_interval_minutes: int = 5
  auto_sync_enabled: bool = False
  auto_sync_interval_seconds: int = 300

  cache_ttl_slack_message_seconds: int = 60
  cache_ttl_slack_channel_seconds: int = 24 * 3600
  cache_ttl_slack_user_seconds: int = 24 * 3600
  cache_ttl_slack_bot_seconds: int = 24 * 3600
  cache_ttl_slack_team_seconds: int = 24 * 3600
  cache_ttl_slack_emojis_seconds: int = 24 * 3600
  cache_ttl_slack_permalink_seconds: int = 7 * 24 * 3600
  cache_ttl_projects_seconds: int = 600

  cors_origins: str = "http://localhost:8080,http://127.0.0.1:8080"

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()
