"""Construction of the provider adapters and the services wired around them."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from inbox.cache import Cache, build_cache
from inbox.github.service import GithubService
from inbox.google_calendar.service import GoogleCalendarService
from inbox.google_drive.service import GoogleDriveService
from inbox.google_mail.service import GoogleMailService
from inbox.integration_connections.service import IntegrationConnectionService
from inbox.linear.service import LinearIssueSource, LinearService
from inbox.models import IntegrationProviderKind
from inbox.notifications.service import NotificationService
from inbox.slack.events import SlackEventHandler
from inbox.slack.service import SlackService
from inbox.sync.service import SyncService
from inbox.tasks.service import TaskService
from inbox.third_party.registry import ProviderRegistry
from inbox.third_party.service import ThirdPartyItemService
from inbox.ticktick.service import TickTickService
from inbox.todoist.service import TodoistService
from inbox.web_page.service import WebPageService


@dataclass
class Services:
  integration_connections: IntegrationConnectionService
  providers: ProviderRegistry
  third_party_items: ThirdPartyItemService
  notifications: NotificationService
  tasks: TaskService
  sync: SyncService
  slack_events: SlackEventHandler

  def adapter(self, kind: IntegrationProviderKind):
    return self.providers.adapter(kind)


def build_services(*, transport: httpx.AsyncBaseTransport | None = None, cache: Cache | None = None) -> Services:
  cache = cache if cache is not None else build_cache()
  integration_connections = IntegrationConnectionService()

  google_calendar = GoogleCalendarService(integration_connections, transport=transport)
  linear = LinearService(integration_connections, transport=transport)
  slack = SlackService(integration_connections, cache, transport=transport)
  adapters: dict[IntegrationProviderKind, object] = {
    IntegrationProviderKind.github: GithubService(integration_connections, transport=transport),
    IntegrationProviderKind.linear: linear,
    IntegrationProviderKind.google_calendar: google_calendar,
    IntegrationProviderKind.google_drive: GoogleDriveService(integration_connections, transport=transport),
    IntegrationProviderKind.google_mail: GoogleMailService(
      integration_connections, google_calendar=google_calendar, transport=transport
    ),
    IntegrationProviderKind.slack: slack,
    IntegrationProviderKind.todoist: TodoistService(integration_connections, cache, transport=transport),
    IntegrationProviderKind.ticktick: TickTickService(integration_connections, cache, transport=transport),
    IntegrationProviderKind.api: WebPageService(integration_connections),
  }
  providers = ProviderRegistry(
    adapters,
    integration_connections,
    task_item_sources={IntegrationProviderKind.linear: LinearIssueSource(linear)},
  )

  third_party_items = ThirdPartyItemService(providers)
  notifications = NotificationService(providers)
  tasks = TaskService(providers)
  # The three services call into each other
  third_party_items.task_service = tasks
  notifications.task_service = tasks
  notifications.third_party_item_service = third_party_items
  tasks.notification_service = notifications
  tasks.third_party_item_service = third_party_items

  return Services(
    integration_connections=integration_connections,
    providers=providers,
    third_party_items=third_party_items,
    notifications=notifications,
    tasks=tasks,
    sync=SyncService(providers, integration_connections, third_party_items, notifications, tasks),
    slack_events=SlackEventHandler(slack, integration_connections, third_party_items, notifications),
  )
