from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from inbox.models import IntegrationProviderKind, Notification, NotificationStatus, ThirdPartyItem, new_id
from inbox.notifications.types import NotificationPatch
from inbox.third_party.item import Created, Untouched, Updated, item_payload
from inbox.web_page.models import WebPage
from tests.conftest import create_user


@pytest.mark.anyio
async def test_upsert_is_idempotent_for_identical_data(db, services):
  user, _ = await create_user(db)
  adapter = services.adapter(IntegrationProviderKind.api)
  page = WebPage(url="https://example.com/article", title="An article")

  first = await services.third_party_items.create_or_update_third_party_item(
    db, await adapter.build_web_page_item(db, page, user.id)
  )
  await db.commit()
  first_updated_at = first.value().updated_at
  again = await adapter.build_web_page_item(db, page, user.id)
  again.updated_at = first_updated_at + timedelta(days=1)
  second = await services.third_party_items.create_or_update_third_party_item(db, again)
  await db.commit()

  assert isinstance(first, Created)
  assert isinstance(second, Untouched)
  assert second.is_modified() is False
  assert second.modified_value() is None
  assert second.value().id == first.value().id
  count = await db.scalar(select(func.count()).select_from(ThirdPartyItem))
  assert count == 1
  saved = await db.scalar(select(ThirdPartyItem).execution_options(populate_existing=True))
  assert saved.updated_at == first_updated_at


@pytest.mark.anyio
async def test_upsert_updates_data_and_keeps_identity(db, services):
  user, _ = await create_user(db)
  adapter = services.adapter(IntegrationProviderKind.api)

  created = await services.third_party_items.create_or_update_third_party_item(
    db, await adapter.build_web_page_item(db, WebPage(url="https://example.com/a", title="Old"), user.id)
  )
  updated = await services.third_party_items.create_or_update_third_party_item(
    db, await adapter.build_web_page_item(db, WebPage(url="https://example.com/a", title="New"), user.id)
  )
  await db.commit()

  assert isinstance(updated, Updated)
  assert updated.value().id == created.value().id
  assert updated.old is not None
  assert item_payload(updated.old).title == "Old"
  assert item_payload(updated.value()).title == "New"


@pytest.mark.anyio
async def test_one_notification_per_source_item(db, services):
  user, _ = await create_user(db)
  adapter = services.adapter(IntegrationProviderKind.api)

  ids = set()
  for title in ("v1", "v2", "v2", "v3"):
    item = await adapter.build_web_page_item(db, WebPage(url="https://example.com/p", title=title), user.id)
    upsert = await services.third_party_items.create_or_update_third_party_item(db, item)
    notification = await services.notifications.create_notification_from_third_party_item(
      db, upsert.value(), adapter, user.id
    )
    ids.add(notification.id)
  await db.commit()

  assert len(ids) == 1
  rows = (await db.execute(select(Notification).where(Notification.user_id == user.id))).scalars().all()
  assert len(rows) == 1
  assert rows[0].title == "v3"


@pytest.mark.anyio
async def test_resync_keeps_snooze_and_task_link(db, services):
  user, _ = await create_user(db)
  adapter = services.adapter(IntegrationProviderKind.api)
  item = await adapter.build_web_page_item(db, WebPage(url="https://example.com/s", title="Before"), user.id)
  upsert = await services.third_party_items.create_or_update_third_party_item(db, item)
  notification = await services.notifications.create_notification_from_third_party_item(
    db, upsert.value(), adapter, user.id
  )

  snoozed_until = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(days=2)
  task_id = new_id()
  await services.notifications.patch_notification(
    db, notification.id, NotificationPatch(snoozed_until=snoozed_until, task_id=task_id), user.id
  )

  item = await adapter.build_web_page_item(db, WebPage(url="https://example.com/s", title="After"), user.id)
  upsert = await services.third_party_items.create_or_update_third_party_item(db, item)
  resynced = await services.notifications.create_notification_from_third_party_item(
    db, upsert.value(), adapter, user.id
  )
  await db.commit()

  assert resynced.id == notification.id
  assert resynced.title == "After"
  assert resynced.snoozed_until == snoozed_until
  assert resynced.task_id == task_id


@pytest.mark.anyio
async def test_snoozed_notifications_are_hidden_until_asked(db, services):
  user, _ = await create_user(db)
  adapter = services.adapter(IntegrationProviderKind.api)
  item = await adapter.build_web_page_item(db, WebPage(url="https://example.com/z", title="Later"), user.id)
  upsert = await services.third_party_items.create_or_update_third_party_item(db, item)
  notification = await services.notifications.create_notification_from_third_party_item(
    db, upsert.value(), adapter, user.id
  )
  await services.notifications.patch_notification(
    db,
    notification.id,
    NotificationPatch(snoozed_until=datetime.now(timezone.utc) + timedelta(hours=3)),
    user.id,
  )
  await db.commit()

  visible = await services.notifications.list_notifications(db, user.id, statuses=[NotificationStatus.unread])
  assert visible == []
  everything = await services.notifications.list_notifications(
    db, user.id, statuses=[NotificationStatus.unread], include_snoozed=True
  )
  assert [n.id for n in everything] == [notification.id]
