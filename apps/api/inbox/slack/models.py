from __future__ import annotations

import re
from datetime import datetime
from enum import StrEnum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from inbox.models import NotificationStatus

TITLE_MAX_LENGTH = 50

_MARKDOWN_RULES = [
  (re.compile(r"^```"), "```\n"),
  (re.compile(r"```$"), "\n```"),
  (re.compile(r"^• "), "- "),
  (re.compile(r"^(\s*)◦ "), r"\1- "),
  (re.compile(r"^&gt; "), "> "),
  (re.compile(r"<([^|>]+)\|([^>]+)>"), r"[\2](\1)"),
]


def sanitize_slack_markdown(text: str) -> str:
  """Convert Slack mrkdwn to common markdown, line by line."""
  out: list[str] = []
  for line in text.splitlines():
    for rx, repl in _MARKDOWN_RULES:
      line = rx.sub(repl, line, count=1)
    out.append(line)
  return "\n".join(out)


def truncate_with_ellipsis(text: str, max_length: int = TITLE_MAX_LENGTH, ellipsis: str = "...") -> str:
  first_line = text.strip().splitlines()[0] if text.strip() else ""
  if len(first_line) <= max_length:
    return first_line
  cut = first_line[: max_length - len(ellipsis)]
  if " " in cut:
    cut = cut.rsplit(" ", 1)[0]
  return f"{cut}{ellipsis}"


class SlackStarState(StrEnum):
  star_added = "StarAdded"
  star_removed = "StarRemoved"


class SlackReactionState(StrEnum):
  reaction_added = "ReactionAdded"
  reaction_removed = "ReactionRemoved"


class SlackChannelInfo(BaseModel):
  id: str
  name: str | None = None
  is_channel: bool = False
  is_group: bool = False
  is_im: bool = False
  is_mpim: bool = False
  is_private: bool = False


class SlackTeamInfo(BaseModel):
  id: str
  name: str | None = None
  domain: str | None = None
  icon_url: str | None = None


class SlackMessageSender(BaseModel):
  type: Literal["User", "Bot"] = "User"
  id: str
  name: str
  avatar_url: str | None = None


class SlackAttachment(BaseModel):
  title: str | None = None
  text: str | None = None
  fallback: str | None = None


class SlackHistoryMessage(BaseModel):
  ts: str
  text: str | None = None
  user: str | None = None
  bot_id: str | None = None
  thread_ts: str | None = None
  reply_count: int | None = None
  attachments: list[SlackAttachment] = []


class SlackMessageDetails(BaseModel):
  type: Literal["SlackMessage"] = "SlackMessage"
  url: str
  message: SlackHistoryMessage
  channel: SlackChannelInfo
  sender: SlackMessageSender
  team: SlackTeamInfo

  @property
  def item_id(self) -> str:
    return self.message.ts

  def html_url(self) -> str:
    return self.url

  def channel_html_url(self) -> str:
    return f"https://app.slack.com/client/{self.team.id}/{self.channel.id}"

  def content(self) -> str:
    for a in self.message.attachments:
      if a.text:
        text = sanitize_slack_markdown(a.text)
        return f"{a.title}\n\n{text}" if a.title else text
    if self.message.text:
      return sanitize_slack_markdown(self.message.text)
    return "A slack message"

  def title(self) -> str:
    for a in self.message.attachments:
      if a.title:
        return a.title
    return truncate_with_ellipsis(self.content())


class SlackFileDetails(BaseModel):
  type: Literal["SlackFile"] = "SlackFile"
  id: str
  title: str | None = None
  channel: SlackChannelInfo
  sender: SlackMessageSender | None = None
  team: SlackTeamInfo

  @property
  def item_id(self) -> str:
    return self.id

  def html_url(self) -> str:
    return f"https://app.slack.com/client/{self.team.id}/{self.channel.id}"

  def content(self) -> str:
    return self.title or "File"

  def title_text(self) -> str:
    return self.title or "File"


class SlackChannelDetails(BaseModel):
  type: Literal["SlackChannel", "SlackIm", "SlackGroup"] = "SlackChannel"
  channel: SlackChannelInfo
  team: SlackTeamInfo

  @property
  def item_id(self) -> str:
    return self.channel.id

  def html_url(self) -> str:
    return f"https://app.slack.com/client/{self.team.id}/{self.channel.id}"

  def content(self) -> str:
    default = {"SlackChannel": "Channel", "SlackIm": "IM", "SlackGroup": "Group"}[self.type]
    return self.channel.name or default


SlackStarItem = Annotated[
  Union[SlackMessageDetails, SlackFileDetails, SlackChannelDetails], Field(discriminator="type")
]


def _item_title(item: SlackMessageDetails | SlackFileDetails | SlackChannelDetails) -> str:
  if isinstance(item, SlackMessageDetails):
    return item.title()
  if isinstance(item, SlackFileDetails):
    return item.title_text()
  return item.content()


class SlackStar(BaseModel):
  state: SlackStarState
  created_at: datetime
  item: SlackStarItem

  @property
  def source_id(self) -> str:
    return self.item.item_id

  def title(self) -> str:
    return _item_title(self.item)

  def html_url(self) -> str:
    return self.item.html_url()

  def channel_and_message(self) -> tuple[str | None, str | None, str | None]:
    """(channel id, message ts, file id) identifying the starred object for the stars API."""
    if isinstance(self.item, SlackMessageDetails):
      return self.item.channel.id, self.item.message.ts, None
    if isinstance(self.item, SlackFileDetails):
      return self.item.channel.id, None, self.item.id
    return self.item.channel.id, None, None

  def notification_status(self) -> NotificationStatus:
    if self.state == SlackStarState.star_added:
      return NotificationStatus.unread
    return NotificationStatus.deleted


class SlackReaction(BaseModel):
  name: str
  state: SlackReactionState
  created_at: datetime
  item: SlackMessageDetails
  # Image of a workspace custom emoji; standard emojis have none
  emoji_url: str | None = None

  @property
  def source_id(self) -> str:
    return self.item.message.ts

  def title(self) -> str:
    return self.item.title()

  def html_url(self) -> str:
    return self.item.html_url()

  def notification_status(self) -> NotificationStatus:
    if self.state == SlackReactionState.reaction_added:
      return NotificationStatus.unread
    return NotificationStatus.deleted


class SlackThread(BaseModel):
  url: str
  messages: list[SlackHistoryMessage]
  subscribed: bool = True
  last_read: str | None = None
  channel: SlackChannelInfo
  team: SlackTeamInfo
  sender_profiles: dict[str, SlackMessageSender] = {}

  @property
  def source_id(self) -> str:
    root = self.messages[0]
    return root.thread_ts or root.ts

  def title(self) -> str:
    root = self.messages[0]
    for a in root.attachments:
      if a.title:
        return a.title
    return truncate_with_ellipsis(sanitize_slack_markdown(root.text or "A slack thread"))

  def html_url(self) -> str:
    return self.url

  def notification_status(self) -> NotificationStatus:
    if not self.subscribed:
      return NotificationStatus.unsubscribed
    if self.last_read is not None and self.messages[-1].ts == self.last_read:
      return NotificationStatus.deleted
    return NotificationStatus.unread

  def last_message_ts(self) -> str:
    return self.messages[-1].ts
