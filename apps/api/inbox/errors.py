from __future__ import annotations

from typing import Any


class InboxError(RuntimeError):
  """Base error of the sync pipeline; ``status_code`` is the HTTP mapping used by the API."""

  status_code = 500

  def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
    super().__init__(message)
    self.message = message
    self.details = details or {}


class Unauthenticated(InboxError):
  status_code = 401


class Forbidden(InboxError):
  status_code = 403


class NotFound(InboxError):
  status_code = 404


class InvalidInputData(InboxError):
  status_code = 400


class UnsupportedAction(InboxError):
  status_code = 400


class AlreadyExists(InboxError):
  status_code = 409


class Conflict(InboxError):
  status_code = 409


class Recoverable(InboxError):
  status_code = 503


class Unexpected(InboxError):
  status_code = 500


def error_text(exc: BaseException) -> str:
  message = str(exc).strip()
  if message:
    return f"{exc.__class__.__name__}: {message}"
  return exc.__class__.__name__
