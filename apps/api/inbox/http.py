from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx

from inbox.config import settings


class ProviderApiError(RuntimeError):
  def __init__(self, *, provider: str, status_code: int, message: str, details: dict[str, Any] | None = None) -> None:
    super().__init__(f"{provider} API error {status_code}: {message}")
    self.provider = provider
    self.status_code = status_code
    self.message = message
    self.details = details or {}

  @property
  def not_found(self) -> bool:
    return self.status_code in (404, 410)


def _extract_error(payload: Any) -> tuple[str, dict[str, Any]]:
  if isinstance(payload, dict):
    err = payload.get("error")
    if isinstance(err, dict):
      return str(err.get("message") or err.get("status") or "request failed"), {"error": err}
    if isinstance(err, str) and err:
      return err, {"error": err}
    if isinstance(payload.get("message"), str):
      return payload["message"], {}
    errors = payload.get("errors")
    if isinstance(errors, list) and errors:
      first = errors[0]
      msg = first.get("message") if isinstance(first, dict) else str(first)
      return str(msg or "request failed"), {"errors": errors}
  if isinstance(payload, str) and payload.strip():
    return payload.strip()[:500], {}
  return "request failed", {}


async def request_json(client: httpx.AsyncClient, provider: str, method: str, path: str, **kwargs: Any) -> Any:
  r = await client.request(method, path, **kwargs)
  if r.status_code >= 400:
    try:
      payload = r.json()
    except ValueError:
      payload = (r.text or "")[:800]
    msg, details = _extract_error(payload)
    raise ProviderApiError(provider=provider, status_code=r.status_code, message=msg, details=details)
  if r.status_code == 204 or not r.content:
    return None
  return r.json()


@dataclass
class ProviderAuth:
  """Bearer credentials plus an optional transport, which tests replace with ``httpx.MockTransport``."""

  base_url: str
  token: str
  transport: httpx.AsyncBaseTransport | None = None
  headers: dict[str, str] = field(default_factory=dict)

  def httpx_client(self) -> httpx.AsyncClient:
    headers = {
      "User-Agent": settings.user_agent,
      "Accept": "application/json",
      "Authorization": f"Bearer {self.token}",
      **self.headers,
    }
    return httpx.AsyncClient(
      base_url=self.base_url,
      headers=headers,
      timeout=settings.http_timeout_seconds,
      transport=self.transport,
    )
