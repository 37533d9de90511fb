from __future__ import annotations

import json
import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Callable
from urllib.parse import parse_qs

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

# Settings are read at import time; point them at a throwaway SQLite file and no Redis.
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{Path(tempfile.gettempdir()) / f'inbox_test_{os.getpid()}.db'}")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("AUTO_SYNC_ENABLED", "false")

from inbox.cache import MemoryCache
from inbox.db import SessionLocal, engine
from inbox.main import app
from inbox.models import Base, IntegrationConnection, IntegrationProviderKind, User
from inbox.security import api_token_hash, new_api_token
from inbox.services import Services, build_services

Route = Callable[[httpx.Request], httpx.Response]


class ProviderApi:
  """Canned provider responses keyed by method and URL (query string excluded)."""

  def __init__(self) -> None:
    self.routes: dict[tuple[str, str], Route] = {}
    self.requests: list[httpx.Request] = []

  def on(self, method: str, url: str, body: Any = None, *, status_code: int = 200) -> None:
    self.routes[(method.upper(), url)] = lambda _: httpx.Response(status_code, json=body)

  def on_request(self, method: str, url: str, route: Route) -> None:
    self.routes[(method.upper(), url)] = route

  def handle(self, request: httpx.Request) -> httpx.Response:
    self.requests.append(request)
    url = f"{request.url.scheme}://{request.url.host}{request.url.path}"
    route = self.routes.get((request.method, url))
    if route is None:
      return httpx.Response(404, json={"error": f"no route for {request.method} {url}"})
    return route(request)

  def calls(self, method: str, url: str) -> list[httpx.Request]:
    return [
      r
      for r in self.requests
      if r.method == method.upper() and f"{r.url.scheme}://{r.url.host}{r.url.path}" == url
    ]

  @property
  def transport(self) -> httpx.MockTransport:
    return httpx.MockTransport(self.handle)


def form_body(request: httpx.Request) -> dict[str, str]:
  return {k: v[0] for k, v in parse_qs(request.content.decode("utf-8")).items()}


def json_body(request: httpx.Request) -> dict[str, Any]:
  return json.loads(request.content or b"{}")


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture(autouse=True)
async def _fresh_schema() -> None:
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.drop_all)
    await conn.run_sync(Base.metadata.create_all)
  yield
  await engine.dispose()


@pytest.fixture
def provider_api() -> ProviderApi:
  return ProviderApi()


@pytest.fixture
def services(provider_api: ProviderApi) -> Services:
  return build_services(transport=provider_api.transport, cache=MemoryCache())


@pytest.fixture
async def db():
  async with SessionLocal() as session:
    yield session


@pytest.fixture
async def client(services: Services, monkeypatch) -> AsyncClient:
  monkeypatch.setattr(app.state, "services", services)
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


async def create_user(db, email: str = "user@example.com", name: str = "Test User") -> tuple[User, str]:
  token = new_api_token()
  user = User(email=email, name=name, api_token_hash=api_token_hash(token))
  db.add(user)
  await db.commit()
  return user, token


async def connect(
  db,
  services: Services,
  user: User,
  provider_kind: IntegrationProviderKind,
  *,
  access_token: str = "secret-token",
  config: dict[str, Any] | None = None,
  context=None,
  provider_user_id: str | None = None,
) -> IntegrationConnection:
  connection = await services.integration_connections.create_integration_connection(
    db,
    user_id=user.id,
    provider_kind=provider_kind,
    access_token=access_token,
    provider_user_id=provider_user_id,
    config=config,
    context=context,
  )
  await db.commit()
  return connection


def auth_headers(token: str) -> dict[str, str]:
  return {"Authorization": f"Bearer {token}"}
