from __future__ import annotations

import asyncio
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from inbox.config import settings
from inbox.db import SessionLocal
from inbox.errors import InboxError
from inbox.http import ProviderApiError
from inbox.logging import configure_logging
from inbox.routers.integration_connections import router as integration_connections_router
from inbox.routers.notifications import router as notifications_router
from inbox.routers.tasks import router as tasks_router
from inbox.routers.third_party import router as third_party_router
from inbox.routers.webhooks import router as webhooks_router
from inbox.security import IntegrationSecretDecryptError
from inbox.services import build_services

configure_logging(settings.log_level, settings.log_format)
logger = logging.getLogger(__name__)

app = FastAPI(
  title="Universal Inbox API",
  version="0.1.0",
  docs_url="/docs" if settings.api_docs_enabled else None,
  redoc_url="/redoc" if settings.api_docs_enabled else None,
  openapi_url="/openapi.json" if settings.api_docs_enabled else None,
)
app.state.services = build_services()


@app.exception_handler(InboxError)
async def _inbox_error_handler(_, exc: InboxError) -> JSONResponse:
  return JSONResponse(
    status_code=exc.status_code,
    content={"detail": {"message": exc.message, "type": exc.__class__.__name__, **exc.details}},
  )


@app.exception_handler(ProviderApiError)
async def _provider_api_error_handler(_, exc: ProviderApiError) -> JSONResponse:
  return JSONResponse(
    status_code=400,
    content={
      "detail": {"message": exc.message, "statusCode": exc.status_code, "provider": exc.provider, **exc.details}
    },
  )


@app.exception_handler(IntegrationSecretDecryptError)
async def _integration_secret_error_handler(_, exc: IntegrationSecretDecryptError) -> JSONResponse:
  return JSONResponse(status_code=400, content={"detail": str(exc)})


app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)

app.include_router(notifications_router)
app.include_router(tasks_router)
app.include_router(third_party_router)
app.include_router(integration_connections_router)
app.include_router(webhooks_router)


@app.get("/health")
async def health() -> dict:
  return {"ok": True}


@app.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}


_sync_loop_task: asyncio.Task | None = None


async def _auto_sync_loop() -> None:
  while True:
    await asyncio.sleep(max(10, int(settings.auto_sync_interval_seconds)))
    services = app.state.services
    async with SessionLocal() as db:
      try:
        await services.sync.sync_notifications(db)
        await services.sync.sync_tasks(db)
      except Exception:
        # Connection failures are recorded by the orchestrator; this only guards the loop
        logger.exception("Automatic sync run failed")
        await db.rollback()


@app.on_event("startup")
async def _startup() -> None:
  global _sync_loop_task
  if settings.auto_sync_enabled and _sync_loop_task is None:
    _sync_loop_task = asyncio.create_task(_auto_sync_loop())
