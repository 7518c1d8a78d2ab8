from __future__ import annotations

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.trustedhost import TrustedHostMiddleware

from collabrio import aggregation, live
from collabrio.config import settings
from collabrio.errors import CollabrioError
from collabrio.events import task_events
from collabrio.routers.audit import router as audit_router
from collabrio.routers.auth import router as auth_router
from collabrio.routers.boards import router as boards_router
from collabrio.routers.documents import router as documents_router
from collabrio.routers.live import router as live_router
from collabrio.routers.reports import router as reports_router
from collabrio.routers.tasks import router as tasks_router
from collabrio.routers.users import router as users_router

logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("collabrio")

app = FastAPI(
  title="Collabrio API",
  version="0.1.0",
  docs_url="/docs" if settings.api_docs_enabled else None,
  redoc_url="/redoc" if settings.api_docs_enabled else None,
  openapi_url="/openapi.json" if settings.api_docs_enabled else None,
)

# recompute must run before the live broadcast so subscribers see fresh derived fields
task_events.subscribe(aggregation.on_task_mutation)
task_events.subscribe(live.on_task_mutation)


@app.exception_handler(CollabrioError)
async def _collabrio_error_handler(_, exc: CollabrioError) -> JSONResponse:
  return JSONResponse(status_code=exc.status_code, content={"detail": {"code": exc.code, "message": exc.message}})


app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_origin_regex=settings.cors_origin_regex,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_host_list())

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(boards_router)
app.include_router(tasks_router)
app.include_router(documents_router)
app.include_router(reports_router)
app.include_router(audit_router)
app.include_router(live_router)


@app.middleware("http")
async def _security_headers_middleware(request, call_next):
  response = await call_next(request)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
  response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
  return response


@app.get("/health")
async def health() -> dict:
  return {"ok": True}


@app.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}


@app.on_event("startup")
async def _startup() -> None:
  os.makedirs(settings.upload_dir, exist_ok=True)
  if not settings.smtp_enabled:
    logger.info("SMTP disabled; invitation emails are kept in the local outbox")
  logger.info("Collabrio API %s (%s) started", settings.app_version, settings.build_sha)
