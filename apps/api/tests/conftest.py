from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete, select

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./collabrio_test.db")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="collabrio-test-uploads-"))
os.environ["SMTP_ENABLED"] = "false"
os.environ.setdefault("REDIS_URL", "")

from collabrio.config import settings
from collabrio.db import SessionLocal, engine
from collabrio.main import app
from collabrio.models import (
  AuditEvent,
  Base,
  Board,
  BoardDocument,
  BoardMember,
  ChecklistItem,
  Session,
  Task,
  User,
)
from collabrio.notifications.mailer import local_outbox
from collabrio.rate_limit import limiter
from collabrio.security import hash_password

SEEDED_USERS = [
  ("admin@collabrio.local", "Admin", "admin", "admin1234"),
  ("member@collabrio.local", "Member", "member", "member1234"),
  ("outsider@collabrio.local", "Outsider", "member", "outsider1234"),
]

_schema_ready = False


async def _ensure_schema() -> None:
  global _schema_ready
  if _schema_ready:
    return
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)
  _schema_ready = True


async def _reset_db() -> None:
  limiter.reset_prefix("auth:")
  local_outbox.outbox.clear()
  await _ensure_schema()
  async with SessionLocal() as db:
    await db.execute(delete(AuditEvent))
    await db.execute(delete(ChecklistItem))
    await db.execute(delete(Task))
    await db.execute(delete(BoardDocument))
    await db.execute(delete(BoardMember))
    await db.execute(delete(Board))
    await db.execute(delete(Session))

    keep = [email for email, *_ in SEEDED_USERS]
    await db.execute(delete(User).where(User.email.notin_(keep)))
    res = await db.execute(select(User.email))
    existing = set(res.scalars().all())
    for email, name, role, password in SEEDED_USERS:
      if email not in existing:
        db.add(User(email=email, name=name, role=role, password_hash=hash_password(password), active=True))
    await db.commit()
  await engine.dispose()


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture(autouse=True)
async def _clean_between_tests(anyio_backend: str) -> None:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  if "test" not in db_name:
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. collabrio_test)."
    )
  await _reset_db()
  yield
  await _reset_db()


@pytest.fixture
async def client() -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


async def login(client: AsyncClient, email: str, password: str) -> dict:
  res = await client.post("/auth/login", json={"email": email, "password": password})
  assert res.status_code == 200, res.text
  cookie = res.headers.get("set-cookie")
  assert cookie and "cb_session=" in cookie
  return res.json()


async def seeded_user_id(email: str) -> str:
  async with SessionLocal() as db:
    res = await db.execute(select(User).where(User.email == email))
    u = res.scalar_one()
    return u.id


async def create_board(client: AsyncClient, name: str = "Launch", **extra) -> dict:
  res = await client.post("/boards", json={"name": name, **extra})
  assert res.status_code == 201, res.text
  return res.json()["board"]


async def create_task(client: AsyncClient, board_id: str, title: str, status: str = "todo") -> dict:
  res = await client.post(f"/boards/{board_id}/tasks", json={"title": title, "status": status})
  assert res.status_code == 201, res.text
  return res.json()
