from __future__ import annotations

from datetime import datetime, timezone

from fastapi import Cookie, Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from collabrio.db import SessionLocal
from collabrio.errors import NotAuthenticated, NotAuthorized, NotFound
from collabrio.models import Board, BoardMember, Session as DbSession, Task, User
from collabrio.security import SESSION_COOKIE_NAME


async def get_db() -> AsyncSession:
  async with SessionLocal() as session:
    yield session


async def user_for_session(db: AsyncSession, session_id: str | None) -> User:
  if not session_id:
    raise NotAuthenticated("Not authenticated")
  res = await db.execute(select(DbSession).where(DbSession.id == session_id))
  s = res.scalar_one_or_none()
  if not s:
    raise NotAuthenticated("Invalid session")
  if s.expires_at < datetime.now(timezone.utc):
    raise NotAuthenticated("Session expired")
  ures = await db.execute(select(User).where(User.id == s.user_id))
  u = ures.scalar_one_or_none()
  if not u:
    raise NotAuthenticated("User not found")
  if not u.active:
    raise NotAuthorized("User disabled")
  return u


async def get_current_user(
  db: AsyncSession = Depends(get_db),
  session_id: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> User:
  return await user_for_session(db, session_id)


async def require_system_admin(user: User = Depends(get_current_user)) -> User:
  if user.role != "admin":
    raise NotAuthorized("Admin only")
  return user


async def get_board_or_404(board_id: str, db: AsyncSession) -> Board:
  res = await db.execute(select(Board).where(Board.id == board_id))
  b = res.scalar_one_or_none()
  if not b:
    raise NotFound("Board not found")
  return b


async def get_task_or_404(task_id: str, db: AsyncSession) -> Task:
  res = await db.execute(select(Task).where(Task.id == task_id))
  t = res.scalar_one_or_none()
  if not t:
    raise NotFound("Task not found")
  return t


async def require_board_member(board_id: str, user: User, db: AsyncSession) -> Board:
  b = await get_board_or_404(board_id, db)
  res = await db.execute(select(BoardMember.id).where(BoardMember.board_id == board_id, BoardMember.user_id == user.id))
  if not res.scalar_one_or_none():
    raise NotAuthorized("No board access")
  return b


async def require_board_admin(board_id: str, user: User, db: AsyncSession, *, action: str = "this action") -> Board:
  # the creator is the only board admin
  b = await require_board_member(board_id, user, db)
  if b.created_by != user.id:
    raise NotAuthorized(f"Only the board admin can perform {action}")
  return b


def client_ip(request: Request) -> str | None:
  return request.client.host if request.client else None
