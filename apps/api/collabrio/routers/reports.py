from __future__ import annotations

import asyncio
from datetime import date, datetime, time, timedelta, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from collabrio import boards as board_svc
from collabrio.deps import get_current_user, get_db, require_board_member
from collabrio.errors import InvalidRequest, NotAuthorized, NotFound
from collabrio.models import Board, BoardMember, User
from collabrio.reports import board_report_filename, fmt_date, member_report_filename, render_report, rows_for_boards
from collabrio.schemas import BoardOut

router = APIRouter(tags=["reports"])


def _pdf(content: bytes, filename: str) -> Response:
  return Response(
    content=content,
    media_type="application/pdf",
    headers={"Content-Disposition": f'attachment; filename="{filename}"'},
  )


async def _member_or_404(db: AsyncSession, user_id: str) -> User:
  res = await db.execute(select(User).where(User.id == user_id))
  u = res.scalar_one_or_none()
  if not u:
    raise NotFound("User not found")
  return u


async def _board_member_or_404(db: AsyncSession, b: Board, user_id: str) -> User:
  # the report header may only name someone on the board
  res = await db.execute(
    select(User).join(BoardMember, BoardMember.user_id == User.id).where(BoardMember.board_id == b.id, User.id == user_id)
  )
  u = res.scalar_one_or_none()
  if not u:
    raise NotFound("Member not found on this board")
  return u


def _date_range(start: date | None, end: date | None) -> tuple[date, date]:
  today = datetime.now(timezone.utc).date()
  start = start or today.replace(day=1)
  end = end or today
  if end < start:
    raise InvalidRequest("end must not be before start")
  return start, end


async def _member_boards(db: AsyncSession, member: User, start: date, end: date, search: str | None) -> list[Board]:
  # end date is inclusive
  lo = datetime.combine(start, time.min, tzinfo=timezone.utc)
  hi = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc)
  q = (
    select(Board)
    .join(BoardMember, BoardMember.board_id == Board.id)
    .where(BoardMember.user_id == member.id, Board.created_at >= lo, Board.created_at < hi)
    .order_by(Board.created_at.desc())
  )
  if search and search.strip():
    q = q.where(Board.name.ilike(f"%{search.strip()}%"))
  res = await db.execute(q)
  return list(res.scalars().all())


def _check_report_access(user: User, member: User) -> None:
  if user.role != "admin" and user.id != member.id:
    raise NotAuthorized("Reports on other members require a system admin")


@router.get("/boards/{board_id}/report.pdf")
async def board_report(
  board_id: str,
  memberId: str | None = None,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> Response:
  b = await require_board_member(board_id, user, db)
  member = await _board_member_or_404(db, b, memberId) if memberId else user
  rows = await rows_for_boards(db, [b])
  pdf = await asyncio.to_thread(
    render_report,
    f"Board Report: {b.name or 'Untitled Board'}",
    [f"Employee: {member.name or 'N/A'}", f"Email: {member.email or 'N/A'}"],
    rows,
  )
  return _pdf(pdf, board_report_filename(b.name))


@router.get("/users/{user_id}/boards", response_model=list[BoardOut])
async def member_boards(
  user_id: str,
  start: date | None = None,
  end: date | None = None,
  search: str | None = None,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[BoardOut]:
  member = await _member_or_404(db, user_id)
  _check_report_access(user, member)
  start, end = _date_range(start, end)
  return await board_svc.board_outs(db, await _member_boards(db, member, start, end, search), with_documents=False)


@router.get("/users/{user_id}/boards/report.pdf")
async def member_report(
  user_id: str,
  start: date | None = None,
  end: date | None = None,
  search: str | None = None,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> Response:
  """Boards of one member created within [start, end], as a PDF table."""
  member = await _member_or_404(db, user_id)
  _check_report_access(user, member)
  start, end = _date_range(start, end)
  boards = await _member_boards(db, member, start, end, search)
  pdf = await asyncio.to_thread(
    render_report,
    f"Employee Boards Report ({fmt_date(start)} - {fmt_date(end)})",
    [f"Name: {member.name or 'N/A'}", f"Email: {member.email or 'N/A'}"],
    await rows_for_boards(db, boards),
  )
  return _pdf(pdf, member_report_filename(member.name, start, end))
