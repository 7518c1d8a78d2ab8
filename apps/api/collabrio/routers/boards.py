from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from collabrio import boards as board_svc
from collabrio.aggregation import BOARD_STATUSES
from collabrio.audit import write_audit
from collabrio.config import settings
from collabrio.deps import get_current_user, get_db, require_board_admin, require_board_member
from collabrio.errors import CreatorRequired, InvalidRequest, InvalidStatus, NotFound
from collabrio.models import Board, BoardMember, User, new_id
from collabrio.schemas import (
  BoardChangeOut,
  BoardCreateIn,
  BoardDeadlineIn,
  BoardOut,
  BoardPageOut,
  BoardUpdateIn,
  MemberAddIn,
  MemberOut,
  MembersSetIn,
)
from collabrio.storage import upload_batch

router = APIRouter(prefix="/boards", tags=["boards"])


async def _create_board(db: AsyncSession, payload: BoardCreateIn, user: User, files: list[UploadFile]) -> BoardChangeOut:
  name = payload.name.strip()
  if not name:
    raise InvalidRequest("name is required")

  board_id = new_id()
  # all-or-nothing: nothing is written when a file of the batch fails
  blobs = await upload_batch(board_id, files) if files else []

  b = Board(
    id=board_id,
    name=name,
    description=payload.description.strip(),
    priority=payload.priority,
    deadline=None if payload.noDeadline else payload.deadline,
    created_by=user.id,
    status="To Do",
    completion_percentage=0,
  )
  db.add(b)
  await db.flush()
  db.add(BoardMember(board_id=b.id, user_id=user.id))
  members = {user.id}

  users, unknown = await board_svc.resolve_emails(db, payload.memberEmails)
  added = board_svc.add_member_rows(db, b.id, users, members)
  docs = board_svc.add_document_rows(db, b.id, blobs, user)
  await board_svc.assign_document_urls(db, docs)

  await write_audit(
    db,
    event_type="board.created",
    entity_type="Board",
    entity_id=b.id,
    board_id=b.id,
    actor_id=user.id,
    payload={"name": b.name, "members": [u.email for u in added], "documents": [d.name for d in docs]},
  )
  await db.commit()

  results = await board_svc.invite(b, added=added, unknown_emails=unknown, inviter=user)
  return BoardChangeOut(
    board=await board_svc.board_out(db, b),
    invitations=[board_svc.invitation_out(r) for r in results],
    warnings=board_svc.invitation_warnings(results),
  )


@router.get("", response_model=BoardPageOut)
async def list_boards(
  status_filter: str | None = Query(default=None, alias="status"),
  search: str | None = None,
  page: int = Query(default=1, ge=1),
  pageSize: int | None = Query(default=None, ge=1, le=100),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> BoardPageOut:
  if status_filter in ("", "all"):
    status_filter = None
  if status_filter is not None and status_filter not in BOARD_STATUSES:
    raise InvalidStatus(f"Invalid board status: {status_filter!r}")
  size = pageSize or int(settings.boards_page_size)

  q = select(Board).join(BoardMember, BoardMember.board_id == Board.id).where(BoardMember.user_id == user.id)
  if status_filter:
    q = q.where(Board.status == status_filter)
  if search and search.strip():
    q = q.where(Board.name.ilike(f"%{search.strip()}%"))

  total = (await db.execute(select(func.count()).select_from(q.subquery()))).scalar_one()
  res = await db.execute(q.order_by(Board.created_at.desc()).offset((page - 1) * size).limit(size))
  items = await board_svc.board_outs(db, list(res.scalars().all()), with_documents=False)
  return BoardPageOut(items=items, page=page, pageSize=size, total=int(total), pageCount=(int(total) + size - 1) // size)


@router.post("", response_model=BoardChangeOut, status_code=status.HTTP_201_CREATED)
async def create_board(payload: BoardCreateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> BoardChangeOut:
  return await _create_board(db, payload, user, [])


@router.post("/form", response_model=BoardChangeOut, status_code=status.HTTP_201_CREATED)
async def create_board_with_documents(
  data: str = Form(...),
  files: list[UploadFile] = File(default=[]),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> BoardChangeOut:
  """Create a board, its initial members and its initial documents in one multipart request."""
  try:
    payload = BoardCreateIn.model_validate_json(data)
  except ValidationError as exc:
    raise RequestValidationError(exc.errors(include_url=False, include_context=False)) from exc
  return await _create_board(db, payload, user, files)


@router.get("/{board_id}", response_model=BoardOut)
async def get_board(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> BoardOut:
  b = await require_board_member(board_id, user, db)
  return await board_svc.board_out(db, b)


@router.patch("/{board_id}", response_model=BoardOut)
async def update_board(
  board_id: str,
  payload: BoardUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> BoardOut:
  b = await require_board_member(board_id, user, db)
  changes = payload.model_dump(exclude_unset=True, exclude_none=True)
  if "name" in changes:
    name = changes["name"].strip()
    if not name:
      raise InvalidRequest("name is required")
    b.name = name
  if "description" in changes:
    b.description = changes["description"].strip()
  if "priority" in changes:
    b.priority = changes["priority"]
  await write_audit(db, event_type="board.updated", entity_type="Board", entity_id=b.id, board_id=b.id, actor_id=user.id, payload=changes)
  await db.commit()
  await db.refresh(b)
  return await board_svc.board_out(db, b)


@router.put("/{board_id}/deadline", response_model=BoardOut)
async def update_deadline(
  board_id: str,
  payload: BoardDeadlineIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> BoardOut:
  b = await require_board_admin(board_id, user, db, action="deadline changes")
  b.deadline = None if payload.noDeadline else payload.deadline
  await write_audit(
    db, event_type="board.deadline.updated", entity_type="Board", entity_id=b.id, board_id=b.id, actor_id=user.id, payload={"deadline": b.deadline}
  )
  await db.commit()
  await db.refresh(b)
  return await board_svc.board_out(db, b)


@router.delete("/{board_id}")
async def delete_board(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  b = await require_board_admin(board_id, user, db, action="board deletion")
  name = b.name
  paths = await board_svc.delete_board_everything(db, board_id=b.id)
  await write_audit(
    db,
    event_type="board.deleted",
    entity_type="Board",
    entity_id=board_id,
    board_id=board_id,
    actor_id=user.id,
    payload={"name": name, "cascade": bool(settings.board_delete_cascade)},
  )
  await db.commit()
  board_svc.drop_blobs(paths)
  return {"ok": True}


@router.get("/{board_id}/members", response_model=list[MemberOut])
async def list_members(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[MemberOut]:
  b = await require_board_member(board_id, user, db)
  return (await board_svc.board_out(db, b)).members


@router.post("/{board_id}/members", response_model=BoardChangeOut)
async def add_member(
  board_id: str,
  payload: MemberAddIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> BoardChangeOut:
  b = await require_board_admin(board_id, user, db, action="member changes")
  users, unknown = await board_svc.resolve_emails(db, [payload.email])
  added = board_svc.add_member_rows(db, b.id, users, await board_svc.member_ids(db, b.id))
  if added or unknown:
    await write_audit(
      db,
      event_type="board.member.added",
      entity_type="BoardMember",
      entity_id=None,
      board_id=b.id,
      actor_id=user.id,
      payload={"added": [u.email for u in added], "invited": unknown},
    )
  await db.commit()
  results = await board_svc.invite(b, added=added, unknown_emails=unknown, inviter=user)
  return BoardChangeOut(
    board=await board_svc.board_out(db, b),
    invitations=[board_svc.invitation_out(r) for r in results],
    warnings=board_svc.invitation_warnings(results),
  )


@router.put("/{board_id}/members", response_model=BoardChangeOut)
async def set_members(
  board_id: str,
  payload: MembersSetIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> BoardChangeOut:
  b = await require_board_admin(board_id, user, db, action="member changes")
  wanted = list(dict.fromkeys(payload.memberIds))
  if b.created_by not in wanted:
    raise CreatorRequired("The board admin cannot be removed from the board")
  ures = await db.execute(select(User).where(User.id.in_(wanted), User.active.is_(True)))
  users = {u.id: u for u in ures.scalars().all()}
  missing = [uid for uid in wanted if uid not in users]
  if missing:
    raise NotFound(f"User not found: {missing[0]}")

  current = await board_svc.member_ids(db, b.id)
  removed = [uid for uid in current if uid not in users]
  for uid in removed:
    res = await db.execute(select(BoardMember).where(BoardMember.board_id == b.id, BoardMember.user_id == uid))
    m = res.scalar_one_or_none()
    if m:
      await db.delete(m)
  added = board_svc.add_member_rows(db, b.id, [users[uid] for uid in wanted], current)
  await write_audit(
    db,
    event_type="board.members.updated",
    entity_type="Board",
    entity_id=b.id,
    board_id=b.id,
    actor_id=user.id,
    payload={"added": [u.id for u in added], "removed": removed},
  )
  await db.commit()
  results = await board_svc.invite(b, added=added, unknown_emails=[], inviter=user)
  return BoardChangeOut(
    board=await board_svc.board_out(db, b),
    invitations=[board_svc.invitation_out(r) for r in results],
    warnings=board_svc.invitation_warnings(results),
  )


@router.delete("/{board_id}/members/{user_id}")
async def remove_member(board_id: str, user_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  b = await require_board_admin(board_id, user, db, action="member changes")
  if user_id == b.created_by:
    raise CreatorRequired("The board admin cannot be removed from the board")
  res = await db.execute(select(BoardMember).where(BoardMember.board_id == b.id, BoardMember.user_id == user_id))
  m = res.scalar_one_or_none()
  if not m:
    raise NotFound("Member not found")
  await db.delete(m)
  await write_audit(
    db, event_type="board.member.removed", entity_type="BoardMember", entity_id=m.id, board_id=b.id, actor_id=user.id, payload={"userId": user_id}
  )
  await db.commit()
  return {"ok": True}
