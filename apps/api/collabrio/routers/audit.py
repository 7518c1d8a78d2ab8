from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from collabrio.deps import get_current_user, get_db, require_board_member
from collabrio.errors import NotFound
from collabrio.models import AuditEvent, Task, User
from collabrio.schemas import AuditOut

router = APIRouter(prefix="/audit", tags=["audit"])


async def _boards_of_task(db: AsyncSession, task_id: str) -> set[str]:
  # deleted tasks are traced through the board recorded on their audit rows
  tres = await db.execute(select(Task.board_id).where(Task.id == task_id))
  board_id = tres.scalar_one_or_none()
  if board_id:
    return {board_id}
  ares = await db.execute(select(AuditEvent.board_id).where(AuditEvent.task_id == task_id).distinct())
  board_ids = {b for b in ares.scalars().all() if b}
  if not board_ids:
    raise NotFound("Task not found")
  return board_ids


@router.get("", response_model=list[AuditOut])
async def list_audit(
  boardId: str | None = None,
  taskId: str | None = None,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[AuditOut]:
  q = select(AuditEvent).order_by(AuditEvent.created_at.desc()).limit(200)
  if boardId:
    await require_board_member(boardId, user, db)
    q = q.where(AuditEvent.board_id == boardId)
  elif taskId:
    for board_id in await _boards_of_task(db, taskId):
      await require_board_member(board_id, user, db)
    q = q.where(AuditEvent.task_id == taskId)
  else:
    q = q.where(AuditEvent.actor_id == user.id)
  res = await db.execute(q)
  return [
    AuditOut(
      id=ev.id,
      boardId=ev.board_id,
      taskId=ev.task_id,
      actorId=ev.actor_id,
      eventType=ev.event_type,
      entityType=ev.entity_type,
      entityId=ev.entity_id,
      payload=ev.payload,
      createdAt=ev.created_at,
    )
    for ev in res.scalars().all()
  ]
