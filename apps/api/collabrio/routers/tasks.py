from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from collabrio.aggregation import BoardAggregate, aggregate, group_by_column, sync_outcome
from collabrio.audit import write_audit
from collabrio.deps import get_current_user, get_db, get_task_or_404, require_board_member
from collabrio.errors import NotFound
from collabrio.events import CHECKLIST_CHANGED, TASK_CREATED, TASK_DELETED, TASK_MOVED, TASK_UPDATED, TaskMutation, task_events
from collabrio.kanban import KanbanBoard, TaskCard, move_task, validate_status
from collabrio.models import ChecklistItem, Task, User
from collabrio.schemas import (
  BoardAggregateOut,
  ChecklistCreateIn,
  ChecklistOut,
  ChecklistUpdateIn,
  ColumnsOut,
  TaskCardOut,
  TaskCreateIn,
  TaskMoveIn,
  TaskMoveOut,
  TaskMutationOut,
  TaskOut,
  TaskUpdateIn,
)

router = APIRouter(tags=["tasks"])


def _checklist_out(i: ChecklistItem) -> ChecklistOut:
  return ChecklistOut(id=i.id, taskId=i.task_id, label=i.label, completed=bool(i.completed), position=i.position)


def _task_out(t: Task, checklist: list[ChecklistItem] | None = None) -> TaskOut:
  return TaskOut(
    id=t.id,
    boardId=t.board_id,
    title=t.title,
    status=t.status,
    checklist=[_checklist_out(i) for i in (checklist or [])],
    createdAt=t.created_at,
    updatedAt=t.updated_at,
  )


def _card_out(c: TaskCard) -> TaskCardOut:
  return TaskCardOut(id=c.id, title=c.title, status=c.status, updatedAt=c.updated_at)


def _agg_out(agg: BoardAggregate | None) -> BoardAggregateOut | None:
  if agg is None:
    return None
  return BoardAggregateOut(status=agg.status, completionPercentage=agg.completion_percentage, counts=agg.counts)


async def _checklists(db: AsyncSession, task_ids: list[str]) -> dict[str, list[ChecklistItem]]:
  out: dict[str, list[ChecklistItem]] = {tid: [] for tid in task_ids}
  if not task_ids:
    return out
  res = await db.execute(
    select(ChecklistItem).where(ChecklistItem.task_id.in_(task_ids)).order_by(ChecklistItem.position.asc(), ChecklistItem.created_at.asc())
  )
  for i in res.scalars().all():
    out[i.task_id].append(i)
  return out


async def _board_tasks(db: AsyncSession, board_id: str) -> list[Task]:
  res = await db.execute(select(Task).where(Task.board_id == board_id).order_by(Task.created_at.asc()))
  return list(res.scalars().all())


async def _publish(db: AsyncSession, *, board_id: str, task_id: str | None, kind: str, actor: User) -> tuple[BoardAggregate | None, str | None]:
  results = await task_events.publish(db, TaskMutation(board_id=board_id, task_id=task_id, kind=kind, actor_id=actor.id))
  return sync_outcome(results)


async def _task_for_member(task_id: str, user: User, db: AsyncSession) -> Task:
  t = await get_task_or_404(task_id, db)
  await require_board_member(t.board_id, user, db)
  return t


async def _mutation_out(db: AsyncSession, t: Task | None, *, board_id: str, kind: str, actor: User) -> TaskMutationOut:
  # serialize first: a failed recompute rolls the session back and expires t
  task = None
  if t is not None:
    task = _task_out(t, (await _checklists(db, [t.id]))[t.id])
  agg, sync_error = await _publish(db, board_id=board_id, task_id=task.id if task else None, kind=kind, actor=actor)
  return TaskMutationOut(task=task, board=_agg_out(agg), syncError=sync_error)


@router.get("/boards/{board_id}/tasks", response_model=list[TaskOut])
async def list_tasks(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[TaskOut]:
  await require_board_member(board_id, user, db)
  tasks = await _board_tasks(db, board_id)
  checklists = await _checklists(db, [t.id for t in tasks])
  return [_task_out(t, checklists[t.id]) for t in tasks]


@router.get("/boards/{board_id}/columns", response_model=ColumnsOut)
async def list_columns(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> ColumnsOut:
  await require_board_member(board_id, user, db)
  tasks = await _board_tasks(db, board_id)
  checklists = await _checklists(db, [t.id for t in tasks])
  columns = group_by_column(tasks)
  by_id = {t.id: t for t in tasks}
  return ColumnsOut(
    boardId=board_id,
    columns={col: [_task_out(by_id[c.id], checklists[c.id]) for c in cards] for col, cards in columns.items()},
    board=_agg_out(aggregate(t.status for t in tasks)),
  )


@router.post("/boards/{board_id}/tasks", response_model=TaskMutationOut, status_code=status.HTTP_201_CREATED)
async def create_task(
  board_id: str,
  payload: TaskCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TaskMutationOut:
  await require_board_member(board_id, user, db)
  task_status = validate_status(payload.status)
  t = Task(board_id=board_id, title=payload.title.strip(), status=task_status)
  db.add(t)
  await db.flush()
  await write_audit(
    db, event_type="task.created", entity_type="Task", entity_id=t.id, board_id=board_id, task_id=t.id, actor_id=user.id, payload={"title": t.title, "status": t.status}
  )
  await db.commit()
  return await _mutation_out(db, t, board_id=board_id, kind=TASK_CREATED, actor=user)


@router.get("/tasks/{task_id}", response_model=TaskOut)
async def get_task(task_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  t = await _task_for_member(task_id, user, db)
  return _task_out(t, (await _checklists(db, [t.id]))[t.id])


@router.patch("/tasks/{task_id}", response_model=TaskMutationOut)
async def update_task(
  task_id: str,
  payload: TaskUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TaskMutationOut:
  t = await _task_for_member(task_id, user, db)
  t.title = payload.title.strip()
  await write_audit(
    db, event_type="task.updated", entity_type="Task", entity_id=t.id, board_id=t.board_id, task_id=t.id, actor_id=user.id, payload={"title": t.title}
  )
  await db.commit()
  await db.refresh(t)
  return await _mutation_out(db, t, board_id=t.board_id, kind=TASK_UPDATED, actor=user)


@router.delete("/tasks/{task_id}", response_model=TaskMutationOut)
async def delete_task(task_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskMutationOut:
  t = await _task_for_member(task_id, user, db)
  board_id = t.board_id
  await db.execute(delete(ChecklistItem).where(ChecklistItem.task_id == t.id))
  await db.delete(t)
  await write_audit(
    db, event_type="task.deleted", entity_type="Task", entity_id=task_id, board_id=board_id, task_id=task_id, actor_id=user.id, payload={"title": t.title}
  )
  await db.commit()
  return await _mutation_out(db, None, board_id=board_id, kind=TASK_DELETED, actor=user)


@router.post("/tasks/{task_id}/move", response_model=TaskMoveOut)
async def move(
  task_id: str,
  payload: TaskMoveIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TaskMoveOut:
  t = await _task_for_member(task_id, user, db)
  board_id = t.board_id
  view = KanbanBoard.from_tasks(board_id, [TaskCard.from_task(x) for x in await _board_tasks(db, board_id)])

  result = await move_task(db, view, task_id, payload.sourceColumn, payload.targetColumn)
  columns = {col: [_card_out(c) for c in cards] for col, cards in view.columns.items()}
  if not result.moved:
    return TaskMoveOut(
      task=_card_out(result.task) if result.task else None,
      moved=False,
      columns=columns,
      board=_agg_out(aggregate(view.statuses())),
    )

  await write_audit(
    db,
    event_type="task.moved",
    entity_type="Task",
    entity_id=task_id,
    board_id=board_id,
    task_id=task_id,
    actor_id=user.id,
    payload={"from": payload.sourceColumn, "to": payload.targetColumn},
  )
  await db.commit()
  agg, sync_error = await _publish(db, board_id=board_id, task_id=task_id, kind=TASK_MOVED, actor=user)
  return TaskMoveOut(
    task=_card_out(result.task) if result.task else None,
    moved=True,
    columns=columns,
    board=_agg_out(agg),
    syncError=sync_error,
  )


@router.get("/tasks/{task_id}/checklist", response_model=list[ChecklistOut])
async def list_checklist(task_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[ChecklistOut]:
  t = await _task_for_member(task_id, user, db)
  return [_checklist_out(i) for i in (await _checklists(db, [t.id]))[t.id]]


@router.post("/tasks/{task_id}/checklist", response_model=TaskMutationOut, status_code=status.HTTP_201_CREATED)
async def create_checklist_item(
  task_id: str,
  payload: ChecklistCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TaskMutationOut:
  t = await _task_for_member(task_id, user, db)
  res = await db.execute(select(func.max(ChecklistItem.position)).where(ChecklistItem.task_id == task_id))
  max_pos = res.scalar_one()
  pos = (max_pos + 1) if max_pos is not None else 0
  i = ChecklistItem(task_id=task_id, label=payload.label.strip(), completed=False, position=pos)
  db.add(i)
  await db.flush()
  await write_audit(
    db, event_type="checklist.created", entity_type="ChecklistItem", entity_id=i.id, board_id=t.board_id, task_id=t.id, actor_id=user.id, payload={"label": i.label}
  )
  await db.commit()
  return await _mutation_out(db, t, board_id=t.board_id, kind=CHECKLIST_CHANGED, actor=user)


async def _checklist_item(item_id: str, user: User, db: AsyncSession) -> tuple[ChecklistItem, Task]:
  res = await db.execute(select(ChecklistItem).where(ChecklistItem.id == item_id))
  i = res.scalar_one_or_none()
  if not i:
    raise NotFound("Checklist item not found")
  t = await _task_for_member(i.task_id, user, db)
  return i, t


@router.patch("/checklist/{item_id}", response_model=TaskMutationOut)
async def update_checklist_item(
  item_id: str,
  payload: ChecklistUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TaskMutationOut:
  i, t = await _checklist_item(item_id, user, db)
  if payload.label is not None:
    i.label = payload.label.strip()
  if payload.completed is not None:
    i.completed = payload.completed
  await write_audit(
    db,
    event_type="checklist.updated",
    entity_type="ChecklistItem",
    entity_id=i.id,
    board_id=t.board_id,
    task_id=t.id,
    actor_id=user.id,
    payload=payload.model_dump(exclude_none=True),
  )
  await db.commit()
  return await _mutation_out(db, t, board_id=t.board_id, kind=CHECKLIST_CHANGED, actor=user)


@router.delete("/checklist/{item_id}", response_model=TaskMutationOut)
async def delete_checklist_item(item_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskMutationOut:
  i, t = await _checklist_item(item_id, user, db)
  await db.delete(i)
  await write_audit(
    db, event_type="checklist.deleted", entity_type="ChecklistItem", entity_id=item_id, board_id=t.board_id, task_id=t.id, actor_id=user.id, payload={}
  )
  await db.commit()
  return await _mutation_out(db, t, board_id=t.board_id, kind=CHECKLIST_CHANGED, actor=user)
