from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from collabrio.errors import InvalidColumn, InvalidStatus, NotFound, StoreWriteFailure
from collabrio.models import Task, utcnow

logger = logging.getLogger(__name__)

TaskStatus = Literal["todo", "doing", "onHold", "done"]
COLUMNS: tuple[str, ...] = ("todo", "doing", "onHold", "done")
COLUMN_TITLES = {"todo": "To Do", "doing": "Doing", "onHold": "On Hold", "done": "Done"}


def is_column(value: object) -> bool:
  return isinstance(value, str) and value in COLUMNS


def validate_status(value: object) -> str:
  if not is_column(value):
    raise InvalidStatus(f"Invalid task status: {value!r}")
  return str(value)


@dataclass
class TaskCard:
  id: str
  title: str
  status: str
  updated_at: datetime | None = None

  @classmethod
  def from_task(cls, t: Task) -> TaskCard:
    return cls(id=t.id, title=t.title, status=t.status, updated_at=t.updated_at)


@dataclass
class KanbanBoard:
  """In-memory column view of one board's tasks."""

  board_id: str
  columns: dict[str, list[TaskCard]] = field(default_factory=lambda: {c: [] for c in COLUMNS})

  @classmethod
  def from_tasks(cls, board_id: str, tasks: Iterable[Task | TaskCard]) -> KanbanBoard:
    view = cls(board_id=board_id)
    for t in tasks:
      card = t if isinstance(t, TaskCard) else TaskCard.from_task(t)
      if card.status not in view.columns:
        logger.warning("Invalid task status %r on task %s", card.status, card.id)
        continue
      view.columns[card.status].append(card)
    return view

  def find(self, task_id: str) -> TaskCard | None:
    for cards in self.columns.values():
      for c in cards:
        if c.id == task_id:
          return c
    return None

  def column_of(self, task_id: str) -> str | None:
    for col, cards in self.columns.items():
      if any(c.id == task_id for c in cards):
        return col
    return None

  def statuses(self) -> list[str]:
    return [col for col, cards in self.columns.items() for _ in cards]

  def apply_move(self, task_id: str, source_column: str, target_column: str, *, updated_at: datetime | None = None) -> TaskCard:
    cards = self.columns[source_column]
    idx = next((i for i, c in enumerate(cards) if c.id == task_id), None)
    if idx is None:
      raise NotFound("Task not found in source column")
    card = cards.pop(idx)
    card.status = target_column
    if updated_at is not None:
      card.updated_at = updated_at
    self.columns[target_column].append(card)
    return card


@dataclass(frozen=True)
class MoveResult:
  task: TaskCard | None
  moved: bool


async def move_task(
  db: AsyncSession,
  view: KanbanBoard,
  task_id: str,
  source_column: str,
  target_column: str,
) -> MoveResult:
  """
  Move a task between columns and persist its new status.

  Same-column moves return without touching the store. The view is only
  updated after the store write has been committed.
  """
  if not is_column(target_column):
    raise InvalidColumn(f"Invalid target column: {target_column!r}")
  if source_column == target_column:
    return MoveResult(task=view.find(task_id), moved=False)
  if not is_column(source_column):
    raise InvalidColumn(f"Invalid source column: {source_column!r}")
  current = view.column_of(task_id)
  if current is None:
    raise NotFound("Task not found")
  if current != source_column:
    raise InvalidColumn(f"Task is in column {current!r}, not {source_column!r}")

  now = utcnow()
  try:
    await db.execute(update(Task).where(Task.id == task_id).values(status=target_column, updated_at=now))
    await db.commit()
  except SQLAlchemyError as exc:
    await db.rollback()
    logger.warning("move of task %s to %s failed: %s", task_id, target_column, exc)
    raise StoreWriteFailure("Failed to move task") from exc

  card = view.apply_move(task_id, source_column, target_column, updated_at=now)
  return MoveResult(task=card, moved=True)
