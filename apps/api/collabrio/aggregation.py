"""
Board status aggregation.

A board's `status` and `completion_percentage` are never authored directly;
they are derived from the statuses of the board's tasks. The pure functions
here do the derivation, `recompute_board` reads the full task set from the
store and writes both derived fields back to the board row.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from collabrio.errors import CollabrioError, StoreWriteFailure
from collabrio.events import TaskMutation
from collabrio.kanban import COLUMNS, KanbanBoard, TaskCard
from collabrio.models import Board, Task

logger = logging.getLogger(__name__)

BOARD_TODO = "To Do"
BOARD_IN_PROGRESS = "In Progress"
BOARD_COMPLETED = "Completed"
BOARD_STATUSES = (BOARD_TODO, BOARD_IN_PROGRESS, BOARD_COMPLETED)


@dataclass(frozen=True)
class BoardAggregate:
  status: str
  completion_percentage: int
  counts: dict[str, int] = field(default_factory=dict)

  @property
  def total(self) -> int:
    return sum(self.counts.values())


def count_by_column(statuses: Iterable[str]) -> dict[str, int]:
  # unknown statuses are not part of any column and do not count
  counts = {c: 0 for c in COLUMNS}
  for s in statuses:
    if s in counts:
      counts[s] += 1
  return counts


def _percentage(done: int, total: int) -> int:
  if total <= 0:
    return 0
  # round half up, integer-only
  return (200 * done + total) // (2 * total)


def completion_percentage(statuses: Iterable[str]) -> int:
  counts = count_by_column(statuses)
  return _percentage(counts["done"], sum(counts.values()))


def _status_from_counts(counts: dict[str, int]) -> str:
  total = sum(counts.values())
  done = counts["done"]
  if counts["doing"] > 0 or (done > 0 and total > done):
    return BOARD_IN_PROGRESS
  if total > 0 and done == total:
    return BOARD_COMPLETED
  return BOARD_TODO


def board_status(statuses: Iterable[str]) -> str:
  return _status_from_counts(count_by_column(statuses))


def aggregate(statuses: Iterable[str]) -> BoardAggregate:
  counts = count_by_column(statuses)
  return BoardAggregate(
    status=_status_from_counts(counts),
    completion_percentage=_percentage(counts["done"], sum(counts.values())),
    counts=counts,
  )


async def recompute_board(db: AsyncSession, board_id: str) -> BoardAggregate:
  """
  Recompute and persist the derived fields of one board.

  Always reads the complete task set; the write is a separate commit from the
  task mutation that triggered it. Raises StoreWriteFailure when the board row
  cannot be written, after rolling the session back.
  """
  res = await db.execute(select(Task.status).where(Task.board_id == board_id))
  agg = aggregate(res.scalars().all())
  try:
    await db.execute(
      update(Board)
      .where(Board.id == board_id)
      .values(status=agg.status, completion_percentage=agg.completion_percentage)
    )
    await db.commit()
  except SQLAlchemyError as exc:
    await db.rollback()
    logger.warning("aggregate sync failed for board %s: %s", board_id, exc)
    raise StoreWriteFailure("Failed to update board completion percentage") from exc
  return agg


async def on_task_mutation(db: AsyncSession, event: TaskMutation) -> BoardAggregate:
  return await recompute_board(db, event.board_id)


def sync_outcome(results: Iterable[Any]) -> tuple[BoardAggregate | None, str | None]:
  """Pick the aggregate (or the sync error message) out of published results."""
  agg: BoardAggregate | None = None
  error: str | None = None
  for r in results:
    if isinstance(r, BoardAggregate) and agg is None:
      agg = r
    elif isinstance(r, CollabrioError) and error is None:
      error = r.message
  return agg, error


def group_by_column(tasks: Iterable[Any]) -> dict[str, list[TaskCard]]:
  """Column buckets for a task list; tasks with an unknown status are left out."""
  return KanbanBoard.from_tasks("", tasks).columns
