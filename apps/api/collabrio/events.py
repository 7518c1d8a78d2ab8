from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from collabrio.errors import CollabrioError

logger = logging.getLogger(__name__)

TASK_CREATED = "task.created"
TASK_UPDATED = "task.updated"
TASK_DELETED = "task.deleted"
TASK_MOVED = "task.moved"
CHECKLIST_CHANGED = "task.checklist"


@dataclass(frozen=True)
class TaskMutation:
  board_id: str
  task_id: str | None
  kind: str
  actor_id: str | None = None


TaskHandler = Callable[[AsyncSession, TaskMutation], Awaitable[Any]]


class TaskEventBus:
  """
  Publishes committed task mutations to subscribers, in subscription order.

  A subscriber failing with a CollabrioError does not stop the others; the
  error is returned in its result slot so the caller can report it.
  """

  def __init__(self) -> None:
    self._subscribers: list[TaskHandler] = []

  def subscribe(self, handler: TaskHandler) -> Callable[[], None]:
    self._subscribers.append(handler)

    def _unsubscribe() -> None:
      if handler in self._subscribers:
        self._subscribers.remove(handler)

    return _unsubscribe

  @property
  def subscribers(self) -> list[TaskHandler]:
    return list(self._subscribers)

  async def publish(self, db: AsyncSession, event: TaskMutation) -> list[Any]:
    results: list[Any] = []
    for handler in list(self._subscribers):
      try:
        results.append(await handler(db, event))
      except CollabrioError as exc:
        logger.warning("%s handler %s failed: %s", event.kind, getattr(handler, "__name__", handler), exc.message)
        results.append(exc)
    return results


task_events = TaskEventBus()
