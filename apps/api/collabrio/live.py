from __future__ import annotations

import logging
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from collabrio.events import TaskMutation
from collabrio.models import Board

logger = logging.getLogger(__name__)


class BoardHub:
  """Websocket subscribers grouped by board id."""

  def __init__(self) -> None:
    self.connections: dict[str, list[WebSocket]] = {}

  async def connect(self, board_id: str, websocket: WebSocket) -> None:
    await websocket.accept()
    self.connections.setdefault(board_id, []).append(websocket)

  def disconnect(self, board_id: str, websocket: WebSocket) -> None:
    conns = self.connections.get(board_id) or []
    if websocket in conns:
      conns.remove(websocket)
    if not conns:
      self.connections.pop(board_id, None)

  def count(self, board_id: str) -> int:
    return len(self.connections.get(board_id) or [])

  async def broadcast(self, board_id: str, message: dict[str, Any]) -> int:
    sent = 0
    for ws in list(self.connections.get(board_id) or []):
      try:
        await ws.send_json(message)
        sent += 1
      except (WebSocketDisconnect, RuntimeError) as exc:
        logger.info("dropping live subscriber on board %s: %s", board_id, exc)
        self.disconnect(board_id, ws)
    return sent


hub = BoardHub()


async def on_task_mutation(db: AsyncSession, event: TaskMutation) -> int:
  if not hub.count(event.board_id):
    return 0
  res = await db.execute(select(Board.status, Board.completion_percentage).where(Board.id == event.board_id))
  row = res.one_or_none()
  message: dict[str, Any] = {"type": event.kind, "boardId": event.board_id, "taskId": event.task_id}
  if row is not None:
    message["board"] = {"status": row[0], "completionPercentage": int(row[1])}
  return await hub.broadcast(event.board_id, message)
