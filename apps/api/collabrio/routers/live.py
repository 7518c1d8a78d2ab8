from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from collabrio.db import SessionLocal
from collabrio.deps import require_board_member, user_for_session
from collabrio.errors import CollabrioError
from collabrio.live import hub
from collabrio.security import SESSION_COOKIE_NAME

logger = logging.getLogger(__name__)

router = APIRouter(tags=["live"])


@router.websocket("/boards/{board_id}/live")
async def board_live(websocket: WebSocket, board_id: str) -> None:
  async with SessionLocal() as db:
    try:
      user = await user_for_session(db, websocket.cookies.get(SESSION_COOKIE_NAME))
      await require_board_member(board_id, user, db)
    except CollabrioError as exc:
      await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=exc.message)
      return

  await hub.connect(board_id, websocket)
  logger.info("user %s subscribed to board %s", user.id, board_id)
  try:
    while True:
      # client messages are only keepalives
      await websocket.receive_text()
  except WebSocketDisconnect:
    pass
  finally:
    hub.disconnect(board_id, websocket)
