from __future__ import annotations

import pytest
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from collabrio.db import engine
from collabrio.main import app
from collabrio.security import SESSION_COOKIE_NAME

BASE = "http://localhost"
WS_BASE = "ws://localhost"


def _login(tc: TestClient, email: str, password: str) -> str:
  r = tc.post("/auth/login", json={"email": email, "password": password})
  assert r.status_code == 200, r.text
  return r.cookies[SESSION_COOKIE_NAME]


def _cookie(session_id: str) -> dict[str, str]:
  return {"cookie": f"{SESSION_COOKIE_NAME}={session_id}"}


@pytest.fixture
def tc():
  with TestClient(app, base_url=BASE) as c:
    try:
      yield c
    finally:
      # pooled connections belong to the test client's event loop
      c.portal.call(engine.dispose)


def test_member_receives_move_with_fresh_board_fields(tc: TestClient) -> None:
  sid = _login(tc, "admin@collabrio.local", "admin1234")
  board = tc.post("/boards", json={"name": "Live"}).json()["board"]
  task = tc.post(f"/boards/{board['id']}/tasks", json={"title": "ship it"}).json()["task"]

  with tc.websocket_connect(f"{WS_BASE}/boards/{board['id']}/live", headers=_cookie(sid)) as ws:
    r = tc.post(f"/tasks/{task['id']}/move", json={"sourceColumn": "todo", "targetColumn": "done"})
    assert r.status_code == 200, r.text
    msg = ws.receive_json()

  assert msg == {
    "type": "task.moved",
    "boardId": board["id"],
    "taskId": task["id"],
    "board": {"status": "Completed", "completionPercentage": 100},
  }


def test_non_member_socket_is_closed_with_policy_violation(tc: TestClient) -> None:
  _login(tc, "admin@collabrio.local", "admin1234")
  board = tc.post("/boards", json={"name": "Private Live"}).json()["board"]
  outsider = _login(tc, "outsider@collabrio.local", "outsider1234")

  with pytest.raises(WebSocketDisconnect) as exc:
    with tc.websocket_connect(f"{WS_BASE}/boards/{board['id']}/live", headers=_cookie(outsider)) as ws:
      ws.receive_text()
  assert exc.value.code == 1008


def test_socket_without_session_is_closed(tc: TestClient) -> None:
  _login(tc, "admin@collabrio.local", "admin1234")
  board = tc.post("/boards", json={"name": "Anonymous"}).json()["board"]
  tc.cookies.clear()

  with pytest.raises(WebSocketDisconnect) as exc:
    with tc.websocket_connect(f"{WS_BASE}/boards/{board['id']}/live") as ws:
      ws.receive_text()
  assert exc.value.code == 1008
