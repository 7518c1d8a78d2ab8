from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone

import pytest
from httpx import AsyncClient

from collabrio.models import Task
from collabrio.reports import member_report_filename, render_report, tasks_text
from conftest import create_board, create_task, login, seeded_user_id


def test_tasks_text_groups_by_column_in_order() -> None:
  tasks = [
    Task(board_id="b", title="ship", status="done"),
    Task(board_id="b", title="plan", status="todo"),
    Task(board_id="b", title="wait", status="onHold"),
  ]
  assert tasks_text(tasks) == "TODO:\n• plan\n\nONHOLD:\n• wait\n\nDONE:\n• ship"
  assert tasks_text([]) == "No tasks"


def test_member_report_filename() -> None:
  assert member_report_filename("Jane Doe", date(2026, 3, 1), date(2026, 3, 31)) == "Jane_Doe_01Mar2026-31Mar2026_report.pdf"


@pytest.mark.anyio
async def test_board_report_is_a_pdf(client: AsyncClient) -> None:
  await login(client, "admin@collabrio.local", "admin1234")
  b = await create_board(client, "Quarterly Plan")
  await create_task(client, b["id"], "draft", "doing")
  r = await client.get(f"/boards/{b['id']}/report.pdf")
  assert r.status_code == 200, r.text
  assert r.headers["content-type"] == "application/pdf"
  assert 'filename="Quarterly_Plan-report.pdf"' in r.headers["content-disposition"]
  assert r.content.startswith(b"%PDF")


@pytest.mark.anyio
async def test_member_report_filters_by_date_and_search(client: AsyncClient) -> None:
  me = await login(client, "admin@collabrio.local", "admin1234")
  await create_board(client, "Alpha")
  await create_board(client, "Beta")
  today = datetime.now(timezone.utc).date()

  listed = (await client.get(f"/users/{me['id']}/boards", params={"start": str(today), "end": str(today)})).json()
  assert sorted(b["name"] for b in listed) == ["Alpha", "Beta"]
  listed = (await client.get(f"/users/{me['id']}/boards", params={"start": str(today), "end": str(today), "search": "alp"})).json()
  assert [b["name"] for b in listed] == ["Alpha"]
  listed = (await client.get(f"/users/{me['id']}/boards", params={"start": "2000-01-01", "end": "2000-01-31"})).json()
  assert listed == []

  r = await client.get(f"/users/{me['id']}/boards/report.pdf", params={"start": str(today), "end": str(today)})
  assert r.status_code == 200, r.text
  assert r.content.startswith(b"%PDF")
  assert "_report.pdf" in r.headers["content-disposition"]

  r = await client.get(f"/users/{me['id']}/boards", params={"start": "2026-02-01", "end": "2026-01-01"})
  assert r.status_code == 400


@pytest.mark.anyio
async def test_members_only_see_their_own_report(client: AsyncClient) -> None:
  admin = await login(client, "admin@collabrio.local", "admin1234")
  await login(client, "member@collabrio.local", "member1234")
  r = await client.get(f"/users/{admin['id']}/boards/report.pdf")
  assert r.status_code == 403


@pytest.mark.anyio
async def test_board_report_names_only_board_members(client: AsyncClient) -> None:
  await login(client, "admin@collabrio.local", "admin1234")
  member_id = await seeded_user_id("member@collabrio.local")
  outsider_id = await seeded_user_id("outsider@collabrio.local")
  b = await create_board(client, "Named", memberEmails=["member@collabrio.local"])

  r = await client.get(f"/boards/{b['id']}/report.pdf", params={"memberId": member_id})
  assert r.status_code == 200, r.text
  r = await client.get(f"/boards/{b['id']}/report.pdf", params={"memberId": outsider_id})
  assert r.status_code == 404
  assert r.json()["detail"]["code"] == "not_found"


@pytest.mark.anyio
async def test_pdf_is_rendered_off_the_event_loop(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  rendered_in_thread = []
  real_to_thread = asyncio.to_thread

  async def recording_to_thread(func, *args, **kwargs):
    rendered_in_thread.append(func)
    return await real_to_thread(func, *args, **kwargs)

  monkeypatch.setattr(asyncio, "to_thread", recording_to_thread)
  me = await login(client, "admin@collabrio.local", "admin1234")
  b = await create_board(client, "Threaded")
  assert (await client.get(f"/boards/{b['id']}/report.pdf")).status_code == 200
  assert (await client.get(f"/users/{me['id']}/boards/report.pdf")).status_code == 200
  assert rendered_in_thread == [render_report, render_report]


@pytest.mark.anyio
async def test_reversed_date_range_is_an_invalid_request(client: AsyncClient) -> None:
  me = await login(client, "admin@collabrio.local", "admin1234")
  r = await client.get(f"/users/{me['id']}/boards/report.pdf", params={"start": "2026-02-01", "end": "2026-01-01"})
  assert r.status_code == 400
  assert r.json()["detail"] == {"code": "invalid_request", "message": "end must not be before start"}
