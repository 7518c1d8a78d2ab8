from __future__ import annotations

import pytest

from collabrio.aggregation import (
  BOARD_COMPLETED,
  BOARD_IN_PROGRESS,
  BOARD_TODO,
  aggregate,
  board_status,
  completion_percentage,
  count_by_column,
  group_by_column,
  sync_outcome,
)
from collabrio.errors import StoreWriteFailure
from collabrio.kanban import TaskCard


def test_empty_board_is_todo_at_zero() -> None:
  assert completion_percentage([]) == 0
  assert board_status([]) == BOARD_TODO


def test_two_of_four_done_is_half_and_in_progress() -> None:
  statuses = ["todo", "doing", "done", "done"]
  assert completion_percentage(statuses) == 50
  assert board_status(statuses) == BOARD_IN_PROGRESS


def test_all_done_is_completed() -> None:
  statuses = ["done", "done", "done"]
  assert completion_percentage(statuses) == 100
  assert board_status(statuses) == BOARD_COMPLETED


@pytest.mark.parametrize(
  "statuses,expected",
  [
    (["todo"], BOARD_TODO),
    (["todo", "onHold"], BOARD_TODO),
    (["doing"], BOARD_IN_PROGRESS),
    (["onHold", "done"], BOARD_IN_PROGRESS),
    (["todo", "done"], BOARD_IN_PROGRESS),
    (["doing", "done"], BOARD_IN_PROGRESS),
  ],
)
def test_status_rules(statuses: list[str], expected: str) -> None:
  assert board_status(statuses) == expected


@pytest.mark.parametrize(
  "done,total,expected",
  [
    (1, 3, 33),
    (2, 3, 67),
    (1, 8, 13),
    (1, 200, 1),
    (1, 201, 0),
    (5, 7, 71),
  ],
)
def test_percentage_rounds_half_up(done: int, total: int, expected: int) -> None:
  statuses = ["done"] * done + ["todo"] * (total - done)
  assert completion_percentage(statuses) == expected


def test_unknown_statuses_do_not_count() -> None:
  counts = count_by_column(["done", "archived", "todo", ""])
  assert counts == {"todo": 1, "doing": 0, "onHold": 0, "done": 1}
  assert completion_percentage(["done", "archived"]) == 100
  assert board_status(["done", "archived"]) == BOARD_COMPLETED


def test_aggregate_carries_counts() -> None:
  agg = aggregate(["todo", "doing", "onHold", "done", "done"])
  assert agg.status == BOARD_IN_PROGRESS
  assert agg.completion_percentage == 40
  assert agg.counts == {"todo": 1, "doing": 1, "onHold": 1, "done": 2}
  assert agg.total == 5


def test_group_by_column_keeps_order_and_skips_invalid(caplog: pytest.LogCaptureFixture) -> None:
  cards = [
    TaskCard(id="a", title="A", status="todo"),
    TaskCard(id="b", title="B", status="bogus"),
    TaskCard(id="c", title="C", status="todo"),
    TaskCard(id="d", title="D", status="done"),
  ]
  with caplog.at_level("WARNING"):
    cols = group_by_column(cards)
  assert [c.id for c in cols["todo"]] == ["a", "c"]
  assert [c.id for c in cols["done"]] == ["d"]
  assert cols["doing"] == [] and cols["onHold"] == []
  assert "bogus" in caplog.text


def test_sync_outcome_reports_first_aggregate_and_error() -> None:
  agg = aggregate(["done"])
  assert sync_outcome([agg, 3]) == (agg, None)
  assert sync_outcome([StoreWriteFailure("Failed to update board completion percentage"), None]) == (
    None,
    "Failed to update board completion percentage",
  )
