from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

BoardPriority = Literal["High", "Medium", "Low"]


def _parse_dt_utc(value: object) -> object:
  if value is None:
    return None
  if isinstance(value, datetime):
    dt = value
  elif isinstance(value, str):
    s = value.strip()
    if not s:
      return None
    if _DATE_ONLY_RE.fullmatch(s):
      dt = datetime.fromisoformat(s)
    else:
      dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
  else:
    return value

  if dt.tzinfo is None:
    return dt.replace(tzinfo=timezone.utc)
  return dt.astimezone(timezone.utc)


class UserOut(BaseModel):
  id: str
  email: str
  name: str
  role: Literal["admin", "member"]
  active: bool = True


class UserCreateIn(BaseModel):
  email: str = Field(min_length=3, max_length=320)
  name: str = Field(min_length=1, max_length=120)
  role: Literal["admin", "member"] = "member"
  password: str = Field(min_length=8, max_length=200)


class LoginIn(BaseModel):
  email: str
  password: str


class MemberOut(BaseModel):
  id: str
  name: str
  email: str
  isAdmin: bool = False


class UploaderOut(BaseModel):
  id: str | None = None
  name: str
  email: str


class DocumentOut(BaseModel):
  id: str
  boardId: str
  name: str
  url: str
  storagePath: str
  mime: str
  sizeBytes: int
  uploadedAt: datetime
  uploadedBy: UploaderOut


class BoardOut(BaseModel):
  id: str
  name: str
  description: str
  priority: BoardPriority
  deadline: datetime | None = None
  createdBy: str
  createdByName: str | None = None
  status: str
  completionPercentage: int
  members: list[MemberOut] = []
  memberIds: list[str] = []
  documents: list[DocumentOut] = []
  createdAt: datetime
  updatedAt: datetime


class BoardPageOut(BaseModel):
  items: list[BoardOut]
  page: int
  pageSize: int
  total: int
  pageCount: int


class BoardCreateIn(BaseModel):
  name: str = Field(min_length=1, max_length=200)
  description: str = Field(default="", max_length=5000)
  priority: BoardPriority = "Medium"
  deadline: datetime | None = None
  noDeadline: bool = False
  memberEmails: list[str] = []

  @field_validator("deadline", mode="before")
  @classmethod
  def _deadline_to_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class BoardUpdateIn(BaseModel):
  name: str | None = Field(default=None, min_length=1, max_length=200)
  description: str | None = Field(default=None, max_length=5000)
  priority: BoardPriority | None = None


class BoardDeadlineIn(BaseModel):
  deadline: datetime | None = None
  noDeadline: bool = False

  @field_validator("deadline", mode="before")
  @classmethod
  def _deadline_to_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class InvitationOut(BaseModel):
  email: str
  name: str
  userType: Literal["existing", "new"]
  delivered: bool
  error: str | None = None


class BoardChangeOut(BaseModel):
  board: BoardOut
  invitations: list[InvitationOut] = []
  warnings: list[str] = []


class MemberAddIn(BaseModel):
  email: str = Field(min_length=3, max_length=320)


class MembersSetIn(BaseModel):
  memberIds: list[str]


class ChecklistOut(BaseModel):
  id: str
  taskId: str
  label: str
  completed: bool
  position: int


class ChecklistCreateIn(BaseModel):
  label: str = Field(min_length=1, max_length=500)


class ChecklistUpdateIn(BaseModel):
  label: str | None = Field(default=None, min_length=1, max_length=500)
  completed: bool | None = None


class TaskOut(BaseModel):
  id: str
  boardId: str
  title: str
  status: str
  checklist: list[ChecklistOut] = []
  createdAt: datetime | None = None
  updatedAt: datetime | None = None


class TaskCreateIn(BaseModel):
  title: str = Field(min_length=1, max_length=500)
  status: str = "todo"


class TaskUpdateIn(BaseModel):
  title: str = Field(min_length=1, max_length=500)


class TaskMoveIn(BaseModel):
  sourceColumn: str
  targetColumn: str


class BoardAggregateOut(BaseModel):
  status: str
  completionPercentage: int
  counts: dict[str, int] = {}


class TaskCardOut(BaseModel):
  id: str
  title: str
  status: str
  updatedAt: datetime | None = None


class ColumnsOut(BaseModel):
  boardId: str
  columns: dict[str, list[TaskOut]]
  board: BoardAggregateOut


class TaskMutationOut(BaseModel):
  task: TaskOut | None = None
  board: BoardAggregateOut | None = None
  syncError: str | None = None


class TaskMoveOut(BaseModel):
  task: TaskCardOut | None = None
  moved: bool
  columns: dict[str, list[TaskCardOut]]
  board: BoardAggregateOut | None = None
  syncError: str | None = None


class AuditOut(BaseModel):
  id: str
  boardId: str | None = None
  taskId: str | None = None
  actorId: str | None = None
  eventType: str
  entityType: str
  entityId: str | None = None
  payload: dict[str, Any]
  createdAt: datetime
