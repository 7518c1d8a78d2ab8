from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from io import BytesIO
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from collabrio.kanban import COLUMNS
from collabrio.models import Board, Task

REPORT_HEADERS = ["Board Name", "Created Date", "Deadline", "Description", "Tasks", "Status", "Completion"]


@dataclass(frozen=True)
class ReportRow:
  board_name: str
  created: str
  deadline: str
  description: str
  tasks: str
  status: str
  completion: str

  def cells(self) -> list[str]:
    return [self.board_name, self.created, self.deadline, self.description, self.tasks, self.status, self.completion]


def fmt_date(value: date | datetime | None, pattern: str = "%d %b %Y") -> str:
  if value is None:
    return "No deadline"
  return value.strftime(pattern)


def tasks_text(tasks: Iterable[Task]) -> str:
  by_status: dict[str, list[str]] = {c: [] for c in COLUMNS}
  for t in tasks:
    if t.status in by_status:
      by_status[t.status].append(t.title)
  blocks = [f"{col.upper()}:\n" + "\n".join(f"• {title}" for title in titles) for col, titles in by_status.items() if titles]
  return "\n\n".join(blocks) or "No tasks"


def row_for(board: Board, tasks: Iterable[Task]) -> ReportRow:
  return ReportRow(
    board_name=board.name or "Untitled Board",
    created=fmt_date(board.created_at),
    deadline=fmt_date(board.deadline),
    description=board.description or "No description",
    tasks=tasks_text(tasks),
    status=board.status or "No status",
    completion=f"{int(board.completion_percentage or 0)}%",
  )


async def rows_for_boards(db: AsyncSession, boards: list[Board]) -> list[ReportRow]:
  if not boards:
    return []
  res = await db.execute(select(Task).where(Task.board_id.in_([b.id for b in boards])).order_by(Task.created_at.asc()))
  by_board: dict[str, list[Task]] = {}
  for t in res.scalars().all():
    by_board.setdefault(t.board_id, []).append(t)
  return [row_for(b, by_board.get(b.id, [])) for b in boards]


def _cell(text: str, style: ParagraphStyle) -> Paragraph:
  return Paragraph(escape(text).replace("\n", "<br/>"), style)


def render_report(title: str, details: list[str], rows: list[ReportRow]) -> bytes:
  """Render a landscape A4 table report and return the PDF bytes."""
  buf = BytesIO()
  doc = SimpleDocTemplate(
    buf,
    pagesize=landscape(A4),
    leftMargin=15 * mm,
    rightMargin=15 * mm,
    topMargin=15 * mm,
    bottomMargin=15 * mm,
    title=title,
  )
  styles = getSampleStyleSheet()
  title_style = ParagraphStyle("ReportTitle", parent=styles["Heading1"], fontSize=16, spaceAfter=6)
  cell_style = ParagraphStyle("ReportCell", parent=styles["Normal"], fontSize=9, leading=11)
  head_style = ParagraphStyle("ReportHead", parent=cell_style, fontName="Helvetica-Bold", textColor=colors.whitesmoke)

  story = [Paragraph(escape(title), title_style)]
  for line in details:
    story.append(Paragraph(escape(line), styles["Normal"]))
  story.append(Spacer(1, 8 * mm))

  data = [[_cell(h, head_style) for h in REPORT_HEADERS]]
  for r in rows:
    data.append([_cell(c, cell_style) for c in r.cells()])
  if not rows:
    data.append([_cell("No boards found", cell_style)] + [""] * (len(REPORT_HEADERS) - 1))

  widths = [40 * mm, 25 * mm, 25 * mm, 45 * mm, 70 * mm, 27 * mm, 25 * mm]
  table = Table(data, colWidths=widths, repeatRows=1)
  table.setStyle(
    TableStyle(
      [
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#2980b9")),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("ALIGN", (0, 0), (-1, -1), "LEFT"),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
        ("TOPPADDING", (0, 0), (-1, -1), 3),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f5f5f5")]),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
      ]
    )
  )
  story.append(table)
  doc.build(story)
  return buf.getvalue()


def _filename_part(value: str) -> str:
  return re.sub(r"[^A-Za-z0-9._-]+", "_", value).strip("_") or "report"


def board_report_filename(board_name: str) -> str:
  return f"{_filename_part(board_name)}-report.pdf"


def member_report_filename(member_name: str, start: date, end: date) -> str:
  return f"{_filename_part(member_name)}_{start.strftime('%d%b%Y')}-{end.strftime('%d%b%Y')}_report.pdf"
