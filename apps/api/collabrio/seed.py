from __future__ import annotations

import asyncio
import os
import secrets
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import select

from collabrio.aggregation import recompute_board
from collabrio.db import SessionLocal
from collabrio.models import Board, BoardMember, Task, User
from collabrio.security import hash_password


def _bootstrap_password(env_key: str) -> tuple[str, bool]:
  configured = (os.getenv(env_key) or "").strip()
  if configured:
    return configured, False
  return secrets.token_urlsafe(14), True


async def seed() -> None:
  async with SessionLocal() as db:
    admin_email = "admin@collabrio.local"
    member_email = "member@collabrio.local"
    admin_password, admin_generated = _bootstrap_password("SEED_ADMIN_PASSWORD")
    member_password, member_generated = _bootstrap_password("SEED_MEMBER_PASSWORD")
    boot_lines: list[str] = []

    res = await db.execute(select(User).where(User.email == admin_email))
    admin = res.scalar_one_or_none()
    if not admin:
      admin = User(email=admin_email, name="Admin", role="admin", password_hash=hash_password(admin_password))
      db.add(admin)
      boot_lines.append(f"{admin_email}={admin_password} (generated={str(admin_generated).lower()})")

    res = await db.execute(select(User).where(User.email == member_email))
    member = res.scalar_one_or_none()
    if not member:
      member = User(email=member_email, name="Member", role="member", password_hash=hash_password(member_password))
      db.add(member)
      boot_lines.append(f"{member_email}={member_password} (generated={str(member_generated).lower()})")

    await db.flush()

    demo_board_id: str | None = None
    if os.getenv("SEED_DEMO_BOARD", "").strip().lower() in ("1", "true", "yes", "y"):
      board_name = "Collabrio Demo"
      bres = await db.execute(select(Board).where(Board.name == board_name, Board.created_by == admin.id))
      board = bres.scalar_one_or_none()
      if not board:
        board = Board(name=board_name, description="Sample board", priority="Medium", created_by=admin.id)
        db.add(board)
        await db.flush()
        db.add(BoardMember(board_id=board.id, user_id=admin.id))
        db.add(BoardMember(board_id=board.id, user_id=member.id))
        for title, status in [
          ("Write project brief", "done"),
          ("Collect requirements", "doing"),
          ("Book kickoff meeting", "onHold"),
          ("Draft timeline", "todo"),
        ]:
          db.add(Task(board_id=board.id, title=title, status=status))
        demo_board_id = board.id

    await db.commit()
    if demo_board_id:
      await recompute_board(db, demo_board_id)

    if boot_lines:
      out_dir = Path(os.getenv("BOOTSTRAP_CREDENTIALS_DIR", "data"))
      out_dir.mkdir(parents=True, exist_ok=True)
      out_file = out_dir / "bootstrap_credentials.txt"
      stamp = datetime.now(timezone.utc).isoformat()
      out_file.write_text(f"[{stamp}]\n" + "\n".join(boot_lines) + "\n", encoding="utf-8")
      print("Collabrio seed credentials created:")
      for ln in boot_lines:
        print(f"  {ln}")
      print(f"Saved to {out_file}")


def main() -> None:
  asyncio.run(seed())


if __name__ == "__main__":
  main()
