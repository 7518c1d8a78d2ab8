from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from collabrio.audit import write_audit
from collabrio.deps import get_current_user, get_db, require_system_admin
from collabrio.errors import Conflict, InvalidRequest
from collabrio.models import User
from collabrio.routers.auth import user_out
from collabrio.schemas import UserCreateIn, UserOut
from collabrio.security import hash_password, normalize_email

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=list[UserOut])
async def list_users(
  email: str | None = None,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[UserOut]:
  q = select(User).where(User.active.is_(True)).order_by(User.created_at.asc())
  if email is not None:
    q = q.where(User.email == normalize_email(email))
  res = await db.execute(q)
  return [user_out(u) for u in res.scalars().all()]


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def create_user(
  payload: UserCreateIn,
  actor: User = Depends(require_system_admin),
  db: AsyncSession = Depends(get_db),
) -> UserOut:
  email = normalize_email(payload.email)
  if "@" not in email or email.startswith("@") or email.endswith("@"):
    raise InvalidRequest("Invalid email")
  name = payload.name.strip()
  if not name:
    raise InvalidRequest("name is required")

  res = await db.execute(select(User).where(User.email == email))
  if res.scalar_one_or_none():
    raise Conflict("Email already exists")

  u = User(email=email, name=name, role=payload.role, password_hash=hash_password(payload.password), active=True)
  db.add(u)
  await db.flush()
  await write_audit(db, event_type="user.created", entity_type="User", entity_id=u.id, actor_id=actor.id, payload={"email": email, "role": u.role})
  await db.commit()
  return user_out(u)
