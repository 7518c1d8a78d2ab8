from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from collabrio.config import settings
from collabrio.models import Board, BoardDocument, BoardMember, ChecklistItem, Task, User
from collabrio.notifications.mailer import InvitationResult, Invitee, send_board_invitations
from collabrio.schemas import BoardOut, DocumentOut, InvitationOut, MemberOut, UploaderOut
from collabrio.security import normalize_email
from collabrio.storage import StoredBlob, blob_store

logger = logging.getLogger(__name__)


def document_out(d: BoardDocument) -> DocumentOut:
  return DocumentOut(
    id=d.id,
    boardId=d.board_id,
    name=d.name,
    url=d.url,
    storagePath=d.storage_path,
    mime=d.mime,
    sizeBytes=d.size_bytes,
    uploadedAt=d.uploaded_at,
    uploadedBy=UploaderOut(id=d.uploaded_by_id, name=d.uploaded_by_name, email=d.uploaded_by_email),
  )


def invitation_out(r: InvitationResult) -> InvitationOut:
  return InvitationOut(email=r.email, name=r.name, userType=r.user_type, delivered=r.delivered, error=r.error)


async def board_outs(db: AsyncSession, boards: list[Board], *, with_documents: bool = True) -> list[BoardOut]:
  if not boards:
    return []
  ids = [b.id for b in boards]

  members: dict[str, list[MemberOut]] = {bid: [] for bid in ids}
  by_id = {b.id: b for b in boards}
  mres = await db.execute(
    select(BoardMember.board_id, User)
    .join(User, User.id == BoardMember.user_id)
    .where(BoardMember.board_id.in_(ids))
    .order_by(BoardMember.created_at.asc())
  )
  for board_id, u in mres.all():
    members[board_id].append(MemberOut(id=u.id, name=u.name, email=u.email, isAdmin=u.id == by_id[board_id].created_by))

  creators = {b.created_by for b in boards}
  cres = await db.execute(select(User.id, User.name).where(User.id.in_(creators)))
  creator_names = {uid: name for uid, name in cres.all()}

  docs: dict[str, list[DocumentOut]] = {bid: [] for bid in ids}
  if with_documents:
    dres = await db.execute(select(BoardDocument).where(BoardDocument.board_id.in_(ids)).order_by(BoardDocument.uploaded_at.asc()))
    for d in dres.scalars().all():
      docs[d.board_id].append(document_out(d))

  out: list[BoardOut] = []
  for b in boards:
    out.append(
      BoardOut(
        id=b.id,
        name=b.name,
        description=b.description,
        priority=b.priority,
        deadline=b.deadline,
        createdBy=b.created_by,
        createdByName=creator_names.get(b.created_by),
        status=b.status,
        completionPercentage=int(b.completion_percentage),
        members=members[b.id],
        memberIds=[m.id for m in members[b.id]],
        documents=docs[b.id],
        createdAt=b.created_at,
        updatedAt=b.updated_at,
      )
    )
  return out


async def board_out(db: AsyncSession, b: Board) -> BoardOut:
  return (await board_outs(db, [b]))[0]


async def member_ids(db: AsyncSession, board_id: str) -> set[str]:
  res = await db.execute(select(BoardMember.user_id).where(BoardMember.board_id == board_id))
  return set(res.scalars().all())


async def resolve_emails(db: AsyncSession, emails: Iterable[str]) -> tuple[list[User], list[str]]:
  """Split emails into existing active users and addresses without an account."""
  wanted: list[str] = []
  for e in emails:
    n = normalize_email(e)
    if n and n not in wanted:
      wanted.append(n)
  if not wanted:
    return [], []
  res = await db.execute(select(User).where(User.email.in_(wanted), User.active.is_(True)))
  found = {u.email: u for u in res.scalars().all()}
  return [found[e] for e in wanted if e in found], [e for e in wanted if e not in found]


def add_member_rows(db: AsyncSession, board_id: str, users: Iterable[User], existing: set[str]) -> list[User]:
  added: list[User] = []
  for u in users:
    if u.id in existing:
      continue
    db.add(BoardMember(board_id=board_id, user_id=u.id))
    existing.add(u.id)
    added.append(u)
  return added


async def invite(b: Board, *, added: list[User], unknown_emails: list[str], inviter: User) -> list[InvitationResult]:
  invitees = [Invitee(email=u.email, name=u.name, has_account=True) for u in added]
  invitees += [Invitee(email=e, name=e.split("@", 1)[0], has_account=False) for e in unknown_emails]
  if not invitees:
    return []
  return await send_board_invitations(
    invitees,
    board_id=b.id,
    board_name=b.name,
    description=b.description,
    priority=b.priority,
    deadline=b.deadline,
    inviter_name=inviter.name,
    inviter_email=inviter.email,
  )


def invitation_warnings(results: list[InvitationResult]) -> list[str]:
  return [f"Invitation email to {r.email} was not delivered: {r.error}" for r in results if not r.delivered]


def add_document_rows(db: AsyncSession, board_id: str, blobs: list[StoredBlob], uploader: User) -> list[BoardDocument]:
  docs: list[BoardDocument] = []
  for blob in blobs:
    d = BoardDocument(
      board_id=board_id,
      name=blob.name,
      storage_path=blob.storage_path,
      url="",
      mime=blob.mime,
      size_bytes=blob.size_bytes,
      uploaded_by_id=uploader.id,
      uploaded_by_name=uploader.name,
      uploaded_by_email=uploader.email,
    )
    db.add(d)
    docs.append(d)
  return docs


async def assign_document_urls(db: AsyncSession, docs: list[BoardDocument]) -> None:
  await db.flush()
  for d in docs:
    d.url = f"/documents/{d.id}/file"


async def delete_board_everything(db: AsyncSession, *, board_id: str) -> list[str]:
  """
  Delete a board with its membership and document records.

  With `board_delete_cascade` on, tasks and checklist items go too. Returns
  the storage paths of the removed documents so the caller can drop the blobs
  after commit.
  """
  dres = await db.execute(select(BoardDocument.storage_path).where(BoardDocument.board_id == board_id))
  paths = list(dres.scalars().all())
  if settings.board_delete_cascade:
    await db.execute(delete(ChecklistItem).where(ChecklistItem.task_id.in_(select(Task.id).where(Task.board_id == board_id))))
    await db.execute(delete(Task).where(Task.board_id == board_id))
  await db.execute(delete(BoardDocument).where(BoardDocument.board_id == board_id))
  await db.execute(delete(BoardMember).where(BoardMember.board_id == board_id))
  await db.execute(delete(Board).where(Board.id == board_id))
  return paths


def drop_blobs(paths: Iterable[str]) -> None:
  store = blob_store()
  for p in paths:
    try:
      store.delete(p)
    except OSError as exc:
      logger.warning("could not remove blob %s: %s", p, exc)
