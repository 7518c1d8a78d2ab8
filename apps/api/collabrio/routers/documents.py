from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from collabrio import boards as board_svc
from collabrio.audit import write_audit
from collabrio.deps import get_current_user, get_db, require_board_member
from collabrio.errors import NotAuthorized, NotFound
from collabrio.models import BoardDocument, User
from collabrio.schemas import DocumentOut
from collabrio.storage import blob_store, upload_batch

router = APIRouter(tags=["documents"])


async def _document_for_member(document_id: str, user: User, db: AsyncSession) -> BoardDocument:
  res = await db.execute(select(BoardDocument).where(BoardDocument.id == document_id))
  d = res.scalar_one_or_none()
  if not d:
    raise NotFound("Document not found")
  await require_board_member(d.board_id, user, db)
  return d


@router.get("/boards/{board_id}/documents", response_model=list[DocumentOut])
async def list_documents(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[DocumentOut]:
  await require_board_member(board_id, user, db)
  res = await db.execute(select(BoardDocument).where(BoardDocument.board_id == board_id).order_by(BoardDocument.uploaded_at.asc()))
  return [board_svc.document_out(d) for d in res.scalars().all()]


@router.post("/boards/{board_id}/documents", response_model=list[DocumentOut], status_code=status.HTTP_201_CREATED)
async def upload_documents(
  board_id: str,
  files: list[UploadFile] = File(...),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[DocumentOut]:
  b = await require_board_member(board_id, user, db)
  blobs = await upload_batch(b.id, files)
  docs = board_svc.add_document_rows(db, b.id, blobs, user)
  await board_svc.assign_document_urls(db, docs)
  await write_audit(
    db,
    event_type="document.uploaded",
    entity_type="Board",
    entity_id=b.id,
    board_id=b.id,
    actor_id=user.id,
    payload={"documents": [d.name for d in docs]},
  )
  await db.commit()
  return [board_svc.document_out(d) for d in docs]


@router.get("/documents/{document_id}/file")
async def download_document(document_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> FileResponse:
  d = await _document_for_member(document_id, user, db)
  store = blob_store()
  if not store.exists(d.storage_path):
    raise NotFound("Document file missing")
  return FileResponse(path=store.abspath(d.storage_path), media_type=d.mime, filename=d.name)


@router.delete("/documents/{document_id}")
async def delete_document(document_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  d = await _document_for_member(document_id, user, db)
  b = await require_board_member(d.board_id, user, db)
  if user.id not in (d.uploaded_by_id, b.created_by):
    raise NotAuthorized("Only the uploader or the board admin can delete this document")
  path = d.storage_path
  await db.delete(d)
  await write_audit(
    db, event_type="document.deleted", entity_type="BoardDocument", entity_id=document_id, board_id=d.board_id, actor_id=user.id, payload={"name": d.name}
  )
  await db.commit()
  board_svc.drop_blobs([path])
  return {"ok": True}
