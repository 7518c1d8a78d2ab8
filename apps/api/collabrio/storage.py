"""
Filesystem blob store for board documents.

Blobs live under `settings.upload_dir` at
`documents/{board_id}/{epoch_millis}_{filename}`; that relative path is what
gets recorded on the document row as `storage_path`.
"""
from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass

from fastapi import UploadFile

from collabrio.config import settings
from collabrio.errors import DocumentTooLarge, UploadFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredBlob:
  name: str
  storage_path: str
  mime: str
  size_bytes: int


def _safe_name(filename: str | None) -> str:
  name = os.path.basename((filename or "").replace("\\", "/")).strip()
  return name or "document"


class BlobStore:
  def __init__(self, root: str) -> None:
    self.root = root

  def abspath(self, storage_path: str) -> str:
    return os.path.join(self.root, *storage_path.split("/"))

  def path_for(self, board_id: str, filename: str | None) -> str:
    name = _safe_name(filename)
    ts = int(time.time() * 1000)
    path = f"documents/{board_id}/{ts}_{name}"
    while os.path.exists(self.abspath(path)):
      ts += 1
      path = f"documents/{board_id}/{ts}_{name}"
    return path

  def put(self, storage_path: str, data: bytes) -> None:
    full = self.abspath(storage_path)
    os.makedirs(os.path.dirname(full), exist_ok=True)
    with open(full, "wb") as f:
      f.write(data)

  def delete(self, storage_path: str) -> bool:
    try:
      os.remove(self.abspath(storage_path))
    except FileNotFoundError:
      return False
    return True

  def exists(self, storage_path: str) -> bool:
    return os.path.isfile(self.abspath(storage_path))


def blob_store() -> BlobStore:
  return BlobStore(settings.upload_dir)


async def upload_batch(board_id: str, files: list[UploadFile], *, store: BlobStore | None = None) -> list[StoredBlob]:
  """
  Store every file of a batch or none of them.

  Any failure aborts the whole batch. With `upload_rollback` enabled the blobs
  already written for the batch are removed before the error propagates.
  """
  store = store or blob_store()
  limit = int(settings.max_attachment_bytes)
  stored: list[StoredBlob] = []
  try:
    for f in files:
      data = await f.read(limit + 1)
      if len(data) > limit:
        raise DocumentTooLarge(f"Document too large: {_safe_name(f.filename)}")
      path = store.path_for(board_id, f.filename)
      try:
        store.put(path, data)
      except OSError as exc:
        raise UploadFailure(f"Failed to upload {_safe_name(f.filename)}") from exc
      stored.append(
        StoredBlob(
          name=_safe_name(f.filename),
          storage_path=path,
          mime=f.content_type or "application/octet-stream",
          size_bytes=len(data),
        )
      )
  except UploadFailure:
    if settings.upload_rollback:
      for b in stored:
        store.delete(b.storage_path)
      if stored:
        logger.info("rolled back %d stored blob(s) for board %s", len(stored), board_id)
    raise
  return stored
