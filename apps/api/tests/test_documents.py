from __future__ import annotations

import json
import os

import pytest
from httpx import AsyncClient

from collabrio.config import settings
from collabrio.storage import BlobStore
from conftest import create_board, login


def _blobs_under(board_id: str) -> list[str]:
  root = os.path.join(settings.upload_dir, "documents", board_id)
  if not os.path.isdir(root):
    return []
  return sorted(os.listdir(root))


@pytest.mark.anyio
async def test_upload_list_download_delete(client: AsyncClient) -> None:
  me = await login(client, "admin@collabrio.local", "admin1234")
  b = await create_board(client, "Docs")

  files = [
    ("files", ("brief.txt", b"project brief", "text/plain")),
    ("files", ("notes.md", b"# notes", "text/markdown")),
  ]
  r = await client.post(f"/boards/{b['id']}/documents", files=files)
  assert r.status_code == 201, r.text
  docs = r.json()
  assert [d["name"] for d in docs] == ["brief.txt", "notes.md"]
  for d in docs:
    assert d["storagePath"].startswith(f"documents/{b['id']}/")
    assert d["storagePath"].endswith("_" + d["name"])
    assert d["url"] == f"/documents/{d['id']}/file"
    assert d["uploadedBy"] == {"id": me["id"], "name": "Admin", "email": "admin@collabrio.local"}

  listed = (await client.get(f"/boards/{b['id']}/documents")).json()
  assert [d["id"] for d in listed] == [d["id"] for d in docs]
  assert [d["name"] for d in (await client.get(f"/boards/{b['id']}")).json()["documents"]] == ["brief.txt", "notes.md"]

  got = await client.get(docs[0]["url"])
  assert got.status_code == 200
  assert got.content == b"project brief"

  r = await client.delete(f"/documents/{docs[0]['id']}")
  assert r.status_code == 200, r.text
  assert [d["name"] for d in (await client.get(f"/boards/{b['id']}/documents")).json()] == ["notes.md"]
  assert len(_blobs_under(b["id"])) == 1
  assert (await client.get(docs[0]["url"])).status_code == 404


@pytest.mark.anyio
async def test_oversized_file_fails_the_whole_batch(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setattr(settings, "max_attachment_bytes", 10)
  await login(client, "admin@collabrio.local", "admin1234")
  b = await create_board(client, "Limits")

  files = [
    ("files", ("small.txt", b"ok", "text/plain")),
    ("files", ("big.bin", b"x" * 11, "application/octet-stream")),
  ]
  r = await client.post(f"/boards/{b['id']}/documents", files=files)
  assert r.status_code == 413
  assert r.json()["detail"]["code"] == "document_too_large"
  assert (await client.get(f"/boards/{b['id']}/documents")).json() == []
  assert _blobs_under(b["id"]) == []


@pytest.mark.anyio
async def test_storage_failure_rolls_back_stored_blobs(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  await login(client, "admin@collabrio.local", "admin1234")
  b = await create_board(client, "Flaky Storage")

  real_put = BlobStore.put

  def flaky_put(self, storage_path: str, data: bytes) -> None:
    if storage_path.endswith("_second.txt"):
      raise OSError("disk full")
    real_put(self, storage_path, data)

  monkeypatch.setattr(BlobStore, "put", flaky_put)
  files = [
    ("files", ("first.txt", b"1", "text/plain")),
    ("files", ("second.txt", b"2", "text/plain")),
  ]
  r = await client.post(f"/boards/{b['id']}/documents", files=files)
  assert r.status_code == 502
  assert r.json()["detail"]["code"] == "upload_failure"
  assert (await client.get(f"/boards/{b['id']}/documents")).json() == []
  assert _blobs_under(b["id"]) == []


@pytest.mark.anyio
async def test_board_created_with_documents_in_one_request(client: AsyncClient) -> None:
  await login(client, "admin@collabrio.local", "admin1234")
  data = {"name": "With Files", "description": "d", "priority": "Low", "noDeadline": True}
  r = await client.post(
    "/boards/form",
    data={"data": json.dumps(data)},
    files=[("files", ("plan.pdf", b"%PDF-1.4 fake", "application/pdf"))],
  )
  assert r.status_code == 201, r.text
  board = r.json()["board"]
  assert board["priority"] == "Low"
  assert [d["name"] for d in board["documents"]] == ["plan.pdf"]


@pytest.mark.anyio
async def test_failed_upload_creates_no_board(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setattr(settings, "max_attachment_bytes", 4)
  await login(client, "admin@collabrio.local", "admin1234")
  r = await client.post(
    "/boards/form",
    data={"data": json.dumps({"name": "Never"})},
    files=[("files", ("large.txt", b"too large", "text/plain"))],
  )
  assert r.status_code == 413
  assert (await client.get("/boards")).json()["total"] == 0


@pytest.mark.anyio
async def test_only_uploader_or_admin_deletes(client: AsyncClient) -> None:
  await login(client, "admin@collabrio.local", "admin1234")
  b = await create_board(client, "Shared Docs", memberEmails=["member@collabrio.local", "outsider@collabrio.local"])
  await login(client, "member@collabrio.local", "member1234")
  doc = (await client.post(f"/boards/{b['id']}/documents", files=[("files", ("m.txt", b"m", "text/plain"))])).json()[0]

  await login(client, "outsider@collabrio.local", "outsider1234")
  r = await client.delete(f"/documents/{doc['id']}")
  assert r.status_code == 403

  await login(client, "admin@collabrio.local", "admin1234")
  r = await client.delete(f"/documents/{doc['id']}")
  assert r.status_code == 200, r.text
