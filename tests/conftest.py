from __future__ import annotations
from datetime import datetime, UTC
from typing import Optional
import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

from dominotes.app import app
from dominotes.client import ApiError
from dominotes.db import init_db, reset_engine
from dominotes.ledger import PendingChangeLedger
from dominotes.schemas import (
    FolderCreate,
    FolderOut,
    FolderRef,
    FolderUpdate,
    NoteCreate,
    NoteOut,
    NoteUpdate,
)


@pytest.fixture
def db(tmp_path, monkeypatch):
    monkeypatch.setenv("DOMINOTES_DB_PATH", str(tmp_path / "test.sqlite"))
    reset_engine()
    init_db()
    yield
    reset_engine()


@pytest.fixture
def client(db):
    return TestClient(app)


@pytest.fixture
def authed(client):
    r = client.post("/api/auth/pin", json={"pin": "1234"}, headers={"x-action": "setup"})
    assert r.status_code == 200
    return client


@pytest.fixture
def ledger(tmp_path):
    return PendingChangeLedger(tmp_path / "dominotes-sync-storage.json")


@pytest.fixture
def remote():
    return FakeRemote()


class FakeRemote:
    """
    In-memory stand-in for RemoteApi.

    ``fail`` holds ``(operation, id)`` pairs that raise a simulated network
    error; an id of None fails every call of that operation.
    """

    def __init__(self):
        self.notes: dict[int, NoteOut] = {}
        self.folders: dict[int, FolderOut] = {}
        self.next_id = 1
        self.fail: set[tuple[str, Optional[int]]] = set()
        self.calls: list[tuple[str, Optional[int]]] = []
        self.online = True
        self.gate: Optional[asyncio.Event] = None

    def _now(self) -> datetime:
        return datetime.now(UTC)

    def _take_id(self) -> int:
        new_id = self.next_id
        self.next_id += 1
        return new_id

    def _check(self, op: str, entity_id: Optional[int] = None) -> None:
        self.calls.append((op, entity_id))
        if (op, entity_id) in self.fail or (op, None) in self.fail:
            raise httpx.ConnectError(f"simulated failure of {op}")

    def _refs(self, folder_ids: list[int]) -> list[FolderRef]:
        for folder_id in folder_ids:
            if folder_id not in self.folders:
                raise ApiError(404, f"Folder {folder_id} not found")
        return [FolderRef(id=i, name=self.folders[i].name) for i in folder_ids]

    def ops(self, op: str) -> list[Optional[int]]:
        return [entity_id for name, entity_id in self.calls if name == op]

    # ---------- seeding ----------
    def seed_note(self, title: str, content: str = "", note_id: Optional[int] = None) -> NoteOut:
        note_id = note_id if note_id is not None else self._take_id()
        self.next_id = max(self.next_id, note_id + 1)
        now = self._now()
        self.notes[note_id] = NoteOut(id=note_id, title=title, content=content, created_at=now, updated_at=now)
        return self.notes[note_id]

    def seed_folder(self, name: str, folder_id: Optional[int] = None) -> FolderOut:
        folder_id = folder_id if folder_id is not None else self._take_id()
        self.next_id = max(self.next_id, folder_id + 1)
        now = self._now()
        self.folders[folder_id] = FolderOut(id=folder_id, name=name, created_at=now, updated_at=now)
        return self.folders[folder_id]

    # ---------- RemoteApi surface ----------
    async def ping(self) -> bool:
        return self.online

    async def login(self, pin: str) -> None:
        self._check("login")

    async def aclose(self) -> None:
        pass

    async def fetch_notes(self) -> list[NoteOut]:
        self._check("fetch_notes")
        if self.gate is not None:
            await self.gate.wait()
        return sorted(self.notes.values(), key=lambda n: n.updated_at, reverse=True)

    async def create_note(self, note: NoteCreate) -> NoteOut:
        self._check("create_note")
        now = self._now()
        created = NoteOut(
            id=self._take_id(), title=note.title, content=note.content,
            created_at=now, updated_at=now, folders=self._refs(note.folder_ids),
        )
        self.notes[created.id] = created
        return created

    async def update_note(self, note_id: int, updates: NoteUpdate) -> NoteOut:
        self._check("update_note", note_id)
        if note_id not in self.notes:
            raise ApiError(404, "Note not found")
        fields = updates.model_dump(exclude_none=True)
        folder_ids = fields.pop("folder_ids", None)
        if folder_ids is not None:
            fields["folders"] = self._refs(folder_ids)
        fields["updated_at"] = self._now()
        self.notes[note_id] = self.notes[note_id].model_copy(update=fields)
        return self.notes[note_id]

    async def delete_note(self, note_id: int) -> None:
        self._check("delete_note", note_id)
        if self.notes.pop(note_id, None) is None:
            raise ApiError(404, "Note not found")

    async def fetch_folders(self) -> list[FolderOut]:
        self._check("fetch_folders")
        return sorted(self.folders.values(), key=lambda f: f.name)

    async def create_folder(self, folder: FolderCreate) -> FolderOut:
        self._check("create_folder")
        if any(f.name == folder.name for f in self.folders.values()):
            raise ApiError(409, "A folder with this name already exists")
        now = self._now()
        created = FolderOut(id=self._take_id(), name=folder.name, created_at=now, updated_at=now)
        self.folders[created.id] = created
        return created

    async def update_folder(self, folder_id: int, updates: FolderUpdate) -> FolderOut:
        self._check("update_folder", folder_id)
        if folder_id not in self.folders:
            raise ApiError(404, "Folder not found")
        fields = updates.model_dump(exclude_none=True)
        fields.pop("note_ids", None)
        fields["updated_at"] = self._now()
        self.folders[folder_id] = self.folders[folder_id].model_copy(update=fields)
        return self.folders[folder_id]

    async def delete_folder(self, folder_id: int) -> None:
        self._check("delete_folder", folder_id)
        if self.folders.pop(folder_id, None) is None:
            raise ApiError(404, "Folder not found")
