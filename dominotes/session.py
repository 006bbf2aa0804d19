"""The client-side context object the UI works against.

Every mutation goes through the same stages: apply to the entity store
(always), then either call the server (online) or enqueue the intent in the
ledger (offline). The ledger is replayed by the reconciler when the
connectivity monitor sees the server again.
"""
from __future__ import annotations
from contextlib import asynccontextmanager
from datetime import datetime, UTC
from typing import AsyncIterator, Optional, Union
import logging

from .client import RemoteApi
from .config import AUTOSAVE_DELAY, Settings
from .connectivity import ConnectivityMonitor
from .ledger import ChangeType, CreateFolder, CreateNote, EntityType, PendingChangeLedger
from .reconciler import ClearPolicy, SyncReconciler, SyncReport
from .schemas import (
    FolderCreate,
    FolderOut,
    FolderRef,
    FolderUpdate,
    NoteCreate,
    NoteOut,
    NoteUpdate,
)
from .store import EntityStore

log = logging.getLogger(__name__)

UNTITLED = "Untitled Note"


class NotesSession:
    def __init__(
        self,
        remote: RemoteApi,
        ledger: PendingChangeLedger,
        store: Optional[EntityStore] = None,
        *,
        clear_policy: ClearPolicy = ClearPolicy.ALWAYS,
        online: bool = True,
        autosave_delay: float = AUTOSAVE_DELAY,
    ):
        self.remote = remote
        self.ledger = ledger
        self.store = store or EntityStore()
        self.reconciler = SyncReconciler(remote, self.store, ledger, clear_policy)
        self.monitor = ConnectivityMonitor(self.reconciler.reconcile, probe=remote.ping, online=online)
        self.autosave_delay = autosave_delay

    @classmethod
    @asynccontextmanager
    async def open(
        cls, settings: Settings, remote: Optional[RemoteApi] = None
    ) -> AsyncIterator["NotesSession"]:
        """
        Build a session from settings, log in when the server is reachable
        and run the startup reconciliation before handing it out.
        """
        remote = remote or RemoteApi.connect(settings.api_url)
        ledger = PendingChangeLedger(settings.ledger_path, merge_into_create=settings.merge_into_create)
        session = cls(
            remote, ledger,
            clear_policy=settings.clear_policy, autosave_delay=settings.autosave_delay,
        )
        try:
            online = await remote.ping()
            if online and settings.pin:
                await remote.login(settings.pin)
            await session.monitor.start(online)
            await session.monitor.wait_idle()
            yield session
        finally:
            await session.monitor.stop()
            await remote.aclose()

    # ---------- read models ----------
    @property
    def notes(self) -> list[NoteOut]:
        return self.store.notes

    @property
    def folders(self) -> list[FolderOut]:
        return self.store.folders

    @property
    def active_note(self) -> Optional[NoteOut]:
        return self.store.active_note

    @property
    def active_folder(self) -> Optional[FolderOut]:
        return self.store.active_folder

    @property
    def is_online(self) -> bool:
        return self.monitor.is_online

    @property
    def pending_count(self) -> int:
        return len(self.ledger)

    def visible_notes(self) -> list[NoteOut]:
        """Notes in the active folder, or all notes when none is active."""
        if self.store.active_folder is None:
            return self.store.notes
        return self.store.notes_in_folder(self.store.active_folder.id)

    async def sync(self) -> SyncReport:
        return await self.reconciler.reconcile()

    # ---------- notes ----------
    def new_note(self) -> NoteOut:
        """A local draft with a temporary id; nothing is sent until it is saved."""
        now = datetime.now(UTC)
        note = NoteOut(
            id=self.store.next_temp_id(), title=UNTITLED, content="",
            created_at=now, updated_at=now,
        )
        self.store.add_note(note)
        self.store.select_note(note.id)
        self.store.select_folder(None)
        return note

    async def save_note(
        self,
        note_id: int,
        title: Optional[str] = None,
        content: Optional[str] = None,
        folder_ids: Optional[list[int]] = None,
    ) -> Optional[NoteOut]:
        """
        Persist a note's title/content (and folders, when given); a field
        left as None keeps its current value.

        Returns the note as the store now holds it, or None when nothing
        changed. Online saves of a temporary note create it on the server
        and swap in the server id.
        """
        current = self.store.get_note(note_id)
        pending = self._pending_create(EntityType.NOTE, note_id)
        if current is not None:
            known = (current.title, current.content, [f.id for f in current.folders])
        elif pending is not None:
            known = (pending.data.title, pending.data.content, list(pending.data.folder_ids))
        else:
            known = None
        if known is not None:
            title = known[0] if title is None else title
            content = known[1] if content is None else content
            if (title, content) == known[:2] and (folder_ids is None or folder_ids == known[2]):
                return None

        temporary = self.store.is_temporary(note_id) or pending is not None
        if temporary and folder_ids is None:
            folder_ids = known[2] if known is not None else []

        if self.is_online:
            if temporary:
                saved = await self.remote.create_note(
                    NoteCreate(title=title, content=content or "", folder_ids=folder_ids)
                )
                self.store.replace_note(note_id, saved)
                self.ledger.remove_pending_change(EntityType.NOTE, note_id)
            else:
                saved = await self.remote.update_note(
                    note_id, NoteUpdate(title=title, content=content, folder_ids=folder_ids)
                )
                self.store.update_note(note_id, saved)
            return saved

        now = datetime.now(UTC)
        if current is None:
            # placeholder until the next refresh brings the server copy
            self.store.add_note(NoteOut(
                id=note_id, title=title or "", content=content or "",
                created_at=now, updated_at=now, folders=self._folder_refs(folder_ids or []),
            ))
        else:
            local = {"updated_at": now}
            if title is not None:
                local["title"] = title
            if content is not None:
                local["content"] = content
            if folder_ids is not None:
                local["folders"] = self._folder_refs(folder_ids)
            self.store.update_note(note_id, local)

        if temporary:
            self.ledger.add_pending_change(
                EntityType.NOTE, note_id, ChangeType.CREATE,
                NoteCreate(title=title, content=content or "", folder_ids=folder_ids),
            )
        else:
            self.ledger.add_pending_change(
                EntityType.NOTE, note_id, ChangeType.UPDATE,
                NoteUpdate(title=title, content=content, folder_ids=folder_ids),
            )
        return self.store.get_note(note_id)

    async def delete_note(self, note_id: int) -> None:
        if self._is_temporary(EntityType.NOTE, note_id):
            # the server never saw it; forget the queued create
            self.ledger.remove_pending_change(EntityType.NOTE, note_id)
        elif self.is_online:
            await self.remote.delete_note(note_id)
        else:
            self.ledger.add_pending_change(EntityType.NOTE, note_id, ChangeType.DELETE)
        self.store.delete_note(note_id)

    # ---------- folders ----------
    async def create_folder(self, name: str) -> FolderOut:
        name = name.strip()
        if self.is_online:
            folder = await self.remote.create_folder(FolderCreate(name=name))
            self.store.add_folder(folder)
            return folder

        now = datetime.now(UTC)
        folder = FolderOut(id=self.store.next_temp_id(), name=name, created_at=now, updated_at=now)
        self.store.add_folder(folder)
        self.ledger.add_pending_change(
            EntityType.FOLDER, folder.id, ChangeType.CREATE, FolderCreate(name=name)
        )
        return folder

    async def rename_folder(self, folder_id: int, name: str) -> Optional[FolderOut]:
        name = name.strip()
        pending = self._pending_create(EntityType.FOLDER, folder_id)
        temporary = self.store.is_temporary(folder_id) or pending is not None
        created = pending.data.model_copy(update={"name": name}) if pending else FolderCreate(name=name)

        if self.is_online:
            if temporary:
                folder = await self.remote.create_folder(created)
                self.store.replace_folder(folder_id, folder)
                self.ledger.remove_pending_change(EntityType.FOLDER, folder_id)
            else:
                folder = await self.remote.update_folder(folder_id, FolderUpdate(name=name))
                self.store.update_folder(folder_id, folder)
            return folder

        self.store.update_folder(folder_id, {"name": name, "updated_at": datetime.now(UTC)})
        if temporary:
            change, data = ChangeType.CREATE, created
        else:
            change, data = ChangeType.UPDATE, FolderUpdate(name=name)
        self.ledger.add_pending_change(EntityType.FOLDER, folder_id, change, data)
        return self.store.get_folder(folder_id)

    async def delete_folder(self, folder_id: int) -> None:
        if self._is_temporary(EntityType.FOLDER, folder_id):
            self.ledger.remove_pending_change(EntityType.FOLDER, folder_id)
        elif self.is_online:
            await self.remote.delete_folder(folder_id)
        else:
            self.ledger.add_pending_change(EntityType.FOLDER, folder_id, ChangeType.DELETE)
        self.store.delete_folder(folder_id)

    # ---------- helpers ----------
    def _pending_create(
        self, entity_type: EntityType, entity_id: int
    ) -> Optional[Union[CreateNote, CreateFolder]]:
        """The queued create for this id, which may come from an earlier run."""
        change = self.ledger.get(entity_type, entity_id)
        return change if isinstance(change, (CreateNote, CreateFolder)) else None

    def _is_temporary(self, entity_type: EntityType, entity_id: int) -> bool:
        return self.store.is_temporary(entity_id) or self._pending_create(entity_type, entity_id) is not None

    def _folder_refs(self, folder_ids: list[int]) -> list[FolderRef]:
        refs = []
        for folder_id in folder_ids:
            folder = self.store.get_folder(folder_id)
            if folder is not None:
                refs.append(FolderRef(id=folder.id, name=folder.name))
        return refs
