"""Replay the pending-change ledger against the server, then resync.

One reconciliation pass:

1. replay every pending note change, one at a time, in ledger order;
2. the same for folders;
3. re-fetch notes and folders and overwrite the entity store;
4. clear the ledger according to the ``ClearPolicy``.

A failing entry is logged and kept for the rest of the pass; nothing a
single entry does can abort the batch.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
import logging

import httpx

from .client import ApiError, RemoteApi
from .ledger import (
    CreateFolder,
    CreateNote,
    EntityType,
    PendingChange,
    PendingChangeLedger,
    UpdateFolder,
    UpdateNote,
)
from .store import EntityStore

log = logging.getLogger(__name__)

# ValueError covers ids that are not numbers and bodies that do not parse
SYNC_ERRORS = (ApiError, httpx.HTTPError, ValueError)

ChangeKey = tuple[EntityType, str]


class ClearPolicy(str, Enum):
    # drop the whole ledger at the end of every pass, failed entries included
    ALWAYS = "always"
    # same, but only once the refresh has succeeded; this is how the web
    # client behaves, clearing inside its refresh step
    AFTER_REFRESH = "after-refresh"
    # never bulk clear; failed entries wait for the next pass
    KEEP_FAILED = "keep-failed"


@dataclass
class SyncReport:
    replayed: list[ChangeKey] = field(default_factory=list)
    failed: list[ChangeKey] = field(default_factory=list)
    dropped: list[ChangeKey] = field(default_factory=list)
    refreshed: bool = False
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return not self.skipped and self.refreshed and not self.failed


class SyncReconciler:
    def __init__(
        self,
        remote: RemoteApi,
        store: EntityStore,
        ledger: PendingChangeLedger,
        clear_policy: ClearPolicy = ClearPolicy.ALWAYS,
    ):
        self.remote = remote
        self.store = store
        self.ledger = ledger
        self.clear_policy = ClearPolicy(clear_policy)
        self._in_progress = False

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    async def reconcile(self) -> SyncReport:
        if self._in_progress:
            log.info("Reconciliation already running; skipping this trigger")
            return SyncReport(skipped=True)

        self._in_progress = True
        try:
            report = SyncReport()
            await self.replay(EntityType.NOTE, report)
            await self.replay(EntityType.FOLDER, report)
            report.refreshed = await self.refresh()
            self._settle(report)
            log.info(
                "Sync pass done: %d replayed, %d failed, %d dropped, refreshed=%s",
                len(report.replayed), len(report.failed), len(report.dropped), report.refreshed,
            )
            return report
        finally:
            self._in_progress = False

    async def replay(self, entity_type: EntityType, report: SyncReport) -> None:
        """Push each pending change of one entity type, sequentially."""
        for key, change in self.ledger.entries(entity_type):
            try:
                if entity_type == EntityType.NOTE:
                    await self._replay_note(key, change)
                else:
                    await self._replay_folder(key, change)
            except SYNC_ERRORS as e:
                log.error("Failed to sync %s %s (%s): %s", entity_type.value, key, change.type, e)
                report.failed.append((entity_type, key))
                continue
            self.ledger.remove_pending_change(entity_type, key)
            report.replayed.append((entity_type, key))

    async def _replay_note(self, key: str, change: PendingChange) -> None:
        note_id = int(key)
        if isinstance(change, CreateNote):
            note = await self.remote.create_note(change.data)
            self.store.replace_note(note_id, note)
        elif isinstance(change, UpdateNote):
            note = await self.remote.update_note(note_id, change.data)
            self.store.update_note(note.id, note)
        else:
            await self.remote.delete_note(note_id)
            self.store.delete_note(note_id)

    async def _replay_folder(self, key: str, change: PendingChange) -> None:
        folder_id = int(key)
        if isinstance(change, CreateFolder):
            folder = await self.remote.create_folder(change.data)
            self.store.replace_folder(folder_id, folder)
        elif isinstance(change, UpdateFolder):
            folder = await self.remote.update_folder(folder_id, change.data)
            self.store.update_folder(folder.id, folder)
        else:
            await self.remote.delete_folder(folder_id)
            self.store.delete_folder(folder_id)

    async def refresh(self) -> bool:
        """Overwrite the store with the server's collections."""
        try:
            notes = await self.remote.fetch_notes()
            folders = await self.remote.fetch_folders()
        except SYNC_ERRORS as e:
            log.error("Failed to reload data after sync: %s", e)
            return False
        self.store.set_notes(notes)
        self.store.set_folders(folders)
        return True

    def _settle(self, report: SyncReport) -> None:
        if self.clear_policy == ClearPolicy.KEEP_FAILED:
            return
        if self.clear_policy == ClearPolicy.AFTER_REFRESH and not report.refreshed:
            return
        for entity_type in EntityType:
            for key, change in self.ledger.entries(entity_type):
                log.warning("Discarding unsynced %s of %s %s", change.type, entity_type.value, key)
                report.dropped.append((entity_type, key))
        self.ledger.clear_pending_changes()
