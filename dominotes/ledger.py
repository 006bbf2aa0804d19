"""Durable queue of mutations waiting to be replayed against the server.

The ledger is a mapping, not a log: one entry per ``(entity type, id)``,
and a newer change for the same key replaces the older one.  It is saved
to a JSON file after every mutation so an offline session survives a
restart.
"""
from __future__ import annotations
from enum import Enum
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Annotated, Any, Literal, Optional, Union
import logging
import os

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from .schemas import FolderCreate, FolderUpdate, NoteCreate, NoteUpdate

log = logging.getLogger(__name__)


class EntityType(str, Enum):
    NOTE = "notes"
    FOLDER = "folders"


class ChangeType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class CreateNote(BaseModel):
    type: Literal["create"] = "create"
    data: NoteCreate


class UpdateNote(BaseModel):
    type: Literal["update"] = "update"
    data: NoteUpdate


class CreateFolder(BaseModel):
    type: Literal["create"] = "create"
    data: FolderCreate


class UpdateFolder(BaseModel):
    type: Literal["update"] = "update"
    data: FolderUpdate


class DeleteEntity(BaseModel):
    type: Literal["delete"] = "delete"


NoteChange = Annotated[Union[CreateNote, UpdateNote, DeleteEntity], Field(discriminator="type")]
FolderChange = Annotated[Union[CreateFolder, UpdateFolder, DeleteEntity], Field(discriminator="type")]
PendingChange = Union[CreateNote, UpdateNote, CreateFolder, UpdateFolder, DeleteEntity]

_NOTE_CHANGE = TypeAdapter(NoteChange)
_FOLDER_CHANGE = TypeAdapter(FolderChange)


class PendingChanges(BaseModel):
    notes: dict[str, NoteChange] = Field(default_factory=dict)
    folders: dict[str, FolderChange] = Field(default_factory=dict)


def build_change(entity_type: EntityType, change_type: ChangeType, data: Any = None) -> PendingChange:
    """Validate ``data`` into the change shape for this entity type."""
    raw: dict[str, Any] = {"type": ChangeType(change_type).value}
    if change_type != ChangeType.DELETE:
        if isinstance(data, BaseModel):
            data = data.model_dump(by_alias=True, exclude_unset=True)
        raw["data"] = data if data is not None else {}
    adapter = _NOTE_CHANGE if EntityType(entity_type) == EntityType.NOTE else _FOLDER_CHANGE
    return adapter.validate_python(raw)


def _fold(pending: PendingChange, incoming: PendingChange) -> Optional[PendingChange]:
    """What to keep when ``incoming`` lands on a create nobody has synced yet."""
    if isinstance(incoming, DeleteEntity):
        return None
    if isinstance(incoming, (UpdateNote, UpdateFolder)):
        patch = incoming.data.model_dump(exclude_none=True)
        return pending.model_copy(update={"data": pending.data.model_copy(update=patch)})
    return incoming


class PendingChangeLedger:
    """
    Pending changes per entity type, keyed by the entity id as a string.

    With ``merge_into_create`` off, every call simply overwrites the entry,
    so an update recorded after an unsynced create replaces it and will be
    replayed as an update of an id the server never issued. With it on,
    updates are folded into the pending create and a delete cancels it.
    """

    def __init__(self, path: Optional[Path] = None, *, merge_into_create: bool = False):
        self.path = path
        self.merge_into_create = merge_into_create
        self._state = self._load()

    def _load(self) -> PendingChanges:
        if self.path is None or not self.path.exists():
            return PendingChanges()
        try:
            return PendingChanges.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            log.warning("Ignoring unreadable ledger at %s: %s", self.path, e)
            self._move_aside()
            return PendingChanges()

    def _move_aside(self) -> None:
        # keep the unreadable file so the next save does not destroy it
        backup = self.path.with_name(self.path.name + ".corrupt")
        try:
            os.replace(self.path, backup)
        except OSError as e:
            log.error("Could not move %s aside: %s", self.path, e)
            return
        log.warning("Moved unreadable ledger to %s", backup)

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = NamedTemporaryFile("w", encoding="utf-8", dir=str(self.path.parent), delete=False)
        try:
            tmp.write(self._state.model_dump_json(by_alias=True, indent=2))
            tmp.flush()
            os.fsync(tmp.fileno())
            tmp.close()
            os.replace(tmp.name, self.path)
        finally:
            if os.path.exists(tmp.name):
                os.unlink(tmp.name)

    def _bucket(self, entity_type: EntityType) -> dict[str, PendingChange]:
        if EntityType(entity_type) == EntityType.NOTE:
            return self._state.notes
        return self._state.folders

    # ---------- mutations ----------
    def add_pending_change(
        self,
        entity_type: EntityType,
        entity_id: Union[int, str],
        change_type: ChangeType,
        data: Any = None,
    ) -> None:
        entity_type = EntityType(entity_type)
        key = str(entity_id)
        change = build_change(entity_type, change_type, data)
        bucket = self._bucket(entity_type)
        pending = bucket.get(key)
        if self.merge_into_create and isinstance(pending, (CreateNote, CreateFolder)):
            change = _fold(pending, change)
        if change is None:
            bucket.pop(key, None)
            log.debug("Dropped unsynced create for %s %s", entity_type.value, key)
        else:
            bucket[key] = change
            log.debug("Queued %s for %s %s", change.type, entity_type.value, key)
        self._save()

    def remove_pending_change(self, entity_type: EntityType, entity_id: Union[int, str]) -> None:
        if self._bucket(entity_type).pop(str(entity_id), None) is not None:
            self._save()

    def clear_pending_changes(self) -> None:
        self._state = PendingChanges()
        self._save()

    # ---------- reads ----------
    def get(self, entity_type: EntityType, entity_id: Union[int, str]) -> Optional[PendingChange]:
        return self._bucket(entity_type).get(str(entity_id))

    def entries(self, entity_type: EntityType) -> list[tuple[str, PendingChange]]:
        """Snapshot in insertion order, safe to iterate while removing."""
        return list(self._bucket(entity_type).items())

    def __len__(self) -> int:
        return len(self._state.notes) + len(self._state.folders)
