"""In-memory cache of the notes and folders the UI is looking at.

The store never validates and never talks to the server; it is rebuilt
from the server after every reconciliation pass.
"""
from __future__ import annotations
from typing import Any, Callable, Optional, TypeVar, Union
import time

from pydantic import BaseModel

from .schemas import FolderOut, NoteOut

E = TypeVar("E", NoteOut, FolderOut)
Partial = Union[BaseModel, dict[str, Any]]


def _fields(partial: Partial) -> dict[str, Any]:
    if isinstance(partial, BaseModel):
        # only what the caller actually set, nested models kept as models
        return {name: getattr(partial, name) for name in partial.model_fields_set}
    return dict(partial)


def _merge(entity: E, partial: Partial) -> E:
    return entity.model_copy(update=_fields(partial))


def _rekey(items: dict[int, E], old_id: int, entity: E) -> dict[int, E]:
    """Swap ``old_id`` for ``entity`` keeping its position; drop any other copy."""
    out: dict[int, E] = {}
    for key, value in items.items():
        if key == old_id:
            out[entity.id] = entity
        elif key != entity.id:
            out[key] = value
    return out


class EntityStore:
    def __init__(self, clock: Callable[[], float] = time.time):
        self._notes: dict[int, NoteOut] = {}
        self._folders: dict[int, FolderOut] = {}
        self.active_note: Optional[NoteOut] = None
        self.active_folder: Optional[FolderOut] = None
        self._temporary: set[int] = set()
        self._issued: set[int] = set()
        self._clock = clock

    # ---------- read models ----------
    @property
    def notes(self) -> list[NoteOut]:
        return list(self._notes.values())

    @property
    def folders(self) -> list[FolderOut]:
        return list(self._folders.values())

    def get_note(self, note_id: int) -> Optional[NoteOut]:
        return self._notes.get(note_id)

    def get_folder(self, folder_id: int) -> Optional[FolderOut]:
        return self._folders.get(folder_id)

    def notes_in_folder(self, folder_id: int) -> list[NoteOut]:
        return [n for n in self._notes.values() if any(f.id == folder_id for f in n.folders)]

    # ---------- temporary ids ----------
    def next_temp_id(self) -> int:
        """A millisecond timestamp not colliding with any id seen so far."""
        candidate = int(self._clock() * 1000)
        taken = self._notes.keys() | self._folders.keys() | self._issued
        while candidate in taken:
            candidate += 1
        self._issued.add(candidate)
        self._temporary.add(candidate)
        return candidate

    def is_temporary(self, entity_id: int) -> bool:
        return entity_id in self._temporary

    # ---------- notes ----------
    def set_notes(self, notes: list[NoteOut]) -> None:
        self._notes = {n.id: n for n in notes}
        self._temporary = {t for t in self._temporary if t in self._folders}
        if self.active_note is not None:
            self.active_note = self._notes.get(self.active_note.id)

    def add_note(self, note: NoteOut) -> None:
        self._notes = {note.id: note, **{k: v for k, v in self._notes.items() if k != note.id}}

    def update_note(self, note_id: int, partial: Partial) -> None:
        current = self._notes.get(note_id)
        if current is None:
            return
        merged = _merge(current, partial)
        self._notes = _rekey(self._notes, note_id, merged)
        if self.active_note is not None and self.active_note.id == note_id:
            self.active_note = merged

    def replace_note(self, old_id: int, note: NoteOut) -> None:
        """Put the server's version of a note where ``old_id`` was."""
        if old_id in self._notes:
            self._notes = _rekey(self._notes, old_id, note)
        else:
            self.add_note(note)
        self._temporary.discard(old_id)
        if self.active_note is not None and self.active_note.id in (old_id, note.id):
            self.active_note = note

    def delete_note(self, note_id: int) -> None:
        self._notes.pop(note_id, None)
        self._temporary.discard(note_id)
        if self.active_note is not None and self.active_note.id == note_id:
            self.active_note = None

    def select_note(self, note_id: Optional[int]) -> Optional[NoteOut]:
        self.active_note = None if note_id is None else self._notes.get(note_id)
        return self.active_note

    # ---------- folders ----------
    def set_folders(self, folders: list[FolderOut]) -> None:
        self._folders = {f.id: f for f in folders}
        self._temporary = {t for t in self._temporary if t in self._notes}
        if self.active_folder is not None:
            self.active_folder = self._folders.get(self.active_folder.id)

    def add_folder(self, folder: FolderOut) -> None:
        self._folders = {folder.id: folder, **{k: v for k, v in self._folders.items() if k != folder.id}}

    def update_folder(self, folder_id: int, partial: Partial) -> None:
        current = self._folders.get(folder_id)
        if current is None:
            return
        merged = _merge(current, partial)
        self._folders = _rekey(self._folders, folder_id, merged)
        if self.active_folder is not None and self.active_folder.id == folder_id:
            self.active_folder = merged

    def replace_folder(self, old_id: int, folder: FolderOut) -> None:
        if old_id in self._folders:
            self._folders = _rekey(self._folders, old_id, folder)
        else:
            self.add_folder(folder)
        self._temporary.discard(old_id)
        if self.active_folder is not None and self.active_folder.id in (old_id, folder.id):
            self.active_folder = folder

    def delete_folder(self, folder_id: int) -> None:
        self._folders.pop(folder_id, None)
        self._temporary.discard(folder_id)
        if self.active_folder is not None and self.active_folder.id == folder_id:
            self.active_folder = None

    def select_folder(self, folder_id: Optional[int]) -> Optional[FolderOut]:
        self.active_folder = None if folder_id is None else self._folders.get(folder_id)
        return self.active_folder
