from __future__ import annotations
from typing import Iterable, Optional
from sqlalchemy.orm import selectinload
from sqlmodel import Session, select

from .db import session_scope
from .models import Folder, Note


class NotFoundError(ValueError):
    pass


class ConflictError(ValueError):
    pass


def _unique(ids: Optional[Iterable[int]]) -> list[int]:
    if not ids:
        return []
    return list(dict.fromkeys(ids))


def _folders_by_id(s: Session, folder_ids: Optional[Iterable[int]]) -> list[Folder]:
    ids = _unique(folder_ids)
    if not ids:
        return []
    found = list(s.exec(select(Folder).where(Folder.id.in_(ids))))
    missing = set(ids) - {f.id for f in found}
    if missing:
        raise NotFoundError(f"Folder {min(missing)} not found")
    return found


def _notes_by_id(s: Session, note_ids: Optional[Iterable[int]]) -> list[Note]:
    ids = _unique(note_ids)
    if not ids:
        return []
    found = list(s.exec(select(Note).where(Note.id.in_(ids))))
    missing = set(ids) - {n.id for n in found}
    if missing:
        raise NotFoundError(f"Note {min(missing)} not found")
    return found


def _with_folders(note: Note) -> Note:
    # load the association while the session is still open
    list(note.folders)
    return note


def _with_notes(folder: Folder) -> Folder:
    list(folder.notes)
    return folder


def _ensure_name_free(s: Session, name: str, folder_id: Optional[int] = None) -> None:
    existing = s.exec(select(Folder).where(Folder.name == name)).first()
    if existing and existing.id != folder_id:
        raise ConflictError("A folder with this name already exists")


# ---------- notes ----------

def list_notes() -> list[Note]:
    """All notes with their folders, most recently updated first."""
    with session_scope() as s:
        stmt = (
            select(Note)
            .options(selectinload(Note.folders))
            .order_by(Note.updated_at.desc(), Note.id.desc())
        )
        return list(s.exec(stmt))


def get_note(note_id: int) -> Optional[Note]:
    with session_scope() as s:
        note = s.get(Note, note_id)
        if not note:
            return None
        return _with_folders(note)


def create_note(title: str, content: str = "", folder_ids: Optional[Iterable[int]] = None) -> Note:
    with session_scope() as s:
        note = Note(title=title, content=content)
        note.folders = _folders_by_id(s, folder_ids)
        s.add(note)
        s.flush()  # get the ID assigned
        s.refresh(note)
        return _with_folders(note)


def update_note(
    note_id: int,
    *,
    title: Optional[str] = None,
    content: Optional[str] = None,
    folder_ids: Optional[Iterable[int]] = None,
) -> Note:
    """
    Update the given fields. updated_at moves only when title or content
    changes; folder_ids, when given, replaces the note's folder set.
    """
    with session_scope() as s:
        note = s.get(Note, note_id)
        if not note:
            raise NotFoundError("Note not found")

        if title is not None or content is not None:
            if title is not None:
                note.title = title
            if content is not None:
                note.content = content
            note.touch()
        if folder_ids is not None:
            note.folders = _folders_by_id(s, folder_ids)

        s.add(note)
        s.flush()
        s.refresh(note)
        return _with_folders(note)


def delete_note(note_id: int) -> None:
    """Remove the note; its folder links go with it."""
    with session_scope() as s:
        note = s.get(Note, note_id)
        if not note:
            raise NotFoundError("Note not found")
        s.delete(note)


# ---------- folders ----------

def list_folders() -> list[Folder]:
    with session_scope() as s:
        stmt = select(Folder).options(selectinload(Folder.notes)).order_by(Folder.name.asc())
        return list(s.exec(stmt))


def get_folder(folder_id: int) -> Optional[Folder]:
    with session_scope() as s:
        folder = s.get(Folder, folder_id)
        if not folder:
            return None
        return _with_notes(folder)


def create_folder(name: str, note_ids: Optional[Iterable[int]] = None) -> Folder:
    with session_scope() as s:
        _ensure_name_free(s, name)
        folder = Folder(name=name)
        folder.notes = _notes_by_id(s, note_ids)
        s.add(folder)
        s.flush()
        s.refresh(folder)
        return _with_notes(folder)


def update_folder(
    folder_id: int,
    *,
    name: Optional[str] = None,
    note_ids: Optional[Iterable[int]] = None,
) -> Folder:
    with session_scope() as s:
        folder = s.get(Folder, folder_id)
        if not folder:
            raise NotFoundError("Folder not found")

        if name is not None:
            _ensure_name_free(s, name, folder_id)
            folder.name = name
            folder.touch()
        if note_ids is not None:
            folder.notes = _notes_by_id(s, note_ids)

        s.add(folder)
        s.flush()
        s.refresh(folder)
        return _with_notes(folder)


def delete_folder(folder_id: int) -> None:
    with session_scope() as s:
        folder = s.get(Folder, folder_id)
        if not folder:
            raise NotFoundError("Folder not found")
        s.delete(folder)
