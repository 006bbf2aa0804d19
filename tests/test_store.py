from datetime import datetime, UTC

from dominotes.schemas import FolderOut, FolderRef, NoteOut, NoteUpdate
from dominotes.store import EntityStore

NOW = datetime(2024, 1, 1, tzinfo=UTC)


def _note(note_id, title="t", folders=()):
    return NoteOut(id=note_id, title=title, content="", created_at=NOW, updated_at=NOW, folders=list(folders))


def _folder(folder_id, name):
    return FolderOut(id=folder_id, name=name, created_at=NOW, updated_at=NOW)


def test_temp_ids_skip_known_and_issued_ids():
    store = EntityStore(clock=lambda: 1.0)
    store.add_note(_note(1000, "taken"))
    first = store.next_temp_id()
    second = store.next_temp_id()
    assert first == 1001
    assert second == 1002
    assert store.is_temporary(first)
    assert not store.is_temporary(1000)


def test_add_prepends_and_update_merges_only_set_fields():
    store = EntityStore()
    store.add_note(_note(1, "old"))
    store.add_note(_note(2, "new"))
    assert [n.id for n in store.notes] == [2, 1]

    store.update_note(1, NoteUpdate(title="renamed"))
    assert store.get_note(1).title == "renamed"
    assert store.get_note(1).content == ""

    store.update_note(1, {"content": "body"})
    assert store.get_note(1).content == "body"
    # unknown ids are ignored
    store.update_note(99, {"title": "ghost"})
    assert store.get_note(99) is None


def test_replace_swaps_temp_id_in_place_and_follows_selection():
    store = EntityStore(clock=lambda: 5.0)
    store.add_note(_note(1))
    temp = store.next_temp_id()
    store.add_note(_note(temp, "draft"))
    store.select_note(temp)

    store.replace_note(temp, _note(42, "draft"))
    assert [n.id for n in store.notes] == [42, 1]
    assert store.active_note.id == 42
    assert not store.is_temporary(temp)


def test_set_notes_rebinds_or_clears_active_note():
    store = EntityStore()
    store.set_notes([_note(1, "a"), _note(2, "b")])
    store.select_note(1)

    store.set_notes([_note(1, "a2")])
    assert store.active_note.title == "a2"

    store.set_notes([_note(2, "b")])
    assert store.active_note is None


def test_delete_clears_selection_and_folder_filter():
    store = EntityStore()
    store.set_folders([_folder(10, "Work"), _folder(11, "Home")])
    store.set_notes([
        _note(1, "in work", [FolderRef(id=10, name="Work")]),
        _note(2, "loose"),
    ])
    assert [n.id for n in store.notes_in_folder(10)] == [1]
    assert store.notes_in_folder(11) == []

    store.select_folder(10)
    store.delete_folder(10)
    assert store.active_folder is None
    assert [f.name for f in store.folders] == ["Home"]

    store.select_note(2)
    store.delete_note(2)
    assert store.active_note is None
