import pytest

from dominotes.db import init_db, reset_engine
from dominotes.services import (
    NotFoundError, create_folder, create_note, delete_folder, delete_note,
    get_folder, get_note,
)

def test_deleting_either_side_removes_the_link(tmp_path, monkeypatch):
    monkeypatch.setenv("DOMINOTES_DB_PATH", str(tmp_path / "actions.sqlite"))
    reset_engine()
    init_db()

    work = create_folder("Work")
    home = create_folder("Home")
    a = create_note("A", folder_ids=[work.id, home.id])
    b = create_note("B", folder_ids=[work.id])

    delete_folder(work.id)
    assert get_folder(work.id) is None
    assert [f.name for f in get_note(a.id).folders] == ["Home"]
    assert get_note(b.id).folders == []

    delete_note(a.id)
    assert get_note(a.id) is None
    assert get_folder(home.id).notes == []

def test_delete_missing_raises(tmp_path, monkeypatch):
    monkeypatch.setenv("DOMINOTES_DB_PATH", str(tmp_path / "actions2.sqlite"))
    reset_engine()
    init_db()

    with pytest.raises(NotFoundError):
        delete_note(1)
    with pytest.raises(NotFoundError):
        delete_folder(1)
