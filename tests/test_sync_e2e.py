import asyncio

import httpx

from dominotes.app import app
from dominotes.client import ApiError, RemoteApi
from dominotes.config import Settings
from dominotes.ledger import EntityType
from dominotes.session import NotesSession


def _remote() -> RemoteApi:
    transport = httpx.ASGITransport(app=app)
    return RemoteApi(httpx.AsyncClient(transport=transport, base_url="http://testserver"))


def test_offline_work_reaches_the_server(db, tmp_path):
    settings = Settings(data_dir=tmp_path, pin="1234")

    async def scenario():
        remote = _remote()
        await remote.setup_pin("1234")
        async with NotesSession.open(settings, remote) as session:
            assert session.is_online
            kept = await session.create_folder("Work")
            note = session.new_note()
            saved = await session.save_note(note.id, "Online", "first", [kept.id])
            assert not session.store.is_temporary(saved.id)

            session.monitor.notify(False)
            await session.save_note(saved.id, title="Edited offline")
            await session.create_folder("Later")
            await session.delete_folder(kept.id)
            assert session.pending_count == 3
            assert [f.name for f in session.folders] == ["Later"]

            session.monitor.notify(True)
            report = await session.monitor.wait_idle()
            assert report.ok
            assert session.pending_count == 0
            server_notes = await remote.fetch_notes()
            server_folders = await remote.fetch_folders()
            assert session.notes == server_notes
            assert session.folders == server_folders
            return server_notes, server_folders

    notes, folders = asyncio.run(scenario())
    assert [(n.title, n.folders) for n in notes] == [("Edited offline", [])]
    assert [f.name for f in folders] == ["Later"]


def test_ledger_survives_between_sessions(db, tmp_path):
    settings = Settings(data_dir=tmp_path, pin="1234")

    async def first_run():
        remote = _remote()
        await remote.setup_pin("1234")
        async with NotesSession.open(settings, remote) as session:
            session.monitor.notify(False)
            draft = session.new_note()
            await session.save_note(draft.id, "Written offline", "")
            return draft.id

    async def second_run():
        async with NotesSession.open(settings, _remote()) as session:
            return [n.title for n in session.notes], session.pending_count

    draft_id = asyncio.run(first_run())
    assert settings.ledger_path.exists()
    assert str(draft_id) in settings.ledger_path.read_text()
    assert asyncio.run(second_run()) == (["Written offline"], 0)


def test_api_errors_carry_the_server_message(db):
    async def scenario():
        remote = _remote()
        try:
            await remote.fetch_notes()
        except ApiError as e:
            return e
        finally:
            await remote.aclose()

    err = asyncio.run(scenario())
    assert err.status_code == 401
    assert err.message == "Unauthorized"
