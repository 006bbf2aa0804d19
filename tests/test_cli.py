from typer.testing import CliRunner

from dominotes.cli import app
from dominotes.ledger import ChangeType, EntityType, PendingChangeLedger

runner = CliRunner()


def test_pending_lists_queued_changes_without_network(tmp_path, monkeypatch):
    monkeypatch.setenv("DOMINOTES_DATA_DIR", str(tmp_path))
    ledger = PendingChangeLedger(tmp_path / "dominotes-sync-storage.json")
    ledger.add_pending_change(EntityType.NOTE, 5, ChangeType.UPDATE, {"title": "B"})
    ledger.add_pending_change(EntityType.FOLDER, 7, ChangeType.DELETE)

    result = runner.invoke(app, ["pending"])
    assert result.exit_code == 0
    assert "2 changes pending" in result.stdout
    assert "update" in result.stdout
    assert "delete" in result.stdout


def test_offline_edit_is_reported_as_queued(tmp_path, monkeypatch):
    monkeypatch.setenv("DOMINOTES_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("DOMINOTES_API_URL", "http://127.0.0.1:9")
    monkeypatch.setenv("DOMINOTES_PIN", "1234")

    result = runner.invoke(app, ["edit", "5", "--title", "B"])
    assert result.exit_code == 0
    assert "Nothing to change" not in result.stdout
    assert "Updated" in result.stdout
    assert "queued" in result.stdout
    ledger = PendingChangeLedger(tmp_path / "dominotes-sync-storage.json")
    assert ledger.get(EntityType.NOTE, 5).data.title == "B"


def test_bad_configuration_is_reported_without_traceback(tmp_path, monkeypatch):
    monkeypatch.setenv("DOMINOTES_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("DOMINOTES_CLEAR_POLICY", "sometimes")

    result = runner.invoke(app, ["pending"])
    assert result.exit_code == 1
    assert "Invalid configuration" in result.stdout
