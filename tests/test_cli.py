"""Tests for the command-line interface."""

import json

import pytest
from click.testing import CliRunner

from taskboard.cli import main
from taskboard.storage import EntityStore

from conftest import make_task


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def invoke(runner, tmp_path, populated_store):
    """Run the CLI against the populated store."""
    config_path = tmp_path / "config.yaml"

    def _invoke(*args):
        return runner.invoke(main, [
            "--config", str(config_path),
            "--db", str(populated_store.db_path),
            "--log-level", "ERROR",
            *args,
        ])

    return _invoke


class TestDashboardCommand:

    def test_json_output(self, invoke):
        result = invoke("dashboard", "--json", "--days", "60")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["timeRange"]["days"] == 60
        assert data["overview"]["totalTasks"] == 4

    def test_tables(self, invoke):
        result = invoke("dashboard")
        assert result.exit_code == 0, result.output
        assert "Tasks by status" in result.output
        assert "Website" in result.output

    def test_invalid_days(self, invoke):
        result = invoke("dashboard", "--days", "0")
        assert result.exit_code == 2
        assert "Error:" in result.output


class TestReportCommand:

    def test_json(self, invoke):
        result = invoke("report", "time-tracking")
        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["recordCount"] == 2

    def test_csv_to_file(self, invoke, tmp_path):
        target = tmp_path / "out.csv"
        result = invoke("report", "time-tracking", "--format", "csv", "--output", str(target))
        assert result.exit_code == 0, result.output
        assert target.read_text().startswith("taskId,title,")

    def test_unknown_type(self, invoke):
        result = invoke("report", "velocity")
        assert result.exit_code == 2
        assert "Valid options" in result.output

    def test_bad_date(self, invoke):
        result = invoke("report", "productivity", "--start", "soon")
        assert result.exit_code == 2

    def test_end_date_covers_whole_day(self, invoke):
        result = invoke("report", "productivity", "--start", "2026-10-18", "--end", "2026-10-18")
        assert result.exit_code == 0, result.output
        body = json.loads(result.output)
        assert body["recordCount"] == 1
        assert body["data"][0]["tasksCompleted"] == 2


class TestBulkCommand:

    def test_update_status(self, invoke, populated_store):
        result = invoke("bulk", "update-status", "t3", "t4", "ghost", "--status", "review")
        assert result.exit_code == 0, result.output
        assert "2 of 3 tasks affected" in result.output
        assert populated_store.get_task("t3").status.value == "review"

    def test_missing_field(self, invoke):
        result = invoke("bulk", "update-priority", "t1")
        assert result.exit_code == 2

    def test_no_task_ids(self, invoke):
        result = invoke("bulk", "delete")
        assert result.exit_code == 2


class TestImportCommand:

    def test_import_tasks(self, runner, tmp_path):
        export = tmp_path / "tasks.json"
        export.write_text(json.dumps({
            "exportDate": "2026-10-19T00:00:00+00:00",
            "totalRecords": 2,
            "data": [
                make_task("One", id="a", project_id="p1").to_dict(),
                {**make_task("Two", id="b").to_dict(),
                 "project": {"id": "p2", "name": "Other", "status": "planning"}},
            ],
        }))
        db = tmp_path / "fresh.db"

        result = runner.invoke(main, [
            "--config", str(tmp_path / "config.yaml"), "--db", str(db), "import", str(export),
        ])
        assert result.exit_code == 0, result.output
        assert "Imported 2 tasks" in result.output

        store = EntityStore(db)
        assert store.get_task("a").project_id == "p1"
        assert store.get_task("b").project_id == "p2"

    @pytest.mark.parametrize("content", ["[1, 2]", "{\"data\": \"tasks\"}", "[[\"title\"]]"])
    def test_import_rejects_non_object_records(self, runner, tmp_path, content):
        source = tmp_path / "odd.json"
        source.write_text(content)
        result = runner.invoke(main, [
            "--config", str(tmp_path / "config.yaml"), "--db", str(tmp_path / "x.db"),
            "import", str(source),
        ])
        assert result.exit_code == 2
        assert "list of JSON objects" in result.output

    def test_import_rejects_invalid_json(self, runner, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("{nope")
        result = runner.invoke(main, [
            "--config", str(tmp_path / "config.yaml"), "--db", str(tmp_path / "x.db"),
            "import", str(bad),
        ])
        assert result.exit_code == 2


def test_serve_uses_cli_configuration(runner, tmp_path, monkeypatch):
    calls = {}

    def fake_run(**kwargs):
        calls.update(kwargs)

    monkeypatch.setattr("taskboard.webapp.app.main", fake_run)
    result = runner.invoke(main, [
        "--config", str(tmp_path / "config.yaml"), "--db", str(tmp_path / "served.db"),
        "serve", "--port", "9001",
    ])
    assert result.exit_code == 0, result.output
    assert calls["port"] == 9001
    assert calls["config"].db_path == str(tmp_path / "served.db")
