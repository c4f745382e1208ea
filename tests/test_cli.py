"""Tests for the CLI."""

import json
import os
import tempfile
from pathlib import Path

import pytest
from click.testing import CliRunner

from project_interchange.cli import main

SNAPSHOT = {
    "projectName": "Office Move",
    "tasks": [
        {
            "id": "1",
            "name": "Plan",
            "startDate": "2024-04-01",
            "children": [
                {"id": "2", "name": "Survey", "startDate": "2024-04-01", "duration": 2},
                {"id": "3", "name": "Sign lease", "startDate": "2024-04-03", "duration": 0},
            ],
        },
    ],
    "resources": [{"id": "r1", "name": "Ada", "email": "ada@example.com"}],
    "assignments": [{"id": "a1", "event": "2", "resource": "r1", "units": 50}],
    "dependencies": [{"fromTask": "2", "toTask": "3", "type": 2}],
}


@pytest.fixture
def cli_env():
    """Set up a temp directory with a snapshot file."""
    with tempfile.TemporaryDirectory() as tmp:
        snapshot_path = Path(tmp) / "snapshot.json"
        snapshot_path.write_text(json.dumps(SNAPSHOT))

        env = {"PIX_PROJECT_NAME": "Fallback Name"}
        old_env = {}
        for k, v in env.items():
            old_env[k] = os.environ.get(k)
            os.environ[k] = v

        yield CliRunner(), Path(tmp)

        for k, v in old_env.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


def _export(runner, tmp, *args):
    out = tmp / "plan.xml"
    result = runner.invoke(main, ["export", str(tmp / "snapshot.json"), "-o", str(out), *args])
    assert result.exit_code == 0, result.output
    return out


class TestCLI:
    def test_help(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "export" in result.output
        assert "import" in result.output


class TestExport:
    def test_export_to_file(self, cli_env):
        runner, tmp = cli_env
        out = _export(runner, tmp)
        text = out.read_text()
        assert "<Name>Office Move</Name>" in text
        assert "<FieldID>188743731</FieldID>" in text

    def test_reports_task_count(self, cli_env):
        runner, tmp = cli_env
        result = runner.invoke(main, ["export", str(tmp / "snapshot.json"), "-o", str(tmp / "x.xml")])
        assert "Exported 3 tasks" in result.output

    def test_export_to_stdout(self, cli_env):
        runner, tmp = cli_env
        result = runner.invoke(main, ["export", str(tmp / "snapshot.json"), "--name", "Renamed"])
        assert result.exit_code == 0
        assert result.output.startswith("<?xml")
        assert "<Name>Renamed</Name>" in result.output

    def test_no_embed_ids(self, cli_env):
        runner, tmp = cli_env
        out = _export(runner, tmp, "--no-embed-ids")
        text = out.read_text()
        # only the field definition in the header remains
        assert text.count("<FieldID>188743731</FieldID>") == 1
        assert text.count("<FieldID>188743734</FieldID>") == 1

    def test_name_falls_back_to_config(self, cli_env):
        runner, tmp = cli_env
        path = tmp / "unnamed.json"
        path.write_text(json.dumps({"tasks": [{"id": "1", "name": "A"}]}))
        result = runner.invoke(main, ["export", str(path)])
        assert "<Name>Fallback Name</Name>" in result.output

    def test_invalid_snapshot(self, cli_env):
        runner, tmp = cli_env
        path = tmp / "bad.json"
        path.write_text("{not json")
        result = runner.invoke(main, ["export", str(path)])
        assert result.exit_code == 1
        assert "could not read snapshot" in result.output


class TestImport:
    def test_import_rows(self, cli_env):
        runner, tmp = cli_env
        out = _export(runner, tmp)
        result = runner.invoke(main, ["import", str(out)])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [t["name"] for t in data["tasks"]] == ["Plan", "Survey", "Sign lease"]
        assert data["tasks"][1]["parent_uid"] == 1
        assert data["assignments"][0]["units"] == 50.0

    def test_import_gantt(self, cli_env):
        runner, tmp = cli_env
        out = _export(runner, tmp)
        result = runner.invoke(main, ["import", str(out), "--gantt"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [t["id"] for t in data["tasks"]] == ["import_1", "import_2", "import_3"]
        assert data["tasks"][1]["external_id"] == "2"
        assert data["dependencies"][0]["type"] == 2

    def test_import_malformed(self, cli_env):
        runner, tmp = cli_env
        bad = tmp / "bad.xml"
        bad.write_text("<Project><Tasks>")
        result = runner.invoke(main, ["import", str(bad)])
        assert result.exit_code == 1
        assert "Failed to parse XML" in result.output

    def test_import_missing_file(self, cli_env):
        runner, tmp = cli_env
        result = runner.invoke(main, ["import", str(tmp / "absent.xml")])
        assert result.exit_code == 1
        assert "Error:" in result.output


class TestInspect:
    def test_outline(self, cli_env):
        runner, tmp = cli_env
        out = _export(runner, tmp)
        result = runner.invoke(main, ["inspect", str(out)])
        assert result.exit_code == 0
        assert "Project: Office Move" in result.output
        assert "▸ 1: Plan" in result.output
        assert "• 2: Survey (2d) [id: 2]" in result.output
        assert "◆ 3: Sign lease" in result.output
        assert "3 tasks, 1 resources, 1 assignments, 1 dependencies" in result.output

    def test_empty_project(self, cli_env):
        runner, tmp = cli_env
        doc = tmp / "empty.xml"
        doc.write_text("<Project><Name>Nothing</Name></Project>")
        result = runner.invoke(main, ["inspect", str(doc)])
        assert result.exit_code == 0
        assert "No tasks found." in result.output

    def test_wrong_root(self, cli_env):
        runner, tmp = cli_env
        doc = tmp / "other.xml"
        doc.write_text("<Schedule/>")
        result = runner.invoke(main, ["inspect", str(doc)])
        assert result.exit_code == 1
        assert "Missing Project element" in result.output
