"""Tests for the command-line interface."""

import json

import pytest
from click.testing import CliRunner

from site_optimizer.cli import main


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def invoke(runner, site_dir, backup_dir, tmp_path):
    """Invoke the CLI against the test site."""
    def _invoke(*args):
        base = [
            "--site", str(site_dir),
            "--backups", str(backup_dir),
            "--log", str(tmp_path / "log.json"),
            "--base-url", "https://example.com",
        ]
        return runner.invoke(main, base + list(args), env={"SITE_OPTIMIZER_REQUEST_DELAY": "0"})
    return _invoke


class TestClassifyCommand:
    def test_json_output(self, invoke, signals_csv):
        result = invoke("classify", str(signals_csv), "--json")

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert [o["keyword"] for o in data["opportunities"]] == [
            "emergency plumber",
            "water heater repair",
            "drain cleaning",
        ]
        assert data["summary"]["total"] == 3

    def test_table_output(self, invoke, signals_csv):
        result = invoke("classify", str(signals_csv))

        assert result.exit_code == 0, result.output
        assert "ranking_boost" in result.output

    def test_bad_signals_file(self, invoke, tmp_path):
        bad = tmp_path / "bad.csv"
        bad.write_text("keyword\ntap\n")

        result = invoke("classify", str(bad))

        assert result.exit_code == 1
        assert "Missing required columns" in result.output


class TestSnapshotCommands:
    """Tests for snapshot, snapshots, rollback and prune."""

    def test_snapshot_and_rollback(self, invoke, site_dir):
        original = (site_dir / "index.html").read_text()

        result = invoke("snapshot")
        assert result.exit_code == 0, result.output
        assert "Snapshot created" in result.output

        (site_dir / "index.html").write_text("<title>broken</title>")

        result = invoke("rollback")
        assert result.exit_code == 0, result.output
        assert (site_dir / "index.html").read_text() == original

        result = invoke("snapshots")
        assert result.exit_code == 0
        assert result.output.count("backup-") >= 2

    def test_rollback_unknown(self, invoke):
        result = invoke("rollback", "backup-1999-01-01T00-00-00-000000Z")

        assert result.exit_code == 1
        assert "Snapshot not found" in result.output

    def test_rollback_without_snapshots(self, invoke):
        result = invoke("rollback")

        assert result.exit_code == 1

    def test_prune(self, invoke, runner, site_dir, backup_dir, tmp_path):
        for _ in range(3):
            assert invoke("snapshot").exit_code == 0

        result = runner.invoke(main, [
            "--site", str(site_dir),
            "--backups", str(backup_dir),
            "--retention", "1",
            "prune",
        ])

        assert result.exit_code == 0, result.output
        assert len([p for p in backup_dir.iterdir() if p.name.startswith("backup-")]) == 1


class TestMutationCommands:
    def test_apply_directives_file(self, invoke, site_dir, tmp_path):
        directives = tmp_path / "directives.json"
        directives.write_text(json.dumps([
            {"target_document": "index.html", "operation": "TitleSet", "selector": "title", "payload": "New Title"},
            {"target_document": "missing.html", "operation": "title_set", "selector": "title", "payload": "x"},
        ]))

        result = invoke("apply", str(directives))

        assert result.exit_code == 0, result.output
        assert "<title>New Title</title>" in (site_dir / "index.html").read_text()
        log = json.loads((tmp_path / "log.json").read_text())
        assert log[0]["applied_count"] == 1
        assert log[0]["error_count"] == 1

    def test_apply_rejects_malformed_file(self, invoke, tmp_path):
        directives = tmp_path / "directives.json"
        directives.write_text(json.dumps([{"operation": "title_set"}]))

        result = invoke("apply", str(directives))

        assert result.exit_code == 1
        assert "missing required keys" in result.output

    def test_run_dry_run(self, invoke, signals_csv, site_dir, make_generator, monkeypatch):
        monkeypatch.setattr(
            "site_optimizer.pipeline.create_llm_client",
            lambda **kwargs: make_generator(),
        )
        before = (site_dir / "index.html").read_text()

        result = invoke("run", str(signals_csv), "--dry-run")

        assert result.exit_code == 0, result.output
        assert "Dry run" in result.output
        assert (site_dir / "index.html").read_text() == before

    def test_sitemap(self, invoke, site_dir):
        result = invoke("sitemap")

        assert result.exit_code == 0, result.output
        assert "<loc>https://example.com/</loc>" in (site_dir / "sitemap.xml").read_text()
