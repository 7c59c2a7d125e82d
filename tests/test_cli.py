"""Tests for memwatch.cli.main."""

import json

import pytest
from click.testing import CliRunner

from memwatch.analysis.synthetic import generate_scenario
from memwatch.cli.main import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def samples_file(tmp_path):
    """A replayable sample file holding the leak scenario."""
    path = tmp_path / "samples.json"
    samples = [s.to_dict() for s in generate_scenario("leak", count=60)]
    path.write_text(json.dumps({"samples": samples}), encoding="utf-8")
    return str(path)


@pytest.fixture
def snapshots_file(tmp_path):
    """An exported snapshot list with two entries."""
    path = tmp_path / "snapshots.json"
    data = {
        "snapshots": [
            {
                "id": "snapshot-1", "label": "before", "timestamp": 0,
                "heap_used": 1_000_000, "heap_total": 2_000_000,
                "heap_limit": 4_000_000, "is_auto": False,
            },
            {
                "id": "snapshot-2", "label": "after", "timestamp": 60_000,
                "heap_used": 1_500_000, "heap_total": 2_000_000,
                "heap_limit": 4_000_000, "is_auto": True,
            },
        ],
    }
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


class TestCLIGroup:
    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "memwatch" in result.output
        for command in ("analyze", "simulate", "compare", "watch"):
            assert command in result.output


class TestAnalyzeCommand:
    def test_analyze_samples(self, runner, samples_file):
        result = runner.invoke(cli, ["analyze", samples_file])
        assert result.exit_code == 0, result.output
        assert "Leak Analysis" in result.output
        assert "leak_detected" in result.output

    def test_analyze_bare_list(self, runner, tmp_path):
        path = tmp_path / "list.json"
        path.write_text(json.dumps([
            {"timestamp": 0, "used": 100, "total": 200, "limit": 400},
            {"timestamp": 1000, "used": 150, "total": 200, "limit": 400},
        ]), encoding="utf-8")
        result = runner.invoke(cli, ["analyze", str(path), "--no-events"])
        assert result.exit_code == 0, result.output

    def test_analyze_with_config_file(self, runner, samples_file, tmp_path):
        config = tmp_path / "config.json"
        config.write_text(json.dumps({"leak_sensitivity": "low"}), encoding="utf-8")
        out = tmp_path / "report.json"
        result = runner.invoke(cli, [
            "analyze", samples_file, "--config", str(config),
            "--format", "json", "--output", str(out),
        ])
        assert result.exit_code == 0, result.output
        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["config"]["leak_sensitivity"] == "low"

    def test_option_overrides_config(self, runner, samples_file, tmp_path):
        out = tmp_path / "report.json"
        result = runner.invoke(cli, [
            "analyze", samples_file, "--sensitivity", "high",
            "--format", "json", "-o", str(out),
        ])
        assert result.exit_code == 0, result.output
        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["config"]["leak_sensitivity"] == "high"

    def test_analyze_invalid_json(self, runner, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        result = runner.invoke(cli, ["analyze", str(path)])
        assert result.exit_code == 1
        assert "Invalid JSON" in result.output

    def test_analyze_empty(self, runner, tmp_path):
        path = tmp_path / "empty.json"
        path.write_text("[]", encoding="utf-8")
        result = runner.invoke(cli, ["analyze", str(path)])
        assert result.exit_code == 1
        assert "No samples" in result.output

    def test_analyze_missing_file(self, runner):
        result = runner.invoke(cli, ["analyze", "/nonexistent/samples.json"])
        assert result.exit_code != 0


class TestSimulateCommand:
    def test_simulate_leak(self, runner):
        result = runner.invoke(cli, ["simulate", "leak"])
        assert result.exit_code == 0, result.output
        assert "Leak Analysis" in result.output
        assert "leak_detected" in result.output

    def test_simulate_with_schedule(self, runner):
        result = runner.invoke(cli, ["simulate", "flat", "--schedule", "1m", "--count", "10"])
        assert result.exit_code == 0, result.output
        assert "snapshot_captured" in result.output
        assert "Auto 1" in result.output

    def test_simulate_unknown_scenario(self, runner):
        result = runner.invoke(cli, ["simulate", "meltdown"])
        assert result.exit_code != 0

    def test_simulate_save_samples_then_analyze(self, runner, tmp_path):
        saved = tmp_path / "saved.json"
        result = runner.invoke(cli, [
            "simulate", "sawtooth", "--count", "20", "--save-samples", str(saved),
        ])
        assert result.exit_code == 0, result.output
        assert len(json.loads(saved.read_text(encoding="utf-8"))["samples"]) == 20

        result = runner.invoke(cli, ["analyze", str(saved)])
        assert result.exit_code == 0, result.output


class TestCompareCommand:
    def test_compare_table(self, runner, snapshots_file):
        result = runner.invoke(cli, ["compare", snapshots_file, "snapshot-1", "snapshot-2"])
        assert result.exit_code == 0, result.output
        assert "heap_used" in result.output
        assert "+50.0%" in result.output

    def test_compare_json(self, runner, snapshots_file):
        result = runner.invoke(cli, [
            "compare", snapshots_file, "snapshot-1", "snapshot-2", "--json",
        ])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        heap_used = next(d for d in data["deltas"] if d["field"] == "heap_used")
        assert heap_used["diff"] == 500_000
        assert heap_used["percentage"] == 50.0
        assert heap_used["direction"] == "up"

    def test_compare_missing_snapshot(self, runner, snapshots_file):
        result = runner.invoke(cli, ["compare", snapshots_file, "snapshot-1", "snapshot-9"])
        assert result.exit_code == 1
        assert "Snapshot not found: snapshot-9" in result.output


class TestWatchCommand:
    def test_watch_missing_process(self, runner):
        result = runner.invoke(cli, ["watch", "--pid", str(2 ** 22 + 12345)])
        assert result.exit_code == 1
        assert "No such process" in result.output

    def test_watch_current_process(self, runner, tmp_path):
        out = tmp_path / "watch.json"
        result = runner.invoke(cli, [
            "watch", "--interval", "100", "--duration", "0.5", "-o", str(out),
        ])
        assert result.exit_code == 0, result.output
        assert "Watch stopped." in result.output
        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["config"]["interval_ms"] == 100
