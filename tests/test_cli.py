"""Tests for the discovery CLI commands."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from resource_discovery.cli.main import app
from resource_discovery.db.engine import get_session, reset_engine
from resource_discovery.db.repositories import ResourceRepository
from resource_discovery.discovery.settings import reset_default_settings

runner = CliRunner()


@pytest.fixture
def discovery_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Point the database and configuration at a temporary directory."""
    config_path = tmp_path / "discovery.yaml"
    config_path.write_text("providers:\n  - name: fixture\n  - name: file\n")

    monkeypatch.setenv("DATABASE_URL", str(tmp_path / "discovery.db"))
    monkeypatch.setenv("DISCOVERY_CONFIG_PATH", str(config_path))
    for name in ("MAPBOX_SERVER_TOKEN", "MAPBOX_TOKEN", "ADMIN_USER_IDS", "ADMIN_USER_ID"):
        monkeypatch.delenv(name, raising=False)

    reset_engine()
    reset_default_settings()
    yield tmp_path
    reset_engine()
    reset_default_settings()


def json_lines(output: str) -> list[dict]:
    """Parse the NDJSON lines out of command output."""
    return [json.loads(line) for line in output.splitlines() if line.startswith("{")]


class TestScanCommand:
    """Tests for `discover scan`."""

    def test_scan_json(self, discovery_env) -> None:
        """Test a scan streams NDJSON ending in the complete event."""
        result = runner.invoke(app, ["discover", "scan", "-c", "Sacramento", "-s", "CA", "--json"])

        assert result.exit_code == 0
        events = json_lines(result.output)
        assert events[0]["type"] == "progress"
        assert events[-1]["type"] == "complete"
        assert events[-1]["resourcesFound"] == 4

    def test_second_scan_cached(self, discovery_env) -> None:
        """Test a repeat scan reports the cooldown."""
        runner.invoke(app, ["discover", "scan", "-c", "Sacramento", "-s", "CA", "--json"])
        result = runner.invoke(app, ["discover", "scan", "-c", "Sacramento", "-s", "CA", "--json"])

        assert result.exit_code == 0
        assert [e["status"] for e in json_lines(result.output)] == ["cached"]

    def test_scan_from_file(self, discovery_env) -> None:
        """Test --input replays candidates from a JSON file."""
        path = discovery_env / "results.json"
        path.write_text(json.dumps([{"name": "Davis Food Closet", "address": "1 Russell Blvd"}]))

        result = runner.invoke(
            app, ["discover", "scan", "-c", "Davis", "-s", "CA", "--input", str(path), "--json"]
        )

        assert result.exit_code == 0
        assert json_lines(result.output)[-1]["resourcesFound"] == 1

    def test_scan_missing_file_fails(self, discovery_env) -> None:
        """Test a missing input file ends the scan with an error event."""
        result = runner.invoke(
            app,
            ["discover", "scan", "-c", "Davis", "-s", "CA", "--input", "missing.json", "--json"],
        )

        assert result.exit_code == 1
        assert json_lines(result.output)[-1]["type"] == "error"

    def test_invalid_state(self, discovery_env) -> None:
        """Test request validation errors exit with status 1."""
        result = runner.invoke(app, ["discover", "scan", "-c", "Sacramento", "-s", "C"])

        assert result.exit_code == 1
        assert "Invalid request" in result.output


class TestInspectionCommands:
    """Tests for the read-only and admin commands."""

    def test_check(self, discovery_env) -> None:
        """Test eligibility before and after a scan."""
        before = runner.invoke(app, ["discover", "check", "-c", "Sacramento", "-s", "CA"])
        assert before.exit_code == 0
        assert "Eligible" in before.output

        runner.invoke(app, ["discover", "scan", "-c", "Sacramento", "-s", "CA", "--json"])
        after = runner.invoke(app, ["discover", "check", "-c", "Sacramento", "-s", "CA"])
        assert "In cooldown" in after.output

    def test_events_empty(self, discovery_env) -> None:
        """Test listing events with nothing recorded."""
        result = runner.invoke(app, ["discover", "events"])

        assert result.exit_code == 0
        assert "No discovery events recorded" in result.output

    def test_block_address(self, discovery_env) -> None:
        """Test a blocked address is skipped by later scans."""
        result = runner.invoke(
            app, ["discover", "block-address", "1500 Q St", "--reason", "Closed permanently"]
        )
        assert result.exit_code == 0
        assert "Blocked address" in result.output

        scan = runner.invoke(app, ["discover", "scan", "-c", "Sacramento", "-s", "CA", "--json"])
        summary = json_lines(scan.output)[-1]["summary"]
        assert summary["blocked"] == 1
        assert summary["inserted"] == 3

    def test_matches(self, discovery_env) -> None:
        """Test re-running detection for a stored resource never matches itself."""
        runner.invoke(app, ["discover", "scan", "-c", "Sacramento", "-s", "CA", "--json"])
        with get_session() as session:
            resource = ResourceRepository(session).find_in_area("Sacramento", "CA")[0]

        result = runner.invoke(app, ["discover", "matches", resource.id])
        assert result.exit_code == 0
        assert "No duplicates found" in result.output

    def test_matches_unknown_resource(self, discovery_env) -> None:
        """Test an unknown resource id exits with status 1."""
        result = runner.invoke(app, ["discover", "matches", "missing-id"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_block_empty_value(self, discovery_env) -> None:
        """Test blank tombstone values are rejected."""
        result = runner.invoke(app, ["discover", "block-source", "  "])
        assert result.exit_code == 1

    def test_version(self) -> None:
        """Test the version command."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "Resource Discovery v0.1.0" in result.output
