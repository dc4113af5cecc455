"""Tests for CLI commands - sync, resolve, stats, import-areas, schedule."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Generator
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from paddysync.cli import cli
from paddysync.core.types import SyncStatus
from paddysync.server.database import Database
from paddysync.server.models import SurveyRecord
from paddysync.server.spatial import SpatialStore


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """CLI commands install handlers on the runner's stdout; drop them afterwards."""
    yield
    logger = logging.getLogger("paddysync")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def env(tmp_path: Path) -> dict[str, str]:
    """Environment pointing the CLI at the fixture databases."""
    return {
        "PADDYSYNC_DATABASE_URL": f"sqlite:///{tmp_path / 'records.db'}",
        "PADDYSYNC_GEOMETRY_DATABASE_URL": f"sqlite:///{tmp_path / 'geometry.db'}",
        "PADDYSYNC_DRIVE_TYPE": "local",
        "PADDYSYNC_DRIVE_PATH": str(tmp_path / "drive"),
        "PADDYSYNC_LOG_LEVEL": "WARNING",
    }


@pytest.fixture
def runner(env: dict[str, str]) -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner(env=env)


class TestVersion:
    def test_help_lists_commands(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ("serve", "schedule", "import-areas", "sync", "resolve", "stats"):
            assert command in result.output


class TestResolveCommand:
    """Tests for 'paddysync resolve'."""

    def test_resolve(self, runner: CliRunner, spatial_store: SpatialStore) -> None:
        result = runner.invoke(cli, ["resolve", "11.556", "104.92"])

        assert result.exit_code == 0
        assert "PPH-CMN-BK1" in result.output
        assert "Commune:  Boeng Keng Kang Ti Muoy" in result.output

    def test_not_found(self, runner: CliRunner, spatial_store: SpatialStore) -> None:
        result = runner.invoke(cli, ["resolve", "11.45", "104.85"])

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_negative_coordinates(self, runner: CliRunner, spatial_store: SpatialStore) -> None:
        result = runner.invoke(cli, ["resolve", "-13.16", "-72.54"])

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_not_a_number(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["resolve", "north", "104.92"])

        assert result.exit_code == 2


class TestSyncCommand:
    """Tests for 'paddysync sync'."""

    def test_sync_pending(
        self,
        runner: CliRunner,
        db: Database,
        make_record: Callable[..., SurveyRecord],
        tmp_path: Path,
    ) -> None:
        record = make_record()

        result = runner.invoke(cli, ["sync"])

        assert result.exit_code == 0, result.output
        assert "Synced 1 record(s), 0 failed." in result.output
        loaded = db.get_record(record.id)
        assert loaded is not None
        assert loaded.sync_status == SyncStatus.SYNCED.value
        assert (tmp_path / "drive" / "5_GT text-data").is_dir()

    def test_nothing_to_sync(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["sync", "--batch-size", "5"])

        assert result.exit_code == 0
        assert "No records synced." in result.output

    def test_specific_records(
        self, runner: CliRunner, make_record: Callable[..., SurveyRecord]
    ) -> None:
        chosen = make_record()
        make_record()

        result = runner.invoke(cli, ["sync", "--record", chosen.id])

        assert result.exit_code == 0
        assert "Synced 1 record(s)" in result.output

    def test_failures_exit_2(
        self,
        runner: CliRunner,
        make_record: Callable[..., SurveyRecord],
        tmp_path: Path,
    ) -> None:
        make_record(photo_urls=["/photos/missing.jpg"])

        with patch.dict(
            runner.env,
            {
                "PADDYSYNC_STORAGE_TYPE": "local",
                "PADDYSYNC_STORAGE_PATH": str(tmp_path / "photos"),
                "PADDYSYNC_SYNC_MAX_RETRIES": "0",
            },
        ):
            result = runner.invoke(cli, ["sync"])

        assert result.exit_code == 2
        assert "1 failed" in result.output

    def test_invalid_batch_size(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["sync", "--batch-size", "0"])

        assert result.exit_code == 2


class TestStatsCommand:
    """Tests for 'paddysync stats'."""

    def test_counts(
        self, runner: CliRunner, make_record: Callable[..., SurveyRecord]
    ) -> None:
        make_record()
        make_record(sync_status=SyncStatus.FAILED.value)

        result = runner.invoke(cli, ["stats"])

        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert "pending  1" in lines
        assert "synced   0" in lines
        assert "failed   1" in lines
        assert "total    2" in lines


class TestImportAreasCommand:
    """Tests for 'paddysync import-areas'."""

    def write(self, path: Path, data: object) -> Path:
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    def test_import_hierarchy(self, runner: CliRunner, tmp_path: Path) -> None:
        provinces = self.write(
            tmp_path / "provinces.geojson",
            {
                "type": "FeatureCollection",
                "features": [
                    {
                        "type": "Feature",
                        "properties": {"name_en": "Kandal"},
                        "geometry": {
                            "type": "Polygon",
                            "coordinates": [[[104.8, 11.2], [105.2, 11.2], [105.2, 11.6],
                                             [104.8, 11.6], [104.8, 11.2]]],
                        },
                    }
                ],
            },
        )
        district = self.write(
            tmp_path / "district.geojson",
            {
                "type": "Feature",
                "properties": {"name_en": "Ta Khmau", "province": "Kandal"},
                "geometry": None,
            },
        )

        first = runner.invoke(cli, ["import-areas", "province", str(provinces)])
        second = runner.invoke(cli, ["import-areas", "district", str(district)])

        assert first.exit_code == 0
        assert "Imported 1 province area(s) from provinces.geojson." in first.output
        assert second.exit_code == 0
        assert "Imported 1 district area(s)" in second.output

    def test_unknown_parent(self, runner: CliRunner, tmp_path: Path) -> None:
        communes = self.write(
            tmp_path / "communes.geojson",
            {
                "type": "FeatureCollection",
                "features": [
                    {"type": "Feature", "properties": {"name": "X", "district": "Nowhere"}}
                ],
            },
        )

        result = runner.invoke(cli, ["import-areas", "commune", str(communes)])

        assert result.exit_code == 1
        assert "Unknown district" in result.output

    def test_not_geojson(self, runner: CliRunner, tmp_path: Path) -> None:
        path = self.write(tmp_path / "list.json", [1, 2, 3])

        result = runner.invoke(cli, ["import-areas", "province", str(path)])

        assert result.exit_code == 1
        assert "invalid GeoJSON" in result.output

    def test_invalid_level(self, runner: CliRunner, tmp_path: Path) -> None:
        path = self.write(tmp_path / "villages.geojson", {"type": "FeatureCollection"})

        result = runner.invoke(cli, ["import-areas", "village", str(path)])

        assert result.exit_code == 2


class TestScheduleCommand:
    """Tests for 'paddysync schedule'."""

    def test_invalid_cron(self, runner: CliRunner) -> None:
        with patch.dict(runner.env, {"PADDYSYNC_CRON_SCHEDULE": "whenever"}):
            result = runner.invoke(cli, ["schedule"])

        assert result.exit_code == 1
        assert "Error:" in result.output


class TestServeCommand:
    """Tests for 'paddysync serve'."""

    def test_runs_uvicorn_factory(self, runner: CliRunner) -> None:
        with patch("uvicorn.run") as run:
            result = runner.invoke(cli, ["serve", "--port", "9000"])

        assert result.exit_code == 0
        run.assert_called_once()
        assert run.call_args.args == ("paddysync.server.app:app_factory",)
        assert run.call_args.kwargs["factory"] is True
        assert run.call_args.kwargs["port"] == 9000
        assert run.call_args.kwargs["log_level"] == "warning"
