"""
Unit tests for the command-line entry point.

Tests cover:
- Argument parsing and defaults
- Mapping arguments onto ScenarioConfig
- Exit codes for success, violated expectations and errors
- JSON report output
"""

from unittest.mock import AsyncMock

import pytest

from docmigrate import cli
from docmigrate.exceptions import TransportError
from docmigrate.scenario import ScenarioConfig, ScenarioReport
from docmigrate.serialization import json_loads
from docmigrate.stores.interface import ConflictPolicy
from tests.conftest import skip_if_no_aiosqlite

SMALL_RUN = [
    "--documents",
    "100",
    "--update-id",
    "10",
    "--delete-id",
    "20",
    "--no-throttle",
]


class TestParser:
    """Tests for build_parser() and config_from_args()."""

    def test_defaults(self) -> None:
        args = cli.build_parser().parse_args([])

        assert args.documents == 100000
        assert args.settle_delay_ms == 3000
        assert args.throughput == 5000.0
        assert args.no_throttle is False
        assert args.store == "memory"
        assert args.database == ":memory:"
        assert args.log_level == "WARNING"

    def test_default_config(self) -> None:
        config = cli.config_from_args(cli.build_parser().parse_args([]))

        assert config.document_count == 100000
        assert config.target_ids == ["10000", "20000", "999999999"]
        assert config.throughput_limit == 5000.0
        assert config.wait_for_snapshot is True

    def test_config_mapping(self) -> None:
        args = cli.build_parser().parse_args(
            [
                *SMALL_RUN,
                "--conflict-policy",
                "fail-on-conflict",
                "--fixed-delay",
                "--settle-delay-ms",
                "50",
                "--source",
                "people",
                "--dest",
                "people_v2",
                "--create-id",
                "5000",
            ]
        )

        config = cli.config_from_args(args)

        assert config.source_collection == "people"
        assert config.dest_collection == "people_v2"
        assert config.document_count == 100
        assert config.throughput_limit is None
        assert config.conflict_policy == ConflictPolicy.FAIL_ON_CONFLICT
        assert config.wait_for_snapshot is False
        assert config.settle_delay_ms == 50
        assert config.create_doc_id == "5000"

    def test_throughput_and_no_throttle_are_exclusive(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            cli.build_parser().parse_args(["--throughput", "10", "--no-throttle"])

        assert exc_info.value.code == 2

    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--version"])

        assert exc_info.value.code == 0
        assert capsys.readouterr().out.startswith("docmigrate ")


class TestMain:
    """Tests for main()."""

    def test_successful_run(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert cli.main(SMALL_RUN) == cli.EXIT_OK

        out = capsys.readouterr().out
        assert "Starting migration test..." in out
        assert "Completed test..." in out

    def test_json_report(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert cli.main([*SMALL_RUN, "--json"]) == cli.EXIT_OK

        out = capsys.readouterr().out
        report = json_loads(out[out.index('{\n  "config"') :])
        assert report["passed"] is True
        assert report["seeded"] == 100
        assert report["config"]["throughput_limit"] is None

    def test_invalid_config_is_usage_error(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--documents", "100"])

        assert exc_info.value.code == 2
        assert "update_doc_id must be a seeded id" in capsys.readouterr().err

    def test_violated_expectation_exit_code(self, monkeypatch: pytest.MonkeyPatch) -> None:
        config = ScenarioConfig(document_count=100, update_doc_id="10", delete_doc_id="20")
        fake_run = AsyncMock(
            return_value=ScenarioReport(config=config, expectations={"deletion_gap": False})
        )
        monkeypatch.setattr(cli, "run_scenario", fake_run)

        assert cli.main(SMALL_RUN) == cli.EXIT_EXPECTATION_VIOLATED
        fake_run.assert_awaited_once()
        assert fake_run.await_args.args[1].document_count == 100

    def test_unexpected_error_exit_code(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        monkeypatch.setattr(
            cli, "run_scenario", AsyncMock(side_effect=TransportError("store unreachable"))
        )

        assert cli.main(SMALL_RUN) == cli.EXIT_ERROR
        assert "==== ERROR DURING TESTS! ++++" in capsys.readouterr().err

    @pytest.mark.sqlite
    @skip_if_no_aiosqlite
    def test_sqlite_store(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert cli.main([*SMALL_RUN, "--store", "sqlite"]) == cli.EXIT_OK
        assert "Completed test..." in capsys.readouterr().out
