"""
CLI Tests.

The scheduler factory is patched so commands run against the in-memory
platform and the mock clock.
"""

import json
import signal
from unittest.mock import MagicMock, patch

import pytest

from src.cleanup import CLEANUP_RUN_ERROR_CODE, DiscoveryError, Priority
from src.cleanup.cli import (
    EXIT_DISCOVERY_FAILED,
    EXIT_INTERRUPTED,
    EXIT_INVALID_INPUT,
    EXIT_RUN_FAILED,
    EXIT_SUCCESS,
    _raise_interrupt,
    main,
)

from .conftest import failing


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ["SQLCMD_SERVER", "CLEANUP_PERCENTAGE_TO_KEEP", "CLEANUP_MINUTES_TO_RUN"]:
        monkeypatch.delenv(key, raising=False)


def run_cli(argv, scheduler=None):
    if scheduler is None:
        return main(argv)
    with patch("src.cleanup.cli._build_scheduler", return_value=scheduler):
        return main(argv)


class TestRun:
    def test_success(self, make_platform, make_scheduler, capsys):
        platform = make_platform({"Sales": 1000, "HR": 400})
        scheduler = make_scheduler(platform)

        code = run_cli(["--no-log-file", "run"], scheduler)

        out = capsys.readouterr().out
        assert code == EXIT_SUCCESS
        assert "Databases: 2" in out
        assert "Completed: 2" in out

    def test_success_json(self, make_platform, make_scheduler, capsys):
        platform = make_platform({"Sales": 1000})
        scheduler = make_scheduler(platform)

        code = run_cli(["--no-log-file", "run", "--json"], scheduler)

        report = json.loads(capsys.readouterr().out)
        assert code == EXIT_SUCCESS
        assert report["succeeded"] is True
        assert report["completed"] == ["Sales"]
        assert report["resource_count"] == 1

    def test_run_failure(self, make_platform, make_scheduler, capsys):
        platform = make_platform({"Sales": 1000})
        platform.fail("Sales", Priority.LOW)
        platform.fail("Sales", Priority.HIGH)
        scheduler = make_scheduler(platform, minutes_to_run=5, minutes_per_resource=1)

        code = run_cli(["--no-log-file", "run"], scheduler)

        err = capsys.readouterr().err
        assert code == EXIT_RUN_FAILED
        assert f"Error {CLEANUP_RUN_ERROR_CODE}:" in err

    def test_discovery_failure(self, make_platform, make_scheduler, capsys):
        platform = make_platform({"Sales": 1000})
        platform.discovery_error = DiscoveryError("Login failed", code=18456)
        scheduler = make_scheduler(platform)

        code = run_cli(["--no-log-file", "run"], scheduler)

        assert code == EXIT_DISCOVERY_FAILED
        assert "discovery failed" in capsys.readouterr().err


class TestInterrupt:
    def test_interrupted_run_exits_130(self, capsys):
        scheduler = MagicMock()
        scheduler.run.side_effect = KeyboardInterrupt

        code = run_cli(["--no-log-file", "run"], scheduler)

        assert code == EXIT_INTERRUPTED
        assert "Interrupted" in capsys.readouterr().err

    def test_sigterm_raises_keyboard_interrupt(self):
        with pytest.raises(KeyboardInterrupt):
            _raise_interrupt(signal.SIGTERM, None)

    def test_sigterm_handler_installed_only_during_run(self, make_platform, make_scheduler):
        before = signal.getsignal(signal.SIGTERM)
        seen = []
        scheduler = make_scheduler(make_platform({"Sales": 1000}))
        original_run = scheduler.run

        def recording_run():
            seen.append(signal.getsignal(signal.SIGTERM))
            return original_run()

        scheduler.run = recording_run

        assert run_cli(["--no-log-file", "run"], scheduler) == EXIT_SUCCESS
        assert seen == [_raise_interrupt]
        assert signal.getsignal(signal.SIGTERM) == before


class TestPlan:
    def test_plan_json(self, make_platform, make_scheduler, capsys):
        platform = make_platform({"A": 2000, "B": 1000, "C": 500})
        scheduler = make_scheduler(platform, minutes_to_run=240, minutes_per_resource=60)

        code = run_cli(["--no-log-file", "plan", "--json"], scheduler)

        planned = json.loads(capsys.readouterr().out)
        assert code == EXIT_SUCCESS
        assert [p["resource_id"] for p in planned] == ["A", "B", "C"]
        assert [p["offset_seconds"] for p in planned] == [0.0, 5400.0, 10800.0]
        assert [p["target_capacity"] for p in planned] == [1000, 500, 250]
        assert platform.submissions == []

    def test_plan_empty(self, make_platform, make_scheduler, capsys):
        scheduler = make_scheduler(make_platform({}))

        code = run_cli(["--no-log-file", "plan"], scheduler)

        assert code == EXIT_SUCCESS
        assert "No eligible databases" in capsys.readouterr().out


class TestInvalidInput:
    def test_no_command(self, capsys):
        assert run_cli([]) == EXIT_INVALID_INPUT

    def test_percentage_out_of_range(self, capsys):
        code = run_cli(["--no-log-file", "run", "--server", "sql01", "--percentage-to-keep", "0"])

        assert code == EXIT_INVALID_INPUT

    def test_missing_server(self, capsys):
        code = run_cli(["--no-log-file", "plan"])

        assert code == EXIT_INVALID_INPUT
        assert "No server given" in capsys.readouterr().err
