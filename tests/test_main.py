"""Tests for the command line entry point and scan job."""

import json
from unittest.mock import MagicMock, patch

import pytest

from ovo_exporter import main as main_module
from ovo_exporter.client import OVOFetchError
from ovo_exporter.readings import ReadingTimeError


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"accountNumber": "1234567", "username": "user@example.com", "password": "secret"}))
    return str(path)


@pytest.fixture
def no_network():
    with patch.object(main_module, "OVOExporter") as exporter, \
            patch.object(main_module, "OVOClient") as client, \
            patch.object(main_module, "BlockingScheduler") as scheduler:
        yield exporter, client, scheduler


def test_version(capsys, no_network):
    assert main_module.main(["-version"]) == 0
    assert "Version:" in capsys.readouterr().out
    no_network[0].assert_not_called()


def test_interval_below_minimum_rejected(config_path, no_network):
    exporter, client, scheduler = no_network

    assert main_module.main(["-config", config_path, "-interval", "5s"]) == 1

    exporter.assert_not_called()
    client.assert_not_called()
    scheduler.assert_not_called()


def test_positional_arguments_rejected(no_network):
    with pytest.raises(SystemExit) as exc_info:
        main_module.main(["unexpected"])
    assert exc_info.value.code != 0


def test_missing_config_exits(tmp_path, no_network):
    exporter, client, scheduler = no_network

    assert main_module.main(["-config", str(tmp_path / "missing.json")]) == 1

    exporter.assert_not_called()


def test_main_starts_server_and_scheduler(config_path, no_network):
    exporter, client, scheduler = no_network

    with patch.object(main_module, "run_scan") as run_scan:
        assert main_module.main(["-config", config_path, "-interval", "1m", "-port", "9999"]) == 0

    exporter.assert_called_once_with(port=9999)
    exporter.return_value.start.assert_called_once()
    run_scan.assert_called_once()
    job_kwargs = scheduler.return_value.add_job.call_args.kwargs
    assert job_kwargs["trigger"].interval.total_seconds() == 60
    assert job_kwargs["max_instances"] == 1
    scheduler.return_value.start.assert_called_once()


def test_run_scan_success():
    scanner, exporter = MagicMock(), MagicMock()

    assert main_module.run_scan(scanner, exporter) is True
    assert exporter.record_scan.call_args.args[0] is True


@pytest.mark.parametrize("error", [
    OVOFetchError("500"),
    ReadingTimeError("bad time"),
    RuntimeError("boom"),
])
def test_run_scan_swallows_errors(error):
    scanner, exporter = MagicMock(), MagicMock()
    scanner.scan.side_effect = error

    assert main_module.run_scan(scanner, exporter) is False
    assert exporter.record_scan.call_args.args[0] is False
