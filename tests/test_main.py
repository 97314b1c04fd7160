"""
Tests for the CLI entry point (main.py).
"""
from __future__ import annotations

import signal
import sys
from unittest.mock import MagicMock, patch

import pytest

import main
from agent.errors import ConfigurationError, RunCancelled


@pytest.fixture(autouse=True)
def no_signal_handlers(monkeypatch):
    monkeypatch.setattr(main, "install_signal_handlers", lambda: None)


def test_no_mode_flag_prints_help_and_exits(capsys):
    with pytest.raises(SystemExit) as exc_info:
        main.main([])
    assert exc_info.value.code == 1
    assert "--once" in capsys.readouterr().out


def test_missing_domain_is_a_configuration_error(agent_settings):
    agent_settings.DOMAIN = ""
    with pytest.raises(ConfigurationError):
        main.run_once()


def test_missing_domain_exits_nonzero(agent_settings):
    agent_settings.DOMAIN = ""
    with pytest.raises(SystemExit) as exc_info:
        main.main(["--once"])
    assert exc_info.value.code == 1


def test_failed_run_exits_nonzero(monkeypatch):
    monkeypatch.setattr(main, "run_once", lambda domains=None: {"failed_phase": "obtain"})
    with pytest.raises(SystemExit) as exc_info:
        main.main(["--once"])
    assert exc_info.value.code == 1


def test_successful_run_returns_normally(monkeypatch):
    monkeypatch.setattr(main, "run_once", lambda domains=None: {"failed_phase": None})
    assert main.main(["--once"]) is None


def test_cancelled_run_exits_with_signal_status(monkeypatch):
    def cancelled(domains=None):
        raise RunCancelled(signal.SIGTERM)

    monkeypatch.setattr(main, "run_once", cancelled)
    with pytest.raises(SystemExit) as exc_info:
        main.main(["--once"])
    assert exc_info.value.code == 128 + signal.SIGTERM


def test_termination_handler_raises_run_cancelled():
    with pytest.raises(RunCancelled) as exc_info:
        main._handle_termination(signal.SIGINT, None)
    assert exc_info.value.signum == signal.SIGINT


def test_domains_override_passed_to_run_once(monkeypatch):
    seen = {}

    def fake_run_once(domains=None):
        seen["domains"] = domains
        return {}

    monkeypatch.setattr(main, "run_once", fake_run_once)
    main.main(["--once", "--domains", "example.com", "www.example.com"])
    assert seen["domains"] == ["example.com", "www.example.com"]


def test_run_once_builds_state_from_settings(agent_settings):
    agent_settings.SAN = ["www.example.com"]
    graph = MagicMock()
    graph.invoke.side_effect = lambda state: state

    with patch("agent.graph.build_graph", return_value=graph):
        state = main.run_once()

    assert state["domain"] == "example.com"
    assert state["alternate_names"] == ["www.example.com"]
    assert state["cert_path"] == agent_settings.CERT_PATH
    assert state["challenge_base_path"] == agent_settings.CHALLENGE_BASE_PATH
    assert state["directory_url"] == "https://acme.test/directory"
    assert state["account_email"] == "admin@example.com"


def test_run_once_domain_override_replaces_settings(agent_settings):
    graph = MagicMock()
    graph.invoke.side_effect = lambda state: state

    with patch("agent.graph.build_graph", return_value=graph):
        state = main.run_once(domains=["other.test", "www.other.test"])

    assert state["domain"] == "other.test"
    assert state["alternate_names"] == ["www.other.test"]


def test_schedule_without_domain_exits_before_scheduling(agent_settings):
    agent_settings.DOMAIN = ""
    with patch("schedule.every") as mock_every:
        with pytest.raises(SystemExit) as exc_info:
            main.main(["--schedule"])
    assert exc_info.value.code == 1
    mock_every.assert_not_called()


def test_scheduled_job_does_not_swallow_configuration_errors(agent_settings, monkeypatch):
    def misconfigured(domains=None):
        raise ConfigurationError("DOMAIN environment variable is not set")

    monkeypatch.setattr(main, "run_once", misconfigured)
    with patch("schedule.every"), patch("time.sleep", side_effect=AssertionError("schedule loop entered")), \
            pytest.raises(ConfigurationError):
        main.run_scheduled()


def test_invalid_threshold_is_a_configuration_error(monkeypatch):
    monkeypatch.setenv("EXPIRY_DAYS_THRESHOLD", "-1")
    # Force config.py to build a fresh singleton from the environment
    monkeypatch.delitem(sys.modules, "config", raising=False)

    with pytest.raises(SystemExit) as exc_info:
        main.main(["--once"])
    assert exc_info.value.code == 1

    with pytest.raises(ConfigurationError):
        main.load_settings()


def test_resolve_domains_uses_configured_order(agent_settings):
    agent_settings.SAN = ["www.example.com", "api.example.com"]
    assert main.resolve_domains() == ["example.com", "www.example.com", "api.example.com"]
