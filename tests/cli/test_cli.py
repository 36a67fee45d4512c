"""Tests for the spanharness command line."""

from __future__ import annotations

import json
import shlex

import pytest
from typer.testing import CliRunner

from spanharness.cli.main import app
from spanharness.config import settings

runner = CliRunner()


@pytest.fixture
def fast_global_settings(monkeypatch):
    monkeypatch.setattr(settings, "probe_host", "127.0.0.1")
    monkeypatch.setattr(settings, "probe_initial_delay", 0.0)
    monkeypatch.setattr(settings, "probe_interval", 0.05)
    monkeypatch.setattr(settings, "probe_timeout", 3.0)
    monkeypatch.setattr(settings, "span_poll_interval", 0.05)
    monkeypatch.setattr(settings, "final_spans_timeout", 1.0)


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "spanharness" in result.output


def test_spans_command(dump_path):
    dump_path.write_text(
        json.dumps({"name": "GET /set", "traceId": "t1", "id": "s1"}) + "\n"
        + json.dumps({"name": "redis-set", "traceId": "t1", "id": "s2", "parentId": "s1",
                      "status": {"code": 2}}) + "\n"
    )
    result = runner.invoke(app, ["spans", str(dump_path)])
    assert result.exit_code == 0
    assert "GET /set" in result.output
    assert "redis-set" in result.output
    assert "2 spans, 1 roots, 1 errors" in result.output


def test_spans_command_missing_file(tmp_path):
    result = runner.invoke(app, ["spans", str(tmp_path / "none.jsonl")])
    assert result.exit_code == 0
    assert "No spans." in result.output


def test_invoke_command(tmp_path, dump_path, stub_app_command, fast_global_settings):
    command = " ".join(shlex.quote(part) for part in stub_app_command)
    result = runner.invoke(app, [
        "invoke", str(tmp_path), "/ok",
        "--service-name", "cli-stub",
        "--dump", str(dump_path),
        "--command", f"exec {command}",
        "--expect", "1",
    ])
    assert result.exit_code == 0, result.output
    assert "GET /ok" in result.output
    assert "1 spans" in result.output


def test_invoke_command_reports_harness_error(tmp_path, fast_global_settings):
    result = runner.invoke(app, [
        "invoke", str(tmp_path), "/ok",
        "--command", "exit 3",
    ])
    assert result.exit_code == 1
    assert "terminated unexpectedly" in result.output


def test_invoke_rejects_bad_env_pair(tmp_path):
    result = runner.invoke(app, ["invoke", str(tmp_path), "/ok", "--env", "NOVALUE"])
    assert result.exit_code == 2
