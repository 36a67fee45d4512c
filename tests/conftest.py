"""Shared test fixtures — fast settings and stub apps spawned as real processes."""

from __future__ import annotations

import sys
import textwrap
from pathlib import Path

import pytest

from spanharness.config import HarnessSettings

STUB_APP = Path(__file__).parent / "fixtures" / "stub_app.py"


@pytest.fixture
def fast_settings():
    """Settings with short delays so tests never sit on production timeouts."""
    return HarnessSettings(
        probe_host="127.0.0.1",
        probe_initial_delay=0.0,
        probe_interval=0.05,
        probe_timeout=3.0,
        probe_request_timeout=1.0,
        span_poll_interval=0.05,
        final_spans_timeout=1.0,
        terminate_grace_period=3.0,
    )


@pytest.fixture
def dump_path(tmp_path):
    return tmp_path / "spans.jsonl"


@pytest.fixture
def python_stub():
    """Build an exec-style command that runs a snippet of Python."""
    def _factory(source: str) -> list[str]:
        return [sys.executable, "-c", textwrap.dedent(source)]
    return _factory


@pytest.fixture
def stub_app_command():
    return [sys.executable, str(STUB_APP)]
