"""Core types shared across spanharness subsystems."""

from __future__ import annotations

import signal
from dataclasses import dataclass
from enum import Enum

# ── Supervisor States ─────────────────────────────────────────────────────────


class SupervisorState(str, Enum):
    STARTING = "starting"
    READY = "ready"
    EXITED = "exited"


# ── Exit Results ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ExitResult:
    """How a supervised app went away. Recorded exactly once."""

    exit_code: int | None = None  # None when killed by a signal or never started
    signal: str | None = None  # e.g. "SIGTERM"
    expected: bool = False
    spawn_error: Exception | None = None

    @classmethod
    def from_returncode(
        cls, returncode: int, termination_requested: bool = False,
    ) -> ExitResult:
        """Classify an asyncio returncode (negative means killed by signal)."""
        if returncode < 0:
            try:
                sig_name = signal.Signals(-returncode).name
            except ValueError:
                sig_name = f"signal {-returncode}"
            exit_code = None
        else:
            sig_name = None
            exit_code = returncode

        expected = (
            termination_requested
            or sig_name == signal.SIGTERM.name
            or (sig_name is None and exit_code == 0)
        )
        return cls(exit_code=exit_code, signal=sig_name, expected=expected)

    @classmethod
    def from_spawn_error(cls, error: Exception) -> ExitResult:
        return cls(expected=False, spawn_error=error)
