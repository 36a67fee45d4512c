"""Custom exception hierarchy for spanharness."""

from __future__ import annotations


class HarnessError(Exception):
    """Base for all harness errors."""


class SpawnError(HarnessError):
    """The app process could not be started."""


class ProcessExitedError(HarnessError):
    """The app process is gone. Carries what is known about its exit."""

    reason = "exited"

    def __init__(
        self,
        pid: int | None,
        exit_code: int | None = None,
        signal: str | None = None,
    ) -> None:
        self.pid = pid
        self.exit_code = exit_code
        self.signal = signal
        super().__init__(
            f"app with pid '{pid}' {self.reason} "
            f"(signal '{signal}', exit code '{exit_code}')"
        )


class ExitedBeforeReadyError(ProcessExitedError):
    """The app exited without ever announcing its port."""

    reason = "exited before becoming ready"


class UnexpectedTerminationError(ProcessExitedError):
    """The app died without the harness asking it to."""

    reason = "terminated unexpectedly"


class ProbeTimeoutError(HarnessError):
    """An HTTP probe never got a 2xx response within its time budget."""
