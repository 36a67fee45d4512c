"""ProcessSupervisor — owns one app under test from spawn to exit.

The app picks its own port and announces it on stderr
("Listening on port 4821"). The supervisor scrapes that announcement,
lets any number of callers wait for it, probes the app over HTTP, and
reconciles the app's exit with whoever is still waiting.

Both the discovered port and the exit are single-assignment futures:
every waiter sees the same value, and neither ever changes once set.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import signal
from pathlib import Path
from typing import Sequence

import httpx

from spanharness.config import HarnessSettings, settings as default_settings
from spanharness.exceptions import (
    ExitedBeforeReadyError,
    SpawnError,
    UnexpectedTerminationError,
)
from spanharness.processes.probe import probe
from spanharness.processes.state_machine import AppLifecycle, TransitionCallback
from spanharness.spans.reader import SpanDumpReader
from spanharness.spans.records import SpanRecord
from spanharness.types import ExitResult, SupervisorState

_logger = logging.getLogger(__name__)

# Environment handed to the app, before caller overrides
SERVICE_NAME_ENV = "OTEL_SERVICE_NAME"
SPAN_DUMP_ENV = "LUMIGO_DEBUG_SPANDUMP"
DEBUG_ENV = "LUMIGO_DEBUG"

# The digits only count once something that is not a digit follows them,
# otherwise "port 48" + "21" arriving in two chunks would resolve to 48.
PORT_PATTERN = re.compile(rb"listening on port (\d+)(?=\D)", re.IGNORECASE)
PORT_PATTERN_AT_EOF = re.compile(rb"listening on port (\d+)\s*$", re.IGNORECASE)

_READ_CHUNK = 4096
_SCAN_TAIL = 256  # bytes kept between chunks while no match is found
_OUTPUT_FLUSH_TIMEOUT = 1.0


class ProcessSupervisor:
    """Spawns an app, discovers its port, and tracks its exit.

    Use ``await ProcessSupervisor.spawn(...)``; the constructor only sets up
    state and must run inside an event loop.
    """

    def __init__(
        self,
        span_dump_path: str | Path,
        settings: HarnessSettings | None = None,
    ) -> None:
        self._settings = settings or default_settings
        self._spans = SpanDumpReader(
            span_dump_path, poll_interval=self._settings.span_poll_interval,
        )
        self._lifecycle = AppLifecycle("app")
        self._proc: asyncio.subprocess.Process | None = None
        self._output_tasks: list[asyncio.Task] = []
        self._exit_task: asyncio.Task | None = None
        self._termination_requested = False
        self._process_group = False  # shell commands lead their own group
        self._scan_buffer: bytearray | None = bytearray()

        loop = asyncio.get_running_loop()
        # None means "exited before a port was announced"
        self._port_future: asyncio.Future[int | None] = loop.create_future()
        self._exit_future: asyncio.Future[ExitResult] = loop.create_future()

    @classmethod
    async def spawn(
        cls,
        cwd: str | Path,
        service_name: str,
        span_dump_path: str | Path,
        env: dict[str, str] | None = None,
        command: str | Sequence[str] | None = None,
        settings: HarnessSettings | None = None,
    ) -> ProcessSupervisor:
        """Start the app and begin watching it.

        A failure to start is not raised here: it is recorded as an
        unexpected exit and surfaces from port(), wait_until_ready() and
        invoke().
        """
        supervisor = cls(span_dump_path, settings=settings)
        supervisor._spans.discard()
        await supervisor._start(cwd, service_name, env, command)
        return supervisor

    # ── Introspection ────────────────────────────────────────────────

    @property
    def pid(self) -> int | None:
        """OS pid of the app; None only if it never started."""
        return self._proc.pid if self._proc is not None else None

    @property
    def state(self) -> SupervisorState:
        return self._lifecycle.state

    @property
    def exit_result(self) -> ExitResult | None:
        if not self._exit_future.done():
            return None
        return self._exit_future.result()

    @property
    def span_dump(self) -> SpanDumpReader:
        return self._spans

    def on_transition(self, callback: TransitionCallback) -> None:
        self._lifecycle.on_transition(callback)

    # ── Readiness ────────────────────────────────────────────────────

    async def port(self) -> int:
        """Wait for the app's port.

        Raises UnexpectedTerminationError if the app died on its own, or
        ExitedBeforeReadyError if it exited without announcing a port.
        """
        port = await asyncio.shield(self._port_future)

        result = self.exit_result
        if result is not None and not result.expected:
            raise UnexpectedTerminationError(
                self.pid, result.exit_code, result.signal,
            ) from result.spawn_error
        if port is None:
            raise ExitedBeforeReadyError(
                self.pid,
                result.exit_code if result else None,
                result.signal if result else None,
            )
        return port

    async def wait_until_ready(self) -> None:
        await self.port()

    # ── Invocation ───────────────────────────────────────────────────

    async def invoke(self, path: str) -> httpx.Response:
        """GET a path on the app once it is ready, retrying until 2xx."""
        port = await self.port()
        url = f"http://{self._settings.probe_host}:{port}/{path.lstrip('/')}"
        _logger.info("invoking url: %s ...", url)
        return await probe(
            url,
            initial_delay=self._settings.probe_initial_delay,
            interval=self._settings.probe_interval,
            timeout=self._settings.probe_timeout,
            request_timeout=self._settings.probe_request_timeout,
        )

    async def invoke_and_read_spans(self, path: str) -> list[SpanRecord]:
        await self.invoke(path)
        return self._spans.read_all()

    async def final_spans(
        self,
        expected_count: int | None = None,
        timeout: float | None = None,
    ) -> list[SpanRecord]:
        """Read the dump, optionally waiting for expected_count spans to land."""
        if not expected_count:
            return self._spans.read_all()
        if timeout is None:
            timeout = self._settings.final_spans_timeout
        return await self._spans.read_until_count(expected_count, timeout)

    # ── Termination ──────────────────────────────────────────────────

    async def wait_for_exit(self) -> ExitResult:
        """Wait for the app to exit on its own, without asking it to."""
        return await asyncio.shield(self._exit_future)

    async def terminate(self) -> int | None:
        """Ask the app to stop and wait for it. Safe to call repeatedly.

        Shell commands run in their own process group and the whole group is
        signalled, so an app started by a shell that does not exec it is
        stopped along with the shell.

        Returns the app's exit code, or None when it died from a signal or
        never started.
        """
        proc = self._proc
        if proc is not None and proc.returncode is None:
            self._termination_requested = True
            _logger.info("ensuring app with pid '%s' is terminated...", proc.pid)
            self._signal_app(proc, signal.SIGTERM)

            try:
                await asyncio.wait_for(
                    asyncio.shield(self._exit_future),
                    timeout=self._settings.terminate_grace_period,
                )
            except asyncio.TimeoutError:
                _logger.warning(
                    "app with pid '%s' still running after %.1fs, killing",
                    proc.pid, self._settings.terminate_grace_period,
                )
                self._signal_app(proc, signal.SIGKILL)

        result = await asyncio.shield(self._exit_future)
        return result.exit_code

    async def __aenter__(self) -> ProcessSupervisor:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.terminate()

    def _signal_app(self, proc: asyncio.subprocess.Process, sig: signal.Signals) -> None:
        """Best-effort signal delivery; failures are logged, not raised."""
        try:
            if self._process_group:
                os.killpg(proc.pid, sig)
            else:
                proc.send_signal(sig)
        except OSError as e:
            _logger.warning(
                "error sending %s to app with pid '%s': %s", sig.name, proc.pid, e,
            )

    # ── Internals ────────────────────────────────────────────────────

    async def _start(
        self,
        cwd: str | Path,
        service_name: str,
        env: dict[str, str] | None,
        command: str | Sequence[str] | None,
    ) -> None:
        proc_env = {
            **os.environ,
            SERVICE_NAME_ENV: service_name,
            SPAN_DUMP_ENV: str(self._spans.path),
            DEBUG_ENV: "true",
            **(env or {}),
        }
        if command is None:
            command = self._settings.app_command

        _logger.info(
            "starting app '%s' in %s with span dump file %s...",
            service_name, cwd, self._spans.path,
        )
        try:
            if isinstance(command, str):
                proc = await asyncio.create_subprocess_shell(
                    command,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=cwd,
                    env=proc_env,
                    start_new_session=True,
                )
                self._process_group = True
            else:
                proc = await asyncio.create_subprocess_exec(
                    *command,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=cwd,
                    env=proc_env,
                )
        except OSError as e:
            error = SpawnError(f"could not start {command!r} in {cwd}: {e}")
            _logger.warning("%s", error)
            await self._record_exit(ExitResult.from_spawn_error(error))
            return

        self._proc = proc
        self._lifecycle.label = f"app with pid '{proc.pid}'"
        _logger.info("app '%s' started with pid '%s'", service_name, proc.pid)

        self._output_tasks = [
            asyncio.create_task(self._read_stderr(proc.stderr)),
            asyncio.create_task(self._drain(proc.stdout, "stdout")),
        ]
        self._exit_task = asyncio.create_task(self._watch_exit(proc))

    async def _read_stderr(self, stream: asyncio.StreamReader) -> None:
        """Log stderr and scan it for the port announcement."""
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                break
            _logger.debug(
                "app %s stderr: %s",
                self.pid, chunk.decode("utf-8", errors="replace").rstrip(),
            )
            await self._scan_for_port(chunk)
        await self._scan_for_port(b"", at_eof=True)

    async def _drain(self, stream: asyncio.StreamReader, name: str) -> None:
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                break
            _logger.debug(
                "app %s %s: %s",
                self.pid, name, chunk.decode("utf-8", errors="replace").rstrip(),
            )

    async def _scan_for_port(self, chunk: bytes, at_eof: bool = False) -> None:
        # The buffer is dropped once a port is found or the stream ends
        if self._scan_buffer is None:
            return

        self._scan_buffer += chunk
        match = PORT_PATTERN.search(self._scan_buffer)
        if match is None and at_eof:
            match = PORT_PATTERN_AT_EOF.search(self._scan_buffer)

        if match is None:
            if at_eof:
                self._scan_buffer = None
            else:
                del self._scan_buffer[:-_SCAN_TAIL]
            return

        self._scan_buffer = None
        await self._resolve_port(int(match.group(1)))

    async def _resolve_port(self, port: int) -> None:
        if self._port_future.done():
            return
        self._port_future.set_result(port)
        _logger.info("app with pid '%s' is listening on port %d", self.pid, port)
        await self._lifecycle.advance(SupervisorState.READY)

    async def _watch_exit(self, proc: asyncio.subprocess.Process) -> None:
        returncode = await proc.wait()
        # A port announced right before exiting must still be seen
        await asyncio.wait(self._output_tasks, timeout=_OUTPUT_FLUSH_TIMEOUT)
        await self._record_exit(
            ExitResult.from_returncode(returncode, self._termination_requested)
        )

    async def _record_exit(self, result: ExitResult) -> None:
        if self._exit_future.done():
            return
        self._exit_future.set_result(result)
        # An already-discovered port stays as it is
        if not self._port_future.done():
            self._port_future.set_result(None)

        if result.expected:
            _logger.info(
                "app with pid '%s' exited with signal '%s' and exit code '%s'",
                self.pid, result.signal, result.exit_code,
            )
        else:
            _logger.warning(
                "app with pid '%s' terminated unexpectedly with signal '%s' and exit code '%s'",
                self.pid, result.signal, result.exit_code,
            )
        await self._lifecycle.advance(SupervisorState.EXITED)
