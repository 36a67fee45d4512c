"""SpanDumpReader — reads a span dump without assuming the writer is done.

The dump is JSON lines, appended to by the supervised app. A line is only
complete once its newline is written; anything after the last newline is a
write in progress and is left for the next read.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import orjson
from pydantic import ValidationError

from spanharness.config import settings
from spanharness.spans.records import SpanRecord

_logger = logging.getLogger(__name__)


class SpanDumpReader:
    """Reads span records from a file written by another process."""

    def __init__(self, path: str | Path, poll_interval: float | None = None) -> None:
        self._path = Path(path)
        self._poll_interval = (
            settings.span_poll_interval if poll_interval is None else poll_interval
        )

    @property
    def path(self) -> Path:
        return self._path

    def discard(self) -> bool:
        """Remove a dump left over from a previous run. Returns True if removed."""
        try:
            self._path.unlink()
        except FileNotFoundError:
            return False
        _logger.info("removed previous span dump file %s", self._path)
        return True

    def read_all(self) -> list[SpanRecord]:
        """Return every complete, parseable record currently in the dump."""
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError:
            return []

        complete, _, partial = raw.rpartition(b"\n")
        if partial.strip():
            _logger.debug(
                "ignoring %d bytes of unfinished span record in %s",
                len(partial), self._path,
            )

        records: list[SpanRecord] = []
        for line in complete.splitlines():
            if not line.strip():
                continue
            try:
                data = orjson.loads(line)
                # Some exporters write a whole batch per line
                items = data if isinstance(data, list) else [data]
                batch = [SpanRecord.model_validate(item) for item in items]
                records.extend(batch)
            except (orjson.JSONDecodeError, ValidationError) as e:
                _logger.debug("skipping malformed span record in %s: %s", self._path, e)
        return records

    async def read_until_count(
        self, expected_count: int, timeout: float,
    ) -> list[SpanRecord]:
        """Poll until at least expected_count records exist or timeout elapses.

        Returns whatever was read last, which may be short of the count.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        spans = self.read_all()
        while len(spans) < expected_count:
            remaining = deadline - loop.time()
            if remaining <= 0:
                _logger.info(
                    "gave up waiting for %d spans in %s, have %d",
                    expected_count, self._path, len(spans),
                )
                break
            await asyncio.sleep(min(self._poll_interval, remaining))
            spans = self.read_all()
        return spans
