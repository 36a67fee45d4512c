"""HTTP probe — GET a URL until it answers 2xx or time runs out."""

from __future__ import annotations

import asyncio
import logging

import httpx

from spanharness.exceptions import ProbeTimeoutError

_logger = logging.getLogger(__name__)


async def probe(
    url: str,
    *,
    initial_delay: float,
    interval: float,
    timeout: float,
    request_timeout: float,
) -> httpx.Response:
    """GET url repeatedly until a 2xx response, and return that response.

    Connection failures and non-2xx statuses are retried every `interval`
    seconds after an `initial_delay`. The whole probe, delay included, is
    bounded by `timeout`; on exhaustion ProbeTimeoutError is raised, chained
    from the last transport error if there was one.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    attempts = 0
    last_status: int | None = None
    last_error: httpx.TransportError | None = None

    await asyncio.sleep(initial_delay)

    async with httpx.AsyncClient(timeout=request_timeout) as client:
        while True:
            attempts += 1
            try:
                resp = await client.get(url)
            except httpx.TransportError as e:
                last_error = e
                last_status = None
                _logger.debug("probe %s attempt %d failed: %s", url, attempts, e)
            else:
                _logger.info("received status: %d from %s", resp.status_code, url)
                if resp.is_success:
                    return resp
                last_status = resp.status_code
                last_error = None

            if loop.time() + interval >= deadline:
                break
            await asyncio.sleep(interval)

    detail = f"last status {last_status}" if last_status is not None else f"last error: {last_error}"
    raise ProbeTimeoutError(
        f"{url} did not answer 2xx within {timeout}s after {attempts} attempts ({detail})"
    ) from last_error
