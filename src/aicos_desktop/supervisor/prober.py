"""Health probing for the supervised server.

A short single-shot probe decides whether anything is already serving the port;
a bounded retry loop decides whether the process we just spawned is up.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_fixed,
)

from aicos_desktop.constants import (
    DEFAULT_HOST,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RETRY_DELAY,
    DUPLICATE_CHECK_TIMEOUT,
    HEALTH_PATH,
    MIN_PROBE_TIMEOUT,
)
from aicos_desktop.models import HealthProbeResult
from aicos_desktop.supervisor.errors import ReadinessTimeoutError, ServerExitedError
from aicos_desktop.supervisor.logging import DesktopLogComponent, get_logger

logger = get_logger(DesktopLogComponent.PROBER)

SleepFn = Callable[[float], Awaitable[None]]


class _NotReady(Exception):
    def __init__(self, result: HealthProbeResult):
        self.result: HealthProbeResult = result
        super().__init__(result.error or f"status {result.status_code}")


def _log_probe_attempt(retry_state: RetryCallState) -> None:
    if retry_state.outcome and retry_state.outcome.failed:
        exception = retry_state.outcome.exception()
        logger.debug(
            f"Health probe attempt {retry_state.attempt_number} not ready: {exception}"
        )


class ReadinessProber:
    """Checks `GET http://<host>:<port>/health` for a 2xx answer."""

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        health_path: str = HEALTH_PATH,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        duplicate_check_timeout: float = DUPLICATE_CHECK_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        """Initialize the prober.

        Args:
            host: Host the server listens on
            health_path: Path of the health endpoint
            request_timeout: Timeout for probes made while waiting for readiness
            duplicate_check_timeout: Timeout for the single pre-spawn probe
            transport: Optional httpx transport (tests inject a MockTransport)
            sleep: Coroutine used to wait between attempts
        """
        if not health_path.startswith("/"):
            health_path = f"/{health_path}"
        self.host: str = host
        self.health_path: str = health_path
        self.request_timeout: float = request_timeout
        self.duplicate_check_timeout: float = duplicate_check_timeout
        self._transport: httpx.AsyncBaseTransport | None = transport
        self._sleep: SleepFn = sleep

    def health_url(self, port: int) -> str:
        return f"http://{self.host}:{port}{self.health_path}"

    async def probe_once(
        self, url: str, timeout: float | None = None
    ) -> HealthProbeResult:
        """Issue a single health request. Never raises; failures become unhealthy results."""
        timeout = self.request_timeout if timeout is None else timeout
        started = time.perf_counter()
        try:
            # Never route localhost probes through an environment proxy.
            async with httpx.AsyncClient(
                timeout=timeout, transport=self._transport, trust_env=False
            ) as client:
                response = await client.get(url)
        except Exception as e:
            return HealthProbeResult(
                url=url,
                reachable=False,
                healthy=False,
                latency=time.perf_counter() - started,
                error=str(e) or type(e).__name__,
            )

        return HealthProbeResult(
            url=url,
            reachable=True,
            healthy=response.is_success,
            status_code=response.status_code,
            latency=time.perf_counter() - started,
        )

    async def check_already_running(self, url: str) -> bool:
        """Single short probe used to decide whether spawning is needed at all."""
        result = await self.probe_once(url, timeout=self.duplicate_check_timeout)
        if result.healthy:
            logger.info(f"Detected existing server at {url}")
        return result.healthy

    async def wait_until_ready(
        self,
        url: str,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        alive: Callable[[], bool] | None = None,
    ) -> HealthProbeResult:
        """Poll the health endpoint until it answers 2xx or the wait budget runs out.

        The budget is `max_attempts` probes and `max_attempts * retry_delay` seconds,
        whichever ends first. Each probe's timeout is cut down to what is left of
        the budget, so a server that accepts connections but never answers cannot
        hold the wait past it.

        Args:
            url: Health endpoint URL
            max_attempts: Maximum number of probes
            retry_delay: Seconds to wait between probes (not after the last one)
            alive: Optional check made after each failed probe; returning False stops
                the wait because the server process is gone

        Returns:
            The first healthy probe result

        Raises:
            ReadinessTimeoutError: If no probe succeeded within the budget
            ServerExitedError: If `alive` reported the process gone
        """
        budget = max_attempts * retry_delay
        started = time.monotonic()
        deadline = started + budget
        attempts = 0

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max_attempts) | stop_after_delay(budget),
                wait=wait_fixed(retry_delay),
                retry=retry_if_exception_type(_NotReady),
                before_sleep=_log_probe_attempt,
                sleep=self._sleep,
                reraise=True,
            ):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    remaining = deadline - time.monotonic()
                    timeout = min(
                        self.request_timeout,
                        max(remaining, retry_delay, MIN_PROBE_TIMEOUT),
                    )
                    result = await self.probe_once(url, timeout=timeout)
                    if result.healthy:
                        logger.info(
                            f"Server is ready at {url} (attempt {attempts}, "
                            f"{result.latency * 1000:.0f}ms)"
                        )
                        return result
                    if alive is not None and not alive():
                        raise ServerExitedError(url)
                    raise _NotReady(result)
        except _NotReady as e:
            elapsed = time.monotonic() - started
            logger.error(
                f"Server at {url} not ready after {attempts} attempts: {e}"
            )
            raise ReadinessTimeoutError(url, attempts, elapsed) from e

        # AsyncRetrying either returns from inside the block or raises.
        raise ReadinessTimeoutError(url, attempts, time.monotonic() - started)
