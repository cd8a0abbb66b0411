"""Dev-server bring-up and readiness polling.

``DevServerLauncher`` starts ``npm run dev`` in the background and never
waits on the process itself.  ``ReadinessProber`` then polls the sandbox's
public URL for the app port with a bounded number of attempts.  Running out
of attempts is reported as a warning; the caller decides what to do next.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx

from src.config import ReadinessConfig, SandboxConfig
from src.errors import WebForgeError
from src.events import EventChannel
from src.utils import truncate

from .base import ExecutionEnvironment

# Responses the sandbox proxy returns while nothing listens on the port.
_NOT_LISTENING = frozenset({502, 503, 504})

SleepFn = Callable[[float], Awaitable[None]]


@dataclass
class ProbeResult:
    """Outcome of a readiness poll."""

    ready: bool
    url: str | None
    attempts: int
    last_error: str = ""


class DevServerLauncher:
    """Starts the Next.js dev server and exposes its captured output."""

    def __init__(self, config: SandboxConfig, events: EventChannel) -> None:
        self.config = config
        self.events = events

    def command(self) -> str:
        return (
            f"npm run dev -- --hostname 0.0.0.0 --port {self.config.app_port} "
            f"> {self.config.dev_log_path} 2>&1"
        )

    async def start(self, environment: ExecutionEnvironment) -> None:
        """Launch the dev server; its exit status is never awaited."""
        self.events.log(f"Starting development server on port {self.config.app_port}...")
        await environment.start_background(self.command())

    async def read_log(self, environment: ExecutionEnvironment, limit: int = 4000) -> str:
        """Return the tail of the dev-server log, or ``""`` if it cannot be read."""
        try:
            return truncate(await environment.read_file(self.config.dev_log_path), limit)
        except WebForgeError:
            return ""


class ReadinessProber:
    """Polls the preview URL until the dev server answers.

    Args:
        config: Retry budget and per-request timeout.
        events: Channel that receives one log line per failed attempt.
        sleep: Awaitable used between attempts (injectable for tests).
    """

    def __init__(
        self,
        config: ReadinessConfig,
        events: EventChannel,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.config = config
        self.events = events
        self._sleep = sleep

    async def wait_until_ready(
        self,
        environment: ExecutionEnvironment,
        port: int,
        should_stop: Callable[[], bool] | None = None,
    ) -> ProbeResult:
        """Request the preview URL up to ``max_attempts`` times.

        Any HTTP response other than 502/503/504 counts as reachable (a
        Next.js compile error still means the server is listening).  Polling
        stops at the first success; there is no delay after the last attempt.
        *should_stop* is checked before every attempt; once it returns true
        the poll gives up and reports the attempts made so far.
        """
        url = environment.preview_url(port)
        budget = self.config.max_attempts
        last_error = ""

        async with httpx.AsyncClient(
            transport=environment.http_transport(),
            timeout=httpx.Timeout(self.config.request_timeout),
            follow_redirects=False,
        ) as client:
            for attempt in range(1, budget + 1):
                if should_stop is not None and should_stop():
                    self.events.log(f"Readiness polling stopped after {attempt - 1} attempts")
                    return ProbeResult(
                        ready=False, url=None, attempts=attempt - 1, last_error=last_error
                    )
                try:
                    response = await client.get(url)
                    if response.status_code not in _NOT_LISTENING:
                        self.events.log(
                            f"✓ Dev server is reachable at {url} (attempt {attempt}/{budget})"
                        )
                        return ProbeResult(ready=True, url=url, attempts=attempt)
                    last_error = f"HTTP {response.status_code}"
                except httpx.HTTPError as exc:
                    last_error = str(exc) or exc.__class__.__name__

                message = f"Waiting for dev server (attempt {attempt}/{budget}): {last_error}"
                if self.config.process_listing:
                    listing = await self._process_listing(environment)
                    if listing:
                        message = f"{message}\n{listing}"
                self.events.log(message)

                if attempt < budget:
                    await self._sleep(self.config.interval)

        self.events.log(
            f"Dev server did not become reachable after {budget} attempts", level="warning"
        )
        return ProbeResult(ready=False, url=None, attempts=budget, last_error=last_error)

    @staticmethod
    async def _process_listing(environment: ExecutionEnvironment) -> str:
        """Best-effort ``ps`` output for node/next processes."""
        try:
            result = await environment.run_command(
                "ps aux | grep -E 'next|node' | grep -v grep", timeout=10
            )
        except WebForgeError:
            return ""
        return truncate(result.stdout.strip(), 1000)
