"""E2B-backed execution environment.

Thin adapter over the async E2B SDK.  Every SDK call goes through
:func:`_translate` so the orchestrator only ever sees :class:`SandboxError`
tagged with an :class:`ErrorKind`.
"""

from __future__ import annotations

import shlex
from collections.abc import Awaitable
from typing import TypeVar

from e2b import (
    AsyncSandbox,
    AuthenticationException,
    CommandExitException,
    NotFoundException,
    RateLimitException,
    SandboxException,
    TimeoutException,
)

from src.errors import ErrorKind, infer_kind

from .base import CommandResult, ExecutionEnvironment, SandboxBackend, SandboxError

T = TypeVar("T")

_ARCHIVE_PATH = "/tmp/webforge-project.tar.gz"

# AuthenticationException does not derive from SandboxException.
_SDK_ERRORS = (SandboxException, AuthenticationException, RateLimitException)


def _translate(exc: Exception, action: str) -> SandboxError:
    """Wrap an SDK exception in a tagged ``SandboxError``."""
    message = f"E2B {action} failed: {exc}"
    if isinstance(exc, AuthenticationException):
        kind = ErrorKind.AUTH
    elif isinstance(exc, RateLimitException):
        kind = ErrorKind.QUOTA
    elif isinstance(exc, TimeoutException):
        kind = ErrorKind.TIMEOUT
    elif isinstance(exc, NotFoundException):
        kind = ErrorKind.SANDBOX_EXPIRED
    else:
        kind = infer_kind(str(exc))
        if kind is ErrorKind.UNKNOWN:
            kind = ErrorKind.TRANSPORT
    return SandboxError(message, kind=kind)


async def _call(awaitable: Awaitable[T], action: str) -> T:
    try:
        return await awaitable
    except _SDK_ERRORS as exc:
        raise _translate(exc, action) from exc


class E2BEnvironment(ExecutionEnvironment):
    """An :class:`ExecutionEnvironment` backed by one E2B sandbox."""

    def __init__(self, sandbox: AsyncSandbox, workdir: str) -> None:
        super().__init__(workdir)
        self._sandbox = sandbox
        self._alive = True

    @property
    def environment_id(self) -> str:
        return self._sandbox.sandbox_id

    @property
    def is_alive(self) -> bool:
        return self._alive

    async def write_file(self, path: str, content: str) -> None:
        self._require_alive()
        await _call(self._sandbox.files.write(self.resolve(path), content), f"write {path}")

    async def read_file(self, path: str) -> str:
        self._require_alive()
        return await _call(self._sandbox.files.read(self.resolve(path)), f"read {path}")

    async def run_command(self, command: str, timeout: int = 60) -> CommandResult:
        self._require_alive()
        try:
            result = await self._sandbox.commands.run(command, cwd=self.workdir, timeout=timeout)
        except CommandExitException as exc:
            # The SDK raises on non-zero exit; callers want the exit code instead.
            return CommandResult(stdout=exc.stdout, stderr=exc.stderr, exit_code=exc.exit_code)
        except _SDK_ERRORS as exc:
            raise _translate(exc, f"command `{command}`") from exc
        return CommandResult(stdout=result.stdout, stderr=result.stderr, exit_code=result.exit_code)

    async def start_background(self, command: str) -> None:
        self._require_alive()
        await _call(
            self._sandbox.commands.run(command, cwd=self.workdir, background=True),
            f"background command `{command}`",
        )

    def get_host(self, port: int) -> str:
        return self._sandbox.get_host(port)

    async def export_archive(self) -> bytes:
        self._require_alive()
        command = (
            f"tar --exclude=node_modules --exclude=.next -czf {_ARCHIVE_PATH} "
            f"-C {shlex.quote(self.workdir)} ."
        )
        result = await self.run_command(command, timeout=120)
        if not result.ok:
            raise SandboxError(
                f"Archiving {self.workdir} failed (exit {result.exit_code}): {result.stderr.strip()}"
            )
        data = await _call(self._sandbox.files.read(_ARCHIVE_PATH, format="bytes"), "archive read")
        return bytes(data)

    async def destroy(self) -> None:
        if not self._alive:
            return
        self._alive = False
        await _call(self._sandbox.kill(), "kill")


class E2BBackend(SandboxBackend):
    """Creates E2B sandboxes from a template."""

    name = "e2b"

    def __init__(self, api_key: str, template: str = "base", workdir: str = "/home/user/app") -> None:
        self.api_key = api_key
        self.template = template
        self.workdir = workdir

    async def create(self, timeout: int) -> E2BEnvironment:
        sandbox = await _call(
            AsyncSandbox.create(template=self.template, timeout=timeout, api_key=self.api_key),
            "sandbox creation",
        )
        environment = E2BEnvironment(sandbox, self.workdir)
        try:
            await environment.run_command(f"mkdir -p {shlex.quote(self.workdir)}", timeout=30)
        except SandboxError:
            await _call(sandbox.kill(), "kill")
            raise
        return environment
