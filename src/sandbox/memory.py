"""In-process sandbox simulation.

``MemoryEnvironment`` keeps files in a dict and fakes the handful of
commands the pipeline runs (``npm install``, ``npm run dev``, ``ps``).  Its
preview URL is served by an ``httpx.MockTransport`` so the readiness prober
exercises the same HTTP code path it uses against a real sandbox.

It is selected only through ``SandboxConfig.backend = "memory"``, for local
demos and tests.
"""

from __future__ import annotations

import io
import re
import tarfile
import time

import httpx

from src.errors import ErrorKind

from .base import CommandResult, ExecutionEnvironment, SandboxBackend, SandboxError

_REDIRECT = re.compile(r">\s*(\S+)")

_SIMULATED_OUTPUT: list[tuple[str, str]] = [
    ("npm install", "added 1000 packages, and audited 1001 packages in 30s"),
    ("npm run build", "✓ Compiled successfully"),
]


class MemoryEnvironment(ExecutionEnvironment):
    """Dict-backed environment.

    Args:
        workdir: Simulated project root.
        boot_attempts: How many preview requests fail with a connection
            error after ``npm run dev`` starts before the server answers.
        command_results: Canned results keyed by command prefix, checked
            before the built-in simulations.
    """

    def __init__(
        self,
        workdir: str = "/home/user/app",
        *,
        boot_attempts: int = 0,
        command_results: dict[str, CommandResult] | None = None,
    ) -> None:
        super().__init__(workdir)
        self._id = f"memfs-{int(time.time() * 1000)}"
        self._alive = True
        self.files: dict[str, str] = {}
        self.commands: list[str] = []
        self.background: list[str] = []
        self.command_results = dict(command_results or {})
        self.boot_attempts = boot_attempts
        self.server_running = False
        self.probe_count = 0

    @property
    def environment_id(self) -> str:
        return self._id

    @property
    def is_alive(self) -> bool:
        return self._alive

    # -- Files ---------------------------------------------------------------

    async def write_file(self, path: str, content: str) -> None:
        self._require_alive()
        self.files[self.resolve(path)] = content

    async def read_file(self, path: str) -> str:
        self._require_alive()
        full = self.resolve(path)
        if full not in self.files:
            raise SandboxError(f"File not found in sandbox: {full}", kind=ErrorKind.UNKNOWN)
        return self.files[full]

    def project_files(self) -> dict[str, str]:
        """Return ``{relative_path: content}`` for files under the workdir."""
        prefix = f"{self.workdir}/"
        return {
            path[len(prefix):]: content
            for path, content in self.files.items()
            if path.startswith(prefix)
        }

    # -- Commands ------------------------------------------------------------

    async def run_command(self, command: str, timeout: int = 60) -> CommandResult:
        self._require_alive()
        self.commands.append(command)

        for prefix, result in self.command_results.items():
            if command.startswith(prefix):
                return result

        for needle, stdout in _SIMULATED_OUTPUT:
            if needle in command:
                return CommandResult(stdout=stdout)

        if command.startswith("ps"):
            listing = "\n".join(
                f"user  {100 + i}  node {cmd}" for i, cmd in enumerate(self.background)
            )
            return CommandResult(stdout=listing)

        return CommandResult(stdout=f"MemFS output for: {command}")

    async def start_background(self, command: str) -> None:
        self._require_alive()
        self.background.append(command)
        if "npm run dev" in command:
            self.server_running = True
            match = _REDIRECT.search(command)
            if match:
                self.files[match.group(1)] = "ready - started server on 0.0.0.0, url: http://localhost\n"

    # -- Network -------------------------------------------------------------

    def get_host(self, port: int) -> str:
        return f"{port}-{self._id}.memfs.local"

    def http_transport(self) -> httpx.AsyncBaseTransport:
        return httpx.MockTransport(self._serve)

    def _serve(self, request: httpx.Request) -> httpx.Response:
        self.probe_count += 1
        if not self._alive or not self.server_running or self.probe_count <= self.boot_attempts:
            raise httpx.ConnectError("Connection refused", request=request)
        page = self.files.get(self.resolve("app/page.tsx"), "")
        return httpx.Response(
            200,
            headers={"content-type": "text/html"},
            text=f"<html><body><!-- {len(page)} chars --></body></html>",
        )

    # -- Lifecycle -----------------------------------------------------------

    async def export_archive(self) -> bytes:
        self._require_alive()
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
            for rel_path, content in sorted(self.project_files().items()):
                if rel_path.startswith("node_modules/"):
                    continue
                data = content.encode("utf-8")
                info = tarfile.TarInfo(name=rel_path)
                info.size = len(data)
                info.mtime = int(time.time())
                archive.addfile(info, io.BytesIO(data))
        return buffer.getvalue()

    async def destroy(self) -> None:
        self._alive = False
        self.server_running = False


class MemoryBackend(SandboxBackend):
    """Creates :class:`MemoryEnvironment` instances.

    Every environment it creates is kept in :attr:`created` so tests can
    inspect them after the run.
    """

    name = "memory"

    def __init__(self, workdir: str = "/home/user/app", **environment_kwargs) -> None:
        self.workdir = workdir
        self.environment_kwargs = environment_kwargs
        self.created: list[MemoryEnvironment] = []

    async def create(self, timeout: int) -> MemoryEnvironment:
        environment = MemoryEnvironment(self.workdir, **self.environment_kwargs)
        self.created.append(environment)
        return environment
