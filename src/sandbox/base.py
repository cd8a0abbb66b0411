"""Execution-environment capability.

The orchestrator never talks to E2B (or any other sandbox provider)
directly.  It asks a :class:`SandboxBackend` for an
:class:`ExecutionEnvironment` and drives everything through that handle,
which keeps the pipeline identical for the remote sandbox and the in-memory
simulation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from src.errors import ErrorKind, WebForgeError


class SandboxError(WebForgeError):
    """Raised when a sandbox operation fails at the transport level."""


@dataclass
class CommandResult:
    """Outcome of a foreground command run inside the environment."""

    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ExecutionEnvironment(ABC):
    """A live sandbox owned by exactly one run.

    Relative paths are resolved against :attr:`workdir`; absolute paths are
    used as-is (e.g. the dev-server log under ``/tmp``).
    """

    def __init__(self, workdir: str) -> None:
        self.workdir = workdir.rstrip("/") or "/"

    @property
    @abstractmethod
    def environment_id(self) -> str:
        """Opaque identifier reported to the client."""

    @property
    @abstractmethod
    def is_alive(self) -> bool:
        """``False`` once :meth:`destroy` has been called."""

    def resolve(self, path: str) -> str:
        """Return the absolute path of *path* inside the environment."""
        if path.startswith("/"):
            return path
        return f"{self.workdir}/{path}"

    def _require_alive(self) -> None:
        if not self.is_alive:
            raise SandboxError(
                f"Sandbox {self.environment_id} is not running", kind=ErrorKind.SANDBOX_EXPIRED
            )

    @abstractmethod
    async def write_file(self, path: str, content: str) -> None:
        """Create or fully overwrite a text file."""

    @abstractmethod
    async def read_file(self, path: str) -> str:
        """Return the text content of a file.

        Raises:
            SandboxError: If the file does not exist or cannot be read.
        """

    @abstractmethod
    async def run_command(self, command: str, timeout: int = 60) -> CommandResult:
        """Run *command* in :attr:`workdir` and wait for it to exit.

        A non-zero exit code is reported in the result, not raised.
        """

    @abstractmethod
    async def start_background(self, command: str) -> None:
        """Launch *command* in :attr:`workdir` without waiting for it."""

    @abstractmethod
    def get_host(self, port: int) -> str:
        """Return the public host name that forwards to *port*."""

    @abstractmethod
    async def export_archive(self) -> bytes:
        """Return a gzipped tarball of :attr:`workdir` (without ``node_modules``)."""

    @abstractmethod
    async def destroy(self) -> None:
        """Tear the environment down.  Calling it twice is harmless."""

    def preview_url(self, port: int) -> str:
        return f"https://{self.get_host(port)}"

    def http_transport(self) -> httpx.AsyncBaseTransport | None:
        """Transport for reaching the preview URL; ``None`` means the real network."""
        return None


class SandboxBackend(ABC):
    """Factory for execution environments."""

    name: str = "abstract"

    @abstractmethod
    async def create(self, timeout: int) -> ExecutionEnvironment:
        """Create a fresh environment that lives for at most *timeout* seconds."""
