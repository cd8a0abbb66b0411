"""In-memory staging of generated files.

Files are streamed into the :class:`StagingStore` while the sandbox is still
being provisioned, then flushed into it in one pass.  Each entry is an
immutable :class:`StagedFile` that is replaced wholesale on every update, so a
reader always sees a complete prefix of what has been generated so far.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from src.errors import WebForgeError

if TYPE_CHECKING:
    from src.sandbox.base import ExecutionEnvironment


class StagingError(WebForgeError):
    """Raised on an invalid staging operation (bad path, concurrent generation)."""


class StagedFile(BaseModel):
    """Snapshot of one generated file."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Repository-relative, forward-slash separated path")
    content: str = Field(default="")
    is_complete: bool = Field(default=False)


def normalize_path(path: str) -> str:
    """Return the canonical repository-relative form of *path*.

    Raises:
        StagingError: If the path is empty or escapes the project root.
    """
    normalized = path.strip().replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    normalized = normalized.lstrip("/")
    if not normalized:
        raise StagingError(f"Invalid file path: {path!r}")
    if any(segment == ".." for segment in normalized.split("/")):
        raise StagingError(f"File path escapes the project root: {path!r}")
    return normalized


class StagingStore:
    """Ordered ``path -> StagedFile`` map.

    Mutated only by the file generator (``begin``/``update``/``complete``)
    and the save/edit path (``put``); read by the flush step.  Insertion
    order is preserved, but nothing depends on it.
    """

    def __init__(self) -> None:
        self._files: dict[str, StagedFile] = {}
        self._in_flight: set[str] = set()

    def __contains__(self, path: str) -> bool:
        return normalize_path(path) in self._files

    def __len__(self) -> int:
        return len(self._files)

    # -- Generation lifecycle -----------------------------------------------

    def begin(self, path: str) -> str:
        """Mark *path* as being generated and reset its content.

        Raises:
            StagingError: If a generation for *path* is already in flight.
        """
        key = normalize_path(path)
        if key in self._in_flight:
            raise StagingError(f"A generation for {key} is already in progress")
        self._in_flight.add(key)
        self._files[key] = StagedFile(path=key)
        return key

    def update(self, path: str, content: str) -> StagedFile:
        """Replace the partial content of an in-flight file."""
        key = normalize_path(path)
        if key not in self._in_flight:
            raise StagingError(f"No generation in progress for {key}")
        staged = StagedFile(path=key, content=content, is_complete=False)
        self._files[key] = staged
        return staged

    def complete(self, path: str, content: str) -> StagedFile:
        """Store the final content of an in-flight file and release it."""
        key = normalize_path(path)
        if key not in self._in_flight:
            raise StagingError(f"No generation in progress for {key}")
        staged = StagedFile(path=key, content=content, is_complete=True)
        self._files[key] = staged
        self._in_flight.discard(key)
        return staged

    def abort(self, path: str) -> None:
        """Release an in-flight path after a failed generation."""
        self._in_flight.discard(normalize_path(path))

    # -- Direct access --------------------------------------------------------

    def put(self, path: str, content: str) -> StagedFile:
        """Store complete content for *path* (the save/edit path)."""
        key = normalize_path(path)
        if key in self._in_flight:
            raise StagingError(f"Cannot overwrite {key} while it is being generated")
        staged = StagedFile(path=key, content=content, is_complete=True)
        self._files[key] = staged
        return staged

    def get(self, path: str) -> StagedFile | None:
        return self._files.get(normalize_path(path))

    def paths(self) -> list[str]:
        return list(self._files)

    def snapshot(self) -> dict[str, str]:
        """Return a plain ``{path: content}`` copy of every staged file."""
        return {path: staged.content for path, staged in self._files.items()}

    def clear(self) -> None:
        self._files.clear()
        self._in_flight.clear()

    # -- Materialisation ------------------------------------------------------

    async def flush(self, environment: "ExecutionEnvironment") -> list[str]:
        """Write every complete staged file into *environment*.

        Each write is a full overwrite keyed by path, so flushing twice with
        unchanged content leaves the environment in the same state.

        Returns:
            The paths that were written, in insertion order.
        """
        written: list[str] = []
        for path, staged in list(self._files.items()):
            if not staged.is_complete:
                continue
            await environment.write_file(path, staged.content)
            written.append(path)
        return written
