"""Streamed generation of a single file.

``FileGenerator.generate`` is an async generator: every text delta from the
model is mirrored into the staging store and the event channel, then yielded
as a cumulative :class:`FileResult`.  The stream cannot be restarted; a
failure aborts the file and propagates to the orchestrator.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass

from src.events import EventChannel, FileContentEvent, FileStartEvent
from src.gemini_client import TextGenerator
from src.sandbox.provisioner import is_provisioned
from src.staging import StagingStore
from src.utils import strip_code_fences

from .planner import ProjectContext
from .prompts import build_file_prompt


@dataclass(frozen=True)
class FileResult:
    """One step of a file's generation.

    ``content`` is everything generated so far; ``delta`` is the text that
    arrived with this step (empty on the final result).
    """

    path: str
    content: str
    is_complete: bool
    delta: str = ""


class FileGenerator:
    """Generates files into a :class:`StagingStore`."""

    def __init__(self, client: TextGenerator, staging: StagingStore, events: EventChannel) -> None:
        self.client = client
        self.staging = staging
        self.events = events

    async def generate(self, path: str, context: ProjectContext) -> AsyncIterator[FileResult]:
        """Stream *path* into the staging store.

        Pre-provisioned paths are skipped without calling the model.

        Raises:
            TextGenerationError: If the model stream fails.
        """
        if is_provisioned(path):
            self.events.log(f"Skipping {path} (pre-provisioned)")
            return

        key = self.staging.begin(path)
        self.events.emit(FileStartEvent(path=key))
        self.events.log(f"Generating {key} with AI...")

        prompt = build_file_prompt(key, context.description, context.files)
        content = ""
        try:
            async for delta in self.client.stream(prompt):
                if not delta:
                    continue
                content += delta
                self.staging.update(key, content)
                self.events.emit(FileContentEvent(path=key, content=content, delta=delta))
                yield FileResult(path=key, content=content, is_complete=False, delta=delta)
        except BaseException as exc:
            self.staging.abort(key)
            if isinstance(exc, Exception):
                self.events.log(f"Failed to generate {key}: {exc}", level="error")
            raise

        final = strip_code_fences(content)
        self.staging.complete(key, final)
        self.events.log(f"✓ Generated {key} ({len(final)} chars)")
        self.events.emit(FileContentEvent(path=key, content=final, is_complete=True))
        yield FileResult(path=key, content=final, is_complete=True)
