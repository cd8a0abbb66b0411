"""Unit tests for streamed file generation (src.generation.file_generator).

Tests cover:
- Event order for one file (start -> deltas -> final)
- Staging updates while streaming
- Fence stripping of the final content
- Skipping pre-provisioned paths
- Stream failure handling
"""

from __future__ import annotations

import pytest

from conftest import FakeTextGenerator, log_messages
from src.events import EventChannel
from src.gemini_client import TextGenerationError
from src.generation.file_generator import FileGenerator, FileResult
from src.generation.planner import ProjectContext
from src.staging import StagingStore


def _context(*files: str) -> ProjectContext:
    ctx = ProjectContext(description="Build a blog website")
    ctx.set_files(list(files))
    return ctx


async def _collect(generator: FileGenerator, path: str, ctx: ProjectContext) -> list[FileResult]:
    return [result async for result in generator.generate(path, ctx)]


class TestFileGenerator:
    async def test_event_order_for_one_file(self, events: EventChannel):
        client = FakeTextGenerator(contents={"app/page.tsx": "export default 1;"}, chunk_size=6)
        staging = StagingStore()
        results = await _collect(
            FileGenerator(client, staging, events), "app/page.tsx", _context("app/page.tsx")
        )

        file_events = [e for e in events.history if e.type in ("file_start", "file_content")]
        assert file_events[0].type == "file_start"
        assert all(e.type == "file_content" for e in file_events[1:])
        assert [e.is_complete for e in file_events[1:]] == [False, False, False, True]
        assert file_events[-1].content == "export default 1;"

        assert [r.delta for r in results[:-1]] == ["export", " defau", "lt 1;"]
        assert results[-1] == FileResult(
            path="app/page.tsx", content="export default 1;", is_complete=True
        )

    async def test_partial_content_is_cumulative(self, events: EventChannel):
        client = FakeTextGenerator(contents={"a.ts": "abcdef"}, chunk_size=2)
        staging = StagingStore()
        seen = []
        async for result in FileGenerator(client, staging, events).generate("a.ts", _context("a.ts")):
            seen.append((result.content, staging.get("a.ts").content))
        assert seen[:3] == [("ab", "ab"), ("abcd", "abcd"), ("abcdef", "abcdef")]

    async def test_strips_enclosing_fence(self, events: EventChannel):
        fenced = "```tsx\nexport default function Page() {}\n```"
        client = FakeTextGenerator(contents={"app/page.tsx": fenced})
        staging = StagingStore()
        await _collect(FileGenerator(client, staging, events), "app/page.tsx", _context())

        staged = staging.get("app/page.tsx")
        assert staged.content == "export default function Page() {}"
        assert staged.is_complete

    async def test_prompt_mentions_siblings(self, events: EventChannel):
        client = FakeTextGenerator()
        ctx = _context("app/page.tsx", "components/hero.tsx")
        await _collect(FileGenerator(client, StagingStore(), events), "app/page.tsx", ctx)
        assert "components/hero.tsx" in client.stream_prompts[0]
        assert "Build a blog website" in client.stream_prompts[0]

    @pytest.mark.parametrize("path", ["package.json", "lib/utils.ts", "components/ui/button.tsx"])
    async def test_skips_provisioned_paths(self, events: EventChannel, path: str):
        client = FakeTextGenerator()
        staging = StagingStore()
        results = await _collect(FileGenerator(client, staging, events), path, _context())

        assert results == []
        assert client.stream_prompts == []
        assert path not in staging
        assert f"Skipping {path} (pre-provisioned)" in log_messages(events)

    async def test_stream_failure_propagates_and_releases_path(self, events: EventChannel):
        client = FakeTextGenerator(stream_errors={"app/page.tsx": "stream dropped"})
        staging = StagingStore()
        generator = FileGenerator(client, staging, events)

        with pytest.raises(TextGenerationError, match="stream dropped"):
            await _collect(generator, "app/page.tsx", _context())

        assert not any(e.type == "file_content" and e.is_complete for e in events.history)
        assert events.history[-1].level == "error"
        # The path can be generated again.
        staging.begin("app/page.tsx")

    async def test_closing_early_releases_path(self, events: EventChannel):
        client = FakeTextGenerator(contents={"a.ts": "x" * 64}, chunk_size=8)
        staging = StagingStore()
        stream = FileGenerator(client, staging, events).generate("a.ts", _context())

        await stream.__anext__()
        await stream.aclose()

        staging.begin("a.ts")
