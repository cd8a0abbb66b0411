"""Shared pytest fixtures for the WebForge test suite.

Provides reusable fixtures for:
- Test configuration (memory sandbox, fast readiness polling)
- A scripted text generator standing in for Gemini
- In-memory sandbox backends and environments
- Event channels and helpers to inspect recorded events
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

import pytest

from src.config import Config, GeminiConfig, GenerationConfig, ReadinessConfig, SandboxConfig
from src.errors import ErrorKind
from src.events import EventChannel
from src.gemini_client import GeminiResponse, TextGenerationError
from src.sandbox.memory import MemoryBackend, MemoryEnvironment


# ---------------------------------------------------------------------------
# Text generator
# ---------------------------------------------------------------------------


class FakeTextGenerator:
    """Scripted stand-in for ``GeminiClient``.

    Args:
        plan: Text returned by ``generate`` (a JSON array by default).
        contents: Per-path file contents streamed by ``stream``; paths not
            listed get a small generated component.
        chunk_size: Size of the deltas ``stream`` yields.
        plan_error: If set, ``generate`` returns a failed response with this
            message.
        stream_errors: ``{path: message}``; streaming that path raises after
            the first delta.
    """

    def __init__(
        self,
        plan: str | list[str] | None = None,
        contents: dict[str, str] | None = None,
        chunk_size: int = 16,
        plan_error: str | None = None,
        plan_error_kind: ErrorKind = ErrorKind.UNKNOWN,
        stream_errors: dict[str, str] | None = None,
    ) -> None:
        if isinstance(plan, list):
            plan = json.dumps(plan)
        self.plan = plan if plan is not None else json.dumps(
            ["app/layout.tsx", "app/page.tsx", "app/globals.css", "components/hero.tsx"]
        )
        self.contents = contents or {}
        self.chunk_size = chunk_size
        self.plan_error = plan_error
        self.plan_error_kind = plan_error_kind
        self.stream_errors = stream_errors or {}
        self.generate_prompts: list[str] = []
        self.stream_prompts: list[str] = []
        self.streamed_paths: list[str] = []

    def content_for(self, path: str) -> str:
        if path in self.contents:
            return self.contents[path]
        name = path.rsplit("/", 1)[-1].split(".")[0].title().replace("-", "")
        return f"export default function {name}() {{\n  return <div>{path}</div>;\n}}\n"

    async def generate(self, prompt: str, json_output: bool = False) -> GeminiResponse:
        self.generate_prompts.append(prompt)
        if self.plan_error is not None:
            return GeminiResponse(
                success=False, error=self.plan_error, error_kind=self.plan_error_kind
            )
        return GeminiResponse(text=self.plan, model="fake-model", finish_reason="STOP")

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        self.stream_prompts.append(prompt)
        path = _path_from_prompt(prompt)
        self.streamed_paths.append(path)
        content = self.content_for(path)
        for index in range(0, len(content), self.chunk_size):
            yield content[index:index + self.chunk_size]
            if path in self.stream_errors:
                raise TextGenerationError(self.stream_errors[path])


def _path_from_prompt(prompt: str) -> str:
    for line in prompt.splitlines():
        if line.startswith("Current file: "):
            return line[len("Current file: "):].strip()
    raise AssertionError(f"Prompt does not name its file:\n{prompt}")


@pytest.fixture
def fake_generator() -> FakeTextGenerator:
    """Text generator with the default four-file plan."""
    return FakeTextGenerator()


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def make_config(**readiness: Any) -> Config:
    """Config for the in-memory sandbox with credentials and no polling delay."""
    readiness_kwargs: dict[str, Any] = {"max_attempts": 3, "interval": 0.0}
    readiness_kwargs.update(readiness)
    return Config(
        gemini=GeminiConfig(api_key="test-key"),
        sandbox=SandboxConfig(backend="memory"),
        readiness=ReadinessConfig(**readiness_kwargs),
        generation=GenerationConfig(max_files=12),
    )


@pytest.fixture
def config() -> Config:
    return make_config()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep real credentials and overrides out of every test."""
    for name in (
        "GOOGLE_GENERATIVE_AI_API_KEY",
        "E2B_API_KEY",
        "WEBFORGE_GEMINI_MODEL",
        "WEBFORGE_GEMINI_TIMEOUT",
        "WEBFORGE_SANDBOX_BACKEND",
        "WEBFORGE_SANDBOX_TEMPLATE",
        "WEBFORGE_SANDBOX_TIMEOUT",
        "WEBFORGE_APP_PORT",
        "WEBFORGE_READY_ATTEMPTS",
        "WEBFORGE_READY_INTERVAL",
        "WEBFORGE_MAX_FILES",
    ):
        monkeypatch.delenv(name, raising=False)


# ---------------------------------------------------------------------------
# Sandbox
# ---------------------------------------------------------------------------


@pytest.fixture
def memory_backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def memory_env() -> MemoryEnvironment:
    return MemoryEnvironment()


async def no_sleep(_seconds: float) -> None:
    """Drop-in for ``asyncio.sleep`` that returns immediately."""


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@pytest.fixture
def events() -> EventChannel:
    return EventChannel()


def event_types(channel: EventChannel, include_logs: bool = False) -> list[str]:
    """Return the types of recorded events, optionally without ``log`` noise."""
    return [e.type for e in channel.history if include_logs or e.type != "log"]


def log_messages(channel: EventChannel) -> list[str]:
    return [e.message for e in channel.history if e.type == "log"]
