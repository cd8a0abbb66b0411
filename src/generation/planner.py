"""Project planning: description -> ordered list of files to generate.

The model is asked for a JSON array of paths.  Anything unusable in its
answer is recovered locally with a deterministic fallback that depends only
on keywords in the description; only a failed call to the model itself is
fatal.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from src.events import EventChannel
from src.gemini_client import TextGenerator
from src.sandbox.provisioner import PROVISIONED_FILES
from src.staging import StagingError, normalize_path
from src.utils import strip_code_fences

from .prompts import build_plan_prompt

BASELINE_FILES: tuple[str, ...] = (
    "package.json",
    "next.config.js",
    "tailwind.config.js",
    "tsconfig.json",
    "app/layout.tsx",
    "app/page.tsx",
    "app/globals.css",
    "lib/utils.ts",
)

# First matching rule wins; the last entry is the default augmentation.
_KEYWORD_EXTRAS: list[tuple[tuple[str, ...], tuple[str, ...]]] = [
    (("dashboard", "admin"), ("components/dashboard/sidebar.tsx", "components/dashboard/header.tsx")),
    (("blog",), ("app/blog/page.tsx", "components/blog/post-card.tsx")),
    (("ecommerce", "shop"), ("app/products/page.tsx", "components/product/product-card.tsx")),
]
_DEFAULT_EXTRAS: tuple[str, ...] = ("components/ui/button.tsx", "components/hero.tsx")


class ProjectContext(BaseModel):
    """Per-run project facts shared by the planner and the file generator.

    ``files`` is written once by the planner and read-only afterwards.
    """

    model_config = ConfigDict(frozen=True)

    description: str = Field(..., description="The user's free-text project description")
    framework: str = Field(default="nextjs")

    _files: tuple[str, ...] | None = PrivateAttr(default=None)

    @property
    def files(self) -> list[str]:
        return list(self._files or ())

    @property
    def has_plan(self) -> bool:
        return self._files is not None

    def set_files(self, files: list[str]) -> None:
        if self._files is not None:
            raise ValueError("The project plan has already been set")
        self._files = tuple(files)


def fallback_plan(description: str) -> list[str]:
    """Deterministic plan used when the model's answer cannot be used."""
    lowered = description.lower()
    extras = _DEFAULT_EXTRAS
    for keywords, paths in _KEYWORD_EXTRAS:
        if any(keyword in lowered for keyword in keywords):
            extras = paths
            break
    return [*BASELINE_FILES, *extras]


def parse_plan(text: str, max_files: int) -> list[str] | None:
    """Extract the file list from a model answer.

    Returns ``None`` when the text is not JSON, is not an array, or holds no
    usable path.  Entries are normalized the way the staging store keys
    them; non-strings and paths it would reject (empty, root, or with a
    ``..`` segment) are dropped, duplicates keep their first position, and
    the result is capped at *max_files*.
    """
    try:
        data: Any = json.loads(strip_code_fences(text.strip()))
    except (json.JSONDecodeError, ValueError):
        return None
    if not isinstance(data, list):
        return None

    files: list[str] = []
    seen: set[str] = set()
    for entry in data:
        if not isinstance(entry, str):
            continue
        try:
            path = normalize_path(entry)
        except StagingError:
            continue
        if path in seen:
            continue
        seen.add(path)
        files.append(path)

    return files[:max_files] or None


class PlanGenerator:
    """Turns a description into the run's file plan."""

    def __init__(self, client: TextGenerator, events: EventChannel, max_files: int = 12) -> None:
        self.client = client
        self.events = events
        self.max_files = max_files

    async def generate_plan(self, context: ProjectContext) -> list[str]:
        """Ask the model for a plan and record it on *context*.

        Raises:
            TextGenerationError: If the model call itself fails.
        """
        self.events.log("Generating project structure with AI...")
        prompt = build_plan_prompt(context.description, PROVISIONED_FILES, self.max_files)

        try:
            response = (await self.client.generate(prompt, json_output=True)).raise_for_error()
        except Exception as exc:
            self.events.log(f"Project plan generation failed: {exc}", level="error")
            raise

        files = parse_plan(response.text, self.max_files)
        if files is None:
            self.events.log(
                f'Failed to parse AI response, using fallback structure for: "{context.description}"',
                level="warning",
            )
            files = fallback_plan(context.description)
        else:
            self.events.log(f"AI generated project plan: {len(files)} files")

        context.set_files(files)
        return files
