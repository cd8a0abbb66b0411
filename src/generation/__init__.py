"""WebForge generation module.

Turns a project description into file contents with the text generator.

Usage::

    from src.generation import FileGenerator, PlanGenerator, ProjectContext

    context = ProjectContext(description="Build a blog website")
    files = await PlanGenerator(client, events).generate_plan(context)
    async for result in FileGenerator(client, staging, events).generate(files[0], context):
        print(result.content)
"""

from src.generation.file_generator import FileGenerator, FileResult
from src.generation.planner import (
    BASELINE_FILES,
    PlanGenerator,
    ProjectContext,
    fallback_plan,
    parse_plan,
)
from src.generation.prompts import build_file_prompt, build_plan_prompt, prompt_kind

__all__ = [
    "PlanGenerator",
    "ProjectContext",
    "BASELINE_FILES",
    "fallback_plan",
    "parse_plan",
    "FileGenerator",
    "FileResult",
    "build_plan_prompt",
    "build_file_prompt",
    "prompt_kind",
]
