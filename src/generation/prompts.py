"""Prompt construction for planning and per-file generation.

Every prompt pins the same target stack so files generated independently
still fit together.  File prompts are chosen by path pattern; each one
carries the project description and the sibling paths so the model can
import from files it has not seen yet.
"""

from __future__ import annotations

from collections.abc import Iterable

STACK_DESCRIPTION = (
    "Next.js 14 with the App Router, TypeScript, Tailwind CSS, and shadcn/ui "
    "components (imported from \"@/components/ui/...\")"
)

PLAN_EXAMPLE = (
    '["app/layout.tsx", "app/page.tsx", "app/globals.css", '
    '"components/navbar.tsx", "components/hero.tsx", "app/about/page.tsx"]'
)


def build_plan_prompt(description: str, provisioned: Iterable[str], max_files: int) -> str:
    """Ask for an ordered JSON array of the files to generate."""
    excluded = ", ".join(sorted(provisioned))
    return f"""You are an expert Next.js developer. Design the file structure for this project: "{description}"

Target stack: {STACK_DESCRIPTION}.

Requirements:
- Use the App Router (app/ directory) with TypeScript (.tsx/.ts files)
- Break the UI into reusable components under components/ and import them correctly
- Put any backend code in app/api/**/route.ts
- Include app/layout.tsx, app/page.tsx and app/globals.css
- Do NOT include these files, they already exist: {excluded}, and anything under components/ui/
- At most {max_files} files

Return ONLY a JSON array of file paths in order of importance, for example:
{PLAN_EXAMPLE}"""


def _context_block(description: str, path: str, siblings: list[str]) -> str:
    others = ", ".join(p for p in siblings if p != path) or "(none)"
    return (
        f"Project: {description}\n"
        f"Framework: {STACK_DESCRIPTION}\n"
        f"Current file: {path}\n"
        f"Other files in project: {others}\n"
        "Already available: lib/utils.ts (exports cn), components/ui/button.tsx, card.tsx, "
        "input.tsx, textarea.tsx, badge.tsx, label.tsx"
    )


def prompt_kind(path: str) -> str:
    """Classify *path* into the prompt family used to generate it."""
    if path.endswith("layout.tsx"):
        return "layout"
    if path.endswith("page.tsx"):
        return "page"
    if path.startswith("components/") or "/components/" in path:
        return "component"
    if path.endswith("globals.css"):
        return "stylesheet"
    return "generic"


def build_file_prompt(path: str, description: str, siblings: list[str]) -> str:
    """Return the generation prompt for one file."""
    context = _context_block(description, path, siblings)
    kind = prompt_kind(path)

    if kind == "layout":
        return f"""Create {path}, the layout for: "{description}"
{context}

Include:
- Proper HTML structure
- Font loading with next/font (Inter or similar)
- A metadata export
- The global CSS import ("./globals.css") in the root layout
- Clean, semantic structure

Return only the TypeScript React code."""

    if kind == "page":
        return f"""Create {path} for: "{description}"
{context}

Requirements:
- Use TypeScript and React
- Use Tailwind CSS for styling
- Create a functional, attractive page that matches the project description
- Compose it from the project's components
- Add "use client" only if the page uses state or effects

Return only the TypeScript React code."""

    if kind == "component":
        return f"""Create the component {path} for: "{description}"
{context}

Requirements:
- Use TypeScript and React
- Use Tailwind CSS for styling
- Create a reusable, well-structured component with typed props
- Use a default export AND a named export of the component
- Add "use client" only if the component uses state, effects or event handlers

Return only the TypeScript React code."""

    if kind == "stylesheet":
        return f"""Create {path} for: "{description}"
{context}

Include the Tailwind directives (@tailwind base; @tailwind components; @tailwind utilities;)
and the shadcn/ui CSS variables (--background, --foreground, --primary, --secondary,
--muted, --accent, --destructive, --border, --input, --ring, --radius) for :root and .dark.

Return only the CSS code."""

    return f"""Create {path} for the project: "{description}"
{context}

Requirements:
- Use appropriate technology for the file type
- Make it functional and production-ready
- Integrate well with the overall project

Return only the file content, no explanations."""
