"""Jinja2 rendering of the files seeded into every sandbox.

Provides the TemplateRenderer class which loads Jinja2 templates from the
``src/sandbox/templates/`` directory.  Unlike a disk scaffolder, rendered
trees are returned as ``{relative_path: content}`` mappings because they are
written into the sandbox rather than the local file system.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape


_DEFAULT_TEMPLATE_DIR = Path(__file__).parent / "templates"


class TemplateRenderer:
    """Renders the ``.j2`` templates that make up the pre-provisioned project.

    Template paths mirror the destination paths: ``project/lib/utils.ts.j2``
    rendered with ``prefix="project"`` becomes ``lib/utils.ts``.
    """

    def __init__(self, template_dir: str | Path | None = None) -> None:
        if template_dir is None:
            template_dir = _DEFAULT_TEMPLATE_DIR
        self.template_dir = Path(template_dir)
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape([]),
            keep_trailing_newline=True,
            undefined=StrictUndefined,
        )
        self.env.filters["slugify"] = _slugify_filter

    def render(self, template_path: str, context: dict[str, Any]) -> str:
        """Render a single template with the provided context.

        Args:
            template_path: Path relative to the template directory (e.g.
                ``"project/package.json.j2"``).
            context: Dictionary of variables available inside the template.
        """
        template = self.env.get_template(template_path)
        return template.render(**context)

    def render_tree(self, prefix: str, context: dict[str, Any]) -> dict[str, str]:
        """Render every ``*.j2`` file under *prefix*.

        Returns:
            ``{output_path: content}`` in sorted template order, with the
            prefix and the ``.j2`` suffix removed from each key.
        """
        rendered: dict[str, str] = {}
        for template_key in self.list_templates(prefix):
            rel = template_key[len(prefix):].lstrip("/") if prefix else template_key
            output_path = rel[: -len(".j2")]
            rendered[output_path] = self.render(template_key, context)
        return rendered

    def list_templates(self, prefix: str = "") -> list[str]:
        """Return a sorted list of all ``.j2`` template paths under *prefix*.

        Paths are relative to the template root and use forward slashes.
        """
        search_dir = self.template_dir / prefix if prefix else self.template_dir
        if not search_dir.is_dir():
            return []
        return sorted(
            p.relative_to(self.template_dir).as_posix()
            for p in search_dir.rglob("*.j2")
        )


def _slugify_filter(value: str) -> str:
    """Convert a string to an npm/URL-safe slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower().strip())
    return slug.strip("-") or "webforge-app"
