"""Shared utility functions for WebForge.

Provides Rich-based console reporting, duration formatting, name sanitising,
and the markdown code-fence stripping used on every model response.
"""

from __future__ import annotations

import re

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

# ---------------------------------------------------------------------------
# Model output helpers
# ---------------------------------------------------------------------------

_OPENING_FENCE = re.compile(r"^\s*```[\w+.-]*[ \t]*\n?")
_CLOSING_FENCE = re.compile(r"\n?[ \t]*```\s*$")


def strip_code_fences(text: str) -> str:
    """Remove a markdown code fence that wraps the *whole* text.

    Models frequently answer "return only the code" with a fenced block.
    Only an enclosing fence is removed; fences inside the content (e.g. in a
    generated README) are left alone.  Text without an enclosing fence is
    returned unchanged.

    Examples::

        strip_code_fences("```tsx\\nexport {}\\n```") -> "export {}"
        strip_code_fences("plain") -> "plain"
    """
    if not _OPENING_FENCE.match(text):
        return text
    inner = _OPENING_FENCE.sub("", text, count=1)
    inner = _CLOSING_FENCE.sub("", inner, count=1)
    return inner.strip()


# ---------------------------------------------------------------------------
# String / name helpers
# ---------------------------------------------------------------------------


def sanitize_name(name: str, default: str = "webforge-app") -> str:
    """Convert an arbitrary description to an npm-safe package name.

    Examples::

        sanitize_name("Build a Blog Website!") -> "build-a-blog-website"
        sanitize_name("   ") -> "webforge-app"
    """
    result = re.sub(r"[^a-z0-9_-]", "-", name.strip().lower())
    result = re.sub(r"-+", "-", result).strip("-")
    # npm limits package names to 214 chars; keep it readable.
    return result[:50].strip("-") or default


def truncate(text: str, limit: int = 2000) -> str:
    """Keep the *last* ``limit`` characters of a log blob."""
    if len(text) <= limit:
        return text
    return "..." + text[-limit:]


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string.

    Examples::

        format_duration(3.7)    -> "3.7s"
        format_duration(65.2)   -> "1m 5s"
        format_duration(3661.0) -> "1h 1m 1s"
    """
    if seconds < 0:
        return "0.0s"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = seconds % 60

    parts: list[str] = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")

    if hours > 0 or minutes > 0:
        parts.append(f"{int(secs)}s")
    else:
        parts.append(f"{secs:.1f}s")

    return " ".join(parts)


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


def print_banner(title: str, body: str, style: str = "bright_cyan") -> None:
    """Print a bordered panel, used at the start and end of a run."""
    console.print(
        Panel(body, title=f"[bold]{title}[/bold]", border_style=style)
    )


def print_summary_table(data: dict[str, str], title: str = "Summary") -> None:
    """Print a two-column key/value summary table.

    Args:
        data: Mapping of label -> value.
        title: Table title.
    """
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    for key, value in data.items():
        table.add_row(key, str(value))

    console.print(table)
    console.print()


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{message}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message."""
    console.print(f"[bold red]{message}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]{message}[/bold yellow]")
