"""Shared utility functions for kernel-build.

Provides JSON / YAML I/O, file-system helpers, Rich-based progress reporting
and duration formatting.  Console output for the whole package goes through
the ``console`` instance defined here.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import yaml
from rich.console import Console
from rich.rule import Rule
from rich.table import Table

console = Console()

# ---------------------------------------------------------------------------
# JSON / YAML I/O
# ---------------------------------------------------------------------------


def load_json(path: str | Path) -> Any:
    """Parse a JSON document from disk and return it as-is.

    Raises:
        FileNotFoundError: If the file does not exist.
        json.JSONDecodeError: If the file is not valid JSON.
    """
    return json.loads(Path(path).read_text(encoding="utf-8"))


def load_yaml(path: str | Path) -> Any:
    """Parse a YAML document from disk; an empty document yields ``{}``."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    return {} if data is None else data


async def save_json(data: dict[str, Any] | list[Any], path: str | Path) -> None:
    """Save data as pretty-printed JSON.

    Parent directories are created automatically.  The write itself is
    performed in a thread to avoid blocking the event loop.
    """
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(data, indent=2, ensure_ascii=False, default=str)
    await asyncio.to_thread(file_path.write_text, content, "utf-8")


def ensure_dir(path: str | Path) -> Path:
    """Create *path* and its parents as needed; returns the resolved path."""
    target = Path(path).resolve()
    target.mkdir(parents=True, exist_ok=True)
    return target


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_duration(seconds: float) -> str:
    """Render *seconds* as ``3.7s``, ``1m 5s`` or ``1h 1m 1s``."""
    if seconds < 60:
        return f"{max(seconds, 0.0):.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    return f"{minutes}m {secs}s"


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


PLATFORM_COLORS: dict[str, str] = {
    "ios": "bright_cyan",
    "android": "bright_green",
}


def print_platform_header(platform: str) -> None:
    """Print a full-width rule announcing a platform run."""
    color = PLATFORM_COLORS.get(platform, "white")
    console.print()
    console.print(
        Rule(
            f"[bold {color}] Platform: {platform.upper()} [/bold {color}]",
            style=color,
        )
    )
    console.print()


def print_summary_table(data: dict[str, str], title: str = "Summary") -> None:
    """Print a two-column key/value table."""
    table = Table(title=title, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")
    for key, value in data.items():
        table.add_row(key, str(value))
    console.print(table)
    console.print()


# Run outcome -> console style.
STATUS_STYLES: dict[str, str] = {
    "success": "bold green",
    "warning": "bold yellow",
    "error": "bold red",
}


def print_status(kind: str, message: str) -> None:
    style = STATUS_STYLES[kind]
    console.print(f"[{style}]{message}[/{style}]")


def print_success(message: str) -> None:
    print_status("success", message)


def print_error(message: str) -> None:
    print_status("error", message)


def print_warning(message: str) -> None:
    print_status("warning", message)
