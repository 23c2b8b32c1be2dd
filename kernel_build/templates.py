"""Jinja2 template rendering for files generated into the project tree.

Provides the TemplateRenderer class.  Templates are looked up first in an
optional template directory and then among the built-in templates bundled in
this module (``android/adaptive-icon.xml``, ``ios/Contents.json``).
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from jinja2 import ChoiceLoader, DictLoader, Environment, FileSystemLoader, select_autoescape


# ---------------------------------------------------------------------------
# Built-in templates
# ---------------------------------------------------------------------------

BUILTIN_TEMPLATES: dict[str, str] = {
    "android/adaptive-icon.xml": (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        '<adaptive-icon xmlns:android="http://schemas.android.com/apk/res/android">\n'
        '    <background android:drawable="@mipmap/{{ background | default(\'ic_launcher_background\') }}"/>\n'
        '    <foreground android:drawable="@mipmap/{{ foreground | default(\'ic_launcher_foreground\') }}"/>\n'
        "</adaptive-icon>\n"
    ),
    "ios/Contents.json": (
        "{{ {'images': images | default([]), 'info': {'author': 'xcode', 'version': 1}}"
        " | tojson(indent=2) }}\n"
    ),
}


# ---------------------------------------------------------------------------
# TemplateRenderer
# ---------------------------------------------------------------------------


class TemplateRenderer:
    """Renders Jinja2 templates for generated project files."""

    def __init__(self, template_dir: str | Path | None = None) -> None:
        loaders = []
        self.template_dir = Path(template_dir) if template_dir is not None else None
        if self.template_dir is not None:
            loaders.append(FileSystemLoader(str(self.template_dir)))
        loaders.append(DictLoader(BUILTIN_TEMPLATES))

        self.env = Environment(
            loader=ChoiceLoader(loaders),
            autoescape=select_autoescape([]),
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["pascal_case"] = pascal_case
        self.env.filters["camel_case"] = camel_case

    def render(self, template_name: str, context: dict[str, Any]) -> str:
        """Render a named template (template directory first, then built-ins)."""
        template = self.env.get_template(template_name)
        return template.render(**context)

    def render_string(self, template_string: str, context: dict[str, Any]) -> str:
        """Render an inline template string with the provided context."""
        template = self.env.from_string(template_string)
        return template.render(**context)

    def list_templates(self) -> list[str]:
        """Return every template name visible to the renderer, sorted."""
        return sorted(set(self.env.list_templates()))


# ---------------------------------------------------------------------------
# Case helpers (also registered as Jinja2 filters)
# ---------------------------------------------------------------------------

def pascal_case(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``SomeThing``."""
    parts = re.split(r"[-_\s]+", value)
    return "".join(word[:1].upper() + word[1:] for word in parts if word)


def camel_case(value: str) -> str:
    """Convert ``plugin-app-icon`` to ``pluginAppIcon``."""
    pascal = pascal_case(value)
    if pascal:
        return pascal[0].lower() + pascal[1:]
    return ""
