"""Handle on the generated native project tree that plugins mutate.

Every mutation function receives a ``ProjectTree`` explicitly.  It knows the
well-known locations inside a generated React Native project and offers
structured read/modify/write helpers (plist, JSON, templates) next to plain
text patching.  All file-system failures surface as ``ResourceError``.

Plugins assume a pristine, freshly generated tree: applying the same plugin
set twice to one tree is unsupported and may duplicate inserted content.
"""

from __future__ import annotations

import asyncio
import json
import plistlib
import re
import shutil
from collections.abc import Callable
from pathlib import Path
from typing import Any
from xml.parsers.expat import ExpatError

from jinja2 import TemplateError

from kernel_build.errors import ResourceError
from kernel_build.schema.models import Config
from kernel_build.templates import TemplateRenderer


class ProjectTree:
    """Generated project rooted at *root*.

    Attributes:
        root: Absolute project root (the directory holding ``ios/`` and
            ``android/``).
        renderer: Template renderer used by ``render_file``.
    """

    def __init__(
        self,
        root: str | Path,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.root = Path(root).resolve()
        self.renderer = renderer or TemplateRenderer()

    def __repr__(self) -> str:
        return f"ProjectTree({str(self.root)!r})"

    # ------------------------------------------------------------------
    # Path resolvers
    # ------------------------------------------------------------------

    def resolve(self, *parts: str | Path) -> Path:
        """Resolve *parts* under the project root.

        Raises:
            ResourceError: If the resulting path escapes the root.
        """
        path = self.root.joinpath(*parts).resolve()
        if path != self.root and self.root not in path.parents:
            raise ResourceError(path, f"path escapes project root {self.root}")
        return path

    @property
    def ios_dir(self) -> Path:
        return self.root / "ios"

    @property
    def android_dir(self) -> Path:
        return self.root / "android"

    def info_plist_path(self, config: Config) -> Path:
        return self.ios_dir / config.ios.name / "Info.plist"

    def app_delegate_path(self, config: Config) -> Path:
        return self.ios_dir / config.ios.name / "AppDelegate.mm"

    def entitlements_path(self, config: Config) -> Path:
        return self.ios_dir / config.ios.name / f"{config.ios.name}.entitlements"

    def app_icon_set_path(self, config: Config) -> Path:
        return self.ios_dir / config.ios.name / "Images.xcassets" / "AppIcon.appiconset"

    def podfile_path(self) -> Path:
        return self.ios_dir / "Podfile"

    def android_manifest_path(self) -> Path:
        return self.android_dir / "app" / "src" / "main" / "AndroidManifest.xml"

    def app_gradle_path(self) -> Path:
        return self.android_dir / "app" / "build.gradle"

    def project_gradle_path(self) -> Path:
        return self.android_dir / "build.gradle"

    def android_resources_path(self) -> Path:
        return self.android_dir / "app" / "src" / "main" / "res"

    # ------------------------------------------------------------------
    # Text
    # ------------------------------------------------------------------

    async def read_text(self, path: str | Path) -> str:
        target = self.resolve(path)
        try:
            return await asyncio.to_thread(target.read_text, "utf-8")
        except OSError as exc:
            raise ResourceError(target, f"cannot read: {exc}") from exc

    async def write_text(self, path: str | Path, content: str) -> Path:
        """Write *content*, creating parent directories as needed."""
        target = self.resolve(path)
        try:
            await asyncio.to_thread(_write_file, target, content)
        except OSError as exc:
            raise ResourceError(target, f"cannot write: {exc}") from exc
        return target

    async def keyword_exists(self, path: str | Path, keyword: str) -> bool:
        """Return ``True`` if *keyword* occurs literally in the file."""
        return keyword in await self.read_text(path)

    async def patch_text(
        self,
        path: str | Path,
        pattern: str | re.Pattern[str],
        replacement: str | Callable[[re.Match[str]], str],
        *,
        count: int = 1,
    ) -> bool:
        """Regex-substitute inside a file.

        Prefer the structured helpers where a parser exists; regex insertion
        depends on what earlier plugins inserted into the same file.

        Returns:
            ``True`` if at least one substitution was made.  The file is only
            rewritten when something matched.
        """
        content = await self.read_text(path)
        updated, made = re.subn(pattern, replacement, content, count=count)
        if made:
            await self.write_text(path, updated)
        return made > 0

    # ------------------------------------------------------------------
    # Structured formats
    # ------------------------------------------------------------------

    async def read_plist(self, path: str | Path) -> dict[str, Any]:
        target = self.resolve(path)
        try:
            data = await asyncio.to_thread(_load_plist, target)
        except (OSError, plistlib.InvalidFileException, ExpatError, ValueError) as exc:
            raise ResourceError(target, f"cannot parse plist: {exc}") from exc
        if not isinstance(data, dict):
            raise ResourceError(target, "plist root is not a dictionary")
        return data

    async def write_plist(self, path: str | Path, data: dict[str, Any]) -> Path:
        """Write *data* as an XML plist, preserving key order."""
        try:
            content = plistlib.dumps(data, fmt=plistlib.FMT_XML, sort_keys=False)
        except (TypeError, OverflowError) as exc:
            raise ResourceError(path, f"cannot serialise plist: {exc}") from exc
        target = self.resolve(path)
        try:
            await asyncio.to_thread(_write_bytes, target, content)
        except OSError as exc:
            raise ResourceError(target, f"cannot write: {exc}") from exc
        return target

    async def update_plist(
        self,
        path: str | Path,
        updater: Callable[[dict[str, Any]], dict[str, Any] | None],
    ) -> dict[str, Any]:
        """Parse, modify and re-serialise a plist.

        *updater* may mutate the dict in place (returning ``None``) or return
        a replacement dict.
        """
        data = await self.read_plist(path)
        result = updater(data)
        if result is not None:
            data = result
        await self.write_plist(path, data)
        return data

    async def read_json(self, path: str | Path) -> Any:
        content = await self.read_text(path)
        try:
            return json.loads(content)
        except json.JSONDecodeError as exc:
            raise ResourceError(self.resolve(path), f"invalid JSON: {exc}") from exc

    async def write_json(self, path: str | Path, data: Any) -> Path:
        return await self.write_text(path, json.dumps(data, indent=2) + "\n")

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def render_file(
        self,
        path: str | Path,
        template_name: str,
        context: dict[str, Any] | None = None,
    ) -> Path:
        """Render a named template into *path*."""
        try:
            content = self.renderer.render(template_name, context or {})
        except TemplateError as exc:
            raise ResourceError(path, f"cannot render template {template_name!r}: {exc}") from exc
        return await self.write_text(path, content)

    async def copy_into(self, source: str | Path, destination: str | Path) -> Path:
        """Copy a file or directory from outside the tree into it."""
        src = Path(source)
        target = self.resolve(destination)
        try:
            await asyncio.to_thread(_copy, src, target)
        except OSError as exc:
            raise ResourceError(src, f"cannot copy to {target}: {exc}") from exc
        return target


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _write_file(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _write_bytes(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)


def _load_plist(path: Path) -> Any:
    with path.open("rb") as fh:
        return plistlib.load(fh)


def _copy(source: Path, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    if source.is_dir():
        shutil.copytree(source, target, dirs_exist_ok=True)
    else:
        shutil.copy2(source, target)
