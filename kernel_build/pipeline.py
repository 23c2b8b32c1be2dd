"""kernel-build orchestrator.

Runs one build invocation in two phases:

Phase 1: RESOLVE -- validate the base config and every plugin fragment,
                    merge them in registration order, validate the result.
Phase 2: APPLY   -- for each platform, apply every plugin's mutation to the
                    project tree through ``PluginRunner``.

Validation errors from phase 1 propagate to the caller before any mutation
runs.  Mutation failures in phase 2 are collected into the ``BuildResult``,
whose ``exit_code`` separates a clean build (0) from an aborted (1) and a
degraded one (2).

Usage::

    registry = PluginRegistry([app_icon, permissions])
    build = Build(registry, EngineSettings(project_root=Path("./app")))
    result = await build.run(Path(".kernelrc/env.prod.yaml"))
    sys.exit(result.exit_code)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, computed_field
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from kernel_build.config import EngineSettings, load_base_config
from kernel_build.engine.merger import ConfigMerger
from kernel_build.engine.registry import Plugin, PluginRegistry
from kernel_build.engine.results import PluginOutcome, RunReport, RunStatus, worst_status
from kernel_build.engine.runner import PluginRunner
from kernel_build.errors import SchemaValidationError
from kernel_build.project_tree import ProjectTree
from kernel_build.schema.models import Config
from kernel_build.schema.validation import normalize
from kernel_build.utils import (
    console,
    format_duration,
    print_error,
    print_platform_header,
    print_success,
    print_summary_table,
    print_warning,
    save_json,
)

EXIT_CODES: dict[RunStatus, int] = {
    RunStatus.OK: 0,
    RunStatus.ABORTED: 1,
    RunStatus.PARTIAL: 2,
}


# ---------------------------------------------------------------------------
# Build result
# ---------------------------------------------------------------------------

class BuildResult(BaseModel):
    """Aggregate of the per-platform run reports of one build."""

    app_key: str
    reports: dict[str, RunReport] = Field(default_factory=dict)
    started_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    finished_at: Optional[str] = None
    duration_seconds: float = Field(default=0.0, ge=0.0)

    @computed_field  # type: ignore[misc]
    @property
    def status(self) -> RunStatus:
        return worst_status([r.status for r in self.reports.values()])

    @computed_field  # type: ignore[misc]
    @property
    def exit_code(self) -> int:
        return EXIT_CODES[self.status]

    def failures(self) -> list[PluginOutcome]:
        return [o for report in self.reports.values() for o in report.failures()]

    async def save(self, path: str | Path) -> Path:
        """Write the result as JSON and return the path."""
        target = Path(path)
        await save_json(self.model_dump(mode="json"), target)
        return target


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class Build:
    """Resolves configuration and applies registered plugins to a project tree.

    Attributes:
        registry: Plugins in merge/execution order.
        settings: Engine settings for this invocation.
        merger: Validating merger bound to the registry's namespaces.
        runner: Executes one platform's mutations.
    """

    def __init__(
        self,
        registry: PluginRegistry,
        settings: EngineSettings | None = None,
        runner: PluginRunner | None = None,
    ) -> None:
        self.registry = registry
        self.settings = settings or EngineSettings()
        self.merger = ConfigMerger(
            registry.namespaces, strict_namespaces=self.settings.strict_namespaces
        )
        self.runner = runner or PluginRunner()

    # ------------------------------------------------------------------
    # Phase 1: RESOLVE
    # ------------------------------------------------------------------

    def resolve(self, base: Mapping[str, Any] | str | Path) -> Config:
        """Validate and merge *base* with every plugin fragment.

        Raises:
            SchemaValidationError: Including its ``MergeConflictError`` subclass.
        """
        return self._resolve(base)[1]

    def _resolve(self, base: Mapping[str, Any] | str | Path) -> tuple[str, Config]:
        raw = load_base_config(base) if isinstance(base, (str, Path)) else base
        app_key = self.app_key_for(raw)
        return app_key, self.merger.resolve(raw, self.registry.fragments(app_key))

    def app_key_for(self, raw: Mapping[str, Any]) -> str:
        """Inner namespace key: settings override, else ``ios.name``, else ``android.name``."""
        if self.settings.app_key:
            return self.settings.app_key
        data = normalize(raw, source="base")
        for section in ("ios", "android"):
            value = data.get(section)
            if isinstance(value, Mapping) and isinstance(value.get("name"), str):
                return value["name"]
        raise SchemaValidationError(
            "Cannot determine the app key: set ios.name in the base config or "
            "EngineSettings.app_key",
            source="base",
            errors=[{"type": "missing", "loc": ("ios", "name"), "msg": "Field required"}],
        )

    # ------------------------------------------------------------------
    # Phase 2: APPLY
    # ------------------------------------------------------------------

    async def run(
        self,
        base: Mapping[str, Any] | str | Path,
        tree: ProjectTree | None = None,
    ) -> BuildResult:
        """Resolve the configuration and apply every plugin on every platform.

        Args:
            base: Raw base configuration, or a path to a JSON / YAML file.
            tree: Project tree; defaults to ``settings.project_root``.

        Returns:
            The ``BuildResult``.  Mutation failures never raise.
        """
        build_start = time.monotonic()
        tree = tree or ProjectTree(self.settings.project_root)
        platforms = [p.value for p in self.settings.platforms]

        console.print(
            Panel(
                f"[bold bright_cyan]kernel-build[/bold bright_cyan]\n"
                f"Project   : {escape(str(tree.root))}\n"
                f"Plugins   : {escape(', '.join(p.name for p in self.registry) or '(none)')}\n"
                f"Platforms : {', '.join(platforms)}",
                title="[bold]Build Start[/bold]",
                border_style="bright_cyan",
            )
        )

        try:
            app_key, config = self._resolve(base)
        except SchemaValidationError as exc:
            print_error(f"Configuration rejected: {escape(str(exc))}")
            raise

        print_summary_table(
            {
                "App key": escape(app_key),
                "iOS bundle id": escape(config.ios.bundle_id),
                "Android package": escape(config.android.package_name),
                "Namespaces": escape(", ".join(config.plugins) or "(none)"),
            },
            title="Resolved configuration",
        )

        plugins = self.registry.list()
        result = BuildResult(app_key=app_key)

        if self.settings.concurrent_platforms:
            reports = await asyncio.gather(
                *(self._run_platform(p, config, plugins, tree) for p in platforms)
            )
        else:
            reports = [await self._run_platform(p, config, plugins, tree) for p in platforms]

        result.reports = {report.platform: report for report in reports}
        result.duration_seconds = time.monotonic() - build_start
        result.finished_at = datetime.now(timezone.utc).isoformat()

        if self.settings.report_path is not None:
            await result.save(self.settings.report_path)

        self._print_final_summary(result)
        return result

    async def _run_platform(
        self,
        platform: str,
        config: Config,
        plugins: list[Plugin],
        tree: ProjectTree,
    ) -> RunReport:
        print_platform_header(platform)
        report = await self.runner.run(platform, config, plugins, tree)

        if report.status == RunStatus.OK:
            print_success(
                f"{platform}: {len(report.outcomes)} plugin(s) applied in "
                f"{format_duration(report.duration_seconds)}"
            )
        elif report.status == RunStatus.PARTIAL:
            print_warning(
                f"{platform}: {len(report.failures())} of {len(report.outcomes)} plugin(s) failed"
            )
        else:
            print_error(
                f"{platform}: aborted, {len(report.skipped)} plugin(s) not applied"
            )
        return report

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _print_final_summary(self, result: BuildResult) -> None:
        """Print every failed plugin with its cause and the overall verdict."""
        failures = result.failures()
        if failures:
            table = Table(title="Failed plugins", show_header=True, header_style="bold red")
            table.add_column("Platform", no_wrap=True)
            table.add_column("Plugin", no_wrap=True)
            table.add_column("Fatal")
            table.add_column("Cause")
            for outcome in failures:
                failure = outcome.failure
                table.add_row(
                    outcome.platform,
                    escape(outcome.plugin),
                    "yes" if failure and failure.fatal else "no",
                    escape(f"{failure.cause_type}: {failure.message}") if failure else "",
                )
            console.print(table)

        styles = {
            RunStatus.OK: ("bold green", "[bold green]BUILD CLEAN[/bold green]"),
            RunStatus.PARTIAL: ("bold yellow", "[bold yellow]BUILD DEGRADED[/bold yellow]"),
            RunStatus.ABORTED: ("bold red", "[bold red]BUILD ABORTED[/bold red]"),
        }
        border_style, status_text = styles[result.status]

        lines = [status_text, "", f"Duration  : {format_duration(result.duration_seconds)}"]
        for platform, report in result.reports.items():
            lines.append(
                f"{platform:<10}: {report.status.value} "
                f"({len(report.succeeded())} ok, {len(report.failures())} failed, "
                f"{len(report.skipped)} skipped)"
            )
        lines.append(f"Exit code : {result.exit_code}")

        console.print()
        console.print(
            Panel("\n".join(lines), title="[bold]Build Complete[/bold]", border_style=border_style)
        )
