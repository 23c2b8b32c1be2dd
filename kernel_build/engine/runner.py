"""Sequential, fault-isolated execution of plugin mutations for one platform.

Mutations on the same project tree do not commute (two plugins inserting
into one file see each other's insertions), so plugins run strictly one at
a time in registration order.  Each mutation receives its own deep copy of
the resolved configuration, so writes into its nested mappings stay local to
that call.  A failing plugin is recorded and the run moves on, unless the
plugin is critical, in which case the run stops and the partial report is
returned.  ``run`` never raises for mutation failures.
"""

from __future__ import annotations

import time
from collections.abc import Iterable

from rich.markup import escape

from kernel_build.errors import MutationError
from kernel_build.engine.registry import Plugin, platform_key
from kernel_build.engine.results import (
    OutcomeStatus,
    PluginFailure,
    PluginOutcome,
    RunReport,
    RunState,
)
from kernel_build.project_tree import ProjectTree
from kernel_build.schema.models import Config, Platform
from kernel_build.utils import console, format_duration


class PluginRunner:
    """Applies plugin mutation functions to a project tree.

    The runner keeps no state between runs; one instance can serve both
    platforms, including concurrently.
    """

    async def run(
        self,
        platform: Platform | str,
        config: Config,
        plugins: Iterable[Plugin],
        tree: ProjectTree,
    ) -> RunReport:
        """Invoke every plugin that has a mutation for *platform*.

        Args:
            platform: Target platform.
            config: The resolved configuration; each mutation gets a deep copy.
            plugins: Plugins in execution order.
            tree: Project tree passed to each mutation.

        Returns:
            The ``RunReport``; its ``status`` is ``ok``, ``partial`` or
            ``aborted``.
        """
        key = platform_key(platform)
        report = RunReport(platform=key)
        applicable = [p for p in plugins if p.mutation_for(key) is not None]

        report.mark_running()
        run_start = time.monotonic()

        for index, plugin in enumerate(applicable):
            mutation = plugin.mutation_for(key)
            step_start = time.monotonic()
            try:
                await mutation(config.model_copy(deep=True), tree)
            except Exception as exc:
                elapsed = time.monotonic() - step_start
                error = MutationError(plugin.name, key, exc)
                report.outcomes.append(
                    PluginOutcome(
                        plugin=plugin.name,
                        platform=key,
                        status=OutcomeStatus.FAILED,
                        duration_seconds=elapsed,
                        failure=PluginFailure.from_error(error, fatal=plugin.critical),
                        error=error,
                    )
                )
                console.print(
                    f"  [red]x[/red] {escape(plugin.name)} "
                    f"[dim]({format_duration(elapsed)})[/dim]: {escape(str(error))}"
                )
                if plugin.critical:
                    report.skipped = [p.name for p in applicable[index + 1:]]
                    console.print(
                        f"  [bold red]Critical plugin {escape(plugin.name)} failed -- "
                        f"aborting {key} run[/bold red]"
                    )
                    break
                continue

            elapsed = time.monotonic() - step_start
            report.outcomes.append(
                PluginOutcome(
                    plugin=plugin.name,
                    platform=key,
                    status=OutcomeStatus.SUCCESS,
                    duration_seconds=elapsed,
                )
            )
            console.print(
                f"  [green]+[/green] {escape(plugin.name)} "
                f"[dim]({format_duration(elapsed)})[/dim]"
            )
        else:
            report.mark_finished(RunState.COMPLETED, time.monotonic() - run_start)
            return report

        report.mark_finished(RunState.ABORTED, time.monotonic() - run_start)
        return report
