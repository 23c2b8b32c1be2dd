"""kernel-build -- plugin-driven configuration of generated mobile projects.

Quick usage::

    from kernel_build import Build, EngineSettings, Plugin, PluginRegistry

    async def ios(config, tree):
        await tree.update_plist(
            tree.info_plist_path(config),
            lambda plist: plist.update(CFBundleDisplayName=config.ios.display_name),
        )

    registry = PluginRegistry([Plugin(name="display-name", mutations={"ios": ios})])
    result = await Build(registry, EngineSettings(project_root=root)).run(base_config)
"""

from kernel_build.config import EngineSettings, load_base_config
from kernel_build.engine import (
    ConfigMerger,
    Fragment,
    OutcomeStatus,
    Plugin,
    PluginRegistry,
    PluginRunner,
    RunReport,
    RunState,
    RunStatus,
    merge,
)
from kernel_build.errors import (
    DuplicatePluginError,
    KernelError,
    MergeConflictError,
    MutationError,
    ResourceError,
    SchemaValidationError,
)
from kernel_build.pipeline import Build, BuildResult
from kernel_build.project_tree import ProjectTree
from kernel_build.schema import Append, Config, NamespaceRegistry, Platform

__all__ = [
    "Append",
    "Build",
    "BuildResult",
    "Config",
    "ConfigMerger",
    "DuplicatePluginError",
    "EngineSettings",
    "Fragment",
    "KernelError",
    "MergeConflictError",
    "MutationError",
    "NamespaceRegistry",
    "OutcomeStatus",
    "Platform",
    "Plugin",
    "PluginRegistry",
    "PluginRunner",
    "ProjectTree",
    "ResourceError",
    "RunReport",
    "RunState",
    "RunStatus",
    "SchemaValidationError",
    "load_base_config",
    "merge",
]
