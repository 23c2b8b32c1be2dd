"""kernel-build -- Plugin application engine.

Merges plugin configuration fragments into one resolved ``Config`` and
applies each plugin's platform mutations in registration order.

Public API
----------
.. autoclass:: ConfigMerger
.. autoclass:: Fragment
.. autoclass:: Plugin
.. autoclass:: PluginRegistry
.. autoclass:: PluginRunner
.. autoclass:: RunReport
"""

from .merger import ConfigMerger, Fragment, deep_merge, merge
from .registry import Plugin, PluginRegistry
from .results import (
    OutcomeStatus,
    PluginFailure,
    PluginOutcome,
    RunReport,
    RunState,
    RunStatus,
)
from .runner import PluginRunner

__all__ = [
    # Merger
    "ConfigMerger",
    "Fragment",
    "deep_merge",
    "merge",
    # Registry
    "Plugin",
    "PluginRegistry",
    # Runner
    "PluginRunner",
    # Results
    "OutcomeStatus",
    "PluginFailure",
    "PluginOutcome",
    "RunReport",
    "RunState",
    "RunStatus",
]
