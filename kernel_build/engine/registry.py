"""Plugin definitions and the ordered plugin registry.

A plugin is identified by name and contributes:

* an optional configuration fragment, a deep partial of the raw config with
  a required ``plugin`` key holding the plugin's own settings payload;
* zero or more async mutation functions keyed by platform, each called as
  ``await mutation(config, tree)``;
* an opt-in ``critical`` flag: a failing critical plugin aborts the rest of
  its platform run.

Registration order is merge order and execution order.
"""

from __future__ import annotations

import copy
import types
from collections.abc import Awaitable, Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from importlib.metadata import entry_points
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from kernel_build.errors import DuplicatePluginError, SchemaValidationError
from kernel_build.engine.merger import Fragment
from kernel_build.schema.models import Config, Platform
from kernel_build.schema.namespaces import NamespaceRegistry
from kernel_build.schema.validation import validate_payload
from kernel_build.templates import camel_case

if TYPE_CHECKING:
    from kernel_build.project_tree import ProjectTree

Mutation = Callable[[Config, "ProjectTree"], Awaitable[None]]

DEFAULT_ENTRY_POINT_GROUP = "kernel_build.plugins"


def platform_key(platform: Platform | str) -> str:
    """Normalise a platform given as enum or string to its string key."""
    return platform.value if isinstance(platform, Platform) else str(platform)


@dataclass
class Plugin:
    """A named unit contributing configuration and platform mutations.

    Attributes:
        name: Plugin identity; unique within a registry.
        mutations: Platform key -> async mutation function.
        fragment: Raw partial configuration with a required ``plugin`` key.
        namespace: Top-level config key owned by the plugin.  Defaults to
            the camelCase form of *name* (``plugin-app-icon`` ->
            ``pluginAppIcon``).
        payload_model: Pydantic model validating the ``plugin`` payload and
            every app payload stored under *namespace*.
        critical: Promote mutation failures to a fatal abort.
        description: Free-form text shown in summaries.
    """

    name: str
    mutations: Mapping[Platform | str, Mutation] = field(default_factory=dict)
    fragment: Mapping[str, Any] | None = None
    namespace: str | None = None
    payload_model: type[BaseModel] | None = None
    critical: bool = False
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Plugin name must be a non-empty string")
        self.mutations = {platform_key(k): v for k, v in self.mutations.items()}
        if self.namespace is None:
            self.namespace = camel_case(self.name) or self.name

    @classmethod
    def from_module(
        cls,
        name: str,
        module: types.ModuleType | Any,
        **kwargs: Any,
    ) -> "Plugin":
        """Build a plugin from a module exposing ``ios`` / ``android`` coroutines.

        Optional module attributes ``fragment``, ``namespace``,
        ``payload_model`` and ``critical`` are used unless overridden by
        *kwargs*.
        """
        mutations = {
            p.value: getattr(module, p.value)
            for p in Platform
            if callable(getattr(module, p.value, None))
        }
        for attr in ("fragment", "namespace", "payload_model", "critical", "description"):
            if attr not in kwargs and hasattr(module, attr):
                kwargs[attr] = getattr(module, attr)
        return cls(name=name, mutations=mutations, **kwargs)

    @property
    def platforms(self) -> list[str]:
        return list(self.mutations)

    def mutation_for(self, platform: Platform | str) -> Mutation | None:
        return self.mutations.get(platform_key(platform))

    def to_fragment(self, app_key: str) -> Fragment | None:
        """Return the plugin's fragment with its payload placed in its namespace.

        The ``plugin`` payload is stored at ``plugins[namespace][app_key]``;
        every other key of the fragment is kept as written.
        """
        if self.fragment is None:
            return None
        data = copy.deepcopy(dict(self.fragment))
        payload = data.pop("plugin")
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(by_alias=True, exclude_none=True)
        plugins = data.setdefault("plugins", {})
        plugins.setdefault(self.namespace, {})[app_key] = payload
        return Fragment(data=data, owner=self.name, namespace=self.namespace)


class PluginRegistry:
    """Insertion-ordered collection of plugins for one build.

    Attributes:
        namespaces: Namespaces claimed by the registered plugins.
    """

    def __init__(self, plugins: Iterable[Plugin] = ()) -> None:
        self._plugins: dict[str, Plugin] = {}
        self.namespaces = NamespaceRegistry()
        for plugin in plugins:
            self.register(plugin)

    def register(self, plugin: Plugin) -> None:
        """Append *plugin* to the registry.

        Raises:
            DuplicatePluginError: If the name or namespace is already taken.
            SchemaValidationError: If the fragment lacks a ``plugin`` payload
                or the payload does not match ``payload_model``.
        """
        if plugin.name in self._plugins:
            raise DuplicatePluginError(plugin.name)

        if plugin.fragment is not None:
            if "plugin" not in plugin.fragment:
                raise SchemaValidationError(
                    "Fragment is missing the required 'plugin' settings payload",
                    source=plugin.name,
                    errors=[{"type": "missing", "loc": ("plugin",), "msg": "Field required"}],
                )
            if plugin.payload_model is not None:
                validate_payload(
                    plugin.payload_model, plugin.fragment["plugin"], source=plugin.name
                )

        self.namespaces.register(plugin.namespace, plugin.name, plugin.payload_model)
        self._plugins[plugin.name] = plugin

    def list(self) -> list[Plugin]:
        """Registered plugins in registration (= execution) order."""
        return list(self._plugins.values())

    def get(self, name: str) -> Plugin | None:
        return self._plugins.get(name)

    def fragments(self, app_key: str) -> list[Fragment]:
        """Ordered fragments of every plugin that declares one."""
        result = []
        for plugin in self._plugins.values():
            fragment = plugin.to_fragment(app_key)
            if fragment is not None:
                result.append(fragment)
        return result

    def for_platform(self, platform: Platform | str) -> list[Plugin]:
        return [p for p in self._plugins.values() if p.mutation_for(platform) is not None]

    @classmethod
    def from_entry_points(cls, group: str = DEFAULT_ENTRY_POINT_GROUP) -> "PluginRegistry":
        """Discover plugins advertised under an entry point group.

        Entry points are loaded in sorted name order.  An entry point may
        resolve to a ``Plugin`` instance, a zero-argument factory returning
        one, or a module exposing ``ios`` / ``android`` coroutines.
        """
        registry = cls()
        for ep in sorted(entry_points(group=group), key=lambda e: e.name):
            target = ep.load()
            if isinstance(target, Plugin):
                plugin = target
            elif isinstance(target, types.ModuleType):
                plugin = Plugin.from_module(ep.name, target)
            elif callable(target):
                plugin = target()
            else:
                raise TypeError(f"Entry point '{ep.name}' does not provide a plugin: {target!r}")
            registry.register(plugin)
        return registry

    def __iter__(self) -> Iterator[Plugin]:
        return iter(self._plugins.values())

    def __len__(self) -> int:
        return len(self._plugins)

    def __contains__(self, name: object) -> bool:
        return name in self._plugins
