"""Deep merge of a base configuration with ordered plugin fragments.

Merge rules, applied key by key:

* both values are mappings -> merge recursively;
* otherwise the later value replaces the earlier one (scalars, lists, and
  mapping/non-mapping mismatches alike);
* ``None`` in a fragment means "not provided" and never removes a key;
* ``Append([...])`` extends the existing list, and is only allowed inside
  the namespace owned by the fragment's plugin, and only onto a list (or a
  missing key).

Neither the base nor any fragment is modified; every call returns new
structures.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from kernel_build.errors import MergeConflictError
from kernel_build.schema.models import Append, Config
from kernel_build.schema.namespaces import NamespaceRegistry
from kernel_build.schema.validation import normalize, validate_config, validate_partial


@dataclass(frozen=True)
class Fragment:
    """A partial configuration contributed by one plugin.

    Attributes:
        data: Deep-partial raw configuration.
        owner: Name of the contributing plugin (used in error messages).
        namespace: Namespace the owner may ``Append`` into.
    """

    data: Mapping[str, Any] = field(default_factory=dict)
    owner: str | None = None
    namespace: str | None = None

    @property
    def label(self) -> str:
        return self.owner or "fragment"


def deep_merge(
    base: Mapping[str, Any],
    override: Mapping[str, Any],
    *,
    namespace: str | None = None,
    source: str = "",
    _path: tuple[str, ...] = (),
) -> dict[str, Any]:
    """Merge *override* onto *base* and return a new dict.

    Args:
        base: The earlier operand.
        override: The later operand; wins on conflicts.
        namespace: Namespace the override's owner may append into.
        source: Label for error messages.

    Raises:
        MergeConflictError: If ``Append`` is used outside *namespace*, or
            onto a value that is not a list.
    """
    result: dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in override.items():
        if value is None:
            continue
        path = _path + (key,)
        current = result.get(key)

        if isinstance(value, Append):
            if not _owns(path, namespace):
                raise MergeConflictError(
                    f"Append at '{'.'.join(path)}' is outside the plugin's own namespace",
                    source=source,
                    errors=[{"type": "append_not_owned", "loc": path, "msg": "Append outside owned namespace"}],
                )
            if current is not None and not isinstance(current, list):
                raise MergeConflictError(
                    f"Append at '{'.'.join(path)}' targets a {type(current).__name__}, not a list",
                    source=source,
                    errors=[{"type": "append_not_list", "loc": path, "msg": "Append onto a non-list value"}],
                )
            result[key] = (current or []) + copy.deepcopy(value.items)
        elif isinstance(value, Mapping):
            earlier = current if isinstance(current, Mapping) else {}
            result[key] = deep_merge(
                earlier, value, namespace=namespace, source=source, _path=path
            )
        else:
            result[key] = copy.deepcopy(value)
    return result


def merge(
    base: Mapping[str, Any],
    fragments: Iterable[Fragment | Mapping[str, Any]],
) -> dict[str, Any]:
    """Fold *fragments* onto *base* in order, without validation.

    Namespace keys written at top level are normalised under ``plugins``
    first, so both spellings merge into the same place.
    """
    result = normalize(base, source="base")
    for index, fragment in enumerate(fragments):
        fragment = _as_fragment(fragment, index)
        result = deep_merge(
            result,
            normalize(fragment.data, source=fragment.label),
            namespace=fragment.namespace,
            source=fragment.label,
        )
    # normalize() shares nested values with the base when nothing was merged.
    return copy.deepcopy(result)


class ConfigMerger:
    """Validates and merges configuration documents into a frozen ``Config``.

    Attributes:
        namespaces: Registered plugin namespaces, or ``None`` to skip
            namespace checks.
        strict_namespaces: Reject namespaces no registered plugin owns.
    """

    def __init__(
        self,
        namespaces: NamespaceRegistry | None = None,
        *,
        strict_namespaces: bool = True,
    ) -> None:
        self.namespaces = namespaces
        self.strict_namespaces = strict_namespaces

    def merge(
        self,
        base: Mapping[str, Any],
        fragments: Iterable[Fragment | Mapping[str, Any]],
    ) -> dict[str, Any]:
        """Validate every input as a deep partial, then merge them."""
        ordered = [_as_fragment(f, i) for i, f in enumerate(fragments)]
        validate_partial(
            base,
            source="base",
            namespaces=self.namespaces,
            strict_namespaces=self.strict_namespaces,
            identity_conflicts=False,
        )
        for fragment in ordered:
            validate_partial(
                fragment.data,
                source=fragment.label,
                namespaces=self.namespaces,
                strict_namespaces=self.strict_namespaces,
            )
        return merge(base, ordered)

    def resolve(
        self,
        base: Mapping[str, Any],
        fragments: Iterable[Fragment | Mapping[str, Any]],
    ) -> Config:
        """Merge and fully validate; returns the immutable resolved ``Config``."""
        merged = self.merge(base, fragments)
        return validate_config(
            merged,
            namespaces=self.namespaces,
            strict_namespaces=self.strict_namespaces,
        )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _as_fragment(fragment: Fragment | Mapping[str, Any], index: int) -> Fragment:
    if isinstance(fragment, Fragment):
        return fragment
    return Fragment(data=fragment, owner=f"fragment[{index}]")


def _owns(path: tuple[str, ...], namespace: str | None) -> bool:
    return (
        namespace is not None
        and len(path) >= 3
        and path[0] == "plugins"
        and path[1] == namespace
    )
