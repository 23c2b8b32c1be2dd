"""Typed registry of plugin configuration namespaces.

Each plugin owns one top-level namespace key.  Registering the namespace with
a pydantic model keeps unknown top-level keys checkable: the merged config
only accepts namespaces that a registered plugin has claimed.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from pydantic import BaseModel

from kernel_build.errors import DuplicatePluginError


class NamespaceRegistry:
    """Mapping of namespace key -> (owning plugin, payload model)."""

    def __init__(self) -> None:
        self._owners: dict[str, str] = {}
        self._models: dict[str, type[BaseModel] | None] = {}

    def register(
        self,
        namespace: str,
        owner: str,
        model: type[BaseModel] | None = None,
    ) -> None:
        """Claim *namespace* for the plugin *owner*.

        Raises:
            DuplicatePluginError: If another plugin already owns the namespace.
        """
        current = self._owners.get(namespace)
        if current is not None and current != owner:
            raise DuplicatePluginError(
                owner,
                f"Namespace '{namespace}' requested by '{owner}' is already owned by '{current}'",
            )
        self._owners[namespace] = owner
        self._models[namespace] = model

    def owner(self, namespace: str) -> str | None:
        return self._owners.get(namespace)

    def model_for(self, namespace: str) -> type[BaseModel] | None:
        return self._models.get(namespace)

    def validate_payload(self, namespace: str, payload: Any) -> Any:
        """Validate one app payload of *namespace*; unmodelled payloads pass through."""
        model = self._models.get(namespace)
        if model is None:
            return payload
        if isinstance(payload, model):
            return payload
        return model.model_validate(payload)

    def __contains__(self, namespace: object) -> bool:
        return namespace in self._owners

    def __iter__(self) -> Iterator[str]:
        return iter(self._owners)

    def __len__(self) -> int:
        return len(self._owners)
