"""kernel-build -- Configuration schema.

Typed models for the resolved build configuration, the plugin namespace
registry, and the validation helpers that turn raw documents into a frozen
``Config``.
"""

from kernel_build.schema.models import (
    Android,
    Append,
    Config,
    IOS,
    Platform,
    TargetedDevices,
)
from kernel_build.schema.namespaces import NamespaceRegistry
from kernel_build.schema.validation import (
    normalize,
    validate_config,
    validate_partial,
    validate_payload,
)

__all__ = [
    "Android",
    "Append",
    "Config",
    "IOS",
    "NamespaceRegistry",
    "Platform",
    "TargetedDevices",
    "normalize",
    "validate_config",
    "validate_partial",
    "validate_payload",
]
