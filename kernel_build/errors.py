"""Exception hierarchy for the kernel-build engine.

Validation-phase errors (schema, merge, registry) abort a build before any
mutation runs.  ``MutationError`` is the uniform wrapper the runner records
when a plugin's mutation function fails; ``ResourceError`` is raised by
project-tree helpers for file and external tool failures.
"""

from __future__ import annotations

from typing import Any


class KernelError(Exception):
    """Base class for every error raised by kernel-build."""


class SchemaValidationError(KernelError):
    """A fragment or the merged configuration failed required-field/type checks.

    Attributes:
        source: Label of the offending input (``"base"``, a plugin name, or
            ``"merged"``).
        errors: The pydantic error dictionaries, with ``loc`` rewritten to the
            full path inside the raw configuration.
    """

    def __init__(
        self,
        message: str,
        *,
        source: str = "",
        errors: list[dict[str, Any]] | None = None,
    ) -> None:
        self.source = source
        self.errors = errors or []
        prefix = f"[{source}] " if source else ""
        super().__init__(f"{prefix}{message}")

    def locations(self) -> list[str]:
        """Return the dotted paths of every recorded error."""
        return [".".join(str(part) for part in err.get("loc", ())) for err in self.errors]


class MergeConflictError(SchemaValidationError):
    """A fragment redefined an identity field incompatibly or appended outside its namespace."""


class DuplicatePluginError(KernelError):
    """A plugin identity (or the namespace it claims) is already registered."""

    def __init__(self, name: str, message: str | None = None) -> None:
        self.name = name
        super().__init__(message or f"Plugin '{name}' is already registered")


class ResourceError(KernelError):
    """A file or external tool operation inside the project tree failed."""

    def __init__(self, path: Any, message: str) -> None:
        self.path = path
        super().__init__(f"{path}: {message}")


class MutationError(KernelError):
    """A plugin's mutation function raised during execution.

    The runner does not distinguish resource failures from logic failures;
    the original exception is kept as ``cause`` (and ``__cause__``).
    """

    def __init__(self, plugin: str, platform: str, cause: BaseException) -> None:
        self.plugin = plugin
        self.platform = platform
        self.cause = cause
        self.__cause__ = cause
        super().__init__(
            f"Plugin '{plugin}' failed on {platform}: {type(cause).__name__}: {cause}"
        )

    @property
    def cause_type(self) -> str:
        return type(self.cause).__name__
