"""kernel-build engine settings.

Centralised, typed settings for a build invocation. Uses a Pydantic v2 model
so values are validated at construction time and can be serialised to/from
JSON or read from environment variables.  This is the engine's own
configuration, not the application ``Config`` plugins receive.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from kernel_build.schema.models import Platform
from kernel_build.utils import ensure_dir, load_json, load_yaml

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


class EngineSettings(BaseModel):
    """Settings for one build invocation.

    Instances are typically created once by the caller and handed to
    ``Build``.
    """

    project_root: Path = Field(default=Path("."), description="Generated project root")
    app_key: Optional[str] = Field(
        default=None,
        description="Inner namespace key for plugin payloads; defaults to the base ios.name",
    )
    platforms: list[Platform] = Field(default=[Platform.IOS, Platform.ANDROID])
    concurrent_platforms: bool = Field(
        default=False, description="Run the platform runs concurrently"
    )
    strict_namespaces: bool = Field(
        default=True, description="Reject namespaces no registered plugin owns"
    )
    report_path: Optional[Path] = Field(
        default=None, description="Write the build report JSON here when set"
    )

    @field_validator("platforms")
    @classmethod
    def _unique_platforms(cls, value: list[Platform]) -> list[Platform]:
        if not value:
            raise ValueError("at least one platform is required")
        seen: list[Platform] = []
        for platform in value:
            if platform not in seen:
                seen.append(platform)
        return seen

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Persist the settings to a JSON file and return the path."""
        target = Path(path)
        ensure_dir(target.parent)
        target.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path) -> "EngineSettings":
        """Load previously-saved settings from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """Build settings from environment variables.

        Recognised variables (all optional):
            KERNEL_PROJECT_ROOT, KERNEL_APP_KEY, KERNEL_PLATFORMS,
            KERNEL_CONCURRENT_PLATFORMS, KERNEL_STRICT_NAMESPACES,
            KERNEL_REPORT_PATH.
        """
        kwargs: dict[str, Any] = {}
        if os.environ.get("KERNEL_PROJECT_ROOT"):
            kwargs["project_root"] = Path(os.environ["KERNEL_PROJECT_ROOT"])
        if os.environ.get("KERNEL_APP_KEY"):
            kwargs["app_key"] = os.environ["KERNEL_APP_KEY"]
        if os.environ.get("KERNEL_PLATFORMS"):
            kwargs["platforms"] = [
                p.strip().lower() for p in os.environ["KERNEL_PLATFORMS"].split(",") if p.strip()
            ]
        if os.environ.get("KERNEL_CONCURRENT_PLATFORMS"):
            kwargs["concurrent_platforms"] = (
                os.environ["KERNEL_CONCURRENT_PLATFORMS"].strip().lower() in _TRUE_VALUES
            )
        if os.environ.get("KERNEL_STRICT_NAMESPACES"):
            kwargs["strict_namespaces"] = (
                os.environ["KERNEL_STRICT_NAMESPACES"].strip().lower() in _TRUE_VALUES
            )
        if os.environ.get("KERNEL_REPORT_PATH"):
            kwargs["report_path"] = Path(os.environ["KERNEL_REPORT_PATH"])
        return cls(**kwargs)


def load_base_config(path: str | Path) -> dict[str, Any]:
    """Load a raw base configuration from a ``.json``, ``.yaml`` or ``.yml`` file.

    Raises:
        ValueError: For an unsupported extension or a non-mapping document.
    """
    file_path = Path(path)
    suffix = file_path.suffix.lower()
    if suffix == ".json":
        data = load_json(file_path)
    elif suffix in (".yaml", ".yml"):
        data = load_yaml(file_path)
    else:
        raise ValueError(f"Unsupported config file type '{suffix}': {file_path}")
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping at the top level: {file_path}")
    return data
