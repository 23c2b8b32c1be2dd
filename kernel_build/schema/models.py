"""Pydantic v2 models for the resolved build configuration.

Defines the typed shape of the configuration every plugin receives: the
``ios`` and ``android`` platform sections, the opaque ``app`` payload and the
plugin namespaces.  Raw configuration uses the camelCase keys of the
environment files (``bundleId``, ``packageName``); the models accept the
snake_case field names as well.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class Platform(str, Enum):
    """Native target platforms a plugin may provide a mutation for."""
    IOS = "ios"
    ANDROID = "android"


class TargetedDevices(str, Enum):
    """Xcode ``TARGETED_DEVICE_FAMILY`` values."""
    IPHONE = "1"
    IPAD = "2"
    UNIVERSAL = "1,2"


# Top-level keys of the raw configuration that are not plugin namespaces.
SECTION_KEYS: frozenset[str] = frozenset({"ios", "android", "app", "plugins"})

# Identity fields; a fragment changing their type is a merge conflict.
IDENTITY_FIELDS: frozenset[tuple[str, str]] = frozenset({
    ("ios", "name"),
    ("ios", "bundleId"),
    ("ios", "bundle_id"),
    ("ios", "displayName"),
    ("ios", "display_name"),
    ("android", "name"),
    ("android", "displayName"),
    ("android", "display_name"),
    ("android", "packageName"),
    ("android", "package_name"),
})


class Append:
    """Raw-config marker: append *items* to the list already at this key.

    Only valid inside the namespace owned by the fragment's plugin.  Anywhere
    else a list value replaces the previous list wholesale.
    """

    __slots__ = ("items",)

    def __init__(self, items: Any) -> None:
        self.items = list(items)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Append) and other.items == self.items

    def __repr__(self) -> str:
        return f"Append({self.items!r})"


class _Section(BaseModel):
    """Base for every configuration section: camelCase aliases, no unknown keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------

class UrlScheme(_Section):
    """Deep-link URL scheme registered for the app."""

    scheme: str
    host: Optional[str] = None


# ---------------------------------------------------------------------------
# iOS
# ---------------------------------------------------------------------------

class IOSVersion(_Section):
    version: str
    build: Optional[int] = None


class Podfile(_Section):
    """Additional Podfile configuration lines and pods."""

    config: Optional[list[str]] = None
    pods: Optional[list[str]] = None


class IOSSigning(_Section):
    """Code signing and export configuration."""

    apple_cert: str
    dist_cert: str
    dist_p12: str
    dist_cert_type: Literal[
        "iPhone Development",
        "iPhone Distribution",
        "Apple Development",
        "Apple Distribution",
    ]
    export_method: Literal[
        "app-store",
        "validation",
        "ad-hoc",
        "package",
        "enterprise",
        "development",
        "developer-id",
        "mac-application",
    ]
    export_team_id: str
    profiles_dir: str
    provisioning_profile_name: str


class FrameworksConfig(_Section):
    framework: str
    path: Optional[str] = None


class IOS(_Section):
    """iOS platform settings."""

    name: str = Field(..., description="Application source code name")
    bundle_id: str = Field(..., description="Application bundle identifier")
    display_name: str = Field(..., description="Home screen display name")
    entitlements_file_path: Optional[str] = None
    frameworks: Optional[list[FrameworksConfig]] = None
    deployment_target: Optional[str] = None
    podfile: Optional[Podfile] = None
    plist: Optional[dict[str, Any]] = Field(
        default=None, description="Additional Info.plist values (urlScheme included)"
    )
    signing: Optional[IOSSigning] = None
    targeted_devices: Optional[TargetedDevices] = None
    versioning: Optional[IOSVersion] = None
    privacy_manifest_path: Optional[str] = None


# ---------------------------------------------------------------------------
# Android
# ---------------------------------------------------------------------------

class AndroidVersion(_Section):
    version: str = Field(..., description="versionName")
    build: Optional[int] = Field(default=None, description="versionCode")


class AndroidSigning(_Section):
    key_alias: str
    store_file: str


class AppGradle(_Section):
    dependencies: Optional[list[str]] = None


class ProjectGradle(_Section):
    android_gradle_plugin_version: Optional[str] = None
    build_tools_version: Optional[str] = None
    compile_sdk_version: Optional[int] = None
    kotlin_version: Optional[str] = None
    min_sdk_version: Optional[int] = None
    ndk_version: Optional[str] = None
    repositories: Optional[list[str]] = None
    target_sdk_version: Optional[int] = None
    ext: Optional[list[str]] = None
    dependencies: Optional[list[str]] = None
    build_repositories: Optional[list[str]] = None


class Gradle(_Section):
    app_gradle: Optional[AppGradle] = None
    distribution_version: Optional[str] = None
    jvm_args: Optional[str] = None
    project_gradle: Optional[ProjectGradle] = None


class Manifest(_Section):
    """AndroidManifest.xml attributes and extra elements."""

    manifest_attributes: Optional[dict[str, Any]] = None
    main_activity_attributes: Optional[dict[str, Any]] = None
    main_application_attributes: Optional[dict[str, Any]] = None
    url_scheme: Optional[UrlScheme] = None
    manifest_elements: Optional[dict[str, Any]] = None
    main_application_elements: Optional[dict[str, Any]] = None
    main_activity_elements: Optional[dict[str, Any]] = None


class Styles(_Section):
    app_theme_attributes: Optional[dict[str, Any]] = None
    app_theme_elements: Optional[dict[str, Any]] = None


class Android(_Section):
    """Android platform settings."""

    name: str = Field(..., description="Application source code name")
    display_name: str = Field(..., description="Launcher display name")
    package_name: str = Field(..., description="Application package name")
    gradle: Optional[Gradle] = None
    manifest: Optional[Manifest] = None
    security: Optional[dict[str, Any]] = None
    styles: Optional[Styles] = None
    strings: Optional[dict[str, Any]] = None
    signing: Optional[AndroidSigning] = None
    versioning: Optional[AndroidVersion] = None


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

class Config(_Section):
    """The resolved, read-only build configuration.

    ``plugins`` maps a plugin namespace to ``{app key: payload}``.  Payloads
    of namespaces registered with a model are model instances; the rest are
    plain dicts.
    """

    ios: IOS
    android: Android
    app: Any = Field(default_factory=dict)
    plugins: dict[str, dict[str, Any]] = Field(default_factory=dict)

    @property
    def app_key(self) -> str:
        """Default application identity used as the inner namespace key."""
        return self.ios.name

    def plugin_settings(self, namespace: str, app_key: str | None = None) -> Any:
        """Return the payload stored for *namespace* and *app_key*.

        Args:
            namespace: The plugin namespace key.
            app_key: Application identity. Defaults to ``ios.name``.

        Returns:
            The payload, or ``None`` when nothing is configured.
        """
        return self.plugins.get(namespace, {}).get(app_key or self.app_key)

    def to_raw(self) -> dict[str, Any]:
        """Serialise back to the camelCase raw form (``None`` values dropped)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
