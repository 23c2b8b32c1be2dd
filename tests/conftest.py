"""Shared pytest fixtures for the kernel-build test suite.

Provides reusable fixtures for:
- A raw base configuration modelled on a production environment file
- A freshly generated (pristine) native project tree on disk
- Recording plugin factories with an invocation log
"""

from __future__ import annotations

import copy
import plistlib
import textwrap
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from kernel_build.engine.registry import Plugin
from kernel_build.project_tree import ProjectTree


# ---------------------------------------------------------------------------
# Base configuration
# ---------------------------------------------------------------------------

_BASE_CONFIG: dict[str, Any] = {
    "ios": {
        "name": "kernel",
        "bundleId": "com.kernel",
        "displayName": "Kernel",
        "versioning": {"version": "0.0.1", "build": 1},
        "plist": {
            "NSAppTransportSecurity": {
                "NSExceptionDomains": {
                    "localhost": {"NSExceptionAllowsInsecureHTTPLoads": True},
                },
            },
        },
        "signing": {
            "distCertType": "iPhone Distribution",
            "exportTeamId": "762H5V79XV",
            "exportMethod": "app-store",
            "provisioningProfileName": "Test Provisioning Profile",
            "profilesDir": "xx/xx",
            "appleCert": "xx/xx",
            "distCert": "xx/xx",
            "distP12": "xx/xx",
        },
        "frameworks": [{"framework": "SpriteKit.framework"}],
    },
    "android": {
        "name": "kernel",
        "displayName": "Kernel",
        "packageName": "com.kernel",
        "versioning": {"version": "0.0.1", "build": 1},
        "manifest": {"urlScheme": {"scheme": "kernel"}},
    },
    "app": {},
}


@pytest.fixture
def base_config() -> dict[str, Any]:
    """A complete raw base configuration (camelCase keys, no namespaces)."""
    return copy.deepcopy(_BASE_CONFIG)


# ---------------------------------------------------------------------------
# Generated project tree
# ---------------------------------------------------------------------------

_INFO_PLIST: dict[str, Any] = {
    "CFBundleDisplayName": "HelloWorld",
    "CFBundleIdentifier": "$(PRODUCT_BUNDLE_IDENTIFIER)",
    "CFBundleShortVersionString": "1.0",
    "CFBundleVersion": "1",
}

_APP_DELEGATE = textwrap.dedent("""\
    #import "AppDelegate.h"

    #import <React/RCTBundleURLProvider.h>

    @implementation AppDelegate

    - (BOOL)application:(UIApplication *)application didFinishLaunchingWithOptions:(NSDictionary *)launchOptions
    {
      return YES;
    }

    @end
""")

_PODFILE = textwrap.dedent("""\
    platform :ios, '13.4'

    target 'kernel' do
      config = use_native_modules!
    end
""")

_ANDROID_MANIFEST = textwrap.dedent("""\
    <manifest xmlns:android="http://schemas.android.com/apk/res/android">
        <uses-permission android:name="android.permission.INTERNET" />
        <application android:name=".MainApplication" android:label="@string/app_name">
        </application>
    </manifest>
""")

_PROJECT_GRADLE = textwrap.dedent("""\
    buildscript {
        ext {
            buildToolsVersion = "33.0.0"
        }
    }
""")

_APP_GRADLE = textwrap.dedent("""\
    android {
        defaultConfig {
            versionCode 1
            versionName "1.0"
        }
    }

    dependencies {
        implementation("com.facebook.react:react-android")
    }
""")


@pytest.fixture
def generated_project(tmp_path: Path) -> Path:
    """Pristine generated React Native project with ios/ and android/ subtrees."""
    root = tmp_path / "project"
    app_dir = root / "ios" / "kernel"
    app_dir.mkdir(parents=True)
    (app_dir / "Info.plist").write_bytes(plistlib.dumps(_INFO_PLIST, fmt=plistlib.FMT_XML))
    (app_dir / "AppDelegate.mm").write_text(_APP_DELEGATE, encoding="utf-8")
    (app_dir / "Images.xcassets" / "AppIcon.appiconset").mkdir(parents=True)
    (root / "ios" / "Podfile").write_text(_PODFILE, encoding="utf-8")

    main_dir = root / "android" / "app" / "src" / "main"
    (main_dir / "res").mkdir(parents=True)
    (main_dir / "AndroidManifest.xml").write_text(_ANDROID_MANIFEST, encoding="utf-8")
    (root / "android" / "build.gradle").write_text(_PROJECT_GRADLE, encoding="utf-8")
    (root / "android" / "app" / "build.gradle").write_text(_APP_GRADLE, encoding="utf-8")
    yield root


@pytest.fixture
def project_tree(generated_project: Path) -> ProjectTree:
    return ProjectTree(generated_project)


# ---------------------------------------------------------------------------
# Recording plugins
# ---------------------------------------------------------------------------

@pytest.fixture
def invocation_log() -> list[tuple[str, str]]:
    """Shared ``(plugin, platform)`` log appended to by recording plugins."""
    return []


@pytest.fixture
def make_plugin(invocation_log: list[tuple[str, str]]) -> Callable[..., Plugin]:
    """Factory for plugins whose mutations append to ``invocation_log``.

    Usage::

        plugin = make_plugin("a", platforms=("ios",), fail_on=("ios",), critical=True)
    """

    def factory(
        name: str,
        *,
        platforms: tuple[str, ...] = ("ios", "android"),
        fail_on: tuple[str, ...] = (),
        error: Exception | None = None,
        **kwargs: Any,
    ) -> Plugin:
        def mutation_for(platform: str):
            async def mutation(config, tree) -> None:
                invocation_log.append((name, platform))
                if platform in fail_on:
                    raise error or RuntimeError(f"{name} exploded on {platform}")

            return mutation

        return Plugin(
            name=name,
            mutations={p: mutation_for(p) for p in platforms},
            **kwargs,
        )

    return factory
