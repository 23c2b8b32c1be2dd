"""Unit tests for the build orchestrator (kernel_build.pipeline).

Tests cover:
- Configuration resolution with plugin fragments
- App key derivation
- Validation errors raised before any mutation runs
- Per-platform runs (sequential and concurrent)
- BuildResult status, exit codes and JSON report
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from pydantic import BaseModel

from kernel_build.config import EngineSettings
from kernel_build.engine.registry import Plugin, PluginRegistry
from kernel_build.engine.results import RunStatus
from kernel_build.errors import (
    DuplicatePluginError,
    MergeConflictError,
    SchemaValidationError,
)
from kernel_build.pipeline import EXIT_CODES, Build, BuildResult


class PermissionsPayload(BaseModel):
    camera: str | None = None
    location: str | None = None


def _settings(tmp_path: Path, **kwargs) -> EngineSettings:
    return EngineSettings(project_root=tmp_path, **kwargs)


# ---------------------------------------------------------------------------
# Resolve
# ---------------------------------------------------------------------------


class TestResolve:
    @pytest.mark.unit
    def test_fragments_merged_in_registration_order(self, make_plugin, base_config, tmp_path):
        registry = PluginRegistry([
            make_plugin("first", fragment={"ios": {"displayName": "First"}, "plugin": {}}),
            make_plugin("second", fragment={"ios": {"displayName": "Second"}, "plugin": {}}),
        ])

        config = Build(registry, _settings(tmp_path)).resolve(base_config)

        assert config.ios.display_name == "Second"
        assert config.android.display_name == "Kernel"

    @pytest.mark.unit
    def test_plugin_payload_stored_under_namespace_and_app_key(self, make_plugin, base_config, tmp_path):
        registry = PluginRegistry([
            make_plugin(
                "kernel-plugin-permissions",
                fragment={"plugin": {"camera": "Scan QR codes"}},
                payload_model=PermissionsPayload,
            ),
        ])

        config = Build(registry, _settings(tmp_path)).resolve(base_config)

        payload = config.plugin_settings("kernelPluginPermissions")
        assert isinstance(payload, PermissionsPayload)
        assert payload.camera == "Scan QR codes"

    @pytest.mark.unit
    def test_base_and_fragment_payloads_merge(self, make_plugin, base_config, tmp_path):
        base_config["kernelPluginPermissions"] = {"kernel": {"location": "Find stores"}}
        registry = PluginRegistry([
            make_plugin(
                "kernel-plugin-permissions",
                fragment={"plugin": {"camera": "Scan QR codes"}},
                payload_model=PermissionsPayload,
            ),
        ])

        payload = Build(registry, _settings(tmp_path)).resolve(base_config).plugin_settings(
            "kernelPluginPermissions"
        )

        assert payload.camera == "Scan QR codes"
        assert payload.location == "Find stores"

    @pytest.mark.unit
    def test_resolve_from_yaml_file(self, base_config, tmp_path):
        path = tmp_path / "env.prod.yaml"
        path.write_text(yaml.safe_dump(base_config), encoding="utf-8")

        config = Build(PluginRegistry(), _settings(tmp_path)).resolve(path)

        assert config.ios.bundle_id == "com.kernel"

    @pytest.mark.unit
    def test_unregistered_namespace_rejected(self, base_config, tmp_path):
        base_config["kernelPluginUnknown"] = {"kernel": {}}
        with pytest.raises(SchemaValidationError, match="kernelPluginUnknown"):
            Build(PluginRegistry(), _settings(tmp_path)).resolve(base_config)

    @pytest.mark.unit
    def test_unregistered_namespace_allowed_when_lenient(self, base_config, tmp_path):
        base_config["kernelPluginUnknown"] = {"kernel": {"x": 1}}
        build = Build(PluginRegistry(), _settings(tmp_path, strict_namespaces=False))
        assert build.resolve(base_config).plugin_settings("kernelPluginUnknown") == {"x": 1}


class TestAppKey:
    @pytest.mark.unit
    def test_defaults_to_ios_name(self, base_config, tmp_path):
        assert Build(PluginRegistry(), _settings(tmp_path)).app_key_for(base_config) == "kernel"

    @pytest.mark.unit
    def test_settings_override(self, base_config, tmp_path):
        build = Build(PluginRegistry(), _settings(tmp_path, app_key="kernel-staging"))
        assert build.app_key_for(base_config) == "kernel-staging"

    @pytest.mark.unit
    def test_falls_back_to_android_name(self, tmp_path):
        build = Build(PluginRegistry(), _settings(tmp_path))
        assert build.app_key_for({"android": {"name": "droid"}}) == "droid"

    @pytest.mark.unit
    def test_missing_name_rejected(self, tmp_path):
        build = Build(PluginRegistry(), _settings(tmp_path))
        with pytest.raises(SchemaValidationError, match="app key"):
            build.app_key_for({"app": {}})

    @pytest.mark.unit
    def test_payload_stored_under_override_key(self, make_plugin, base_config, tmp_path):
        registry = PluginRegistry([make_plugin("flags", fragment={"plugin": {"beta": True}})])
        build = Build(registry, _settings(tmp_path, app_key="staging"))

        config = build.resolve(base_config)

        assert config.plugin_settings("flags", "staging") == {"beta": True}
        assert config.plugin_settings("flags") is None


# ---------------------------------------------------------------------------
# Validation aborts before mutation
# ---------------------------------------------------------------------------


class TestValidationBeforeMutation:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_required_field(self, make_plugin, invocation_log, base_config, project_tree):
        del base_config["ios"]["bundleId"]
        build = Build(PluginRegistry([make_plugin("a")]))

        with pytest.raises(SchemaValidationError) as exc_info:
            await build.run(base_config, project_tree)

        assert "ios.bundleId" in exc_info.value.locations()
        assert invocation_log == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_numeric_name_in_fragment(self, make_plugin, invocation_log, base_config, project_tree):
        registry = PluginRegistry([
            make_plugin("a"),
            make_plugin("renamer", fragment={"ios": {"name": 123}, "plugin": {}}),
        ])

        with pytest.raises(SchemaValidationError) as exc_info:
            await Build(registry).run(base_config, project_tree)

        assert isinstance(exc_info.value, MergeConflictError)
        assert exc_info.value.source == "renamer"
        assert invocation_log == []

    @pytest.mark.unit
    def test_duplicate_plugin_never_reaches_a_build(self, make_plugin, invocation_log):
        with pytest.raises(DuplicatePluginError):
            PluginRegistry([make_plugin("icons"), make_plugin("icons")])
        assert invocation_log == []


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------


class TestRun:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_clean_build(self, make_plugin, invocation_log, base_config, project_tree):
        registry = PluginRegistry([make_plugin("a"), make_plugin("b")])

        result = await Build(registry).run(base_config, project_tree)

        assert invocation_log == [("a", "ios"), ("b", "ios"), ("a", "android"), ("b", "android")]
        assert result.app_key == "kernel"
        assert result.status == RunStatus.OK
        assert result.exit_code == 0
        assert set(result.reports) == {"ios", "android"}
        assert result.finished_at is not None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_platform_order_follows_settings(self, make_plugin, invocation_log, base_config, project_tree):
        settings = EngineSettings(platforms=["android", "ios"])

        await Build(PluginRegistry([make_plugin("a")]), settings).run(base_config, project_tree)

        assert invocation_log == [("a", "android"), ("a", "ios")]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_single_platform(self, make_plugin, invocation_log, base_config, project_tree):
        settings = EngineSettings(platforms=["ios"])

        result = await Build(PluginRegistry([make_plugin("a")]), settings).run(base_config, project_tree)

        assert invocation_log == [("a", "ios")]
        assert list(result.reports) == ["ios"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_partial_build_exit_code(self, make_plugin, base_config, project_tree):
        registry = PluginRegistry([make_plugin("a"), make_plugin("b", fail_on=("ios",))])

        result = await Build(registry).run(base_config, project_tree)

        assert result.reports["ios"].status == RunStatus.PARTIAL
        assert result.reports["android"].status == RunStatus.OK
        assert result.status == RunStatus.PARTIAL
        assert result.exit_code == 2
        assert [o.plugin for o in result.failures()] == ["b"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_aborted_platform_dominates(self, make_plugin, invocation_log, base_config, project_tree):
        registry = PluginRegistry([
            make_plugin("identity", fail_on=("android",), critical=True),
            make_plugin("b", fail_on=("ios",)),
        ])

        result = await Build(registry).run(base_config, project_tree)

        assert result.reports["android"].skipped == ["b"]
        assert ("b", "android") not in invocation_log
        assert result.status == RunStatus.ABORTED
        assert result.exit_code == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_concurrent_platforms(self, make_plugin, invocation_log, base_config, project_tree):
        settings = EngineSettings(concurrent_platforms=True)
        registry = PluginRegistry([make_plugin("a"), make_plugin("b")])

        result = await Build(registry, settings).run(base_config, project_tree)

        assert sorted(invocation_log) == sorted(
            [("a", "ios"), ("b", "ios"), ("a", "android"), ("b", "android")]
        )
        for platform in ("ios", "android"):
            ordered = [name for name, p in invocation_log if p == platform]
            assert ordered == ["a", "b"]
        assert result.status == RunStatus.OK

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_default_tree_uses_project_root(self, base_config, generated_project):
        seen = {}

        async def ios(config, tree) -> None:
            seen["root"] = tree.root

        registry = PluginRegistry([Plugin(name="probe", mutations={"ios": ios})])
        await Build(registry, EngineSettings(project_root=generated_project)).run(base_config)

        assert seen["root"] == generated_project.resolve()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_report_written_when_configured(self, make_plugin, base_config, project_tree, tmp_path):
        report_path = tmp_path / "reports" / "build.json"
        settings = EngineSettings(report_path=report_path)
        registry = PluginRegistry([make_plugin("b", fail_on=("ios",))])

        await Build(registry, settings).run(base_config, project_tree)

        data = json.loads(report_path.read_text(encoding="utf-8"))
        assert data["status"] == "partial"
        assert data["exit_code"] == 2
        failure = data["reports"]["ios"]["outcomes"][0]["failure"]
        assert failure["plugin"] == "b"
        assert failure["cause_type"] == "RuntimeError"


class TestBuildResult:
    @pytest.mark.unit
    def test_empty_result_is_ok(self):
        result = BuildResult(app_key="kernel")
        assert result.status == RunStatus.OK
        assert result.exit_code == 0

    @pytest.mark.unit
    def test_exit_codes(self):
        assert EXIT_CODES == {RunStatus.OK: 0, RunStatus.ABORTED: 1, RunStatus.PARTIAL: 2}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_save(self, tmp_path):
        path = await BuildResult(app_key="kernel").save(tmp_path / "result.json")
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["app_key"] == "kernel"
        assert data["status"] == "ok"
        assert data["reports"] == {}
