"""
Tests for the process-wide registry.

Namespaces and `<namespace>.<id>` identities are unique per process, and
only one namespace may be the master.
"""

import json
import sys
import logging

import pytest

import exm
from exm.core.config import CONFIG_FILE_NAME
from exm.core.errors import DuplicateRegistration, MissingRequiredOption
from exm.core.registry import Registry, get_registry, reset_registry

from conftest import write_extension


@pytest.fixture
def register(registry, scopes, package_manager):
    def _register(namespace, **options):
        options.setdefault("root_dir", scopes / "app")
        options.setdefault("package_manager", package_manager)
        return registry.register_namespace(namespace, **options)

    return _register


# ─────────────────────────────────────────────────────────────
# Namespaces
# ─────────────────────────────────────────────────────────────

class TestNamespaces:

    def test_distinct_namespaces(self, register, registry):
        demo = register("demo")
        other = register("other")
        assert registry.get_namespace("demo") is demo
        assert registry.get_namespace("other") is other
        assert demo.registry is registry

    def test_duplicate_namespace(self, register):
        register("demo")
        with pytest.raises(DuplicateRegistration):
            register("demo")

    def test_duplicate_namespace_leaves_config_alone(self, register, scopes):
        register("demo")
        config_path = scopes / "app" / "extensions" / CONFIG_FILE_NAME
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(json.dumps({"owner": "me"}))

        with pytest.raises(DuplicateRegistration):
            register("demo")
        assert json.loads(config_path.read_text()) == {"owner": "me"}

    @pytest.mark.parametrize("namespace", [None, "", 42])
    def test_namespace_required(self, registry, namespace):
        with pytest.raises(MissingRequiredOption):
            registry.register_namespace(namespace)

    def test_single_master(self, register, registry):
        demo = register("demo", master=True)
        assert registry.master is demo
        assert demo.is_master is True

        with pytest.raises(DuplicateRegistration):
            register("other", master=True)
        assert not registry.has_namespace("other")

    def test_add_free_standing_host(self, registry, host):
        registry.add_namespace(host)
        assert registry.get_namespace("demo") is host


# ─────────────────────────────────────────────────────────────
# Extensions
# ─────────────────────────────────────────────────────────────

class TestExtensions:

    def test_register_extension(self, registry):
        ext = registry.register_extension(namespace="demo", id="foo")
        assert registry.get_extension("demo.foo") is ext

    def test_duplicate_identity(self, registry):
        registry.register_extension(namespace="demo", id="foo")
        with pytest.raises(DuplicateRegistration):
            registry.register_extension(namespace="demo", id="foo")

    def test_same_id_other_namespace(self, registry):
        registry.register_extension(namespace="demo", id="foo")
        registry.register_extension(namespace="other", id="foo")
        assert set(registry.extensions) == {"demo.foo", "other.foo"}

    @pytest.mark.parametrize("options", [
        {"namespace": "demo"},
        {"namespace": "demo", "id": ""},
        {"namespace": "demo", "id": 3},
        {"id": "foo"},
        {"namespace": None, "id": "foo"},
    ])
    def test_required_options(self, registry, options):
        with pytest.raises(MissingRequiredOption):
            registry.register_extension(**options)


# ─────────────────────────────────────────────────────────────
# Process default
# ─────────────────────────────────────────────────────────────

class TestProcessDefault:

    def test_shared_through_sys(self, registry):
        assert get_registry() is registry
        assert getattr(sys, "_exm_registry") is registry

    def test_module_shortcuts_use_default(self, registry):
        ext = exm.register_extension(namespace="demo", id="foo")
        assert registry.get_extension("demo.foo") is ext

    def test_reset(self, registry):
        replacement = Registry()
        assert reset_registry(replacement) is replacement
        assert get_registry() is replacement


# ─────────────────────────────────────────────────────────────
# Master-driven operations
# ─────────────────────────────────────────────────────────────

class TestMasterOperations:

    def test_load_active_master_extensions(self, register, caplog):
        master = register("demo", master=True)
        other = register("other")
        write_extension(master.local_dir, "demo", "foo")
        write_extension(other.local_dir, "other", "bar")
        write_extension(master.local_dir, "demo", "off")

        master.config.set_extension("demo-ext-foo", "foo", "demo", True)
        master.config.set_extension("other-ext-bar", "bar", "other", True)
        master.config.set_extension("demo-ext-off", "off", "demo", False)
        master.config.set_extension("ghost-ext-x", "x", "ghost", True)

        with caplog.at_level(logging.WARNING):
            loaded = exm.load_active_master_extensions()

        assert [ext.uid for ext in loaded] == ["demo.foo", "other.bar"]
        assert "off" not in master.extensions
        assert other.extensions["bar"].host is other
        assert "ghost" in caplog.text

    def test_failing_entries_are_skipped(self, register, caplog):
        master = register("demo", master=True)
        write_extension(master.local_dir, "demo", "bad", declared_id="worse")
        write_extension(master.local_dir, "demo", "good")

        master.config.set_extension("demo-ext-missing", "missing", "demo", True)
        master.config.set_extension("demo-ext-bad", "bad", "demo", True)
        master.config.set_extension("demo-ext-good", "good", "demo", True)

        with caplog.at_level(logging.WARNING):
            loaded = exm.load_active_master_extensions()

        assert [ext.uid for ext in loaded] == ["demo.good"]
        assert "demo-ext-missing" in caplog.text
        assert "demo-ext-bad" in caplog.text

    def test_no_master(self, registry):
        assert registry.load_active_master_extensions() == []

    @pytest.mark.asyncio
    async def test_install_master_modules(self, register, package_manager):
        master = register("demo", master=True)
        master.config.set_extension("demo-ext-foo", "foo", "demo", True)
        master.config.set_extension("other-ext-bar", "bar", "other", False)

        installed = await exm.install_master_modules()

        assert installed == ["demo-ext-foo", "other-ext-bar"]
        assert [name for name, _ in package_manager.installed] == ["demo-ext-foo", "other-ext-bar"]
        assert master.config.extensions["other-ext-bar"]["active"] is False

    @pytest.mark.asyncio
    async def test_install_master_modules_without_master(self, registry):
        assert await registry.install_master_modules() == []
