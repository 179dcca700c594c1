"""
Shared fixtures for EXM tests.

Extensions are real packages written to tmp_path, and pip is replaced by
FakePackageManager, which "installs" an extension by writing its package
into <scope_dir>/site-packages.
"""

import sys
import textwrap
from pathlib import Path

import pytest

from exm.core import paths
from exm.core.registry import reset_registry
from exm.host import Host


EXTENSION_TEMPLATE = '''
import exm

SCOPE = {scope!r}
init_calls = []


def _init():
    init_calls.append(SCOPE)


extension = exm.register_extension(
    namespace={namespace!r},
    id={declared_id!r},
    hooks={{"init": _init}},
    exports=["commands"],
    package=__name__,
)
'''

COMMANDS_TEMPLATE = '''
LOADED = True


def run():
    return "ran"
'''


def write_extension(scope_dir, namespace, extension_id, scope="local", declared_id=None, body=None):
    """Write an extension package where pip would have installed it."""
    package_dir = paths.module_path(Path(scope_dir), namespace, extension_id)
    package_dir.mkdir(parents=True, exist_ok=True)

    if body is None:
        body = EXTENSION_TEMPLATE.format(
            scope=scope,
            namespace=namespace,
            declared_id=declared_id or extension_id,
        )
    (package_dir / "__init__.py").write_text(textwrap.dedent(body), encoding="utf-8")
    (package_dir / "commands.py").write_text(COMMANDS_TEMPLATE, encoding="utf-8")
    return package_dir


class FakePackageManager:
    """Records calls and writes extension packages instead of running pip."""

    def __init__(self, fail_with=None):
        self.installed = []
        self.updated = []
        self.outdated = []
        self.fail_with = fail_with

    async def install(self, module_name, cwd):
        if self.fail_with is not None:
            raise self.fail_with
        self.installed.append((module_name, Path(cwd)))
        namespace, extension_id = module_name.split("-ext-", 1)
        write_extension(cwd, namespace, extension_id, scope=Path(cwd).name)
        return ""

    async def update(self, cwd):
        self.updated.append(Path(cwd))
        return ""

    async def list_outdated(self, cwd):
        return list(self.outdated)


# ─────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def registry():
    """Fresh process registry and module cache for every test."""
    saved_path = list(sys.path)
    registry = reset_registry()
    yield registry
    reset_registry()
    sys.path[:] = saved_path
    for name in [n for n in sys.modules if "_ext_" in n]:
        del sys.modules[name]


@pytest.fixture
def scopes(tmp_path, monkeypatch):
    """Keep all three scopes (system included) under tmp_path."""
    original = paths.scope_dirs

    def scope_dirs(namespace, root_dir, home=None):
        dirs = original(namespace, root_dir, home=tmp_path / "home")
        return paths.ScopeDirs(
            local=dirs.local,
            user=dirs.user,
            system=tmp_path / "usr" / "share" / namespace / "extensions",
        )

    monkeypatch.setattr(paths, "scope_dirs", scope_dirs)
    return tmp_path


@pytest.fixture
def package_manager():
    return FakePackageManager()


@pytest.fixture
def make_host(scopes, package_manager):
    """Build free-standing Hosts rooted in tmp_path/app."""

    def _make(namespace="demo", **options):
        options.setdefault("root_dir", scopes / "app")
        options.setdefault("package_manager", package_manager)
        return Host(namespace, **options)

    return _make


@pytest.fixture
def host(make_host):
    return make_host()
