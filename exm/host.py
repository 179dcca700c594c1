"""
EXM Host

One Host per namespace (application). It finds extensions in three scopes,
local first, then user, then system, installs them with pip, and keeps the
activation config of its scope up to date.

    host = exm.register_namespace("demo", exports=["api"], package="demo")
    await host.install_extension("foo")
    foo = host.require_extension("foo")
    foo.exports.commands.run()
"""

import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from exm.core import paths
from exm.core.capabilities import LazyMap, bind, module_resolver
from exm.core.config import ActivationConfig
from exm.core.errors import InvalidScope, NotFound, ShapeMismatch
from exm.core.loader import load_module, unload
from exm.core.package_manager import PipPackageManager
from exm.extension import Extension

# Files a scope directory needs before pip runs in it
MARKER_FILES = ("package.json", "exm.json")


class Host:
    """Extension manager of one namespace."""

    def __init__(
        self,
        namespace: str,
        root_dir: Optional[Path] = None,
        exports: Optional[Iterable[str]] = None,
        package: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
        write_scope: str = "local",
        auto_install: bool = False,
        package_manager=None,
        home: Optional[Path] = None,
        registry=None,
    ):
        if write_scope not in paths.SCOPES:
            raise InvalidScope(f"Unknown scope '{write_scope}', expected one of {', '.join(paths.SCOPES)}")

        self.namespace = namespace
        self.prefix = paths.prefix(namespace)
        self.root_dir = Path(root_dir) if root_dir is not None else paths.default_root_dir()
        self.dirs = paths.scope_dirs(namespace, self.root_dir, home=home)
        self.write_scope = write_scope
        self.auto_install = auto_install
        self.package_manager = package_manager or PipPackageManager()
        self.logger = logger or logging.getLogger("exm.host").getChild(namespace)
        self.registry = registry
        self.is_master = False

        self.extensions: dict[str, Extension] = {}
        self.exports = bind(LazyMap(), exports, module_resolver(package))

        self.config = ActivationConfig.load(
            [scope_dir for _, scope_dir in self.dirs.in_order()],
            self.dirs.get(write_scope),
            logger=self.logger,
        )
        # A file lacking "extensions" was just fixed in memory
        if self.config.loaded and self.config.dirty:
            self.config.save(logger=self.logger)

    @property
    def local_dir(self) -> Path:
        return self.dirs.local

    @property
    def user_dir(self) -> Path:
        return self.dirs.user

    @property
    def system_dir(self) -> Path:
        return self.dirs.system

    def __repr__(self) -> str:
        return f"<Host {self.namespace} ({len(self.extensions)} extensions loaded)>"

    # ── Capabilities ───────────────────────────────────────────

    def require(self, name: str) -> Any:
        """Resolve one of the capabilities this host exports to its extensions."""
        return self.exports[name]

    # ── Resolution ─────────────────────────────────────────────

    def module_name(self, extension_id: str, namespace: Optional[str] = None) -> str:
        return paths.module_name(namespace or self.namespace, extension_id)

    def require_extension(self, extension_id: str) -> Extension:
        """
        Return the extension `extension_id`, loading it on first use.

        Scopes are tried local, user, system. A module found at a scope that
        isn't this extension stops the search (ShapeMismatch), only a missing
        one moves on to the next scope.
        """
        if extension_id in self.extensions:
            return self.extensions[extension_id]

        for scope, scope_dir in self.dirs.in_order():
            path = paths.module_path(scope_dir, self.namespace, extension_id)
            loaded = load_module(path)
            if loaded is None:
                self.logger.debug(f"Extension '{extension_id}' not in {scope} scope ({path})")
                continue

            try:
                extension = self._validate(extension_id, loaded)
            except ShapeMismatch:
                self._reject(loaded)
                raise
            extension.init(self)
            self.extensions[extension_id] = extension
            self.logger.info(f"Extension '{extension_id}' loaded from {scope} scope")
            return extension

        raise NotFound(extension_id, self.namespace, self.module_name(extension_id))

    async def require_extension_async(self, extension_id: str) -> Extension:
        """require_extension(), installing the extension first if `auto_install` is set."""
        try:
            return self.require_extension(extension_id)
        except NotFound:
            if not self.auto_install:
                raise

        self.logger.info(f"Extension '{extension_id}' not found, installing it")
        await self.install_extension(extension_id, activate=True)
        return self.require_extension(extension_id)

    def _validate(self, extension_id: str, loaded) -> Extension:
        if not loaded.is_extension:
            raise ShapeMismatch(loaded.path, f"module '{loaded.module.__name__}' is not an EXM extension")

        extension = loaded.extension
        if extension.id != extension_id:
            raise ShapeMismatch(
                loaded.path,
                f"extension id mismatch: requested '{extension_id}', module declares '{extension.id}'",
            )
        if extension.namespace != self.namespace:
            raise ShapeMismatch(
                loaded.path,
                f"extension '{extension.id}' belongs to namespace '{extension.namespace}', not '{self.namespace}'",
            )
        return extension

    def _reject(self, loaded) -> None:
        # Only undo what this load did: an extension imported elsewhere keeps its identity
        if not loaded.imported:
            return
        if loaded.is_extension and loaded.extension.registry is not None:
            loaded.extension.registry.discard_extension(loaded.extension)
        unload(loaded)

    # ── Install / update ───────────────────────────────────────

    def scope_dir(self, scope: Optional[str] = None) -> Path:
        return self.dirs.get(scope or self.write_scope)

    async def ensure_scope_dir(self, scope_dir: Path) -> None:
        """Create `scope_dir` and its marker files, never touching existing ones."""
        paths.site_packages(scope_dir).mkdir(parents=True, exist_ok=True)

        for marker in MARKER_FILES:
            marker_path = scope_dir / marker
            if not marker_path.exists():
                marker_path.write_text("{}", encoding="utf-8")

    async def install_extension(
        self,
        extension_id: str,
        activate: bool = True,
        namespace: Optional[str] = None,
        scope: Optional[str] = None,
    ) -> str:
        """
        Install an extension with pip and record it in the activation config.

        pip failures propagate; a config that can't be written is only logged.
        Returns the installed module name.
        """
        namespace = namespace or self.namespace
        module_name = self.module_name(extension_id, namespace)
        install_dir = self.scope_dir(scope)

        await self.ensure_scope_dir(install_dir)
        self.logger.info(f"Installing {module_name} in {install_dir}")
        await self.package_manager.install(module_name, install_dir)

        self.config.set_extension(module_name, extension_id, namespace, activate)
        self.config.save(logger=self.logger)
        return module_name

    async def update_extensions(self, scope: Optional[str] = None) -> None:
        """Upgrade every extension installed in a scope (the write scope by default)."""
        update_dir = self.scope_dir(scope)
        await self.ensure_scope_dir(update_dir)
        self.logger.info(f"Updating extensions in {update_dir}")
        await self.package_manager.update(update_dir)

    async def list_outdated_extensions(self, scope: Optional[str] = None) -> list:
        """Outdated extensions of a scope, [] when that can't be told."""
        return await self.package_manager.list_outdated(self.scope_dir(scope))

    # ── Activation ─────────────────────────────────────────────

    def list_extensions(self) -> list[dict]:
        """Extensions recorded in the activation config."""
        listed = []
        for module_name, record in self.config.entries():
            namespace = record.get("ns", self.namespace)
            listed.append({
                "module": module_name,
                "id": record.get("id"),
                "ns": namespace,
                "active": bool(record.get("active")),
                "loaded": namespace == self.namespace and record.get("id") in self.extensions,
            })
        return listed

    def set_extension_active(self, extension_id: str, active: bool, namespace: Optional[str] = None) -> dict:
        """Flip the active flag of a recorded extension and save the config."""
        namespace = namespace or self.namespace
        module_name = self.module_name(extension_id, namespace)
        if self.config.get_extension(module_name) is None:
            raise NotFound(extension_id, namespace, module_name)

        record = self.config.set_extension(module_name, extension_id, namespace, active)
        self.config.save(logger=self.logger)
        return record

    def describe(self) -> dict:
        return {
            "namespace": self.namespace,
            "root_dir": str(self.root_dir),
            "scopes": {scope: str(scope_dir) for scope, scope_dir in self.dirs.in_order()},
            "write_scope": self.write_scope,
            "config": str(self.config.path),
            "master": self.is_master,
            "loaded": list(self.extensions),
        }


Exm = Host

