"""
EXM Process Registry

Namespaces and loaded extensions are unique per process, not per copy of
this package: the default registry hangs off the `sys` module, so a second
(vendored) copy of EXM in the same interpreter shares it.

The one "master" namespace is the main application. Its activation config
lists extensions for every namespace, see load_active_master_extensions().
"""

import logging
import sys
import threading
from typing import Optional

from exm.core.errors import DuplicateRegistration, MissingRequiredOption, NotFound, ShapeMismatch
from exm.extension import Extension
from exm.host import Host

logger = logging.getLogger("exm.core.registry")

_REGISTRY_ATTR = "_exm_registry"


class Registry:
    """Process-wide namespace and extension registry."""

    def __init__(self):
        self.namespaces: dict[str, Host] = {}
        self.extensions: dict[str, Extension] = {}
        self.master: Optional[Host] = None
        self._lock = threading.Lock()

    # ── Registration ───────────────────────────────────────────

    def register_namespace(self, namespace: Optional[str] = None, master: bool = False, **options) -> Host:
        """Create the Host of a new namespace and register it."""
        if not namespace or not isinstance(namespace, str):
            raise MissingRequiredOption("namespace", "namespace")
        # Checked before Host() touches the config on disk
        if namespace in self.namespaces:
            raise DuplicateRegistration(namespace, "namespace")
        if master and self.master is not None:
            raise DuplicateRegistration(self.master.namespace, "master namespace")

        host = Host(namespace, registry=self, **options)
        self.add_namespace(host, master=master)
        return host

    def add_namespace(self, host: Host, master: bool = False) -> Host:
        """Register an already built Host."""
        with self._lock:
            if host.namespace in self.namespaces:
                raise DuplicateRegistration(host.namespace, "namespace")
            if master and self.master is not None:
                raise DuplicateRegistration(self.master.namespace, "master namespace")

            self.namespaces[host.namespace] = host
            host.registry = self
            if master:
                self.master = host
                host.is_master = True

        logger.debug(f"Namespace '{host.namespace}' registered{' as master' if master else ''}")
        return host

    def register_extension(
        self,
        namespace: Optional[str] = None,
        id: Optional[str] = None,
        **options,
    ) -> Extension:
        """Create an Extension, unique per `<namespace>.<id>` in the process."""
        if not id or not isinstance(id, str):
            raise MissingRequiredOption("id", "extension")
        if not namespace or not isinstance(namespace, str):
            raise MissingRequiredOption("namespace", "extension")

        extension = Extension(namespace, id, **options)
        with self._lock:
            if extension.uid in self.extensions:
                raise DuplicateRegistration(extension.uid, "extension")
            self.extensions[extension.uid] = extension
        extension.registry = self

        logger.debug(f"Extension '{extension.uid}' registered")
        return extension

    def discard_extension(self, extension: Extension) -> None:
        """Forget `extension`, leaving any other holder of its identity alone."""
        with self._lock:
            if self.extensions.get(extension.uid) is extension:
                del self.extensions[extension.uid]
                logger.debug(f"Extension '{extension.uid}' discarded")

    # ── Queries ────────────────────────────────────────────────

    def has_namespace(self, namespace: str) -> bool:
        return namespace in self.namespaces

    def get_namespace(self, namespace: str) -> Optional[Host]:
        return self.namespaces.get(namespace)

    def get_extension(self, uid: str) -> Optional[Extension]:
        return self.extensions.get(uid)

    # ── Master-driven operations ───────────────────────────────

    def load_active_master_extensions(self) -> list[Extension]:
        """
        Require every active extension listed in the master's config.

        Entries for a namespace that isn't registered, and extensions that
        can't be found or aren't valid, are skipped with a warning.
        """
        if self.master is None:
            logger.warning("No master namespace registered, no extension to load")
            return []

        loaded = []
        for module_name, record in self.master.config.entries():
            if not record.get("active"):
                continue

            extension_id = record.get("id")
            if not extension_id:
                self.master.logger.warning(f"Skipping malformed entry '{module_name}' of the activation config")
                continue

            namespace = record.get("ns") or self.master.namespace
            host = self.namespaces.get(namespace)
            if host is None:
                self.master.logger.warning(
                    f"Extension '{module_name}' belongs to namespace '{namespace}', which is not registered"
                )
                continue

            try:
                loaded.append(host.require_extension(extension_id))
            except (NotFound, ShapeMismatch) as e:
                self.master.logger.warning(f"Skipping extension '{module_name}': {e}")

        return loaded

    async def install_master_modules(self) -> list[str]:
        """Re-install every extension listed in the master's config, active or not."""
        if self.master is None:
            logger.warning("No master namespace registered, nothing to install")
            return []

        installed = []
        for module_name, record in self.master.config.entries():
            if not record.get("id"):
                self.master.logger.warning(f"Skipping malformed entry '{module_name}' of the activation config")
                continue
            installed.append(await self.master.install_extension(
                record["id"],
                activate=bool(record.get("active")),
                namespace=record.get("ns") or self.master.namespace,
            ))
        return installed


# ─────────────────────────────────────────────────────────────
# Process default
# ─────────────────────────────────────────────────────────────

def get_registry() -> Registry:
    """The process default registry, created on first use."""
    registry = getattr(sys, _REGISTRY_ATTR, None)
    if registry is None:
        registry = Registry()
        setattr(sys, _REGISTRY_ATTR, registry)
    return registry


def reset_registry(registry: Optional[Registry] = None) -> Registry:
    """Replace the process default registry (a fresh one by default)."""
    registry = registry or Registry()
    setattr(sys, _REGISTRY_ATTR, registry)
    return registry


def register_namespace(namespace: Optional[str] = None, **options) -> Host:
    return get_registry().register_namespace(namespace, **options)


def register_extension(namespace: Optional[str] = None, id: Optional[str] = None, **options) -> Extension:
    return get_registry().register_extension(namespace, id, **options)
