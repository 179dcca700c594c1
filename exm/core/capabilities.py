"""
EXM Capability Tables

A host exposes some of its modules to extensions, and an extension exposes
some of its own to the host. Nothing is imported up front: each declared
name is resolved on first read and cached for good.

    caps = LazyMap(["commands"], module_resolver("demo_ext_foo"))
    caps.commands        # imports demo_ext_foo.commands once
"""

import importlib
import logging
from collections.abc import Mapping
from typing import Any, Callable, Iterable, Iterator, Optional

logger = logging.getLogger("exm.core.capabilities")

Resolver = Callable[[str], Any]


def module_resolver(package: Optional[str] = None) -> Resolver:
    """Resolver importing `<package>.<name>` (or `<name>` without a package)."""

    def resolve(name: str) -> Any:
        target = f"{package}.{name}" if package else name
        logger.debug(f"Resolving capability {target}")
        return importlib.import_module(target)

    return resolve


class LazyMap(Mapping):
    """
    Read-only mapping whose values are computed at most once, on first access.

    Capabilities are reachable as attributes too, except names the Mapping
    API already uses (`get`, `keys`, `items`, `values`): read those with
    `caps["keys"]`.
    """

    def __init__(self, declarations: Iterable[str] = (), resolver: Optional[Resolver] = None):
        # Set through __dict__: __getattr__ below serves capability names
        self.__dict__["_resolvers"] = {}
        self.__dict__["_values"] = {}
        if declarations:
            self.declare(declarations, resolver or module_resolver())

    def declare(self, declarations: Iterable[str], resolver: Resolver) -> None:
        for name in declarations:
            self._resolvers[name] = resolver

    def is_resolved(self, name: str) -> bool:
        return name in self._values

    def __getitem__(self, name: str) -> Any:
        if name in self._values:
            return self._values[name]
        resolver = self._resolvers[name]
        value = resolver(name)
        self._values[name] = value
        return value

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self[name]
        except KeyError:
            raise AttributeError(f"No capability named '{name}'") from None

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("Capability tables are read-only")

    def __iter__(self) -> Iterator[str]:
        return iter(self._resolvers)

    def __len__(self) -> int:
        return len(self._resolvers)

    def __contains__(self, name: object) -> bool:
        return name in self._resolvers

    def __repr__(self) -> str:
        names = ", ".join(
            f"{name}{'' if name in self._values else '?'}" for name in self._resolvers
        )
        return f"LazyMap({names})"


def bind(target: LazyMap, declarations: Optional[Iterable[str]], resolver: Resolver) -> LazyMap:
    """Install lazy accessors for `declarations` on `target`."""
    if declarations:
        target.declare(declarations, resolver)
    return target
