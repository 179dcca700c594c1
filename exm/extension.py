"""
EXM Extension

What an extension package hands over to its host. An extension package
creates exactly one, as the module attribute `extension`:

    # demo_ext_foo/__init__.py
    import exm

    def _init():
        ...

    extension = exm.register_extension(
        namespace="demo",
        id="foo",
        hooks={"init": _init},
        exports=["commands"],     # demo_ext_foo.commands, imported on first use
        package=__name__,
    )
"""

import logging
from typing import Any, Callable, Iterable, Optional

from exm.core.capabilities import LazyMap, bind, module_resolver

logger = logging.getLogger("exm.extension")


class Extension:
    """A loaded extension of one namespace, initialized at most once."""

    def __init__(
        self,
        namespace: str,
        id: str,
        hooks: Optional[dict[str, Callable[[], Any]]] = None,
        exports: Optional[Iterable[str]] = None,
        package: Optional[str] = None,
        resolver: Optional[Callable[[str], Any]] = None,
    ):
        self.namespace = namespace
        self.id = id
        self.uid = f"{namespace}.{id}"
        self.hooks = dict(hooks or {})
        self.package = package
        self.initialized = False
        self.host = None
        self.registry = None

        self.exports = bind(LazyMap(), exports, resolver or module_resolver(package))

    def init(self, host) -> "Extension":
        """
        Bind the extension to its host, then run its `init` hook. No-op after
        the first successful call; a hook that raises leaves the extension
        unbound, so the next call runs it again.
        """
        if self.initialized:
            return self

        self.host = host
        init_hook = self.hooks.get("init")
        if init_hook is not None:
            try:
                init_hook()
            except Exception:
                self.host = None
                raise
        self.initialized = True

        logger.debug(f"Extension {self.uid} initialized")
        return self

    def require(self, name: str) -> Any:
        """Resolve one of the host's capabilities."""
        if self.host is None:
            raise RuntimeError(f"Extension {self.uid} is not initialized")
        return self.host.require(name)

    def __repr__(self) -> str:
        state = "initialized" if self.initialized else "pending"
        return f"<Extension {self.uid} ({state})>"
