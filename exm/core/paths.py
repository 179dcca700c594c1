"""
EXM Path Resolver

Computes the three scoped extension directories of a namespace and the
names/locations pip uses for an extension.

    local   <root_dir>/extensions
    user    ~/.local/share/<namespace>/extensions
    system  /usr/share/<namespace>/extensions

An extension `foo` of namespace `demo` is the distribution `demo-ext-foo`,
installed by `pip --target` as `<scope_dir>/site-packages/demo_ext_foo`.
"""

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional

from exm.core.errors import InvalidScope

SCOPES = ("local", "user", "system")

SITE_PACKAGES = "site-packages"
ROOT_MARKER = "pyproject.toml"


@dataclass(frozen=True)
class ScopeDirs:
    """The extension directories of one namespace, by scope."""

    local: Path
    user: Path
    system: Path

    def get(self, scope: str) -> Path:
        if scope not in SCOPES:
            raise InvalidScope(f"Unknown scope '{scope}', expected one of {', '.join(SCOPES)}")
        return getattr(self, scope)

    def in_order(self) -> Iterator[tuple[str, Path]]:
        """Yield (scope, dir) in priority order: local, user, system."""
        for scope in SCOPES:
            yield scope, getattr(self, scope)


def scope_dirs(namespace: str, root_dir: Path, home: Optional[Path] = None) -> ScopeDirs:
    home = Path(home) if home is not None else Path.home()
    return ScopeDirs(
        local=Path(root_dir) / "extensions",
        user=home / ".local" / "share" / namespace / "extensions",
        # TODO: use the platform data dir (e.g. %PROGRAMDATA%) outside of POSIX
        system=Path("/usr/share") / namespace / "extensions",
    )


def prefix(namespace: str) -> str:
    return f"{namespace}-ext-"


def module_name(namespace: str, extension_id: str) -> str:
    """Distribution name of an extension, as handed to pip."""
    return prefix(namespace) + extension_id


def import_name(namespace: str, extension_id: str) -> str:
    """Importable package name pip installs for an extension."""
    return module_name(namespace, extension_id).replace("-", "_").replace(".", "_")


def site_packages(scope_dir: Path) -> Path:
    return Path(scope_dir) / SITE_PACKAGES


def module_path(scope_dir: Path, namespace: str, extension_id: str) -> Path:
    return site_packages(scope_dir) / import_name(namespace, extension_id)


# ── Default root discovery ─────────────────────────────────────

def find_root(
    start: Path,
    marker: str = ROOT_MARKER,
    exists: Callable[[Path], bool] = os.path.exists,
) -> Optional[Path]:
    """
    Walk upward from `start` and return the outermost directory holding `marker`.

    Returns None once the filesystem root is reached without a match.
    """
    current = Path(start)
    found = None

    while True:
        if exists(current / marker):
            found = current
        parent = current.parent
        if parent == current:
            return found
        current = parent


def strip_package_segment(path: Path, segment: str = SITE_PACKAGES) -> Path:
    """Cut `path` right before its first `segment` component."""
    path = Path(path)
    parts = path.parts
    if segment not in parts:
        return path
    return Path(*parts[:parts.index(segment)])


def default_root_dir(
    start: Optional[Path] = None,
    cwd: Optional[Path] = None,
    exists: Callable[[Path], bool] = os.path.exists,
) -> Path:
    """Root dir used by a Host that was not given one."""
    cwd = Path(cwd) if cwd is not None else Path.cwd()

    if start is None:
        program = sys.argv[0] if sys.argv and sys.argv[0] else ""
        start = Path(program).resolve().parent if program else cwd

    root = find_root(start, exists=exists)
    if root is not None:
        return root
    return strip_package_segment(cwd)
