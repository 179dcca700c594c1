"""
EXM Module Loader

Turns an install location into a module, through importlib and the
interpreter-wide module cache (sys.modules), and tells EXM extensions
apart from anything else found there.
"""

import enum
import importlib.util
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import Optional

from exm.core.errors import ShapeMismatch
from exm.extension import Extension

logger = logging.getLogger("exm.core.loader")


class ModuleKind(enum.Enum):
    EXTENSION = "extension"
    OTHER = "other"


@dataclass(frozen=True)
class LoadedModule:
    """A module materialized from disk. Only EXTENSION carries an extension."""

    kind: ModuleKind
    module: ModuleType
    path: Path
    extension: Optional[object] = None
    # True when this load executed the module, False when it came from sys.modules
    imported: bool = False

    @property
    def is_extension(self) -> bool:
        return self.kind is ModuleKind.EXTENSION


def locate(path: Path) -> Optional[tuple[Path, bool]]:
    """
    Find the source file of a module installed at `path`.

    Returns (file, is_package), or None when nothing is installed there.
    """
    path = Path(path)
    init_file = path / "__init__.py"
    if init_file.is_file():
        return init_file, True
    single_file = path.with_suffix(".py")
    if single_file.is_file():
        return single_file, False
    return None


def load_module(path: Path) -> Optional[LoadedModule]:
    """
    Import the module installed at `path`, None when there is none.

    The module is cached in sys.modules under its import name, so loading
    the same location twice returns the same module object.
    """
    located = locate(path)
    if located is None:
        return None
    source, is_package = located
    name = Path(path).name

    module = sys.modules.get(name)
    imported = module is None or not _same_file(module, source)
    if imported:
        module = _import_file(name, source, is_package)

    candidate = getattr(module, "extension", None)
    if isinstance(candidate, Extension):
        return LoadedModule(ModuleKind.EXTENSION, module, Path(path), candidate, imported)
    return LoadedModule(ModuleKind.OTHER, module, Path(path), imported=imported)


def unload(loaded: LoadedModule) -> None:
    """Drop a module this process just imported, so the next load runs it again."""
    if loaded.imported and sys.modules.get(loaded.module.__name__) is loaded.module:
        del sys.modules[loaded.module.__name__]
        logger.debug(f"Unloaded {loaded.module.__name__}")


def _import_file(name: str, source: Path, is_package: bool) -> ModuleType:
    search_locations = [str(source.parent)] if is_package else None
    spec = importlib.util.spec_from_file_location(
        name, source, submodule_search_locations=search_locations
    )
    if spec is None or spec.loader is None:
        raise ShapeMismatch(source, "not an importable Python module")

    # Sibling packages installed in the same site-packages (its dependencies)
    site_dir = str(source.parent.parent if is_package else source.parent)
    if site_dir not in sys.path:
        sys.path.append(site_dir)

    module = importlib.util.module_from_spec(spec)
    previous = sys.modules.get(name)
    sys.modules[name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        if previous is not None:
            sys.modules[name] = previous
        else:
            sys.modules.pop(name, None)
        raise

    logger.debug(f"Imported {name} from {source}")
    return module


def _same_file(module: ModuleType, source: Path) -> bool:
    origin = getattr(module, "__file__", None)
    if not origin:
        return False
    try:
        return Path(origin).resolve() == source.resolve()
    except OSError:
        return False
