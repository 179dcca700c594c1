"""
EXM Activation Config

One `exm-config.json` per scope records which extensions are installed
and whether each is active:

    {"extensions": {"demo-ext-foo": {"id": "foo", "ns": "demo",
                                     "active": true, "module": "demo-ext-foo"}}}

The first scope holding a valid file wins; scopes are never merged.
Writes go back to the file the config came from, and a failed write is
logged and swallowed (the system scope is usually read-only).
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Optional

from exm.core.errors import PersistenceFailure

logger = logging.getLogger("exm.core.config")

CONFIG_FILE_NAME = "exm-config.json"


@dataclass
class ActivationConfig:
    """Activation config of one scope, bound to its backing file."""

    path: Path
    data: dict = field(default_factory=dict)
    dirty: bool = False
    # True when `data` was read from `path`
    loaded: bool = False

    def __post_init__(self):
        self.path = Path(self.path)
        if not isinstance(self.data.get("extensions"), dict):
            self.data["extensions"] = {}
            self.dirty = True

    @property
    def extensions(self) -> dict:
        return self.data["extensions"]

    def entries(self) -> Iterator[tuple[str, dict]]:
        # Copy, so callers may install/activate while iterating
        return iter(list(self.extensions.items()))

    def get_extension(self, module_name: str) -> Optional[dict]:
        return self.extensions.get(module_name)

    def set_extension(self, module_name: str, extension_id: str, namespace: str, active: bool) -> dict:
        """Write or overwrite the record of an extension, keeping unknown fields."""
        record = dict(self.extensions.get(module_name) or {})
        record.update({
            "id": extension_id,
            "ns": namespace,
            "active": bool(active),
            "module": module_name,
        })
        self.extensions[module_name] = record
        self.dirty = True
        return record

    # ── Persistence ────────────────────────────────────────────

    @classmethod
    def load(
        cls,
        scope_dirs: Iterable[Path],
        default_dir: Path,
        logger: logging.Logger = logger,
    ) -> "ActivationConfig":
        """
        Load the config of the first scope that has one.

        A missing or broken file only means "not at this scope". With no
        file anywhere, an empty config anchored in `default_dir` is returned.
        """
        for scope_dir in scope_dirs:
            path = Path(scope_dir) / CONFIG_FILE_NAME
            data = _read_json_object(path, logger)
            if data is not None:
                logger.debug(f"Loaded activation config {path}")
                return cls(path=path, data=data, loaded=True)

        return cls(path=Path(default_dir) / CONFIG_FILE_NAME)

    def save(self, path: Optional[Path] = None, logger: logging.Logger = logger) -> bool:
        """Write the whole config. Returns False (and logs) when it can't be written."""
        config_path = Path(path) if path is not None else self.path

        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            config_path.write_text(
                json.dumps(self.data, indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
        except OSError as e:
            logger.warning(str(PersistenceFailure(config_path, e)))
            return False

        if config_path == self.path:
            self.dirty = False
            self.loaded = True
        return True


def _read_json_object(path: Path, logger: logging.Logger) -> Optional[dict]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
        logger.debug(f"Ignoring activation config {path}: {e}")
        return None

    if not isinstance(data, dict):
        logger.debug(f"Ignoring activation config {path}: not a JSON object")
        return None
    return data
