"""
EXM: extension manager for namespaced Python applications.

/ Gestor de extensiones para aplicaciones Python con espacios de nombres.
"""

import logging

from exm.core.capabilities import LazyMap, bind, module_resolver
from exm.core.config import ActivationConfig
from exm.core.errors import (
    DuplicateRegistration,
    ExmError,
    ExternalToolFailure,
    InvalidScope,
    MissingRequiredOption,
    NotFound,
    PersistenceFailure,
    ShapeMismatch,
)
from exm.core.registry import (
    Registry,
    get_registry,
    register_extension,
    register_namespace,
    reset_registry,
)
from exm.extension import Extension
from exm.host import Exm, Host

__version__ = "0.4.0"

logging.getLogger("exm").addHandler(logging.NullHandler())


def load_active_master_extensions() -> list[Extension]:
    return get_registry().load_active_master_extensions()


async def install_master_modules() -> list[str]:
    return await get_registry().install_master_modules()
