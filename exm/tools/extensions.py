"""
EXM Extension Tools

Extension management operations as tools: each returns a plain dict,
{"success": True, ...} or {"error": "..."}, ready to be sent back to an
MCP client.

/ Herramientas de gestion de extensiones: listar, instalar, actualizar.
"""

import logging
import re
from typing import Optional

from exm.core.errors import ExmError
from exm.host import Host

logger = logging.getLogger("exm.tools.extensions")

# Extension ids end up in a distribution name: <namespace>-ext-<id>
_VALID_ID = re.compile(r"^[A-Za-z0-9]([A-Za-z0-9._-]*[A-Za-z0-9])?$")


def _check_id(extension_id: str) -> Optional[dict]:
    if not isinstance(extension_id, str) or not _VALID_ID.match(extension_id):
        return {"error": f"Invalid extension id: '{extension_id}'. Use letters, digits, '.', '_' or '-'."}
    return None


async def extensions_list(host: Host) -> dict:
    """
    List the extensions recorded in the host's activation config.

    Returns:
        Dictionary with the extensions, their active flag and whether
        they are loaded in this process.

    / Lista las extensiones registradas y su estado.
    """
    extensions = host.list_extensions()
    return {
        "success": True,
        **host.describe(),
        "extensions": extensions,
        "count": len(extensions),
    }


async def extensions_install(
    host: Host,
    extension_id: str,
    activate: bool = True,
    scope: Optional[str] = None,
) -> dict:
    """
    Install an extension from pip into a scope and record it.

    Args:
        extension_id: Extension id, installed as `<namespace>-ext-<id>`.
        activate: Whether the extension is loaded with the active ones.
        scope: "local", "user" or "system" (default: the host's write scope).

    / Instala una extension desde pip.
    """
    invalid = _check_id(extension_id)
    if invalid:
        return invalid

    try:
        module_name = await host.install_extension(extension_id, activate=activate, scope=scope)
    except ExmError as e:
        logger.warning(f"extensions_install {extension_id} failed: {e}")
        return {"error": str(e), "id": extension_id}

    return {
        "success": True,
        "id": extension_id,
        "module": module_name,
        "active": bool(activate),
        "scope": scope or host.write_scope,
    }


async def extensions_update(host: Host, scope: Optional[str] = None) -> dict:
    """
    Upgrade every extension installed in a scope.

    / Actualiza las extensiones instaladas en un ambito.
    """
    try:
        await host.update_extensions(scope)
    except ExmError as e:
        return {"error": str(e)}

    return {"success": True, "scope": scope or host.write_scope}


async def extensions_outdated(host: Host, scope: Optional[str] = None) -> dict:
    """
    List the extensions of a scope that have a newer release.

    / Lista las extensiones con una version mas reciente.
    """
    try:
        outdated = await host.list_outdated_extensions(scope)
    except ExmError as e:
        return {"error": str(e)}

    return {
        "success": True,
        "scope": scope or host.write_scope,
        "outdated": outdated,
        "count": len(outdated),
    }


async def extensions_set_active(host: Host, extension_id: str, active: bool) -> dict:
    """
    Enable or disable an installed extension.

    / Activa o desactiva una extension instalada.
    """
    invalid = _check_id(extension_id)
    if invalid:
        return invalid

    try:
        record = host.set_extension_active(extension_id, active)
    except ExmError as e:
        return {"error": str(e), "id": extension_id}

    return {"success": True, **record}


async def extensions_require(host: Host, extension_id: str) -> dict:
    """
    Load an extension into this process (installing it when the host auto-installs).

    / Carga una extension en este proceso.
    """
    invalid = _check_id(extension_id)
    if invalid:
        return invalid

    try:
        extension = await host.require_extension_async(extension_id)
    except ExmError as e:
        return {"error": str(e), "id": extension_id}

    return {
        "success": True,
        "id": extension.id,
        "uid": extension.uid,
        "initialized": extension.initialized,
        "exports": list(extension.exports),
    }
