"""
EXM MCP server for extension management.

Lets an MCP client list, install, update, enable/disable and load the
extensions of one namespace. The namespace and its options come from the
environment:

    EXM_NAMESPACE      namespace to manage (required)
    EXM_ROOT_DIR       root of the local scope (default: project root)
    EXM_WRITE_SCOPE    local | user | system (default: local)
    EXM_AUTO_INSTALL   1 to install missing extensions on require

Usage:
    EXM_NAMESPACE=demo python -m exm.server

    # Or via the installed command
    EXM_NAMESPACE=demo exm-mcp
"""

import asyncio
import json
import logging
import os
from typing import Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from exm import __version__
from exm.core.errors import ExmError
from exm.core.registry import get_registry
from exm.host import Host
from exm.tools import extensions

logger = logging.getLogger("exm")

app = Server("exm")

_host: Optional[Host] = None


def get_host() -> Host:
    """The Host managed by this server, registered on first use."""
    global _host
    if _host is None:
        namespace = os.environ.get("EXM_NAMESPACE", "").strip()
        root_dir = os.environ.get("EXM_ROOT_DIR", "").strip() or None
        _host = get_registry().register_namespace(
            namespace,
            root_dir=root_dir,
            write_scope=os.environ.get("EXM_WRITE_SCOPE", "local").strip() or "local",
            auto_install=os.environ.get("EXM_AUTO_INSTALL", "").strip().lower() in {"1", "true", "yes", "on"},
            master=True,
        )
    return _host


_SCOPE_PROPERTY = {
    "type": "string",
    "enum": ["local", "user", "system"],
    "description": "Scope to act on (default: the server's write scope).",
}

_ID_PROPERTY = {
    "type": "string",
    "description": "Extension id, e.g. 'foo' for the package '<namespace>-ext-foo'.",
}


# ─────────────────────────────────────────────────────────────
# Tool Definitions
# ─────────────────────────────────────────────────────────────

@app.list_tools()
async def list_tools() -> list[Tool]:
    """Register all EXM tools with the MCP server."""
    return [
        Tool(
            name="extensions_list",
            description="List the extensions recorded in the activation config, with their active/loaded state.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="extensions_install",
            description="Install an extension with pip into a scope and record it in the activation config.",
            inputSchema={
                "type": "object",
                "properties": {
                    "id": _ID_PROPERTY,
                    "activate": {
                        "type": "boolean",
                        "description": "Mark the extension active (default: true).",
                        "default": True,
                    },
                    "scope": _SCOPE_PROPERTY,
                },
                "required": ["id"],
            },
        ),
        Tool(
            name="extensions_update",
            description="Upgrade every extension installed in a scope.",
            inputSchema={"type": "object", "properties": {"scope": _SCOPE_PROPERTY}},
        ),
        Tool(
            name="extensions_outdated",
            description="List the extensions of a scope that have a newer release.",
            inputSchema={"type": "object", "properties": {"scope": _SCOPE_PROPERTY}},
        ),
        Tool(
            name="extensions_enable",
            description="Mark an installed extension active.",
            inputSchema={"type": "object", "properties": {"id": _ID_PROPERTY}, "required": ["id"]},
        ),
        Tool(
            name="extensions_disable",
            description="Mark an installed extension inactive.",
            inputSchema={"type": "object", "properties": {"id": _ID_PROPERTY}, "required": ["id"]},
        ),
        Tool(
            name="extensions_require",
            description="Load an extension into the server process and report its exports.",
            inputSchema={"type": "object", "properties": {"id": _ID_PROPERTY}, "required": ["id"]},
        ),
    ]


# ─────────────────────────────────────────────────────────────
# Tool Execution
# ─────────────────────────────────────────────────────────────

@app.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Execute a tool and return its result as JSON text."""
    try:
        result = await _dispatch_tool(name, arguments or {})
    except Exception as e:
        logger.error(f"Tool execution error: {name}: {e}")
        result = {"error": str(e)}

    return [TextContent(type="text", text=json.dumps(result, indent=2, default=str))]


async def _dispatch_tool(name: str, arguments: dict) -> dict:
    """Route tool call to the correct function."""
    host = get_host()

    tool_map = {
        "extensions_list": lambda args: extensions.extensions_list(host),
        "extensions_install": lambda args: extensions.extensions_install(
            host,
            args["id"],
            activate=args.get("activate", True),
            scope=args.get("scope"),
        ),
        "extensions_update": lambda args: extensions.extensions_update(host, scope=args.get("scope")),
        "extensions_outdated": lambda args: extensions.extensions_outdated(host, scope=args.get("scope")),
        "extensions_enable": lambda args: extensions.extensions_set_active(host, args["id"], True),
        "extensions_disable": lambda args: extensions.extensions_set_active(host, args["id"], False),
        "extensions_require": lambda args: extensions.extensions_require(host, args["id"]),
    }

    handler = tool_map.get(name)
    if handler is None:
        return {"error": f"Unknown tool: {name}"}
    return await handler(arguments)


# ─────────────────────────────────────────────────────────────
# Entry Point
# ─────────────────────────────────────────────────────────────

async def _run_server():
    """Run the MCP server using stdio transport."""
    async with stdio_server() as (read_stream, write_stream):
        init_options = app.create_initialization_options()
        await app.run(read_stream, write_stream, init_options)


def main():
    """Start the EXM MCP server."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    host = get_host()
    logger.info(f"EXM v{__version__} starting for namespace '{host.namespace}'")
    logger.info(f"Scopes: {', '.join(f'{s}={d}' for s, d in host.dirs.in_order())}")
    logger.info(f"Activation config: {host.config.path}")

    try:
        loaded = get_registry().load_active_master_extensions()
    except ExmError as e:
        logger.error(f"Failed to load active extensions: {e}")
        loaded = []
    logger.info(f"{len(loaded)} active extension(s) loaded")

    asyncio.run(_run_server())


if __name__ == "__main__":
    main()
