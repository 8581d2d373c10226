"""
Tool Server Manager — owns every ToolClient of one agent session.

The manager is the bridge between the server descriptors and the merged
ToolCatalog the conversation loop works with.

Usage:
    manager = ToolServerManager()

    # Register servers
    for descriptor in load_server_config():
        manager.register_server(descriptor)

    # Connect and discover tools (broken servers are skipped)
    await manager.start_all()

    # One catalog across all running servers
    catalog = manager.build_catalog()

    # Disconnect everything
    await manager.stop_all()
"""

from __future__ import annotations

import logging
from typing import Any

from mcp_agent.catalog import ToolCatalog
from mcp_agent.client import ToolClient
from mcp_agent.config import ServerDescriptor
from mcp_agent.errors import ConfigError, MCPAgentError

logger = logging.getLogger(__name__)


class ToolServerManager:
    """
    Manages the lifecycle of the session's MCP server connections.

    Responsibilities:
    - Build one ToolClient per server descriptor
    - Connect and discover tools, excluding servers that fail
    - Merge discovered tools into a ToolCatalog
    - Graceful shutdown
    """

    def __init__(self):
        self._servers: dict[str, dict[str, Any]] = {}
        # name → {
        #   "descriptor": ServerDescriptor,
        #   "client": ToolClient | None,
        #   "tools": [raw tool schema, ...] (discovered after start),
        #   "error": str | None,
        #   "owned": bool (False for clients passed in by the caller),
        # }

    def register_server(
        self,
        descriptor: ServerDescriptor,
        client: ToolClient | None = None,
        owned: bool | None = None,
    ) -> None:
        """
        Register a server (does not connect yet).

        Args:
            descriptor: The server's descriptor; its name must be unique.
            client: Optional pre-built client (tests, shared connections).
            owned: Whether stop() may disconnect the client. Defaults to
                True only when the manager builds the client itself.
        """
        if descriptor.name in self._servers:
            raise ConfigError(f"Duplicate server name: {descriptor.name}", server=descriptor.name)
        self._servers[descriptor.name] = {
            "descriptor": descriptor,
            "client": client,
            "tools": [],
            "error": None,
            "owned": client is None if owned is None else owned,
        }
        logger.info(f"Registered server: {descriptor.name} ({descriptor.transport_kind})")

    async def start(self, name: str) -> list[dict[str, Any]]:
        """
        Connect to a server and discover its tools.

        Returns:
            List of raw tool schemas from the server.
        """
        server = self._servers.get(name)
        if not server:
            raise ValueError(f"Unknown server: {name}")

        if server["client"] is None:
            server["client"] = ToolClient(server["descriptor"])

        client: ToolClient = server["client"]
        await client.connect()
        server["tools"] = await client.list_tools()
        server["error"] = None

        tool_names = [t.get("name") if isinstance(t, dict) else t for t in server["tools"]]
        logger.info(f"Started {name}: tools={tool_names}")
        return server["tools"]

    async def start_all(self) -> dict[str, list[dict[str, Any]]]:
        """Start all registered servers. Returns {name: [tool_schemas]}."""
        results = {}
        for name, server in self._servers.items():
            try:
                results[name] = await self.start(name)
            except MCPAgentError as e:
                logger.error(f"Failed to start {name}: {e}")
                server["error"] = str(e)
                server["tools"] = []
                results[name] = []
                await self.stop(name)
        return results

    async def stop(self, name: str) -> None:
        """Disconnect one server. Clients owned by the caller stay connected."""
        server = self._servers.get(name)
        if not server or not server["client"]:
            return
        if not server["owned"]:
            logger.debug(f"Leaving {name} connected; its client belongs to the caller")
            return
        await server["client"].disconnect()
        logger.info(f"Stopped {name}")

    async def stop_all(self) -> None:
        """Disconnect every server the manager owns."""
        for name in list(self._servers):
            await self.stop(name)

    def build_catalog(self) -> ToolCatalog:
        """Merge the tools of every running server into one catalog."""
        catalog = ToolCatalog()
        for name, server in self._servers.items():
            if self.is_running(name):
                catalog.add_server_tools(name, server["tools"], server["client"])
        logger.info(f"Catalog built: {len(catalog)} tools from {len(self.running_servers())} servers")
        return catalog

    def list_tools(self, name: str) -> list[dict[str, Any]]:
        """List discovered tools for a server."""
        server = self._servers.get(name)
        return server["tools"] if server else []

    def list_servers(self) -> dict[str, bool]:
        """List all servers and their running status."""
        return {name: self.is_running(name) for name in self._servers}

    def running_servers(self) -> list[str]:
        return [name for name, running in self.list_servers().items() if running]

    def errors(self) -> dict[str, str]:
        """Startup errors of excluded servers."""
        return {name: s["error"] for name, s in self._servers.items() if s["error"]}

    def is_running(self, name: str) -> bool:
        """Check if a specific server is connected."""
        server = self._servers.get(name)
        return (
            server is not None
            and server["error"] is None
            and server["client"] is not None
            and server["client"].connected
        )
