"""Lifecycle and catalog management for a set of tool servers."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterable, Mapping, Optional, Self

from mcp_bridge._exceptions import InvalidToolError
from mcp_bridge.config import ToolServerConfig
from mcp_bridge.servers.connection import ToolServerConnection, create_connection
from mcp_bridge.types.tool import (
    ToolDescriptor,
    ToolOffer,
    validate_arguments,
)

__all__ = ["ToolServerManager", "ConnectionFactory"]

ConnectionFactory = Callable[..., ToolServerConnection]


class ToolServerManager:
    """
    Owns every tool server connection, keyed by server name.

    Start and stop operations are isolated per server: one failing server is
    logged and left not running, it never aborts its siblings.
    """

    def __init__(
        self,
        *,
        connection_factory: ConnectionFactory = create_connection,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.name = name or self.__class__.__name__
        self._connection_factory = connection_factory
        self._servers: dict[str, ToolServerConnection] = {}

    # --- lifecycle ---------------------------------------------------------
    async def start_all(
        self, configs: Mapping[str, ToolServerConfig]
    ) -> dict[str, ToolServerConnection]:
        """Start every enabled server concurrently and discover its tools."""
        names = [
            name
            for name, config in configs.items()
            if config.enabled and not self._is_running(name)
        ]
        results = await asyncio.gather(
            *(self.start_server(name, configs[name]) for name in names),
            return_exceptions=True,
        )
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                self._log(f"Failed to start tool server '{name}': {result}", logging.ERROR)

        running = len(self.running_servers())
        self._log(f"{running} of {len(self._servers)} tool servers running")
        return dict(self._servers)

    async def start_server(self, name: str, config: ToolServerConfig) -> ToolServerConnection:
        """Start one server and discover its tools; discovery failures are not fatal."""
        existing = self._servers.get(name)
        if existing is not None:
            if existing.running:
                return existing
            await existing.stop()

        connection = self._connection_factory(name, config, logger=self.logger)
        self._servers[name] = connection
        await connection.start()
        await connection.refresh_capabilities()
        return connection

    async def stop_server(self, name: str) -> None:
        connection = self._servers.pop(name, None)
        if connection is not None:
            await connection.stop()

    async def restart_server(self, name: str, config: ToolServerConfig) -> ToolServerConnection:
        await self.stop_server(name)
        return await self.start_server(name, config)

    async def stop_all(self) -> None:
        connections, self._servers = self._servers, {}
        results = await asyncio.gather(
            *(c.stop() for c in connections.values()), return_exceptions=True
        )
        for name, result in zip(connections, results):
            if isinstance(result, BaseException):
                self._log(f"Failed to stop tool server '{name}': {result}", logging.ERROR)

    async def refresh_tools(self) -> dict[str, list[ToolDescriptor]]:
        running = self.running_servers()
        results = await asyncio.gather(*(c.refresh_capabilities() for c in running))
        return {c.name: tools for c, tools in zip(running, results)}

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop_all()

    # --- views -------------------------------------------------------------
    def get_server(self, name: str) -> Optional[ToolServerConnection]:
        return self._servers.get(name)

    def server_names(self) -> list[str]:
        return list(self._servers)

    def running_servers(self) -> list[ToolServerConnection]:
        return [c for c in self._servers.values() if c.running]

    def server_status(self) -> dict[str, dict[str, Any]]:
        return {
            name: {
                "type": c.config.type,
                "running": c.running,
                "tools": [t.name for t in c.tools] if c.running else [],
                "resources": [r.uri for r in c.resources] if c.running else [],
                "prompts": [p.name for p in c.prompts] if c.running else [],
            }
            for name, c in self._servers.items()
        }

    def tools_by_server(self) -> dict[str, list[ToolDescriptor]]:
        return {c.name: list(c.tools) for c in self.running_servers()}

    def tools_for_servers(self, names: Iterable[str]) -> dict[str, list[ToolDescriptor]]:
        wanted = set(names)
        return {name: tools for name, tools in self.tools_by_server().items() if name in wanted}

    def tool_offers(self, server_names: Optional[Iterable[str]] = None) -> list[ToolOffer]:
        """
        Everything running servers offer, optionally restricted to some
        servers; no or an empty filter means all. Resources and prompts are
        included as ``<server>_get_resource`` and ``<server>_prompt_<name>``.
        """
        wanted = set(server_names) if server_names else None
        return [
            offer
            for c in self.running_servers()
            if wanted is None or c.name in wanted
            for offer in c.catalog()
        ]

    # --- execution ---------------------------------------------------------
    def resolve_tool(self, tool_name: str) -> tuple[ToolServerConnection, ToolOffer]:
        """Find the running server offering ``tool_name`` (qualified or bare)."""
        catalog = [(c, offer) for c in self.running_servers() for offer in c.catalog()]

        owners = [(c, o) for c, o in catalog if o.name == tool_name]
        if not owners:
            owners = [(c, o) for c, o in catalog if o.descriptor.name == tool_name]
        if len(owners) == 1:
            return owners[0]
        if owners:
            servers = ", ".join(c.name for c, _ in owners)
            raise InvalidToolError(f"Tool '{tool_name}' is ambiguous, offered by: {servers}")
        raise InvalidToolError(f"Tool '{tool_name}' not found on any running server")

    async def execute_tool(self, tool_name: str, arguments: Optional[dict[str, Any]] = None) -> str:
        """Validate ``arguments`` and run the tool, returning its result as text."""
        connection, offer = self.resolve_tool(tool_name)
        arguments = arguments or {}
        validate_arguments(offer.descriptor, arguments)
        self._log(f"Executing {offer.remote_name} ({offer.kind}) on {connection.name}", logging.DEBUG)
        return await connection.invoke(offer, arguments)

    def _is_running(self, name: str) -> bool:
        connection = self._servers.get(name)
        return connection is not None and connection.running

    def _log(self, message: str, level: int = logging.INFO) -> None:
        self.logger.log(level, f"[{self.name}] {message}")
