from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Self

from mcp_bridge._exceptions import ProviderUnavailableError
from mcp_bridge.config import ToolServerConfig, load_server_configs
from mcp_bridge.factory import create_llm_from_settings
from mcp_bridge.orchestrator import ConversationStore, ToolOrchestrator, TurnResult
from mcp_bridge.providers.base import BaseAsyncLLM
from mcp_bridge.servers.manager import ToolServerManager
from mcp_bridge.settings import Settings


class BridgeRuntime:
    """
    Everything one process needs: settings, provider, tool servers and the
    turn orchestrator, with an explicit ``start()`` / ``shutdown()``.

    Usage::

        async with BridgeRuntime(Settings.from_env()) as runtime:
            result = await runtime.chat("What time is it?")
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        llm: Optional[BaseAsyncLLM] = None,
        servers: Optional[ToolServerManager] = None,
        store: Optional[ConversationStore] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self.logger = logger or logging.getLogger(__name__)
        logging.getLogger("mcp_bridge").setLevel(self.settings.log_level_value)
        self.llm = llm or create_llm_from_settings(self.settings, logger=self.logger)
        self.servers = servers or ToolServerManager(logger=self.logger)
        self.orchestrator = ToolOrchestrator(
            self.llm, self.servers, model=self.settings.model, store=store, logger=self.logger
        )
        self.configs: dict[str, ToolServerConfig] = {}
        self.started = False

    async def start(self) -> None:
        """Check the provider, then start every enabled tool server."""
        if self.started:
            return
        if not await self.llm.check_health():
            raise ProviderUnavailableError(
                f"{self.settings.provider} provider is not available for model {self.settings.model}"
            )
        models = await self.llm.list_models()
        if models:
            self.logger.info("Available models: %s", ", ".join(models))

        self.configs = load_server_configs(Path(self.settings.config_path))
        await self.servers.start_all(self.configs)
        self.started = True

    async def reload_server(self, name: str) -> None:
        """Re-read the config file and restart ``name`` from it."""
        self.configs = load_server_configs(Path(self.settings.config_path))
        config = self.configs.get(name)
        if config is None or not config.enabled:
            await self.servers.stop_server(name)
            return
        await self.servers.restart_server(name, config)

    async def chat(self, question: str, **kwargs: Any) -> TurnResult:
        if not self.started:
            await self.start()
        return await self.orchestrator.run_turn(question, **kwargs)

    async def shutdown(self) -> None:
        try:
            await self.servers.stop_all()
        finally:
            await self.llm.aclose()
            self.started = False

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()
