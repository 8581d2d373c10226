"""
Agent assembly: servers → catalog → gate → strategy → loop.

    agent = await create_agent(load_server_config(), AgentSettings.from_env(),
                               channel=ConsoleConfirmationChannel())
    async for event in agent.stream("What is 3 + 5?"):
        renderer.handle(event)
    await agent.aclose()
"""

from __future__ import annotations

import logging
from typing import AsyncIterator

from mcp_agent.authorization import AuthorizationGate, AuthorizationPolicy, ConfirmationChannel
from mcp_agent.catalog import ToolCatalog
from mcp_agent.client import ToolClient
from mcp_agent.config import DEFAULT_MAX_ITERATIONS, AgentSettings, ServerDescriptor
from mcp_agent.errors import ConfigError
from mcp_agent.events import ProtocolEvent
from mcp_agent.loop import ConversationLoop, TurnResult
from mcp_agent.manager import ToolServerManager
from mcp_agent.strategies import ModelInvocationStrategy, build_strategy

logger = logging.getLogger(__name__)


class Agent:
    """One agent session: its servers, gate, and conversation."""

    def __init__(self, manager: ToolServerManager, loop: ConversationLoop):
        self.manager = manager
        self.loop = loop

    @property
    def catalog(self) -> ToolCatalog:
        return self.loop.catalog

    @property
    def gate(self) -> AuthorizationGate:
        return self.loop.gate

    @property
    def strategy_name(self) -> str:
        return self.loop.strategy.name

    @property
    def last_result(self) -> TurnResult | None:
        return self.loop.last_result

    def stream(self, user_input: str) -> AsyncIterator[ProtocolEvent]:
        return self.loop.stream(user_input)

    async def invoke(self, user_input: str) -> TurnResult:
        return await self.loop.invoke(user_input)

    def reset(self) -> None:
        self.loop.reset()

    async def aclose(self) -> None:
        await self.manager.stop_all()

    async def __aenter__(self) -> "Agent":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()


async def create_agent(
    descriptors: list[ServerDescriptor],
    settings: AgentSettings | None = None,
    *,
    strategy: ModelInvocationStrategy | None = None,
    policy: AuthorizationPolicy | None = None,
    channel: ConfirmationChannel | None = None,
    clients: dict[str, ToolClient] | None = None,
    max_iterations: int | None = None,
) -> Agent:
    """
    Connect to every server and assemble an Agent.

    Servers with a bad descriptor or a failed connection are left out.
    Clients passed in `clients` belong to the caller: aclose() leaves
    them connected so they can be shared across sessions.

    Raises:
        ConfigError: no tool could be loaded from any server.
    """
    clients = clients or {}
    manager = ToolServerManager()
    for descriptor in descriptors:
        manager.register_server(descriptor, clients.get(descriptor.name))

    await manager.start_all()
    catalog = manager.build_catalog()
    if not len(catalog):
        await manager.stop_all()
        raise ConfigError("No MCP tools could be loaded from any configured server")

    if strategy is None:
        settings = settings or AgentSettings.from_env()
        strategy = build_strategy(settings)
    if max_iterations is None:
        max_iterations = settings.max_iterations if settings else DEFAULT_MAX_ITERATIONS

    gate = AuthorizationGate(policy, channel)
    loop = ConversationLoop(strategy, catalog, gate, max_iterations)
    logger.info(f"Agent ready: strategy={strategy.name} tools={len(catalog)} max_iterations={max_iterations}")
    return Agent(manager, loop)
