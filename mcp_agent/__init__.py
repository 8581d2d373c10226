"""
MCP Agent — model-driven tool calling over MCP servers.

Architecture:
    ┌──────────────────┐  deltas   ┌──────────────────┐  events   ┌──────────┐
    │ Model strategy    │ ────────▶ │ ConversationLoop │ ────────▶ │ renderer │
    │ native/react/lc   │ ◀──────── │  + StreamNorm.   │           └──────────┘
    └──────────────────┘  history  └────────┬─────────┘
                                            │ AuthorizationGate (y/n/all/stop)
                                            ▼
                                   ┌──────────────────┐  JSON-RPC  ┌─────────────┐
                                   │ ToolClient       │ ─────────▶ │ MCP server  │
                                   │ (one per server) │ stdio/http │ (external)  │
                                   └──────────────────┘    /sse    └─────────────┘

Each MCP server's tools are merged into one ToolCatalog under
"<server>_<tool>" names. The catalog projects every tool into the
calling convention of the active strategy.
"""

from mcp_agent.agent import Agent, create_agent
from mcp_agent.authorization import (
    AuthorizationGate,
    AuthorizationPolicy,
    ConfirmationChannel,
    ConfirmationResult,
    Verdict,
)
from mcp_agent.catalog import ParamKind, ParamSpec, ToolCatalog, ToolDescriptor, build_descriptor
from mcp_agent.client import ToolClient
from mcp_agent.config import AgentSettings, RetryPolicy, ServerDescriptor, TransportKind, load_server_config
from mcp_agent.errors import (
    AuthorizationDenied,
    ConfigError,
    MCPAgentError,
    MCPConnectionError,
    SessionStopped,
    ToolInvocationError,
)
from mcp_agent.events import EventType, ToolCallOutcome, ToolCallRequest
from mcp_agent.loop import ConversationLoop, StopReason, ToolExecutor, TurnResult
from mcp_agent.manager import ToolServerManager
from mcp_agent.transport import create_transport


# Bridge requires langchain, imported on first use
def to_structured_tool(*args, **kwargs):
    from mcp_agent.bridge import to_structured_tool as _impl
    return _impl(*args, **kwargs)


__all__ = [
    "Agent",
    "AgentSettings",
    "AuthorizationDenied",
    "AuthorizationGate",
    "AuthorizationPolicy",
    "ConfigError",
    "ConfirmationChannel",
    "ConfirmationResult",
    "ConversationLoop",
    "EventType",
    "MCPAgentError",
    "MCPConnectionError",
    "ParamKind",
    "ParamSpec",
    "RetryPolicy",
    "ServerDescriptor",
    "SessionStopped",
    "StopReason",
    "ToolCallOutcome",
    "ToolCallRequest",
    "ToolCatalog",
    "ToolClient",
    "ToolDescriptor",
    "ToolExecutor",
    "ToolInvocationError",
    "ToolServerManager",
    "TransportKind",
    "TurnResult",
    "Verdict",
    "build_descriptor",
    "create_agent",
    "create_transport",
    "load_server_config",
    "to_structured_tool",
]
