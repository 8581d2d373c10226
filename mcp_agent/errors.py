"""
Error taxonomy for the MCP agent runtime.

    ConfigError            malformed server descriptor or settings
    MCPConnectionError     transport / connect failure for one server
    ToolInvocationError    RPC failure during tools/call
    AuthorizationDenied    the gate refused a tool call (recoverable)
    SessionStopped         the user asked to stop the conversation

Only ConfigError with zero usable tools and SessionStopped ever reach
the caller of a conversation turn; the rest are fed back to the model.
"""

from __future__ import annotations


class MCPAgentError(Exception):
    """Base class for every error raised by mcp_agent."""


class ConfigError(MCPAgentError):
    """Invalid configuration, scoped to one server when server is set."""

    def __init__(self, message: str, server: str | None = None, field: str | None = None):
        self.server = server
        self.field = field
        super().__init__(message)


class TransportError(MCPAgentError):
    """Low-level I/O failure on a transport."""


class JsonRpcError(MCPAgentError):
    """The peer answered a request with a JSON-RPC error object."""

    def __init__(self, code: int | None, message: str, data=None):
        self.code = code
        self.data = data
        super().__init__(f"[{code}] {message}" if code is not None else message)


class MCPConnectionError(MCPAgentError, ConnectionError):
    """Could not establish (or use) the connection to one MCP server."""

    def __init__(self, message: str, server: str | None = None):
        self.server = server
        super().__init__(message)


class ToolInvocationError(MCPAgentError):
    """A tool call could not be executed."""

    def __init__(self, message: str, tool: str | None = None):
        self.tool = tool
        super().__init__(message)


class AuthorizationDenied(MCPAgentError):
    """The tool call was not approved."""


class SessionStopped(MCPAgentError):
    """The user issued a stop; the current turn ends here."""
