"""
Server descriptors and agent settings.

The server config file uses the Cursor/Cline layout:

    {
      "mcpServers": {
        "math":   {"command": "python", "args": ["-m", "math_server"]},
        "search": {"url": "http://localhost:8080/mcp", "headers": {...}},
        "legacy": {"url": "http://localhost:9000/sse", "transport": "sse"}
      }
    }

An entry with "command" is a stdio server; an entry with "url" is an
http server unless "transport" says "sse".
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from mcp_agent.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "mcp_settings.json"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_MAX_ITERATIONS = 10


class TransportKind(str, Enum):
    STDIO = "stdio"
    HTTP = "http"
    SSE = "sse"


@dataclass
class RetryPolicy:
    """
    Connection-establishment retry policy.

    Used as the stdio "restart" policy and the network "reconnect" policy.
    Never applies to calls already in flight.
    """
    enabled: bool = True
    max_attempts: int = 3
    delay_ms: int = 1000

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ConfigError(f"maxAttempts must be >= 1, got {self.max_attempts}")
        if self.delay_ms < 0:
            raise ConfigError(f"delayMs must be >= 0, got {self.delay_ms}")

    @property
    def attempts(self) -> int:
        return self.max_attempts if self.enabled else 1

    @classmethod
    def restart(cls, raw: dict[str, Any] | None = None) -> "RetryPolicy":
        return cls._from_mapping(raw or {}, max_attempts=3, delay_ms=1000)

    @classmethod
    def reconnect(cls, raw: dict[str, Any] | None = None) -> "RetryPolicy":
        return cls._from_mapping(raw or {}, max_attempts=5, delay_ms=2000)

    @classmethod
    def _from_mapping(cls, raw: dict[str, Any], max_attempts: int, delay_ms: int) -> "RetryPolicy":
        return cls(
            enabled=bool(raw.get("enabled", True)),
            max_attempts=int(raw.get("maxAttempts", max_attempts)),
            delay_ms=int(raw.get("delayMs", delay_ms)),
        )


# Aliases matching the two config keys
RestartPolicy = RetryPolicy
ReconnectPolicy = RetryPolicy


@dataclass
class ServerDescriptor:
    """
    Declarative description of one MCP server.

    Only the field group selected by transport_kind is meaningful:
    command/args/env/restart for stdio, url/headers/env/reconnect otherwise.
    Required fields are checked by create_transport(), not here.
    """
    name: str
    transport_kind: TransportKind | str = TransportKind.STDIO
    command: str | None = None
    args: list[str] = field(default_factory=list)
    env: dict[str, str] | None = None
    restart: RetryPolicy | None = None
    url: str | None = None
    headers: dict[str, str] | None = None
    reconnect: RetryPolicy | None = None

    @property
    def retry_policy(self) -> RetryPolicy | None:
        if self.transport_kind == TransportKind.STDIO:
            return self.restart
        return self.reconnect

    @classmethod
    def from_mapping(cls, name: str, raw: dict[str, Any]) -> "ServerDescriptor":
        """Build a descriptor from one "mcpServers" entry."""
        if not isinstance(raw, dict):
            raise ConfigError(f"Server '{name}' config must be an object", server=name)

        if "command" in raw:
            restart = raw.get("restart")
            return cls(
                name=name,
                transport_kind=TransportKind.STDIO,
                command=raw["command"],
                args=[str(a) for a in raw.get("args") or []],
                env=raw.get("env"),
                restart=RetryPolicy.restart(restart) if restart is not None else None,
            )

        if "url" in raw:
            transport = raw.get("transport", "http")
            if transport not in ("http", "sse"):
                raise ConfigError(
                    f"Server '{name}': unsupported transport '{transport}'",
                    server=name, field="transport",
                )
            reconnect = raw.get("reconnect")
            return cls(
                name=name,
                transport_kind=TransportKind(transport),
                url=raw["url"],
                headers=raw.get("headers"),
                env=raw.get("env"),
                reconnect=RetryPolicy.reconnect(reconnect) if reconnect is not None else None,
            )

        raise ConfigError(
            f"Server '{name}' config is invalid: it must contain 'command' or 'url'",
            server=name,
        )


def parse_server_config(data: dict[str, Any]) -> list[ServerDescriptor]:
    """Convert a parsed {"mcpServers": {...}} document into descriptors."""
    servers = data.get("mcpServers") if isinstance(data, dict) else None
    if not isinstance(servers, dict) or not servers:
        raise ConfigError("At least one MCP server must be configured under 'mcpServers'")
    return [ServerDescriptor.from_mapping(name, raw) for name, raw in servers.items()]


def default_config_path() -> Path:
    env_path = os.environ.get("MCP_CONFIG_PATH")
    if env_path:
        return Path(env_path)
    return Path.cwd() / DEFAULT_CONFIG_FILE


def load_server_config(path: str | Path | None = None) -> list[ServerDescriptor]:
    """Load and validate the server config file."""
    config_path = Path(path) if path else default_config_path()
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigError(
            f"MCP config file not found: {config_path}. "
            f"Create {DEFAULT_CONFIG_FILE} or set MCP_CONFIG_PATH."
        ) from None
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {config_path}: {e}") from e

    descriptors = parse_server_config(data)
    logger.info(f"Loaded {len(descriptors)} MCP server(s) from {config_path}")
    return descriptors


@dataclass
class AgentSettings:
    """Model and loop settings, normally read from the environment."""
    api_key: str
    base_url: str | None = None
    model: str = DEFAULT_MODEL
    temperature: float = 0.0
    strategy: str = "native"
    max_iterations: int = DEFAULT_MAX_ITERATIONS

    def __post_init__(self):
        if not self.api_key:
            raise ConfigError("Missing OpenAI API key. Set OPENAI_API_KEY.")
        if "your-" in self.api_key or "placeholder" in self.api_key or len(self.api_key) < 20:
            raise ConfigError(
                f"OPENAI_API_KEY looks like a placeholder ({self.api_key[:20]}...). "
                "Replace it with a real key."
            )
        if self.max_iterations < 1:
            raise ConfigError(f"max_iterations must be >= 1, got {self.max_iterations}")

    @classmethod
    def from_env(cls, **overrides: Any) -> "AgentSettings":
        values: dict[str, Any] = {
            "api_key": os.environ.get("OPENAI_API_KEY", ""),
            "base_url": os.environ.get("OPENAI_BASE_URL") or None,
            "model": os.environ.get("OPENAI_MODEL", DEFAULT_MODEL),
            "temperature": float(os.environ.get("OPENAI_TEMPERATURE", "0")),
            "strategy": os.environ.get("AGENT_STRATEGY", "native"),
            "max_iterations": int(os.environ.get("MAX_ITERATIONS", DEFAULT_MAX_ITERATIONS)),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
