"""
Tool catalog — one canonical descriptor per MCP tool, three projections.

    raw MCP tool ──build_descriptor()──▶ ToolDescriptor
                                           │
                 ┌─────────────────────────┼──────────────────────────┐
                 ▼                         ▼                          ▼
       function_schema()          prompt_manual()            bridge.to_structured_tool()
       (native function calling)  (prompt-engineered JSON)   (LangChain StructuredTool)

Every projection reads the canonical ParamSpec tree; none of them goes
back to the raw JSON schema.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from mcp_agent.client import ToolClient

logger = logging.getLogger(__name__)


class ParamKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    ANY = "any"


_RAW_KINDS = {
    "string": ParamKind.STRING,
    "number": ParamKind.NUMBER,
    "boolean": ParamKind.BOOLEAN,
    "array": ParamKind.ARRAY,
    "object": ParamKind.OBJECT,
}


@dataclass
class ParamSpec:
    """Canonical schema of one parameter (or of an array's items)."""
    kind: ParamKind
    required: bool = False
    description: str = ""
    enum: list[Any] | None = None
    items: ParamSpec | None = None

    @classmethod
    def from_json_schema(cls, raw: Any, required: bool = False) -> "ParamSpec":
        """
        Map a JSON-schema property onto a ParamSpec.

        Unknown or missing types widen to ANY, so a tool with an unusual
        schema stays callable.
        """
        raw = raw if isinstance(raw, dict) else {}
        raw_type = raw.get("type")
        kind = _RAW_KINDS.get(raw_type, ParamKind.ANY) if isinstance(raw_type, str) else ParamKind.ANY
        items = None
        if kind == ParamKind.ARRAY and isinstance(raw.get("items"), dict):
            items = cls.from_json_schema(raw["items"], required=True)
        enum = raw.get("enum")
        return cls(
            kind=kind,
            required=required,
            description=raw.get("description", "") or "",
            enum=list(enum) if isinstance(enum, list) else None,
            items=items,
        )

    def to_json_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {}
        if self.kind != ParamKind.ANY:
            schema["type"] = self.kind.value
        if self.description:
            schema["description"] = self.description
        if self.enum is not None:
            schema["enum"] = list(self.enum)
        if self.kind == ParamKind.ARRAY:
            schema["items"] = self.items.to_json_schema() if self.items else {}
        return schema


def qualified_name(server_name: str, tool_name: str) -> str:
    return f"{server_name}_{tool_name}"


@dataclass
class ToolDescriptor:
    """
    One callable tool in the merged catalog.

    client is a routing reference only; the ToolServerManager owns it.
    """
    name: str
    server_name: str
    tool_name: str
    description: str
    parameters: dict[str, ParamSpec] = field(default_factory=dict)
    client: ToolClient | None = field(default=None, repr=False, compare=False)

    @property
    def required(self) -> list[str]:
        return [key for key, spec in self.parameters.items() if spec.required]

    def parameters_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {
            "type": "object",
            "properties": {key: spec.to_json_schema() for key, spec in self.parameters.items()},
        }
        if self.required:
            schema["required"] = self.required
        return schema

    def function_schema(self) -> dict[str, Any]:
        """OpenAI function-calling projection."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters_schema(),
            },
        }

    def manual_entry(self) -> str:
        """Plain-text projection used inside the prompt manual."""
        lines = [f"Tool name: {self.name}", f"Description: {self.description}", "Parameters:"]
        if not self.parameters:
            lines.append("  (no parameters)")
        for key, spec in self.parameters.items():
            kind = spec.kind.value
            if spec.kind == ParamKind.ARRAY and spec.items:
                kind = f"array of {spec.items.kind.value}"
            flag = "required" if spec.required else "optional"
            line = f"  - {key} ({kind}, {flag}): {spec.description}".rstrip()
            if spec.enum:
                line += f" One of: {', '.join(map(str, spec.enum))}."
            lines.append(line)
        return "\n".join(lines)


def build_descriptor(server_name: str, raw_tool: dict[str, Any], client: ToolClient | None = None) -> ToolDescriptor:
    """Convert one raw MCP tool schema into a ToolDescriptor."""
    tool_name = raw_tool["name"]
    schema = raw_tool.get("inputSchema") or raw_tool.get("parameters")
    if not isinstance(schema, dict):
        schema = {}
    properties = schema.get("properties") or {}
    required = set(schema.get("required") or [])

    return ToolDescriptor(
        name=qualified_name(server_name, tool_name),
        server_name=server_name,
        tool_name=tool_name,
        description=raw_tool.get("description") or f"Call the {tool_name} tool on the {server_name} server",
        parameters={
            key: ParamSpec.from_json_schema(value, required=key in required)
            for key, value in properties.items()
        },
        client=client,
    )


RESPONSE_ENVELOPE = """When you need a tool, reply with exactly this JSON inside a ```json code block:
```json
{
  "action": "tool_call",
  "tool_name": "<tool name>",
  "arguments": {"<parameter>": "<value>"},
  "reasoning": "<why this tool is needed>"
}
```

Rules:
1. A tool call must use the JSON format above, wrapped in a ```json code block.
2. Call at most one tool per reply.
3. After a tool call you will receive its result and may continue reasoning or call another tool.
4. When you have enough information, answer the user directly in natural language, not JSON."""

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant. You can use tools to answer questions."


class ToolCatalog:
    """Ordered, name-unique set of ToolDescriptors."""

    def __init__(self, descriptors: list[ToolDescriptor] | None = None):
        self._tools: dict[str, ToolDescriptor] = {}
        for descriptor in descriptors or []:
            self.add(descriptor)

    def add(self, descriptor: ToolDescriptor) -> ToolDescriptor:
        if descriptor.name in self._tools:
            base, n = descriptor.name, 2
            while f"{base}_{n}" in self._tools:
                n += 1
            logger.warning(
                f"Tool name collision on '{base}' "
                f"({descriptor.server_name}/{descriptor.tool_name}); registered as '{base}_{n}'"
            )
            descriptor.name = f"{base}_{n}"
        self._tools[descriptor.name] = descriptor
        return descriptor

    def add_server_tools(self, server_name: str, raw_tools: list[dict[str, Any]], client: ToolClient | None = None) -> list[ToolDescriptor]:
        added = []
        for raw in raw_tools:
            if not isinstance(raw, dict) or not isinstance(raw.get("name"), str) or not raw["name"]:
                logger.warning(f"Skipping tool without a name from {server_name}: {raw!r}")
                continue
            added.append(self.add(build_descriptor(server_name, raw, client)))
        return added

    def get(self, name: str) -> ToolDescriptor | None:
        return self._tools.get(name)

    def __iter__(self):
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def function_schemas(self) -> list[dict[str, Any]]:
        return [tool.function_schema() for tool in self]

    def prompt_manual(self, preamble: str = DEFAULT_SYSTEM_PROMPT) -> str:
        """System prompt for prompt-engineered tool calling."""
        entries = "\n\n".join(tool.manual_entry() for tool in self) or "(no tools available)"
        return f"{preamble}\n\nAvailable tools:\n{entries}\n\n{RESPONSE_ENVELOPE}"

    def structured_tools(self, executor) -> list:
        """LangChain StructuredTool projection, executing through executor."""
        from mcp_agent.bridge import to_structured_tool
        return [to_structured_tool(tool, executor) for tool in self]
