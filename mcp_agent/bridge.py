"""
Bridge between the tool catalog and LangChain.

Projects a ToolDescriptor into a LangChain StructuredTool. The args
schema is a pydantic model generated from the canonical ParamSpecs, and
the tool's coroutine executes through the shared ToolExecutor, so the
session's AuthorizationGate still decides whether the call may run.

Usage:
    from mcp_agent.bridge import to_structured_tool

    lc_tool = to_structured_tool(catalog.get("math_add"), executor)
    await lc_tool.ainvoke({"a": 3, "b": 5})
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Literal, Optional

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field, create_model

from mcp_agent.catalog import ParamKind, ParamSpec, ToolDescriptor
from mcp_agent.errors import SessionStopped
from mcp_agent.events import ToolCallRequest

if TYPE_CHECKING:
    from mcp_agent.loop import ToolExecutor

logger = logging.getLogger(__name__)


def python_type(spec: ParamSpec) -> Any:
    """Python annotation for one canonical parameter kind."""
    if spec.enum:
        return Literal[tuple(spec.enum)]
    if spec.kind == ParamKind.STRING:
        return str
    if spec.kind == ParamKind.NUMBER:
        return int | float
    if spec.kind == ParamKind.BOOLEAN:
        return bool
    if spec.kind == ParamKind.ARRAY:
        return list[python_type(spec.items)] if spec.items else list
    if spec.kind == ParamKind.OBJECT:
        return dict[str, Any]
    return Any


def args_schema_for(descriptor: ToolDescriptor) -> type[BaseModel]:
    """Generate the pydantic args model for a descriptor."""
    fields: dict[str, Any] = {}
    for key, spec in descriptor.parameters.items():
        annotation = python_type(spec)
        if spec.required:
            fields[key] = (annotation, Field(..., description=spec.description))
        else:
            fields[key] = (Optional[annotation], Field(None, description=spec.description))
    return create_model(f"{descriptor.name}_args", **fields)


def to_structured_tool(descriptor: ToolDescriptor, executor: ToolExecutor) -> StructuredTool:
    """
    Create a LangChain StructuredTool that proxies to the MCP server.

    Denials come back as the cancellation text and failures as an error
    string; only a stop propagates (as SessionStopped).
    """

    async def _call_mcp(**kwargs: Any) -> str:
        arguments = {key: value for key, value in kwargs.items() if value is not None}
        call = ToolCallRequest(
            name=descriptor.name,
            raw_arguments=json.dumps(arguments),
            arguments=arguments,
        )
        try:
            outcome = await executor.execute(call)
        except SessionStopped:
            raise
        except Exception as e:
            logger.warning(f"Error calling {descriptor.name}: {e}")
            return f"Error calling {descriptor.server_name}/{descriptor.tool_name}: {e}"
        return outcome.result

    return StructuredTool.from_function(
        coroutine=_call_mcp,
        name=descriptor.name,
        description=descriptor.description,
        args_schema=args_schema_for(descriptor),
    )
