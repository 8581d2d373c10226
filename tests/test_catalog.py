"""Tests for the tool catalog and its projections."""

import pytest

from mcp_agent.catalog import (
    RESPONSE_ENVELOPE,
    ParamKind,
    ParamSpec,
    ToolCatalog,
    build_descriptor,
    qualified_name,
)
from mcp_agent.strategies.react import parse_envelope

from tests.fakes import FILE_TOOLS, MATH_TOOLS, FakeToolClient


class TestParamSpec:

    @pytest.mark.parametrize("raw_type,kind", [
        ("string", ParamKind.STRING),
        ("number", ParamKind.NUMBER),
        ("boolean", ParamKind.BOOLEAN),
        ("array", ParamKind.ARRAY),
        ("object", ParamKind.OBJECT),
        ("integer", ParamKind.ANY),
        ("null", ParamKind.ANY),
        (None, ParamKind.ANY),
        (["string", "null"], ParamKind.ANY),
    ])
    def test_kind_mapping(self, raw_type, kind):
        raw = {"type": raw_type} if raw_type is not None else {}
        assert ParamSpec.from_json_schema(raw).kind == kind

    def test_array_items_and_enum(self):
        spec = ParamSpec.from_json_schema({
            "type": "array",
            "items": {"type": "string", "enum": ["a", "b"]},
            "description": "tags",
        }, required=True)

        assert spec.required is True
        assert spec.items.kind == ParamKind.STRING
        assert spec.items.enum == ["a", "b"]
        assert spec.to_json_schema() == {
            "type": "array",
            "description": "tags",
            "items": {"type": "string", "enum": ["a", "b"]},
        }

    def test_any_has_no_type_in_schema(self):
        assert ParamSpec(ParamKind.ANY, description="x").to_json_schema() == {"description": "x"}


class TestBuildDescriptor:

    def test_required_flags_follow_raw_required(self):
        descriptor = build_descriptor("search", {
            "name": "query",
            "inputSchema": {
                "type": "object",
                "properties": {"q": {"type": "string"}, "limit": {"type": "number"}},
                "required": ["q"],
            },
        })

        assert descriptor.name == "search_query"
        assert descriptor.parameters["q"].required is True
        assert descriptor.parameters["limit"].required is False
        assert descriptor.required == ["q"]

    def test_default_description(self):
        descriptor = build_descriptor("clock", {"name": "now"})
        assert descriptor.description == "Call the now tool on the clock server"
        assert descriptor.parameters == {}

    def test_legacy_parameters_key(self):
        descriptor = build_descriptor("m", {
            "name": "t",
            "parameters": {"type": "object", "properties": {"x": {"type": "boolean"}}},
        })
        assert descriptor.parameters["x"].kind == ParamKind.BOOLEAN

    def test_client_is_attached_for_routing(self):
        client = FakeToolClient("math")
        descriptor = build_descriptor("math", MATH_TOOLS[0], client)
        assert descriptor.client is client
        assert descriptor.tool_name == "add"


class TestQualifiedNames:

    def test_distinct_pairs_get_distinct_names(self):
        catalog = ToolCatalog()
        catalog.add_server_tools("math", MATH_TOOLS)
        catalog.add_server_tools("files", FILE_TOOLS)
        catalog.add_server_tools("calc", MATH_TOOLS)

        assert catalog.names == [
            "math_add", "math_multiply", "files_delete_file", "calc_add", "calc_multiply",
        ]

    def test_ambiguous_concatenation_is_disambiguated(self):
        catalog = ToolCatalog()
        catalog.add(build_descriptor("a_b", {"name": "c"}))
        catalog.add(build_descriptor("a", {"name": "b_c"}))
        catalog.add(build_descriptor("a", {"name": "b_c_x"}))

        assert qualified_name("a_b", "c") == qualified_name("a", "b_c")
        assert len(catalog) == 3
        assert "a_b_c" in catalog and "a_b_c_2" in catalog
        assert catalog.get("a_b_c_2").tool_name == "b_c"

    def test_tools_without_a_name_are_skipped(self, caplog):
        catalog = ToolCatalog()

        added = catalog.add_server_tools("odd", [
            {"description": "no name here"},
            {"name": "", "description": "empty name"},
            "not-a-tool",
            {"name": "ping"},
        ])

        assert [d.name for d in added] == ["odd_ping"]
        assert catalog.names == ["odd_ping"]
        assert "Skipping tool without a name from odd" in caplog.text


class TestProjections:

    def test_function_schema(self):
        catalog = ToolCatalog()
        catalog.add_server_tools("math", MATH_TOOLS[:1])

        assert catalog.function_schemas() == [{
            "type": "function",
            "function": {
                "name": "math_add",
                "description": "Add two numbers",
                "parameters": {
                    "type": "object",
                    "properties": {
                        "a": {"type": "number", "description": "First number"},
                        "b": {"type": "number", "description": "Second number"},
                    },
                    "required": ["a", "b"],
                },
            },
        }]

    def test_prompt_manual_lists_tools_and_envelope(self):
        catalog = ToolCatalog()
        catalog.add_server_tools("math", MATH_TOOLS[:1])
        catalog.add(build_descriptor("clock", {"name": "now"}))

        manual = catalog.prompt_manual()

        assert "Tool name: math_add" in manual
        assert "- a (number, required): First number" in manual
        assert "Tool name: clock_now" in manual
        assert "(no parameters)" in manual
        assert manual.endswith(RESPONSE_ENVELOPE)

    def test_manual_shows_array_items_and_enum(self):
        descriptor = build_descriptor("s", {
            "name": "t",
            "inputSchema": {"properties": {
                "tags": {"type": "array", "items": {"type": "string"}},
                "mode": {"type": "string", "enum": ["fast", "slow"]},
            }},
        })

        entry = descriptor.manual_entry()

        assert "tags (array of string, optional)" in entry
        assert "One of: fast, slow." in entry


class TestEnvelope:

    def test_fenced_block(self):
        content = (
            "I will add them.\n```json\n"
            '{"action": "tool_call", "tool_name": "math_add", "arguments": {"a": 3, "b": 5}, "reasoning": "sum"}'
            "\n```"
        )
        assert parse_envelope(content) == ("math_add", {"a": 3, "b": 5})

    def test_bare_json(self):
        content = '{"action": "tool_call", "tool_name": "clock_now", "arguments": {}}'
        assert parse_envelope(content) == ("clock_now", {})

    @pytest.mark.parametrize("content", [
        "The answer is 8.",
        '{"action": "answer", "tool_name": "math_add", "arguments": {}}',
        '{"action": "tool_call", "arguments": {}}',
        '{"action": "tool_call", "tool_name": "math_add", "arguments": "a=3"}',
        "```json\n{broken\n```",
    ])
    def test_non_calls(self, content):
        assert parse_envelope(content) is None
