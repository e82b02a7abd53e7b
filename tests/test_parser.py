"""
Tests for the inline tool-call protocol

Covers parse_response and format_tool_result:
- extraction, ordering and value coercion
- tags that must never count as calls
- tolerance of malformed input
- truncation and the echoed-result guard
"""
import html
import json

import pytest

from lumina.agent.parser import (
    FormatSettings,
    coerce_value,
    format_tool_result,
    no_tool_used_message,
    parse_response,
)
from lumina.agent.types import ToolCall
from lumina.tools import ToolResult


class TestParseResponse:
    """Extraction of tool calls from model text"""

    def test_single_call(self):
        text = '<read_note><paths>["a.md"]</paths></read_note>'
        parsed = parse_response(text)

        assert len(parsed.tool_calls) == 1
        call = parsed.tool_calls[0]
        assert call.name == "read_note"
        assert call.params["paths"] == ["a.md"]
        assert call.raw == text
        assert parsed.text == text
        assert parsed.is_completion is False

    def test_calls_keep_document_order_and_narration(self):
        text = (
            "First I will look around.\n"
            "<list_notes>\n<directory>inbox</directory>\n</list_notes>\n"
            "Then search.\n"
            "<grep_search>\n<query>coffee</query>\n<limit>5</limit>\n</grep_search>"
        )
        parsed = parse_response(text)

        assert [c.name for c in parsed.tool_calls] == ["list_notes", "grep_search"]
        assert parsed.tool_calls[0].params == {"directory": "inbox"}
        assert parsed.tool_calls[1].params == {"query": "coffee", "limit": 5}
        assert parsed.text == text

    def test_source_text_kept_beside_coerced_values(self):
        text = '<create_note><path>q.md</path><content>\n  {"a":1}  \n</content></create_note>'
        call = parse_response(text).tool_calls[0]

        assert call.params["content"] == {"a": 1}
        assert call.raw_params == {"path": "q.md", "content": '{"a":1}'}

    def test_call_ids_are_unique(self):
        text = "<list_notes></list_notes><list_notes></list_notes>"
        ids = [c.id for c in parse_response(text).tool_calls]
        assert len(ids) == 2
        assert ids[0] != ids[1]

    def test_completion_sets_flag(self):
        parsed = parse_response("<attempt_completion><result>Done</result></attempt_completion>")
        assert parsed.is_completion is True
        assert parsed.tool_calls[0].params["result"] == "Done"

    @pytest.mark.parametrize("tag", ["thinking", "description", "original", "modified", "p", "strong", "em"])
    def test_markup_tags_are_never_calls(self, tag):
        text = f"<{tag}>something</{tag}>"
        parsed = parse_response(text, known_tools=[tag, "read_note"])
        assert parsed.tool_calls == []

    def test_unknown_tags_are_ignored(self):
        parsed = parse_response("<launch_rockets><count>3</count></launch_rockets>")
        assert parsed.tool_calls == []

    @pytest.mark.parametrize("text", [
        "<read_note><paths>[\"a.md\"]</paths>",
        "<read_note>",
        "</read_note>",
        "<<<>>>",
        "",
    ])
    def test_malformed_input_yields_no_calls(self, text):
        parsed = parse_response(text)
        assert parsed.tool_calls == []
        assert parsed.text == text

    def test_non_string_input_does_not_raise(self):
        parsed = parse_response(None)
        assert parsed.tool_calls == []

    def test_params_are_read_only(self):
        call = parse_response("<list_notes><recursive>false</recursive></list_notes>").tool_calls[0]
        assert call.params["recursive"] is False
        with pytest.raises(TypeError):
            call.params["recursive"] = True

    def test_echoed_result_does_not_register_as_call(self):
        call = ToolCall(id="call_1", name="read_note", params={"paths": ["a.md"]}, raw="")
        echoed = format_tool_result(
            call, ToolResult.ok("Example: <read_note><paths>[\"b.md\"]</paths></read_note>")
        )
        parsed = parse_response("Earlier output:\n" + echoed)
        assert parsed.tool_calls == []


class TestCoerceValue:
    """Single classification of parameter bodies"""

    @pytest.mark.parametrize("raw, expected", [
        ("42", 42),
        ("2.5", 2.5),
        ("true", True),
        ("null", None),
        ('["a", "b"]', ["a", "b"]),
        ('{"k": 1}', {"k": 1}),
        ("  plain text  ", "plain text"),
        ("", ""),
        ("[not json", "[not json"),
    ])
    def test_coercion(self, raw, expected):
        assert coerce_value(raw) == expected


class TestFormatToolResult:
    """Rendering outcomes for the next model turn"""

    @pytest.fixture
    def call(self):
        return ToolCall(id="call_1", name="read_note", params={"paths": ["a \"quoted\".md"]}, raw="")

    def test_success_wrapper(self, call):
        output = format_tool_result(call, ToolResult.ok("hello"))

        assert output.startswith('<tool_result name="read_note" params="')
        assert output.endswith("</tool_result>")
        assert "hello" in output

    def test_error_wrapper(self, call):
        output = format_tool_result(call, ToolResult.fail("note not found"))

        assert output.startswith('<tool_error name="read_note" params="')
        assert "note not found" in output
        assert output.endswith("</tool_error>")

    def test_params_attribute_is_escaped_compact_json(self, call):
        output = format_tool_result(call, ToolResult.ok("x"))
        attribute = output.split('params="', 1)[1].split('">', 1)[0]

        assert '"' not in attribute
        assert json.loads(html.unescape(attribute)) == {"paths": ['a "quoted".md']}

    def test_long_content_is_truncated_with_original_length(self, call):
        content = "x" * 9000
        output = format_tool_result(call, ToolResult.ok(content))

        assert "x" * 8000 in output
        assert "x" * 8001 not in output
        assert "content truncated (original length: 9000)" in output

    def test_truncation_cap_and_locale_are_configurable(self, call):
        settings = FormatSettings.for_locale("zh", max_content_length=10)
        output = format_tool_result(call, ToolResult.ok("y" * 25), settings)

        assert "y" * 11 not in output
        assert "内容已截断" in output
        assert "25" in output

    def test_short_content_is_untouched(self, call):
        output = format_tool_result(call, ToolResult.ok("short"))
        assert "truncated" not in output


class TestNoToolUsedMessage:
    def test_locales(self):
        assert "attempt_completion" in no_tool_used_message("en")
        assert "attempt_completion" in no_tool_used_message("zh-CN")
        assert no_tool_used_message("fr") == no_tool_used_message("en")
