"""
Response Parser
===============

Models do not call tools through a vendor API here. They write tool calls
inline, as XML-like tags mixed with ordinary narration:

    Let me look at the note first.
    <read_note>
    <paths>["projects/roadmap.md"]</paths>
    </read_note>

parse_response() extracts those calls; format_tool_result() renders what a
tool returned so the model can read it on the next turn:

    <tool_result name="read_note" params="{&quot;paths&quot;:[...]}">...</tool_result>
    <tool_error name="edit_note" params="...">original text not found</tool_error>

Parsing rules:
- only names on the tool allow-list count; narration and markup tags
  (<thinking>, <p>, <original>, ...) are never calls
- parameter values that are valid JSON become numbers, booleans, arrays or
  objects; anything else stays a trimmed string. The trimmed source text is
  kept too, for tools whose parameters are prose (note content, questions)
- the returned text is always the input, untouched
- malformed input never raises; it just yields no calls
- tool tags echoed inside a <tool_result>/<tool_error> wrapper are ignored
"""

import html
import json
import re
import uuid
from dataclasses import dataclass, field
from typing import Iterable

from lumina.agent.types import ParamValue, ToolCall
from lumina.tools.base import ATTEMPT_COMPLETION, DEFAULT_TOOL_NAMES, ToolResult
from lumina.utils.logger import Logger

logger = Logger("Parser")

# Tags models use for narration, markup and edit examples
NON_TOOL_TAGS = frozenset({
    "thinking", "description", "original", "modified", "result", "question",
    "p", "div", "span", "strong", "b", "i", "em", "u", "code", "pre",
    "ul", "ol", "li", "a", "br", "hr", "table", "tr", "td", "th",
    "h1", "h2", "h3", "h4", "h5", "h6", "blockquote", "img",
    "tool_result", "tool_error",
})

_PARAM_PATTERN = re.compile(r"<([A-Za-z_][\w-]*)>([\s\S]*?)</\1>")
_WRAPPER_PATTERN = re.compile(r"<(tool_result|tool_error)\b[^>]*>[\s\S]*?</\1>")

_TRUNCATION_MARKERS = {
    "en": "\n\n... content truncated (original length: {length})",
    "zh": "\n\n... 内容已截断 (原长度: {length})",
}

_NO_TOOL_USED = {
    "en": (
        "You did not use any tool. Continue with the task by calling a tool, "
        "or call attempt_completion if the task is done."
    ),
    "zh": "请使用工具完成任务。如果任务已完成，请调用 attempt_completion。",
}


@dataclass(frozen=True)
class ParsedResponse:
    """
    Result of parsing one model reply.

    Attributes:
        text: The original reply, unmodified
        tool_calls: Calls in document order
        is_completion: True when the completion tool was called
    """
    text: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    is_completion: bool = False


@dataclass(frozen=True)
class FormatSettings:
    """How tool results are rendered for the model."""
    max_content_length: int = 8000
    truncation_marker: str = _TRUNCATION_MARKERS["en"]

    @classmethod
    def for_locale(cls, locale: str, max_content_length: int = 8000) -> "FormatSettings":
        marker = _TRUNCATION_MARKERS.get(locale.split("-")[0].lower(), _TRUNCATION_MARKERS["en"])
        return cls(max_content_length=max_content_length, truncation_marker=marker)


def no_tool_used_message(locale: str = "en") -> str:
    """Reminder sent when a reply contains neither a tool call nor a completion."""
    return _NO_TOOL_USED.get(locale.split("-")[0].lower(), _NO_TOOL_USED["en"])


def coerce_value(raw: str) -> ParamValue:
    """Classify a parameter body: JSON literal if it parses, else trimmed text."""
    text = raw.strip()
    if not text:
        return ""
    try:
        return json.loads(text)
    except ValueError:
        return text


def _parse_params(body: str) -> tuple[dict[str, ParamValue], dict[str, str]]:
    """Coerced values plus the trimmed source text of each parameter."""
    params: dict[str, ParamValue] = {}
    raw_params: dict[str, str] = {}
    for match in _PARAM_PATTERN.finditer(body):
        name, value = match.group(1), match.group(2)
        params[name] = coerce_value(value)
        raw_params[name] = value.strip()
    return params, raw_params


def _tool_pattern(names: Iterable[str]) -> re.Pattern | None:
    allowed = sorted(
        (n for n in set(names) if n not in NON_TOOL_TAGS),
        key=len,
        reverse=True,
    )
    if not allowed:
        return None
    alternation = "|".join(re.escape(n) for n in allowed)
    return re.compile(rf"<({alternation})>([\s\S]*?)</\1>")


def parse_response(text: str, known_tools: Iterable[str] = DEFAULT_TOOL_NAMES) -> ParsedResponse:
    """
    Extract tool calls from model text.

    Args:
        text: The model reply
        known_tools: Allow-list of tool names (defaults to the built-in tools)

    Returns:
        ParsedResponse whose text is the input unchanged
    """
    if not isinstance(text, str) or not text:
        return ParsedResponse(text=text if isinstance(text, str) else "")

    try:
        pattern = _tool_pattern(known_tools)
        if pattern is None:
            return ParsedResponse(text=text)

        wrapped = [(m.start(), m.end()) for m in _WRAPPER_PATTERN.finditer(text)]

        calls = []
        for match in pattern.finditer(text):
            if any(start <= match.start() < end for start, end in wrapped):
                continue
            params, raw_params = _parse_params(match.group(2))
            calls.append(ToolCall(
                id=f"call_{uuid.uuid4().hex[:12]}",
                name=match.group(1),
                params=params,
                raw=match.group(0),
                raw_params=raw_params,
            ))
    except Exception as e:
        logger.warning(f"Failed to parse model response: {e}")
        return ParsedResponse(text=text)

    if calls:
        logger.debug(f"Parsed {len(calls)} tool calls: {[c.name for c in calls]}")

    return ParsedResponse(
        text=text,
        tool_calls=calls,
        is_completion=any(c.name == ATTEMPT_COMPLETION for c in calls),
    )


def _params_signature(call: ToolCall) -> str:
    signature = json.dumps(dict(call.params), ensure_ascii=False, separators=(",", ":"), default=str)
    return html.escape(signature, quote=True)


def truncate_content(content: str, settings: FormatSettings) -> str:
    if len(content) <= settings.max_content_length:
        return content
    marker = settings.truncation_marker.format(length=len(content))
    return content[:settings.max_content_length] + marker


def format_tool_result(call: ToolCall, result: ToolResult, settings: FormatSettings | None = None) -> str:
    """
    Render a tool outcome for the model.

    Args:
        call: The call that produced the result
        result: What the tool returned
        settings: Truncation cap and marker (English defaults when omitted)
    """
    settings = settings or FormatSettings()
    name = html.escape(call.name, quote=True)
    params = _params_signature(call)

    if result.success:
        content = truncate_content(result.content, settings)
        return f'<tool_result name="{name}" params="{params}">\n{content}\n</tool_result>'

    message = truncate_content(result.error or "unknown error", settings)
    return f'<tool_error name="{name}" params="{params}">\n{message}\n</tool_error>'
