"""
Tool Base Types
===============

Every tool the agent can call implements ToolExecutor:

    class ReadNoteTool(ToolExecutor):
        name = "read_note"
        requires_approval = False
        description = "Read one or more notes"
        parameters = {"paths": "JSON array of note paths"}

        async def execute(self, params, context):
            ...
            return ToolResult.ok(text)

Results come in two shapes:
- ToolResult: the tool finished (successfully or not)
- AwaitingUserInput: the tool needs a human answer before the loop can go
  on; the loop suspends instead of feeding the result back to the model
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Mapping

if TYPE_CHECKING:
    from lumina.rag import RAGManager
    from lumina.workspace import NoteStore

# Tool names with special meaning to the loop
ATTEMPT_COMPLETION = "attempt_completion"
ASK_USER = "ask_user"

# Every built-in tool, in the order they are documented to the model
DEFAULT_TOOL_NAMES = (
    "read_note",
    "create_note",
    "edit_note",
    "delete_note",
    "move_note",
    "list_notes",
    "search_notes",
    "grep_search",
    "semantic_search",
    "query_database",
    "add_database_row",
    "get_backlinks",
    ASK_USER,
    ATTEMPT_COMPLETION,
)


@dataclass(frozen=True)
class ToolResult:
    """
    Outcome of a tool execution.

    Attributes:
        success: Whether the tool did what was asked
        content: Text handed back to the model
        error: Human-readable cause when success is False
    """
    success: bool
    content: str = ""
    error: str | None = None

    @classmethod
    def ok(cls, content: str) -> "ToolResult":
        return cls(success=True, content=content)

    @classmethod
    def fail(cls, error: str) -> "ToolResult":
        return cls(success=False, content="", error=error)

    def to_dict(self) -> dict:
        return {"success": self.success, "content": self.content, "error": self.error}


@dataclass(frozen=True)
class AwaitingUserInput(ToolResult):
    """A successful result that suspends the loop until the user answers."""
    question: str = ""
    options: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(question=self.question, options=list(self.options))
        return data


@dataclass
class ToolContext:
    """
    What a tool may touch while executing.

    Attributes:
        store: Note primitives for the workspace
        rag: Retrieval manager, when semantic search is configured
        active_note_path: The note open in the host editor
        locale: Language hint for user-facing text
    """
    store: "NoteStore"
    rag: "RAGManager | None" = None
    active_note_path: str | None = None
    locale: str = "en"


class ToolExecutor(ABC):
    """
    Interface every tool implements.

    Subclasses set the class attributes and implement execute(). Parameter
    descriptions are rendered into the system prompt so the model knows
    which tags to emit.
    """

    name: str = ""
    requires_approval: bool = True
    description: str = ""
    parameters: Mapping[str, str] = {}
    # Parameters taken verbatim from the model text, never JSON-decoded
    text_parameters: frozenset[str] = frozenset()

    @abstractmethod
    async def execute(self, params: Mapping[str, Any], context: ToolContext) -> ToolResult:
        """Run the tool. Exceptions are converted to failures by the registry."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"


class InvalidParams(ValueError):
    """Raised by tools when a parameter is missing or has the wrong type."""


def require_str(params: Mapping[str, Any], key: str) -> str:
    """
    Fetch a required non-empty string parameter.

    Numbers are accepted and stringified since the parser coerces bare
    digits ("2024") to integers.
    """
    value = params.get(key)
    if isinstance(value, bool) or value is None:
        raise InvalidParams(f"invalid parameter: {key} must be a non-empty string")
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str) or not value.strip():
        raise InvalidParams(f"invalid parameter: {key} must be a non-empty string")
    return value


def as_text(value: Any) -> str:
    """Turn a coerced parameter back into text (bodies that looked like JSON were decoded)."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def optional_str(params: Mapping[str, Any], key: str) -> str | None:
    value = params.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if not isinstance(value, str):
        raise InvalidParams(f"invalid parameter: {key} must be a string")
    return value


def optional_int(params: Mapping[str, Any], key: str, default: int) -> int:
    value = params.get(key)
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise InvalidParams(f"invalid parameter: {key} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidParams(f"invalid parameter: {key} must be an integer")


def optional_float(params: Mapping[str, Any], key: str, default: float) -> float:
    value = params.get(key)
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise InvalidParams(f"invalid parameter: {key} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidParams(f"invalid parameter: {key} must be a number")


def optional_bool(params: Mapping[str, Any], key: str, default: bool) -> bool:
    value = params.get(key)
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def string_list(params: Mapping[str, Any], key: str) -> list[str]:
    """Fetch a parameter that may be a JSON array or a single string."""
    value = params.get(key)
    if isinstance(value, str) and value.strip():
        return [value.strip()]
    if isinstance(value, list) and value and all(isinstance(v, str) and v.strip() for v in value):
        return [v.strip() for v in value]
    raise InvalidParams(f"invalid parameter: {key} must be a path or a JSON array of paths")
