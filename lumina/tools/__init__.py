"""
Tools System
============

Tools are what the agent uses to act on the notes workspace. The model
asks for a tool by writing XML-like tags in its reply:

    <read_note><paths>["inbox/idea.md"]</paths></read_note>

The loop parses the tags, looks the tool up in a ToolRegistry and runs it.

Tool categories:
1. Notes: read, create, edit, delete, move, list
2. Search: keyword, grep, semantic
3. Databases: query, add row
4. Knowledge graph: backlinks
5. Interaction: ask the user, finish the task

Tools that change the workspace (and ask_user) require approval: the loop
pauses until the host approves, unless auto approval is on.

Registries are plain objects; each agent session builds its own with
create_default_registry() and may register overrides on it.
"""

from lumina.tools.base import (
    ASK_USER,
    ATTEMPT_COMPLETION,
    DEFAULT_TOOL_NAMES,
    AwaitingUserInput,
    InvalidParams,
    ToolContext,
    ToolExecutor,
    ToolResult,
)
from lumina.tools.registry import ToolRegistry
from lumina.tools.database import AddDatabaseRowTool, QueryDatabaseTool
from lumina.tools.interaction import AskUserTool, AttemptCompletionTool
from lumina.tools.links import GetBacklinksTool
from lumina.tools.notes import (
    CreateNoteTool,
    DeleteNoteTool,
    EditNoteTool,
    ListNotesTool,
    MoveNoteTool,
    ReadNoteTool,
)
from lumina.tools.search import GrepSearchTool, SearchNotesTool, SemanticSearchTool
from lumina.utils.logger import Logger

logger = Logger("Tools")


def create_default_registry() -> ToolRegistry:
    """Build a registry holding every built-in tool."""
    registry = ToolRegistry()
    for tool in (
        ReadNoteTool(),
        CreateNoteTool(),
        EditNoteTool(),
        DeleteNoteTool(),
        MoveNoteTool(),
        ListNotesTool(),
        SearchNotesTool(),
        GrepSearchTool(),
        SemanticSearchTool(),
        QueryDatabaseTool(),
        AddDatabaseRowTool(),
        GetBacklinksTool(),
        AskUserTool(),
        AttemptCompletionTool(),
    ):
        registry.register(tool)

    logger.debug(f"Registered {len(registry.tool_names())} tools")
    return registry


__all__ = [
    "ASK_USER",
    "ATTEMPT_COMPLETION",
    "DEFAULT_TOOL_NAMES",
    "AwaitingUserInput",
    "InvalidParams",
    "ToolContext",
    "ToolExecutor",
    "ToolRegistry",
    "ToolResult",
    "create_default_registry",
]
