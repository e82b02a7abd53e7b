"""
Note Tools
==========

Tools that read and change notes through the workspace note store.

Read-only: read_note, list_notes
Write-gated: create_note, edit_note, delete_note, move_note

Failures inside a tool (missing note, path outside the workspace, bad
parameters) are raised and turned into failed results by the registry.
"""

from lumina.rag.models import IndexingInProgressError, RAGError
from lumina.tools.base import (
    InvalidParams,
    ToolExecutor,
    ToolResult,
    as_text,
    optional_bool,
    optional_str,
    require_str,
    string_list,
)
from lumina.utils.logger import Logger

logger = Logger("NoteTools")


def _ensure_markdown(path: str) -> str:
    return path if path.lower().endswith(".md") else f"{path}.md"


def _number_lines(content: str) -> str:
    lines = content.split("\n")
    width = len(str(len(lines)))
    return "\n".join(f"{i:>{width}} | {line}" for i, line in enumerate(lines, start=1))


async def _refresh_index(context, indexed: str | None = None, removed: str | None = None) -> None:
    """
    Keep the retrieval index in step with a note change.

    The note change has already happened, so index trouble is logged, not
    raised. A busy index is left alone; the next incremental index picks
    the change up.
    """
    rag = context.rag
    if rag is None or not rag.is_initialized():
        return

    def canonical(path: str) -> str:
        return context.store.relative(context.store.resolve(path))

    try:
        if removed is not None:
            await rag.remove_file(canonical(removed))
        if indexed is not None:
            await rag.index_file(canonical(indexed))
    except IndexingInProgressError:
        logger.debug(f"Index busy; deferring {indexed or removed} to the next index run")
    except RAGError as e:
        logger.warning(f"Could not update the index for {indexed or removed}: {e}")


class ReadNoteTool(ToolExecutor):
    name = "read_note"
    requires_approval = False
    description = "Read the full content of one or more notes, with line numbers."
    parameters = {
        "paths": 'JSON array of workspace-relative note paths, e.g. ["inbox/idea.md"]',
    }

    async def execute(self, params, context):
        paths = string_list(params, "paths")

        sections = []
        missing = []
        for path in paths:
            try:
                content = await context.store.read(path)
            except Exception as e:
                logger.debug(f"Could not read {path}: {e}")
                missing.append(f"{path} ({e})")
                continue
            sections.append(f"## {path}\n\n{_number_lines(content)}")

        if not sections:
            return ToolResult.fail("could not read: " + "; ".join(missing))

        if missing:
            sections.append("Could not read: " + "; ".join(missing))
        return ToolResult.ok("\n\n".join(sections))


class CreateNoteTool(ToolExecutor):
    name = "create_note"
    requires_approval = True
    text_parameters = frozenset({"content"})
    description = "Create a new note. Fails if a note already exists at the path."
    parameters = {
        "path": "Workspace-relative path of the new note (.md is added if missing)",
        "content": "Markdown content of the note",
    }

    async def execute(self, params, context):
        path = _ensure_markdown(require_str(params, "path"))
        content = as_text(params.get("content"))

        if await context.store.exists(path):
            return ToolResult.fail(f"note already exists: {path}. Use edit_note to change it.")

        await context.store.write(path, content)
        await _refresh_index(context, indexed=path)
        return ToolResult.ok(f"Created {path} ({len(content)} characters).")


class EditNoteTool(ToolExecutor):
    name = "edit_note"
    requires_approval = True
    text_parameters = frozenset({"original", "modified"})
    description = (
        "Replace an exact span of a note. The original text must appear in the "
        "note exactly once; read the note first to copy it precisely."
    )
    parameters = {
        "path": "Workspace-relative note path",
        "original": "Exact text to replace",
        "modified": "Replacement text (may be empty to delete the span)",
    }

    async def execute(self, params, context):
        path = require_str(params, "path")
        original = as_text(params.get("original"))
        modified = as_text(params.get("modified"))
        if not original:
            raise InvalidParams("invalid parameter: original must be a non-empty string")

        content = await context.store.read(path)
        occurrences = content.count(original)
        if occurrences == 0:
            return ToolResult.fail(
                f"original text not found in {path}. Read the note again and copy the text exactly."
            )
        if occurrences > 1:
            return ToolResult.fail(
                f"original text appears {occurrences} times in {path}. Include more surrounding text."
            )

        await context.store.write(path, content.replace(original, modified, 1))
        await _refresh_index(context, indexed=path)
        return ToolResult.ok(f"Edited {path}.")


class DeleteNoteTool(ToolExecutor):
    name = "delete_note"
    requires_approval = True
    description = "Delete a note."
    parameters = {"path": "Workspace-relative note path"}

    async def execute(self, params, context):
        path = require_str(params, "path")
        await context.store.delete(path)
        await _refresh_index(context, removed=path)
        return ToolResult.ok(f"Deleted {path}.")


class MoveNoteTool(ToolExecutor):
    name = "move_note"
    requires_approval = True
    description = "Move or rename a note."
    parameters = {
        "path": "Current workspace-relative note path",
        "new_path": "Destination path",
    }

    async def execute(self, params, context):
        source = require_str(params, "path")
        destination = _ensure_markdown(require_str(params, "new_path"))

        await context.store.move(source, destination)
        await _refresh_index(context, indexed=destination, removed=source)
        return ToolResult.ok(f"Moved {source} to {destination}.")


class ListNotesTool(ToolExecutor):
    name = "list_notes"
    requires_approval = False
    description = "List notes and folders in the workspace or a sub-folder."
    parameters = {
        "directory": "Optional workspace-relative folder (default: workspace root)",
        "recursive": "true to include sub-folders (default true)",
    }

    async def execute(self, params, context):
        directory = optional_str(params, "directory")
        recursive = optional_bool(params, "recursive", True)

        notes = await context.store.list_notes(directory, recursive=recursive)
        folders = [] if recursive else await context.store.list_folders(directory)

        where = directory or "workspace root"
        if not notes and not folders:
            return ToolResult.ok(f"No notes found in {where}.")

        lines = [f"{len(notes)} notes in {where}:"]
        lines.extend(f"{folder}/" for folder in folders)
        lines.extend(note.path for note in notes)
        return ToolResult.ok("\n".join(lines))
