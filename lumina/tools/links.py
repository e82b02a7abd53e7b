"""
Backlink Tool
=============

get_backlinks finds notes that link to a given note with [[wiki links]].
Recognized forms: [[Note]], [[Note|alias]], [[Note#Heading]], and
path-qualified [[folder/Note]].
"""

import re
from pathlib import PurePosixPath

from lumina.tools.base import ToolExecutor, ToolResult, optional_bool, require_str

WIKI_LINK = re.compile(r"\[\[([^\]\|#]+)(?:#[^\]\|]*)?(?:\|[^\]]*)?\]\]")


def _note_key(name: str) -> str:
    """Normalize a link target or note path to a comparable note name."""
    stem = PurePosixPath(name.strip().replace("\\", "/")).name
    if stem.lower().endswith(".md"):
        stem = stem[:-3]
    return stem.lower()


def find_backlinks(target: str, notes: dict[str, str]) -> list[tuple[str, int, str]]:
    """
    Find links to target in a mapping of note path -> content.

    Returns:
        (source path, 1-based line number, line text) per link
    """
    key = _note_key(target)
    hits = []
    for path, content in notes.items():
        if _note_key(path) == key:
            continue  # self links are not backlinks
        for line_no, line in enumerate(content.split("\n"), start=1):
            if any(_note_key(m.group(1)) == key for m in WIKI_LINK.finditer(line)):
                hits.append((path, line_no, line.strip()))
    return hits


class GetBacklinksTool(ToolExecutor):
    name = "get_backlinks"
    requires_approval = False
    description = "List notes that link to a note via [[wiki links]]."
    parameters = {
        "note_name": "Note name or path, with or without .md",
        "include_context": "true to include the linking line (default true)",
    }

    async def execute(self, params, context):
        note_name = require_str(params, "note_name")
        include_context = optional_bool(params, "include_context", True)

        notes = {}
        async for note, content in context.store.iter_contents():
            notes[note.path] = content

        clean_name = PurePosixPath(note_name).name.removesuffix(".md")
        backlinks = find_backlinks(note_name, notes)
        if not backlinks:
            return ToolResult.ok(f'"{clean_name}" has no backlinks; no other note links to it.')

        lines = [f'"{clean_name}" has {len(backlinks)} backlinks:']
        for i, (path, line_no, text) in enumerate(backlinks, start=1):
            entry = f"{i}. {path} (line {line_no})"
            if include_context:
                snippet = text if len(text) <= 150 else text[:150] + "..."
                entry += f"\n   `{snippet}`"
            lines.append(entry)
        return ToolResult.ok("\n".join(lines))
