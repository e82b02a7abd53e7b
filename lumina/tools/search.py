"""
Search Tools
============

Three ways for the agent to find things, all read-only:

- search_notes: keyword match on note names and content, ranked by hits
- grep_search: line-level literal or regex search
- semantic_search: vector similarity over the retrieval index
"""

import re

from lumina.rag.models import SearchOptions
from lumina.tools.base import (
    ToolExecutor,
    ToolResult,
    optional_bool,
    optional_float,
    optional_int,
    optional_str,
    require_str,
)
from lumina.utils.logger import Logger

logger = Logger("SearchTools")

PREVIEW_LENGTH = 400


class SearchNotesTool(ToolExecutor):
    name = "search_notes"
    requires_approval = False
    description = "Find notes whose name or content contains all query words."
    parameters = {
        "query": "Words to look for",
        "directory": "Optional folder to restrict the search to",
        "limit": "Maximum number of notes (default 20)",
    }

    async def execute(self, params, context):
        query = require_str(params, "query")
        directory = optional_str(params, "directory")
        limit = optional_int(params, "limit", 20)

        terms = [t for t in query.lower().split() if t]
        scored = []
        async for note, text in context.store.iter_contents(directory):
            content = text.lower()
            name = note.path.lower()
            if not all(term in name or term in content for term in terms):
                continue
            # Name hits weigh more than body hits
            score = sum(content.count(term) + 5 * name.count(term) for term in terms)
            scored.append((score, note.path, content))

        if not scored:
            return ToolResult.ok(f'No notes match "{query}".')

        scored.sort(key=lambda item: (-item[0], item[1]))
        lines = [f'{len(scored)} notes match "{query}":']
        for score, path, _ in scored[:limit]:
            lines.append(f"- {path} ({score} matches)")
        if len(scored) > limit:
            lines.append(f"(showing first {limit})")
        return ToolResult.ok("\n".join(lines))


class GrepSearchTool(ToolExecutor):
    name = "grep_search"
    requires_approval = False
    description = "Full-text search across notes, line by line. Supports regular expressions."
    parameters = {
        "query": "Text or regular expression to search for",
        "directory": "Optional folder to restrict the search to",
        "regex": "true to treat query as a regular expression (default false)",
        "case_sensitive": "true for case-sensitive matching (default false)",
        "limit": "Maximum number of matching lines (default 50)",
    }

    async def execute(self, params, context):
        query = require_str(params, "query")
        directory = optional_str(params, "directory")
        is_regex = optional_bool(params, "regex", False)
        case_sensitive = optional_bool(params, "case_sensitive", False)
        limit = optional_int(params, "limit", 50)

        flags = 0 if case_sensitive else re.IGNORECASE
        try:
            pattern = re.compile(query if is_regex else re.escape(query), flags)
        except re.error as e:
            return ToolResult.fail(f"invalid regular expression: {e}")

        matches = []
        async for note, content in context.store.iter_contents(directory):
            if len(matches) >= limit:
                break
            for line_no, line in enumerate(content.split("\n"), start=1):
                if pattern.search(line):
                    matches.append((note.path, line_no, line.strip()[:200]))
                    if len(matches) >= limit:
                        break

        if not matches:
            return ToolResult.ok(f'No matches for "{query}".')

        lines = [f"{len(matches)} matches:"]
        for i, (path, line_no, text) in enumerate(matches, start=1):
            lines.append(f"{i}. {path}:{line_no}\n   `{text}`")
        if len(matches) >= limit:
            lines.append(f"(results truncated to the first {limit})")
        return ToolResult.ok("\n".join(lines))


class SemanticSearchTool(ToolExecutor):
    name = "semantic_search"
    requires_approval = False
    description = (
        "Search notes by meaning using the vector index. Good for concepts "
        "that may be worded differently in the notes."
    )
    parameters = {
        "query": "Natural-language description of what to find",
        "directory": "Optional folder to restrict the search to",
        "limit": "Maximum number of results (default 10)",
        "min_score": "Minimum similarity between 0 and 1 (default: the configured floor)",
    }

    async def execute(self, params, context):
        query = require_str(params, "query")
        directory = optional_str(params, "directory")
        limit = optional_int(params, "limit", 10)

        rag = context.rag
        if rag is None or not rag.is_initialized():
            return ToolResult.fail(
                "semantic index is not initialized. Configure embeddings and build the index first."
            )
        min_score = optional_float(params, "min_score", rag.config.min_score)

        results = await rag.search(
            query,
            SearchOptions(limit=limit, min_score=min_score, directory=directory),
        )

        if not results:
            return ToolResult.ok(
                f'No semantically related content for "{query}" '
                f"(minimum similarity {min_score:.0%}). "
                "Try a lower min_score, or grep_search for exact keywords."
            )

        blocks = []
        for i, r in enumerate(results, start=1):
            preview = r.content if len(r.content) <= PREVIEW_LENGTH else r.content[:PREVIEW_LENGTH] + "..."
            blocks.append(
                f"### {i}. {r.file_path} (similarity {r.score:.1%})\n"
                f"Section: {r.heading or '(no heading)'}\n"
                f"Lines: {r.start_line}-{r.end_line}\n\n"
                f"```\n{preview}\n```"
            )
        return ToolResult.ok(
            f"{len(results)} related results:\n\n" + "\n\n---\n\n".join(blocks)
        )
