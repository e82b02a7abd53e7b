"""
Markdown Chunking
=================

Splits a note into pieces small enough to embed well.

1. YAML frontmatter at the top of the note is skipped
2. Every heading (outside fenced code) starts a new section
3. Sections longer than chunk_size characters are cut into line windows,
   with chunk_overlap_lines lines repeated between neighbouring windows
4. Pieces shorter than min_chunk_size characters are dropped

Line numbers always refer to the original file, 1-based and inclusive,
so a result can point the user at the exact lines it came from.
The same input always produces the same chunks.
"""

import re

from lumina.rag.models import Chunk
from lumina.utils.config import RAGConfig

HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
FENCE_PATTERN = re.compile(r"^\s*(```|~~~)")


class MarkdownChunker:
    """
    Heading-aware line-window chunker.

    Example:
        chunker = MarkdownChunker(RAGConfig(chunk_size=800))
        chunks = chunker.chunk(content, "projects/alpha.md", modified_at=1700000000.0)
    """

    def __init__(self, config: RAGConfig | None = None):
        config = config or RAGConfig()
        self.chunk_size = config.chunk_size
        self.overlap_lines = config.chunk_overlap_lines
        self.min_chunk_size = config.min_chunk_size

    def chunk(self, content: str, file_path: str, modified_at: float = 0.0) -> list[Chunk]:
        lines = content.replace("\r\n", "\n").split("\n")
        body_start = self._skip_frontmatter(lines)

        chunks = []
        for heading, start, end in self._sections(lines, body_start):
            start, end = self._trim_blank(lines, start, end)
            if start > end:
                continue
            for window_start, window_end in self._windows(lines, start, end):
                text = "\n".join(lines[window_start:window_end + 1]).strip()
                if len(text) < self.min_chunk_size:
                    continue
                chunks.append(Chunk(
                    file_path=file_path,
                    content=text,
                    heading=heading,
                    start_line=window_start + 1,
                    end_line=window_end + 1,
                    source_modified_at=modified_at,
                ))
        return chunks

    @staticmethod
    def _skip_frontmatter(lines: list[str]) -> int:
        if not lines or lines[0].strip() != "---":
            return 0
        for i in range(1, len(lines)):
            if lines[i].strip() in ("---", "..."):
                return i + 1
        # Unterminated frontmatter is treated as ordinary text
        return 0

    @staticmethod
    def _sections(lines: list[str], start: int) -> list[tuple[str, int, int]]:
        """Split into (heading, first_index, last_index) sections."""
        sections = []
        heading = ""
        section_start = start
        in_fence = False

        for i in range(start, len(lines)):
            line = lines[i]
            if FENCE_PATTERN.match(line):
                in_fence = not in_fence
                continue
            if in_fence:
                continue
            match = HEADING_PATTERN.match(line)
            if match and i > section_start:
                sections.append((heading, section_start, i - 1))
                section_start = i
            if match:
                heading = match.group(2)

        if section_start < len(lines):
            sections.append((heading, section_start, len(lines) - 1))
        return sections

    @staticmethod
    def _trim_blank(lines: list[str], start: int, end: int) -> tuple[int, int]:
        while start <= end and not lines[start].strip():
            start += 1
        while end >= start and not lines[end].strip():
            end -= 1
        return start, end

    def _windows(self, lines: list[str], start: int, end: int) -> list[tuple[int, int]]:
        """Cut lines[start..end] into windows of at most chunk_size characters."""
        windows = []
        i = start
        while i <= end:
            size = 0
            j = i
            while j <= end:
                added = len(lines[j]) + 1
                # A single over-long line still forms its own window
                if j > i and size + added > self.chunk_size:
                    break
                size += added
                j += 1
            windows.append((i, j - 1))
            if j > end:
                break
            i = max(j - self.overlap_lines, i + 1)
        return windows
