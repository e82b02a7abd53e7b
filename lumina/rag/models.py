"""
Retrieval Data Types
====================

Chunk             a slice of one note, bounded by headings and line windows
ChunkWithVector   a chunk plus its embedding, as stored in the index
SearchResult      a chunk returned by a query, with a 0-1 similarity score
"""

from dataclasses import dataclass, field
from typing import Callable


class RAGError(Exception):
    """Base class for retrieval failures."""


class RAGNotInitializedError(RAGError):
    """The index was used before initialize() was called."""


class IndexingInProgressError(RAGError):
    """A second indexing run was started while one is still going."""


class VectorStoreError(RAGError):
    """The on-disk index could not be read or written."""


class EmbeddingDimensionError(RAGError):
    """An embedding did not have the dimension the index expects."""


@dataclass(frozen=True)
class Chunk:
    """
    One indexed slice of a note.

    Line numbers are 1-based and inclusive. A chunk is identified by
    (file_path, start_line, end_line).
    """
    file_path: str
    content: str
    heading: str
    start_line: int
    end_line: int
    source_modified_at: float = 0.0

    @property
    def id(self) -> str:
        return f"{self.file_path}:{self.start_line}-{self.end_line}"


@dataclass(frozen=True)
class ChunkWithVector(Chunk):
    vector: tuple[float, ...] = field(default_factory=tuple)


@dataclass
class SearchResult:
    file_path: str
    content: str
    score: float
    heading: str = ""
    start_line: int = 0
    end_line: int = 0


@dataclass
class SearchOptions:
    limit: int | None = None        # None: the configured max_results
    min_score: float | None = None  # None: the configured min_score
    directory: str | None = None    # Only files under this folder


@dataclass
class IndexStatus:
    initialized: bool
    total_chunks: int
    total_files: int
    is_indexing: bool = False


@dataclass
class IndexProgress:
    current: int
    total: int
    current_file: str | None = None


IndexProgressCallback = Callable[[IndexProgress], None]
