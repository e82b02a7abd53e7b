"""
RAG (Retrieval Augmented Generation) System
============================================

Semantic search over the notes workspace. Instead of pasting whole notes
into the model's context, RAG:

1. Splits notes into heading-aware chunks
2. Embeds each chunk as a vector
3. Finds the chunks closest in meaning to a query

Components:
- chunker.py: Split markdown into chunks with line ranges
- embeddings.py: Generate vector embeddings from text
- vectorstore.py: Store and search vectors under <workspace>/.lumina/vectors
- reranker.py: Optional second-pass ordering over HTTP
- models.py: Data types and errors

Indexing:
- full_index() clears the index and embeds every note
- incremental_index() embeds only notes changed since they were indexed,
  and forgets notes that no longer exist
- Only one indexing run may be active at a time
"""

from pathlib import Path

from lumina.rag.chunker import MarkdownChunker
from lumina.rag.embeddings import Embedder
from lumina.rag.models import (
    Chunk,
    ChunkWithVector,
    EmbeddingDimensionError,
    IndexingInProgressError,
    IndexProgress,
    IndexProgressCallback,
    IndexStatus,
    RAGError,
    RAGNotInitializedError,
    SearchOptions,
    SearchResult,
    VectorStoreError,
)
from lumina.rag.reranker import Reranker
from lumina.rag.vectorstore import VectorStore
from lumina.utils.config import RAGConfig
from lumina.utils.logger import Logger
from lumina.workspace import NoteStore, WorkspaceError

logger = Logger("RAG")


class RAGManager:
    """
    Main interface for the retrieval system.

    The RAGManager coordinates chunking, embeddings, vector storage and
    reranking, and is the only writer of the vector index.

    Example:
        rag = RAGManager(config.rag)
        await rag.initialize(Path("~/Notes").expanduser())

        await rag.incremental_index(on_progress=lambda p: print(p.current, p.total))

        results = await rag.search("quarterly planning", SearchOptions(limit=5))
        for result in results:
            print(f"{result.file_path}:{result.start_line} {result.score:.2f}")
    """

    def __init__(
        self,
        config: RAGConfig | None = None,
        embedder: Embedder | None = None,
        reranker: Reranker | None = None,
        chunker: MarkdownChunker | None = None
    ):
        self.config = config or RAGConfig()
        self.embedder = embedder or Embedder(self.config)
        self.reranker = reranker or Reranker(self.config)
        self.chunker = chunker or MarkdownChunker(self.config)

        self.store: NoteStore | None = None
        self.vectorstore: VectorStore | None = None
        self._is_indexing = False

    async def initialize(self, workspace: Path | str | NoteStore) -> None:
        """
        Open (or create) the index of a workspace.

        Args:
            workspace: Workspace root or an existing note store for it
        """
        if isinstance(workspace, NoteStore):
            self.store = workspace
        else:
            self.store = NoteStore(Path(workspace), data_dir_name=self.config.data_dir_name)

        self.vectorstore = VectorStore(self.store.data_dir / "vectors")
        await self.vectorstore.initialize()
        logger.info(f"RAG system initialized for {self.store.root}")

    def is_initialized(self) -> bool:
        return self.vectorstore is not None and self.vectorstore.is_initialized()

    def _require_initialized(self) -> VectorStore:
        if not self.is_initialized():
            raise RAGNotInitializedError("RAG manager is not initialized; call initialize() first")
        return self.vectorstore

    def _begin_indexing(self) -> VectorStore:
        vectorstore = self._require_initialized()
        if self._is_indexing:
            raise IndexingInProgressError("indexing already in progress")
        self._is_indexing = True
        return vectorstore

    # ==========================================================================
    # Indexing
    # ==========================================================================

    async def full_index(self, on_progress: IndexProgressCallback | None = None) -> int:
        """
        Rebuild the index from scratch.

        Returns:
            Number of notes indexed
        """
        vectorstore = self._begin_indexing()
        try:
            await vectorstore.clear()
            notes = await self.store.list_notes()
            total = len(notes)
            logger.info(f"Full index of {total} notes")

            for processed, note in enumerate(notes):
                if on_progress:
                    on_progress(IndexProgress(current=processed, total=total, current_file=note.path))
                await self._index_note(note.path, note.modified_at)

            if on_progress:
                on_progress(IndexProgress(current=total, total=total))
            return total
        finally:
            self._is_indexing = False

    async def incremental_index(self, on_progress: IndexProgressCallback | None = None) -> int:
        """
        Re-embed notes changed since they were indexed and drop notes
        that were deleted.

        Returns:
            Number of notes (re)indexed
        """
        vectorstore = self._begin_indexing()
        try:
            notes = await self.store.list_notes()
            present = {note.path for note in notes}

            for stale in vectorstore.indexed_files():
                if stale not in present:
                    logger.debug(f"Dropping deleted note from index: {stale}")
                    await vectorstore.delete_by_file(stale)

            changed = [n for n in notes if vectorstore.needs_reindex(n.path, n.modified_at)]
            total = len(changed)
            logger.info(f"Incremental index: {total} of {len(notes)} notes changed")

            for processed, note in enumerate(changed):
                if on_progress:
                    on_progress(IndexProgress(current=processed, total=total, current_file=note.path))
                await self._index_note(note.path, note.modified_at)

            if on_progress:
                on_progress(IndexProgress(current=total, total=total))
            return total
        finally:
            self._is_indexing = False

    async def _index_note(self, path: str, modified_at: float) -> None:
        try:
            content = await self.store.read(path)
        except (WorkspaceError, OSError, ValueError) as e:
            logger.warning(f"Skipping unreadable note {path}: {e}")
            return
        await self._index_file(self.vectorstore, path, content, modified_at)

    def _require_idle(self) -> VectorStore:
        vectorstore = self._require_initialized()
        if self._is_indexing:
            raise IndexingInProgressError("indexing in progress; the change is picked up by the next index run")
        return vectorstore

    async def index_file(self, file_path: str, content: str | None = None, modified_at: float | None = None) -> int:
        """
        Chunk, embed and store one note, replacing its previous chunks.

        Args:
            file_path: Workspace-relative note path
            content: Note text (read from the workspace when omitted)
            modified_at: Modification time (read from the workspace when omitted)

        Returns:
            Number of chunks stored

        Raises:
            IndexingInProgressError: While a full or incremental index runs
        """
        vectorstore = self._require_idle()
        return await self._index_file(vectorstore, file_path, content, modified_at)

    async def _index_file(
        self,
        vectorstore: VectorStore,
        file_path: str,
        content: str | None,
        modified_at: float | None
    ) -> int:
        if content is None:
            content = await self.store.read(file_path)
        if modified_at is None:
            modified_at = await self.store.modified_at(file_path)

        chunks = self.chunker.chunk(content, file_path, modified_at)
        await vectorstore.delete_by_file(file_path)

        if not chunks:
            await vectorstore.mark_indexed(file_path, modified_at)
            return 0

        vectors = await self.embedder.embed_batch([c.content for c in chunks])
        await vectorstore.upsert([
            ChunkWithVector(
                file_path=chunk.file_path,
                content=chunk.content,
                heading=chunk.heading,
                start_line=chunk.start_line,
                end_line=chunk.end_line,
                source_modified_at=chunk.source_modified_at,
                vector=tuple(vector),
            )
            for chunk, vector in zip(chunks, vectors)
        ])
        logger.debug(f"Indexed {file_path} ({len(chunks)} chunks)")
        return len(chunks)

    async def remove_file(self, file_path: str) -> None:
        """
        Remove a note from the index.

        Raises:
            IndexingInProgressError: While a full or incremental index runs
        """
        vectorstore = self._require_idle()
        await vectorstore.delete_by_file(file_path)

    # ==========================================================================
    # Search
    # ==========================================================================

    def _candidate_count(self, limit: int) -> int:
        if not self.reranker.is_enabled():
            return limit
        return max(limit * self.config.rerank_oversample_factor, self.config.rerank_min_candidates)

    async def search(self, query: str, options: SearchOptions | None = None) -> list[SearchResult]:
        """
        Search for note chunks similar to the query.

        With reranking enabled, more candidates than requested are pulled
        from the vector index, reordered, then cut back to the limit.

        Args:
            query: The search query
            options: Limit, score floor and folder filter

        Returns:
            List of SearchResults, most relevant first
        """
        vectorstore = self._require_initialized()
        options = options or SearchOptions()
        limit = options.limit if options.limit is not None else self.config.max_results
        min_score = options.min_score if options.min_score is not None else self.config.min_score

        logger.debug(f"RAG search: '{query[:50]}'")

        query_vector = await self.embedder.embed(query)
        results = vectorstore.search(
            query_vector,
            limit=self._candidate_count(limit),
            min_score=min_score,
            directory=options.directory,
        )

        if self.reranker.is_enabled() and results:
            results = await self.reranker.rerank(query, results)
        results = results[:limit]

        logger.debug(f"Found {len(results)} results")
        return results

    def get_status(self) -> IndexStatus:
        if self.vectorstore is None:
            return IndexStatus(initialized=False, total_chunks=0, total_files=0, is_indexing=self._is_indexing)

        status = self.vectorstore.get_status()
        status.is_indexing = self._is_indexing
        return status


__all__ = [
    "Chunk",
    "ChunkWithVector",
    "Embedder",
    "EmbeddingDimensionError",
    "IndexProgress",
    "IndexStatus",
    "IndexingInProgressError",
    "MarkdownChunker",
    "RAGError",
    "RAGManager",
    "RAGNotInitializedError",
    "Reranker",
    "SearchOptions",
    "SearchResult",
    "VectorStore",
    "VectorStoreError",
]
