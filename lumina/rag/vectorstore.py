"""
Vector Store
============

A file-based vector index for note chunks, kept under the workspace's
private data directory:

    <workspace>/.lumina/vectors/
        documents.json   chunk text, headings, line ranges, file timestamps
        embeddings.npy   numpy matrix, one row per chunk, same order

Everything is held in memory for search and written back after each
change. Writes go through a temporary file and a rename, so a crash
mid-write leaves the previous index intact.

How Vector Search Works:
1. Every chunk is stored with its embedding vector
2. A query vector is compared against all rows with cosine similarity
3. The best rows above the score floor are returned, best first

Cosine Similarity:
    cos(A, B) = (A · B) / (||A|| * ||B||)
    Raw values lie in [-1, 1]; scores are clamped to [0, 1] since
    opposite directions are as useless to a reader as unrelated ones.
"""

import asyncio
import json
import os
from dataclasses import asdict
from pathlib import Path

import numpy as np

from lumina.rag.models import (
    Chunk,
    ChunkWithVector,
    EmbeddingDimensionError,
    IndexStatus,
    SearchResult,
    VectorStoreError,
)
from lumina.utils.logger import Logger

logger = Logger("VectorStore")

FORMAT_VERSION = 1


def _in_directory(file_path: str, directory: str | None) -> bool:
    if not directory:
        return True
    prefix = directory.strip("/")
    return not prefix or file_path == prefix or file_path.startswith(prefix + "/")


class VectorStore:
    """
    File-based vector store with cosine similarity search.

    Example:
        store = VectorStore(Path("notes/.lumina/vectors"))
        await store.initialize()

        await store.upsert([ChunkWithVector(..., vector=(0.1, -0.2, ...))])
        results = store.search(query_vector, limit=5, min_score=0.3)
    """

    def __init__(self, storage_path: Path):
        """
        Initialize the vector store. Nothing is read until initialize().

        Args:
            storage_path: Directory to store data files
        """
        self.storage_path = storage_path
        self.documents_file = storage_path / "documents.json"
        self.embeddings_file = storage_path / "embeddings.npy"

        # In-memory index; row i of _embeddings belongs to _chunks[i]
        self._chunks: list[Chunk] = []
        self._embeddings: np.ndarray | None = None
        self._id_to_index: dict[str, int] = {}
        self._file_times: dict[str, float] = {}
        self._initialized = False

    async def initialize(self) -> None:
        """Create the storage directory and load any existing index."""
        await asyncio.to_thread(self._load_sync)
        self._initialized = True
        logger.info(f"Vector store initialized with {len(self._chunks)} chunks")

    def is_initialized(self) -> bool:
        return self._initialized

    def _load_sync(self) -> None:
        self.storage_path.mkdir(parents=True, exist_ok=True)
        if not self.documents_file.exists():
            return

        try:
            with open(self.documents_file, encoding="utf-8") as f:
                data = json.load(f)
            chunks = [Chunk(**item) for item in data.get("chunks", [])]
            embeddings = np.load(self.embeddings_file) if self.embeddings_file.exists() else None
        except (OSError, ValueError, TypeError) as e:
            logger.error("Vector index is unreadable, starting empty", e)
            return

        rows = 0 if embeddings is None else embeddings.shape[0]
        if rows != len(chunks):
            logger.warning(
                f"Vector index is inconsistent ({len(chunks)} chunks, {rows} vectors), starting empty"
            )
            return

        self._chunks = chunks
        self._embeddings = embeddings if chunks else None
        self._id_to_index = {chunk.id: i for i, chunk in enumerate(chunks)}
        self._file_times = {path: float(t) for path, t in data.get("files", {}).items()}
        logger.debug(f"Loaded {len(chunks)} chunks from disk")

    async def _save(self) -> None:
        """Snapshot the index and write it to disk off the event loop."""
        payload = {
            "version": FORMAT_VERSION,
            "files": dict(self._file_times),
            "chunks": [asdict(chunk) for chunk in self._chunks],
        }
        embeddings = None if self._embeddings is None else self._embeddings.copy()
        try:
            await asyncio.to_thread(self._write_sync, payload, embeddings)
        except OSError as e:
            raise VectorStoreError(f"could not write vector index: {e}") from e

    def _write_sync(self, payload: dict, embeddings: np.ndarray | None) -> None:
        self.storage_path.mkdir(parents=True, exist_ok=True)

        if embeddings is None:
            if self.embeddings_file.exists():
                self.embeddings_file.unlink()
        else:
            tmp_embeddings = self.storage_path / "embeddings.tmp.npy"
            np.save(tmp_embeddings, embeddings)
            os.replace(tmp_embeddings, self.embeddings_file)

        tmp_documents = self.storage_path / "documents.tmp.json"
        with open(tmp_documents, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False)
        os.replace(tmp_documents, self.documents_file)

        logger.debug(f"Saved {len(payload['chunks'])} chunks to disk")

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise VectorStoreError("vector store used before initialize()")

    async def upsert(self, chunks: list[ChunkWithVector]) -> None:
        """
        Add or replace chunks. A chunk with the same identity
        (file, start line, end line) is replaced.
        """
        self._require_initialized()
        if not chunks:
            return

        for item in chunks:
            vector = np.asarray(item.vector, dtype=np.float32)
            if self._embeddings is not None and vector.shape[0] != self._embeddings.shape[1]:
                raise EmbeddingDimensionError(
                    f"vector for {item.id} has {vector.shape[0]} dimensions, "
                    f"index has {self._embeddings.shape[1]}"
                )

            chunk = Chunk(
                file_path=item.file_path,
                content=item.content,
                heading=item.heading,
                start_line=item.start_line,
                end_line=item.end_line,
                source_modified_at=item.source_modified_at,
            )

            if self._embeddings is None:
                self._chunks = [chunk]
                self._embeddings = vector.reshape(1, -1)
                self._id_to_index = {chunk.id: 0}
            elif chunk.id in self._id_to_index:
                idx = self._id_to_index[chunk.id]
                self._chunks[idx] = chunk
                self._embeddings[idx] = vector
            else:
                self._chunks.append(chunk)
                self._embeddings = np.vstack([self._embeddings, vector])
                self._id_to_index[chunk.id] = len(self._chunks) - 1

            self._file_times[chunk.file_path] = max(
                self._file_times.get(chunk.file_path, 0.0), chunk.source_modified_at
            )

        await self._save()
        logger.debug(f"Upserted {len(chunks)} chunks")

    async def mark_indexed(self, file_path: str, modified_at: float) -> None:
        """Record a file as indexed even when it produced no chunks."""
        self._require_initialized()
        self._file_times[file_path] = modified_at
        await self._save()

    async def delete_by_file(self, file_path: str) -> int:
        """
        Remove every chunk of one file.

        Returns:
            Number of chunks removed
        """
        self._require_initialized()
        keep = [i for i, chunk in enumerate(self._chunks) if chunk.file_path != file_path]
        removed = len(self._chunks) - len(keep)
        known = self._file_times.pop(file_path, None) is not None

        if removed == 0 and not known:
            return 0

        if removed:
            self._chunks = [self._chunks[i] for i in keep]
            self._embeddings = self._embeddings[keep] if keep else None
            self._id_to_index = {chunk.id: i for i, chunk in enumerate(self._chunks)}

        await self._save()
        logger.debug(f"Removed {removed} chunks of {file_path}")
        return removed

    async def clear(self) -> None:
        """Clear the whole index."""
        self._require_initialized()
        self._chunks = []
        self._embeddings = None
        self._id_to_index = {}
        self._file_times = {}
        await self._save()
        logger.info("Vector store cleared")

    def search(
        self,
        query_vector: list[float],
        limit: int = 10,
        min_score: float = 0.0,
        directory: str | None = None
    ) -> list[SearchResult]:
        """
        Find the chunks most similar to a query vector.

        Args:
            query_vector: The query embedding
            limit: Maximum number of results
            min_score: Results scoring below this are dropped
            directory: Only return chunks of files under this folder

        Returns:
            SearchResults sorted by score, highest first
        """
        self._require_initialized()
        if self._embeddings is None or not self._chunks or limit <= 0:
            return []

        query = np.asarray(query_vector, dtype=np.float32)
        if query.shape[0] != self._embeddings.shape[1]:
            raise EmbeddingDimensionError(
                f"query has {query.shape[0]} dimensions, index has {self._embeddings.shape[1]}"
            )

        query_norm = np.linalg.norm(query)
        if query_norm == 0:
            return []

        doc_norms = np.linalg.norm(self._embeddings, axis=1)
        # Avoid division by zero
        doc_norms = np.where(doc_norms == 0, 1, doc_norms)

        similarities = np.dot(self._embeddings, query) / (doc_norms * query_norm)
        scores = np.clip(similarities, 0.0, 1.0)

        # Stable sort keeps insertion order between equal scores
        order = np.argsort(-scores, kind="stable")

        output = []
        for i in order:
            score = float(scores[i])
            if score < min_score:
                break
            chunk = self._chunks[i]
            if not _in_directory(chunk.file_path, directory):
                continue
            output.append(SearchResult(
                file_path=chunk.file_path,
                content=chunk.content,
                score=score,
                heading=chunk.heading,
                start_line=chunk.start_line,
                end_line=chunk.end_line,
            ))
            if len(output) >= limit:
                break

        return output

    def needs_reindex(self, file_path: str, modified_at: float) -> bool:
        """True when the file is unknown or changed since it was indexed."""
        indexed_at = self._file_times.get(file_path)
        return indexed_at is None or modified_at > indexed_at

    def indexed_files(self) -> list[str]:
        return sorted(self._file_times)

    def get_status(self) -> IndexStatus:
        return IndexStatus(
            initialized=self._initialized,
            total_chunks=len(self._chunks),
            total_files=len({chunk.file_path for chunk in self._chunks}),
        )

    def __len__(self) -> int:
        """Get the number of chunks in the store."""
        return len(self._chunks)
