"""
Reranking
=========

Cosine similarity is fast but coarse. A reranker model reads the query and
each candidate together and orders them more precisely. It is served over
HTTP by Jina, Cohere, SiliconFlow or a self-hosted TEI instance, all of
which accept the same request:

    POST {base_url}/rerank
    {"model": "...", "query": "...", "documents": ["...", ...], "top_n": N}

    → {"results": [{"index": 2, "relevance_score": 0.93}, ...]}

Reranking only reorders; scores stay the cosine similarities so that
min_score keeps one meaning. If the service is unreachable the original
order is kept and a warning is logged; search never fails because of it.
"""

import httpx

from lumina.rag.models import SearchResult
from lumina.utils.config import RAGConfig
from lumina.utils.logger import Logger

logger = Logger("Reranker")


class Reranker:
    def __init__(self, config: RAGConfig, timeout: float = 30.0):
        self.model = config.reranker_model
        self.api_key = config.reranker_api_key
        self.base_url = config.reranker_base_url
        self.timeout = timeout
        self._enabled = config.reranker_enabled and bool(self.base_url)

        if config.reranker_enabled and not self.base_url:
            logger.warning("Reranker enabled but RAG_RERANKER_BASE_URL is not set; reranking is off")

    def is_enabled(self) -> bool:
        return self._enabled

    async def rerank(self, query: str, results: list[SearchResult]) -> list[SearchResult]:
        """
        Reorder results by relevance to the query.

        Returns the input unchanged when reranking is disabled, there is
        nothing to reorder, or the service fails.
        """
        if not self._enabled or len(results) < 2:
            return results

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        body = {
            "model": self.model,
            "query": query,
            "documents": [r.content for r in results],
            "top_n": len(results),
        }
        url = f"{self.base_url.rstrip('/')}/rerank"

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, headers=headers, json=body)

            if response.status_code >= 400:
                logger.warning(f"Rerank API error: {response.status_code} - {response.text[:200]}")
                return results

            ranked = response.json()["results"]
            order = [int(item["index"]) for item in ranked]
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Rerank failed, keeping vector order: {e}")
            return results

        reordered = []
        seen = set()
        for index in order:
            if 0 <= index < len(results) and index not in seen:
                reordered.append(results[index])
                seen.add(index)
        # Anything the service left out keeps its vector order at the end
        reordered.extend(r for i, r in enumerate(results) if i not in seen)

        logger.debug(f"Reranked {len(results)} results")
        return reordered
