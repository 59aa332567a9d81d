"""Retrieval engine for orchestrating query embedding, search and reranking."""
import logging
from typing import List, Optional

from models.chunk import Chunk, ChunkMetadata, RetrievalOptions, RetrievalResult
from services.vector_store import VectorStore, StoreMatch
from services.embedding_model import EmbeddingModel

logger = logging.getLogger(__name__)


class RetrievalEngine:
    """Embed a query, fetch nearest candidates, and optionally rerank them."""

    def __init__(
        self,
        vector_store: VectorStore,
        embedding_model: EmbeddingModel,
        reranker=None
    ):
        """
        Initialize the retrieval engine.

        Args:
            vector_store: VectorStore instance for similarity search
            embedding_model: EmbeddingModel instance for query embedding
            reranker: Strategy from services.reranker, used when a query
                asks for reranking
        """
        self.vector_store = vector_store
        self.embedding_model = embedding_model
        self.reranker = reranker
        logger.info(
            f"Initialized RetrievalEngine (reranker={getattr(reranker, 'name', 'none')})"
        )

    async def retrieve(
        self,
        query: str,
        options: Optional[RetrievalOptions] = None
    ) -> List[RetrievalResult]:
        """
        Retrieve relevant chunks for a query.

        1. Embed the query
        2. Fetch the top_k nearest chunks from the vector store
        3. Rerank to rerank_top_k when requested, otherwise truncate in
           store order

        Args:
            query: User question
            options: top_k, rerank_top_k and use_reranking

        Returns:
            At most rerank_top_k results. An empty list means no relevant
            context, which is not an error.

        Raises:
            StoreError: If the vector store request fails
        """
        options = options or RetrievalOptions()

        if not query or not query.strip():
            logger.warning("Empty query string provided, returning empty results")
            return []

        rerank = options.use_reranking and self.reranker is not None
        include_values = rerank and getattr(self.reranker, "requires_embeddings", False)

        logger.debug(f"Embedding query: {query[:100]}...")
        query_embedding = await self.embedding_model.embed_text(query)

        logger.debug(f"Searching for top {options.top_k} chunks")
        matches = await self.vector_store.query(
            query_embedding,
            top_k=options.top_k,
            include_values=include_values
        )

        results = [self._to_result(match) for match in matches]

        if not results:
            logger.info("No chunks found for query")
            return []

        if not rerank:
            return results[:options.rerank_top_k]

        reranked = await self.reranker.rerank(query, results, options.rerank_top_k)
        logger.info(
            f"Retrieved {len(results)} candidates, kept {len(reranked)} after "
            f"{self.reranker.name} reranking"
        )
        return reranked[:options.rerank_top_k]

    @staticmethod
    def _to_result(match: StoreMatch) -> RetrievalResult:
        metadata = dict(match.metadata)
        text = metadata.pop("text", "") or ""
        chunk = Chunk(
            id=match.id,
            text=text,
            metadata=ChunkMetadata.from_dict(metadata),
            embedding=match.values
        )
        return RetrievalResult(chunk=chunk, score=match.score or 0.0)
