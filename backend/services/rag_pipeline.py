"""Pipeline orchestrator wiring ingestion and question answering."""
import logging
import time
import uuid
from typing import Any, Dict, List, Optional

from errors import PipelineError, ProviderError, ValidationError
from models.answer import QueryResult
from models.chunk import Chunk, RetrievalOptions
from models.document import ProcessedDocument
from services.chunking_engine import ChunkingEngine
from services.document_loader import DocumentLoader
from services.embedding_model import EmbeddingModel
from services.llm_client import LLMClient, estimate_cost
from services.reranker import create_reranker
from services.retrieval_engine import RetrievalEngine
from services.vector_store import VectorStore
from config import (
    GROQ_API_KEY,
    QUERY_EMBEDDING_MAX_RETRIES,
    QUERY_EMBEDDING_TIMEOUT,
    RERANK_TOP_K,
    TOP_K,
    USE_RERANKING,
)

logger = logging.getLogger(__name__)

NO_CONTEXT_ANSWER = "I cannot find any relevant information to answer your question."


class RAGPipeline:
    """
    Ingestion: text -> ChunkingEngine -> EmbeddingModel -> VectorStore upsert.
    Query: question -> RetrievalEngine (embed, search, rerank) -> LLMClient.
    """

    def __init__(
        self,
        chunking_engine: ChunkingEngine,
        embedding_model: EmbeddingModel,
        vector_store: VectorStore,
        retrieval_engine: RetrievalEngine,
        llm_client: Optional[LLMClient] = None,
        document_loader: Optional[DocumentLoader] = None,
        default_options: Optional[RetrievalOptions] = None
    ):
        self.chunking_engine = chunking_engine
        self.embedding_model = embedding_model
        self.vector_store = vector_store
        self.retrieval_engine = retrieval_engine
        self.llm_client = llm_client
        self.document_loader = document_loader or DocumentLoader()
        self.default_options = default_options or RetrievalOptions()

    @classmethod
    def from_config(cls) -> "RAGPipeline":
        """Assemble every component, picking providers by which keys are configured."""
        embedding_model = EmbeddingModel.from_config()
        query_embedding_model = EmbeddingModel.from_config(
            max_retries=QUERY_EMBEDDING_MAX_RETRIES,
            timeout=QUERY_EMBEDDING_TIMEOUT
        )
        vector_store = VectorStore()
        retrieval_engine = RetrievalEngine(vector_store, query_embedding_model, create_reranker())
        llm_client = LLMClient() if GROQ_API_KEY else None
        if llm_client is None:
            logger.warning("GROQ_API_KEY not set; queries with context will fail")

        return cls(
            chunking_engine=ChunkingEngine(),
            embedding_model=embedding_model,
            vector_store=vector_store,
            retrieval_engine=retrieval_engine,
            llm_client=llm_client,
            default_options=RetrievalOptions(
                top_k=TOP_K,
                rerank_top_k=RERANK_TOP_K,
                use_reranking=USE_RERANKING
            )
        )

    async def ingest_text(
        self,
        text: str,
        title: str,
        source: str = "upload",
        extra_metadata: Optional[Dict[str, Any]] = None
    ) -> ProcessedDocument:
        """
        Chunk, embed and store one document.

        Args:
            text: Full document text
            title: Document title
            source: Origin tag stored with every chunk
            extra_metadata: File metadata (file_type, file_size, word_count, page_count)

        Returns:
            ProcessedDocument with the stored chunks

        Raises:
            ValidationError: If text or title is empty
            StoreError: If the vector store rejects an upsert batch
            PipelineError: If the built chunks break the positional metadata invariant
        """
        if not text or not text.strip():
            raise ValidationError.from_message("MISSING_FIELD", "Text is required", field="text")
        if not title or not title.strip():
            raise ValidationError.from_message("MISSING_FIELD", "Title is required", field="title")

        start_time = time.time()
        document_id = str(uuid.uuid4())
        source = source or "upload"

        total_tokens = self.chunking_engine.count_tokens(text)
        chunk_texts = self.chunking_engine.chunk_text(text)
        embeddings = await self.embedding_model.embed_batch(chunk_texts)

        chunks = self.chunking_engine.build_chunks(
            document_id=document_id,
            chunk_texts=chunk_texts,
            title=title,
            source=source,
            embeddings=embeddings,
            extra_metadata=extra_metadata
        )
        self._check_chunk_invariants(chunks)

        if chunks:
            await self.vector_store.upsert([chunk.to_record() for chunk in chunks])
        else:
            logger.warning(f"Document '{title}' produced no chunks; nothing stored")

        processing_time_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Ingested '{title}' as {document_id}: {len(chunks)} chunks, "
            f"{total_tokens} tokens in {processing_time_ms}ms"
        )

        return ProcessedDocument(
            id=document_id,
            title=title,
            source=source,
            chunks=chunks,
            total_tokens=total_tokens,
            processing_time_ms=processing_time_ms
        )

    async def ingest_file(self, file_name: str, data: bytes) -> ProcessedDocument:
        """Extract text from an uploaded file and ingest it as a "file-upload" document."""
        parsed = self.document_loader.load_bytes(file_name, data)
        extra_metadata = {
            "file_type": parsed.file_type,
            "file_size": parsed.size,
            "word_count": parsed.word_count,
            "page_count": parsed.page_count,
        }
        return await self.ingest_text(
            parsed.text,
            title=parsed.file_name,
            source="file-upload",
            extra_metadata=extra_metadata
        )

    @staticmethod
    def _check_chunk_invariants(chunks: List[Chunk]) -> None:
        """chunkIndex must be contiguous from 0 and totalChunks equal the chunk count."""
        for expected_index, chunk in enumerate(chunks):
            metadata = chunk.metadata
            if (
                metadata.chunk_index != expected_index
                or metadata.position != expected_index
                or metadata.total_chunks != len(chunks)
            ):
                raise PipelineError.from_message(
                    "CHUNK_INVARIANT_VIOLATED",
                    f"Chunk metadata invariant violated for {chunk.id}",
                    chunk_id=chunk.id,
                    chunk_index=metadata.chunk_index,
                    expected_index=expected_index,
                    total_chunks=metadata.total_chunks,
                    actual_chunks=len(chunks)
                )

    async def answer(self, query: str, options: Optional[RetrievalOptions] = None) -> QueryResult:
        """
        Answer a question from the ingested documents.

        Zero retrieved chunks is a normal outcome: the fixed NO_CONTEXT_ANSWER
        with no citations, no tokens and no cost.

        Raises:
            ValidationError: If the query is empty
            StoreError: If the vector store request fails
            ProviderError: If generation fails
        """
        if not query or not query.strip():
            raise ValidationError.from_message("MISSING_FIELD", "Query is required", field="query")

        start_time = time.time()
        logger.info(f"Processing query: {query[:100]}...")

        retrieved = await self.retrieval_engine.retrieve(query, options or self.default_options)

        if not retrieved:
            return QueryResult(
                answer=NO_CONTEXT_ANSWER,
                total_time_ms=int((time.time() - start_time) * 1000)
            )

        if self.llm_client is None:
            raise ProviderError.from_message(
                "GENERATION_UNAVAILABLE",
                "No generation provider is configured",
                provider="groq"
            )

        generation = await self.llm_client.generate_answer(query, retrieved)
        total_time_ms = int((time.time() - start_time) * 1000)

        logger.info(
            f"Answered query with {len(retrieved)} chunks, "
            f"{generation.tokens_used} tokens in {total_time_ms}ms"
        )

        return QueryResult(
            answer=generation.answer,
            citations=generation.citations,
            retrieved_docs=retrieved,
            total_time_ms=total_time_ms,
            tokens_used=generation.tokens_used,
            estimated_cost=estimate_cost(generation.tokens_used, generation.model_used)
        )

    async def delete_document(self, document_id: str) -> int:
        """
        Delete every chunk tagged with the document id.

        Matches chunks whose documentId or source tag equals document_id.

        Returns:
            Number of chunks deleted
        """
        if not document_id or not document_id.strip():
            raise ValidationError.from_message("MISSING_FIELD", "Document id is required", field="document_id")

        ids: List[str] = []
        for metadata_filter in ({"documentId": document_id}, {"source": document_id}):
            for chunk_id in await self.vector_store.find_ids(metadata_filter):
                if chunk_id not in ids:
                    ids.append(chunk_id)

        deleted = await self.vector_store.delete_by_ids(ids)
        logger.info(f"Deleted document {document_id} ({deleted} chunks)")
        return deleted

    async def get_stats(self) -> Dict[str, int]:
        """
        Aggregate counts from the vector store.

        Tokens are not tracked by the store and are reported as 0.
        """
        stats = await self.vector_store.describe_stats()
        return {
            "totalDocuments": stats.vector_count,
            "totalChunks": stats.vector_count,
            "totalTokens": 0,
        }
