"""Services for the RAG retrieval pipeline."""
from .document_loader import DocumentLoader
from .chunking_engine import ChunkingEngine
from .embedding_model import EmbeddingModel, LocalHashEmbedder, HuggingFaceEmbeddingProvider
from .vector_store import VectorStore, StoreMatch, StoreStats
from .reranker import KeywordReranker, CohereReranker, MMRReranker, apply_mmr, create_reranker
from .retrieval_engine import RetrievalEngine
from .llm_client import LLMClient, LLMResponse
from .rag_pipeline import RAGPipeline

__all__ = [
    'DocumentLoader', 'ChunkingEngine', 'EmbeddingModel', 'LocalHashEmbedder',
    'HuggingFaceEmbeddingProvider', 'VectorStore', 'StoreMatch', 'StoreStats',
    'KeywordReranker', 'CohereReranker', 'MMRReranker', 'apply_mmr', 'create_reranker',
    'RetrievalEngine', 'LLMClient', 'LLMResponse', 'RAGPipeline'
]
