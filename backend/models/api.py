"""Request and response schemas for the HTTP API."""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from config import RERANK_TOP_K, TOP_K, USE_RERANKING


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class IngestRequest(_CamelModel):
    """Raw text document to ingest."""
    text: str
    title: str
    source: Optional[str] = None


class QueryOptions(_CamelModel):
    top_k: int = Field(default=TOP_K, ge=1, alias="topK")
    rerank_top_k: int = Field(default=RERANK_TOP_K, ge=1, alias="rerankTopK")
    use_reranking: bool = Field(default=USE_RERANKING, alias="useReranking")


class QueryRequest(_CamelModel):
    """Question to answer from the ingested documents."""
    query: str
    options: Optional[QueryOptions] = None


class Citation(_CamelModel):
    id: int
    source: str
    title: str
    text: str
    score: float
    section: Optional[str] = None


class RetrievedDoc(_CamelModel):
    id: str
    text: str
    metadata: Dict[str, Any]
    score: float
    rerank_score: Optional[float] = Field(default=None, alias="rerankScore")


class QueryResponse(_CamelModel):
    success: bool = True
    answer: str
    citations: List[Citation]
    retrieved_docs: List[RetrievedDoc] = Field(alias="retrievedDocs")
    total_time: int = Field(alias="totalTime")
    tokens_used: int = Field(alias="tokensUsed")
    estimated_cost: float = Field(alias="estimatedCost")


class Stats(_CamelModel):
    total_documents: int = Field(alias="totalDocuments")
    total_chunks: int = Field(alias="totalChunks")
    total_tokens: int = Field(alias="totalTokens")


class StatsResponse(_CamelModel):
    success: bool = True
    stats: Stats
