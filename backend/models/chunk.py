"""Chunk data models."""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from config import RERANK_TOP_K, TOP_K, USE_RERANKING


@dataclass
class ChunkMetadata:
    """Metadata stored alongside each chunk in the vector store."""
    source: str
    title: str
    position: int
    chunk_index: int
    total_chunks: int
    section: Optional[str] = None
    document_id: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    word_count: Optional[int] = None
    page_count: Optional[int] = None

    # Wire names used in the vector store and the API
    _WIRE_NAMES = {
        "source": "source",
        "title": "title",
        "position": "position",
        "chunk_index": "chunkIndex",
        "total_chunks": "totalChunks",
        "section": "section",
        "document_id": "documentId",
        "file_type": "fileType",
        "file_size": "fileSize",
        "word_count": "wordCount",
        "page_count": "pageCount",
    }

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with camelCase keys, dropping unset optional fields."""
        data = {}
        for attr, wire_name in self._WIRE_NAMES.items():
            value = getattr(self, attr)
            if value is not None:
                data[wire_name] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChunkMetadata":
        """Build metadata from a vector store record, tolerating missing keys."""
        values = {
            attr: data.get(wire_name)
            for attr, wire_name in cls._WIRE_NAMES.items()
        }
        values["source"] = values["source"] or ""
        values["title"] = values["title"] or ""
        for attr in ("position", "chunk_index", "total_chunks"):
            values[attr] = int(values[attr] or 0)
        return cls(**values)


@dataclass
class Chunk:
    """Represents a document chunk for retrieval."""
    id: str  # Format: "{document_id}_chunk_{index}"
    text: str
    metadata: ChunkMetadata
    embedding: Optional[List[float]] = None

    def to_record(self) -> Dict[str, Any]:
        """Vector store record: chunk text travels inside the metadata."""
        if self.embedding is None:
            raise ValueError(f"Chunk {self.id} has no embedding")
        return {
            "id": self.id,
            "values": self.embedding,
            "metadata": {"text": self.text, **self.metadata.to_dict()},
        }

    def to_dict(self, include_embedding: bool = False) -> Dict[str, Any]:
        data = {"id": self.id, "text": self.text, "metadata": self.metadata.to_dict()}
        if include_embedding:
            data["embedding"] = self.embedding
        return data


@dataclass
class RetrievalResult:
    """Chunk with raw similarity score and optional rerank score."""
    chunk: Chunk
    score: float
    rerank_score: Optional[float] = None

    @property
    def final_score(self) -> float:
        """Score that determines final ordering."""
        return self.rerank_score if self.rerank_score is not None else self.score

    def to_dict(self) -> Dict[str, Any]:
        data = self.chunk.to_dict()
        data["score"] = self.score
        if self.rerank_score is not None:
            data["rerankScore"] = self.rerank_score
        return data


@dataclass
class RetrievalOptions:
    """Per-query retrieval settings."""
    top_k: int = TOP_K
    rerank_top_k: int = RERANK_TOP_K
    use_reranking: bool = USE_RERANKING

    def __post_init__(self):
        if self.top_k <= 0:
            raise ValueError("top_k must be positive")
        if self.rerank_top_k <= 0:
            raise ValueError("rerank_top_k must be positive")
