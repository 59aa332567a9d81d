"""Document data models."""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from models.chunk import Chunk


@dataclass
class ParsedDocument:
    """Plain text extracted from an uploaded file."""
    text: str
    file_name: str
    file_type: str
    size: int
    word_count: int = 0
    page_count: Optional[int] = None


@dataclass
class ProcessedDocument:
    """Represents an ingested document and the chunks stored for it."""
    id: str
    title: str
    source: str
    chunks: List[Chunk] = field(default_factory=list)
    total_tokens: int = 0
    processing_time_ms: int = 0

    def to_dict(self, include_embeddings: bool = False) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "source": self.source,
            "chunks": [chunk.to_dict(include_embedding=include_embeddings) for chunk in self.chunks],
            "totalTokens": self.total_tokens,
            "processingTime": self.processing_time_ms,
        }
