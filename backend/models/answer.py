"""Answer and citation data models."""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from models.chunk import RetrievalResult


@dataclass
class Citation:
    """Numbered reference tying an inline [n] marker to a retrieved chunk."""
    id: int  # 1-based position in the result list passed to generation
    source: str
    title: str
    text: str
    score: float
    section: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "source": self.source,
            "title": self.title,
            "text": self.text,
            "score": self.score,
        }
        if self.section is not None:
            data["section"] = self.section
        return data


@dataclass
class GenerationResult:
    """Answer produced by the generation provider."""
    answer: str
    citations: List[Citation]
    tokens_used: int
    processing_time_ms: int
    model_used: str


@dataclass
class QueryResult:
    """Top-level response for one answered query."""
    answer: str
    citations: List[Citation] = field(default_factory=list)
    retrieved_docs: List[RetrievalResult] = field(default_factory=list)
    total_time_ms: int = 0
    tokens_used: int = 0
    estimated_cost: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "answer": self.answer,
            "citations": [citation.to_dict() for citation in self.citations],
            "retrievedDocs": [result.to_dict() for result in self.retrieved_docs],
            "totalTime": self.total_time_ms,
            "tokensUsed": self.tokens_used,
            "estimatedCost": self.estimated_cost,
        }
