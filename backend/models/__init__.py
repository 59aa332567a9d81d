"""Data models for the DocQA retrieval pipeline."""
from .chunk import Chunk, ChunkMetadata, RetrievalResult, RetrievalOptions
from .document import ParsedDocument, ProcessedDocument
from .answer import Citation, GenerationResult, QueryResult

__all__ = [
    "Chunk",
    "ChunkMetadata",
    "RetrievalResult",
    "RetrievalOptions",
    "ParsedDocument",
    "ProcessedDocument",
    "Citation",
    "GenerationResult",
    "QueryResult",
]
