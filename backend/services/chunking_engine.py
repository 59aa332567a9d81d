"""Sentence-based chunking engine with token-bounded overlap."""
import logging
import re
from typing import Any, Dict, List, Optional

from models.chunk import Chunk, ChunkMetadata
from services.tokenizer import create_token_counter
from config import CHUNK_SIZE, CHUNK_OVERLAP

logger = logging.getLogger(__name__)

# Runs of terminal punctuation end a sentence
SENTENCE_BOUNDARY = re.compile(r"[.!?]+")


class ChunkingEngine:
    """Segments document text into overlapping, token-bounded chunks."""

    def __init__(
        self,
        chunk_size: int = CHUNK_SIZE,
        chunk_overlap: int = CHUNK_OVERLAP,
        token_counter=None
    ):
        """
        Initialize ChunkingEngine.

        Args:
            chunk_size: Target chunk size in tokens
            chunk_overlap: Overlap carried into the next chunk, in tokens
            token_counter: Object exposing count(text) and tail(text, n).
                Defaults to tiktoken, or the ceil(len/4) approximation when
                the encoding cannot be loaded.
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if chunk_overlap < 0 or chunk_overlap >= chunk_size:
            raise ValueError(
                f"Overlap ({chunk_overlap}) must be between 0 and chunk size ({chunk_size})"
            )

        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.token_counter = token_counter or create_token_counter()

    def count_tokens(self, text: str) -> int:
        return self.token_counter.count(text)

    @staticmethod
    def split_sentences(text: str) -> List[str]:
        """Split text on terminal punctuation, dropping empty units."""
        sentences = (part.strip() for part in SENTENCE_BOUNDARY.split(text))
        return [sentence for sentence in sentences if sentence]

    def chunk_text(self, text: str) -> List[str]:
        """
        Accumulate sentences into chunks of at most chunk_size tokens.

        When the next sentence would overflow a non-empty chunk, the chunk
        is closed and the next one is seeded with its overlap tail. A single
        sentence longer than chunk_size is emitted as its own oversized
        chunk rather than split mid-sentence.

        Args:
            text: Raw document text

        Returns:
            Ordered list of non-empty, whitespace-trimmed chunk strings
        """
        chunks: List[str] = []
        current_chunk = ""
        current_tokens = 0

        for sentence in self.split_sentences(text):
            sentence_tokens = self.count_tokens(sentence)

            if current_tokens + sentence_tokens > self.chunk_size and current_chunk:
                closed = current_chunk.strip()
                chunks.append(closed)

                overlap_text = self.token_counter.tail(closed, self.chunk_overlap).strip()
                current_chunk = f"{overlap_text} {sentence}" if overlap_text else sentence
                current_tokens = self.count_tokens(current_chunk)
            else:
                current_chunk = f"{current_chunk}. {sentence}" if current_chunk else sentence
                current_tokens += sentence_tokens

        if current_chunk.strip():
            chunks.append(current_chunk.strip())

        logger.debug(f"Split {len(text)} characters into {len(chunks)} chunks")
        return chunks

    @staticmethod
    def build_chunks(
        document_id: str,
        chunk_texts: List[str],
        title: str,
        source: str,
        embeddings: Optional[List[List[float]]] = None,
        extra_metadata: Optional[Dict[str, Any]] = None
    ) -> List[Chunk]:
        """
        Wrap chunk strings into Chunk objects with positional metadata.

        Args:
            document_id: Parent document id
            chunk_texts: Output of chunk_text
            title: Document title
            source: Origin tag ("upload", "file-upload", "sample-data", ...)
            embeddings: Optional vectors, one per chunk text
            extra_metadata: Optional file metadata (file_type, file_size, ...)

        Returns:
            List of Chunk objects
        """
        if embeddings is not None and len(embeddings) != len(chunk_texts):
            raise ValueError(
                f"Got {len(embeddings)} embeddings for {len(chunk_texts)} chunks"
            )

        total_chunks = len(chunk_texts)
        chunks = []
        for index, chunk_text in enumerate(chunk_texts):
            metadata = ChunkMetadata(
                source=source,
                title=title,
                position=index,
                chunk_index=index,
                total_chunks=total_chunks,
                document_id=document_id,
                **(extra_metadata or {})
            )
            chunks.append(Chunk(
                id=f"{document_id}_chunk_{index}",
                text=chunk_text,
                metadata=metadata,
                embedding=embeddings[index] if embeddings is not None else None
            ))

        return chunks
