"""Unit tests for ChunkingEngine and the token counters."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from unittest.mock import patch

from services.chunking_engine import ChunkingEngine
from services.tokenizer import ApproximateTokenCounter, TiktokenCounter, create_token_counter

LOREM_SENTENCES = [
    "Lorem ipsum dolor sit amet consectetur adipiscing elit sed do eiusmod tempor incididunt ut labore et dolore magna aliqua",
    "Ut enim ad minim veniam quis nostrud exercitation ullamco laboris nisi ut aliquip ex ea commodo consequat",
    "Duis aute irure dolor in reprehenderit in voluptate velit esse cillum dolore eu fugiat nulla pariatur",
    "Excepteur sint occaecat cupidatat non proident sunt in culpa qui officia deserunt mollit anim id est laborum",
    "Curabitur pretium tincidunt lacus nulla gravida orci a odio nullam varius turpis et commodo pharetra est",
    "Integer in mauris eu nibh euismod gravida duis ac tellus et risus vulputate vehicula donec lobortis risus",
]


def lorem_text(sentence_count):
    sentences = [
        f"{LOREM_SENTENCES[i % len(LOREM_SENTENCES)]} {i}"
        for i in range(sentence_count)
    ]
    return ". ".join(sentences) + "."


class WordEncoding:
    """Stand-in BPE encoding where every whitespace-separated word is one token."""

    def encode(self, text):
        return text.split()

    def decode(self, tokens):
        return " ".join(tokens)


def make_tiktoken_counter():
    with patch('services.tokenizer.tiktoken.get_encoding', return_value=WordEncoding()) as mock_get:
        counter = TiktokenCounter("cl100k_base")
    mock_get.assert_called_once_with("cl100k_base")
    return counter


def make_engine(chunk_size=1000, chunk_overlap=150):
    return ChunkingEngine(
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
        token_counter=ApproximateTokenCounter()
    )


class TestApproximateTokenCounter:
    """Test suite for the ceil(len/4) token approximation."""

    def test_count_rounds_up(self):
        counter = ApproximateTokenCounter()
        assert counter.count("") == 0
        assert counter.count("abcd") == 1
        assert counter.count("abcde") == 2

    def test_tail_takes_trailing_words(self):
        counter = ApproximateTokenCounter()
        text = " ".join(f"w{i}" for i in range(20))
        # ceil(5 * 4 / 5) = 4 words
        assert counter.tail(text, 5) == "w16 w17 w18 w19"

    def test_tail_short_text_returned_whole(self):
        counter = ApproximateTokenCounter()
        assert counter.tail("only three words", 150) == "only three words"

    def test_tail_zero_overlap_is_empty(self):
        counter = ApproximateTokenCounter()
        assert counter.tail("some words here", 0) == ""

    def test_factory_falls_back_when_encoding_unavailable(self):
        with patch('services.tokenizer.tiktoken.get_encoding', side_effect=OSError("offline")):
            counter = create_token_counter()
        assert isinstance(counter, ApproximateTokenCounter)


class TestTiktokenCounter:
    """Test suite for exact token counting and the decoded overlap tail."""

    def test_count_uses_encoding(self):
        counter = make_tiktoken_counter()
        assert counter.count("") == 0
        assert counter.count("one two three") == 3

    def test_tail_decodes_last_tokens(self):
        counter = make_tiktoken_counter()
        assert counter.tail("alpha beta gamma delta epsilon", 2) == "delta epsilon"

    def test_tail_short_text_returned_whole(self):
        counter = make_tiktoken_counter()
        assert counter.tail("alpha beta", 5) == "alpha beta"
        assert counter.tail("alpha beta", 2) == "alpha beta"

    def test_tail_zero_overlap_is_empty(self):
        counter = make_tiktoken_counter()
        assert counter.tail("alpha beta gamma", 0) == ""

    def test_factory_prefers_tiktoken(self):
        with patch('services.tokenizer.tiktoken.get_encoding', return_value=WordEncoding()):
            counter = create_token_counter()
        assert isinstance(counter, TiktokenCounter)

    def test_chunk_text_seeds_next_chunk_with_decoded_tail(self):
        engine = ChunkingEngine(chunk_size=6, chunk_overlap=2, token_counter=make_tiktoken_counter())

        chunks = engine.chunk_text("a b c. d e f. g h i.")

        # "a b c. d e f" encodes to 6 tokens; its last two decode to "e f"
        assert chunks == ["a b c. d e f", "e f g h i"]


class TestChunkingEngine:
    """Test suite for ChunkingEngine."""

    def test_rejects_invalid_sizes(self):
        with pytest.raises(ValueError, match="chunk_size"):
            make_engine(chunk_size=0)
        with pytest.raises(ValueError, match="Overlap"):
            make_engine(chunk_size=100, chunk_overlap=100)
        with pytest.raises(ValueError, match="Overlap"):
            make_engine(chunk_size=100, chunk_overlap=-1)

    def test_split_sentences(self):
        """Runs of terminal punctuation split; empty units are dropped."""
        sentences = ChunkingEngine.split_sentences("Hello world.  How are you?! Fine... ")
        assert sentences == ["Hello world", "How are you", "Fine"]

    def test_empty_text_produces_no_chunks(self):
        engine = make_engine()
        assert engine.chunk_text("") == []
        assert engine.chunk_text("  ...  !? ") == []

    def test_short_text_single_chunk(self):
        engine = make_engine()
        assert engine.chunk_text("First point. Second point! Third?") == [
            "First point. Second point. Third"
        ]

    def test_oversized_sentence_kept_whole(self):
        """A sentence longer than chunk_size becomes its own chunk."""
        engine = make_engine(chunk_size=10, chunk_overlap=0)
        long_sentence = "word " * 40
        assert engine.chunk_text(long_sentence) == [long_sentence.strip()]

    def test_chunks_reconstruct_sentence_sequence(self):
        """Without overlap, the chunks' sentences are the input sentences in order."""
        engine = make_engine(chunk_size=80, chunk_overlap=0)
        text = lorem_text(30)

        chunks = engine.chunk_text(text)

        assert len(chunks) > 1
        reconstructed = [s for chunk in chunks for s in ChunkingEngine.split_sentences(chunk)]
        assert reconstructed == ChunkingEngine.split_sentences(text)

    def test_chunks_are_trimmed_and_non_empty(self):
        engine = make_engine(chunk_size=60, chunk_overlap=20)
        for chunk in engine.chunk_text("  " + lorem_text(25) + "\n\n"):
            assert chunk
            assert chunk == chunk.strip()

    def test_overlap_seeds_next_chunk(self):
        """Each chunk after the first starts with the tail of the previous chunk."""
        counter = ApproximateTokenCounter()
        engine = ChunkingEngine(chunk_size=1000, chunk_overlap=150, token_counter=counter)

        chunks = engine.chunk_text(lorem_text(120))

        assert len(chunks) >= 2
        for previous, current in zip(chunks, chunks[1:]):
            seed = counter.tail(previous, 150).strip()
            assert seed
            assert current.startswith(seed)

    def test_chunk_token_counts_near_limit(self):
        """Chunks stay near chunk_size; joins and the overlap seed add a little."""
        engine = make_engine(chunk_size=200, chunk_overlap=30)
        counter = ApproximateTokenCounter()

        chunks = engine.chunk_text(lorem_text(60))

        assert len(chunks) > 3
        for chunk in chunks:
            assert counter.count(chunk) <= 200 + 60

    def test_build_chunks_metadata(self):
        chunk_texts = ["one", "two", "three"]
        embeddings = [[0.1], [0.2], [0.3]]

        chunks = ChunkingEngine.build_chunks(
            document_id="doc-1",
            chunk_texts=chunk_texts,
            title="Title",
            source="upload",
            embeddings=embeddings,
            extra_metadata={"file_type": "txt", "file_size": 42}
        )

        assert [c.id for c in chunks] == ["doc-1_chunk_0", "doc-1_chunk_1", "doc-1_chunk_2"]
        for index, chunk in enumerate(chunks):
            assert chunk.metadata.chunk_index == index
            assert chunk.metadata.position == index
            assert chunk.metadata.total_chunks == 3
            assert chunk.metadata.document_id == "doc-1"
            assert chunk.metadata.file_type == "txt"
            assert chunk.embedding == embeddings[index]

        record = chunks[1].to_record()
        assert record["values"] == [0.2]
        assert record["metadata"]["text"] == "two"
        assert record["metadata"]["chunkIndex"] == 1
        assert record["metadata"]["totalChunks"] == 3
        assert record["metadata"]["documentId"] == "doc-1"
        assert record["metadata"]["fileSize"] == 42
        assert "section" not in record["metadata"]

    def test_build_chunks_rejects_embedding_count_mismatch(self):
        with pytest.raises(ValueError, match="2 embeddings for 3 chunks"):
            ChunkingEngine.build_chunks("doc", ["a", "b", "c"], "T", "upload", embeddings=[[1.0], [2.0]])

    def test_record_requires_embedding(self):
        chunks = ChunkingEngine.build_chunks("doc", ["a"], "T", "upload")
        with pytest.raises(ValueError, match="no embedding"):
            chunks[0].to_record()
