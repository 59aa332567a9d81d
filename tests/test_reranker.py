"""Unit tests for the reranking strategies."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import asyncio
import httpx
import pytest
from unittest.mock import AsyncMock, Mock, MagicMock, patch

from models.chunk import Chunk, ChunkMetadata, RetrievalResult
from services.reranker import (
    CohereReranker,
    KeywordReranker,
    MMRReranker,
    apply_mmr,
    cosine_similarity,
    create_reranker,
)


def make_result(chunk_id, text, score, embedding=None):
    chunk = Chunk(
        id=chunk_id,
        text=text,
        metadata=ChunkMetadata(source="upload", title="Doc", position=0, chunk_index=0, total_chunks=1),
        embedding=embedding
    )
    return RetrievalResult(chunk=chunk, score=score)


def mock_http_response(status_code=200, json_data=None):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = json_data
    return response


def install_client(mock_client_class, post):
    client = MagicMock()
    client.post = post
    mock_client_class.return_value.__aenter__.return_value = client
    return client


class TestKeywordReranker:
    """Test suite for local keyword scoring."""

    def test_score_formula(self):
        reranker = KeywordReranker()
        result = make_result("a", "Apple pie and apple juice", 0.5)

        # "apple" occurs twice, "pie" once, over 2 query words
        score = reranker.score(["apple", "pie"], result)

        assert score == pytest.approx(0.7 * 0.5 + 0.3 * (3 / 2))

    def test_empty_query_uses_semantic_part_only(self):
        reranker = KeywordReranker()
        assert reranker.score([], make_result("a", "text", 0.8)) == pytest.approx(0.56)

    def test_regex_metacharacters_do_not_raise(self):
        reranker = KeywordReranker()
        results = [make_result("a", "Is C++ (really) faster? [yes]", 0.5)]

        reranked = asyncio.run(reranker.rerank("c++ (really) faster? [yes] *", results, 5))

        assert len(reranked) == 1
        assert reranked[0].rerank_score > 0.7 * 0.5

    def test_output_length_bounded_by_top_k(self):
        reranker = KeywordReranker()
        results = [make_result(str(i), f"text {i}", 0.1 * i) for i in range(10)]

        assert len(asyncio.run(reranker.rerank("text", results, 3))) == 3
        assert len(asyncio.run(reranker.rerank("text", results[:2], 5))) == 2

    def test_adding_keyword_occurrence_never_lowers_score(self):
        reranker = KeywordReranker()
        words = reranker.query_words("vector database")
        before = make_result("a", "a database of things", 0.4)
        after = make_result("a", "a database of things with a vector index", 0.4)

        assert reranker.score(words, after) >= reranker.score(words, before)

    def test_keyword_match_outranks_higher_similarity(self):
        reranker = KeywordReranker()
        results = [
            make_result("generic", "nothing relevant here", 0.6),
            make_result("match", "pgvector similarity search", 0.5),
        ]

        reranked = reranker.rerank_results("pgvector similarity search", results, 2)

        assert [r.chunk.id for r in reranked] == ["match", "generic"]

    def test_ties_keep_store_order(self):
        reranker = KeywordReranker()
        results = [make_result(c, "same text", 0.5) for c in "abc"]

        reranked = reranker.rerank_results("other", results, 3)

        assert [r.chunk.id for r in reranked] == ["a", "b", "c"]

    def test_does_not_mutate_input(self):
        reranker = KeywordReranker()
        results = [make_result("a", "text", 0.5)]

        reranker.rerank_results("text", results, 1)

        assert results[0].rerank_score is None


class TestCohereReranker:
    """Test suite for the Cohere rerank client."""

    def test_initialization_without_api_key(self):
        with pytest.raises(ValueError, match="COHERE_API_KEY"):
            CohereReranker(api_key=None)

    @patch('services.reranker.httpx.AsyncClient')
    def test_rerank_success(self, mock_client_class):
        post = AsyncMock(return_value=mock_http_response(200, {"results": [
            {"index": 2, "relevance_score": 0.95},
            {"index": 0, "relevance_score": 0.40},
        ]}))
        install_client(mock_client_class, post)
        results = [make_result(c, f"text {c}", 0.5) for c in "abc"]
        reranker = CohereReranker(api_key="test_key")

        reranked = asyncio.run(reranker.rerank("query", results, 2))

        assert [r.chunk.id for r in reranked] == ["c", "a"]
        assert [r.rerank_score for r in reranked] == [0.95, 0.40]
        assert reranked[0].score == 0.5
        payload = post.call_args.kwargs["json"]
        assert payload == {
            "model": "rerank-english-v3.0",
            "query": "query",
            "documents": ["text a", "text b", "text c"],
            "top_n": 2,
        }

    @patch('services.reranker.httpx.AsyncClient')
    def test_api_error_falls_back_to_keyword(self, mock_client_class):
        install_client(mock_client_class, AsyncMock(return_value=mock_http_response(500)))
        results = [
            make_result("a", "unrelated", 0.6),
            make_result("b", "keyword keyword", 0.5),
        ]
        reranker = CohereReranker(api_key="test_key")

        reranked = asyncio.run(reranker.rerank("keyword", results, 2))

        assert [r.chunk.id for r in reranked] == ["b", "a"]
        assert reranked[0].rerank_score == pytest.approx(0.7 * 0.5 + 0.3 * 2)

    @patch('services.reranker.httpx.AsyncClient')
    def test_network_error_falls_back(self, mock_client_class):
        install_client(mock_client_class, AsyncMock(side_effect=httpx.ConnectError("refused")))
        results = [make_result("a", "text", 0.5)]
        reranker = CohereReranker(api_key="test_key")

        result = asyncio.run(reranker.try_rerank("text", results, 1))
        assert not result.ok
        assert result.error.code == "NETWORK_ERROR"

        reranked = asyncio.run(reranker.rerank("text", results, 1))
        assert reranked[0].rerank_score == pytest.approx(0.7 * 0.5 + 0.3)

    @patch('services.reranker.httpx.AsyncClient')
    def test_unknown_index_is_malformed(self, mock_client_class):
        install_client(mock_client_class, AsyncMock(return_value=mock_http_response(200, {"results": [
            {"index": 7, "relevance_score": 0.9},
        ]})))
        reranker = CohereReranker(api_key="test_key")

        result = asyncio.run(reranker.try_rerank("q", [make_result("a", "t", 0.5)], 1))

        assert result.error.code == "MALFORMED_RESPONSE"

    def test_empty_results_skip_request(self):
        reranker = CohereReranker(api_key="test_key")
        with patch('services.reranker.httpx.AsyncClient') as mock_client_class:
            assert asyncio.run(reranker.rerank("q", [], 5)) == []
            mock_client_class.assert_not_called()


class TestMMR:
    """Test suite for Maximal Marginal Relevance."""

    def test_cosine_similarity(self):
        assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
        assert cosine_similarity([1, 0], [1, 0, 0]) == 0.0
        assert cosine_similarity([0, 0], [1, 0]) == 0.0
        assert cosine_similarity([], []) == 0.0

    def test_lambda_one_is_relevance_order(self):
        results = [
            make_result("b", "", 0.7, [1.0, 0.0]),
            make_result("a", "", 0.9, [1.0, 0.0]),
            make_result("c", "", 0.5, [0.0, 1.0]),
        ]

        selected = apply_mmr(results, lambda_=1.0)

        assert [r.chunk.id for r in selected] == ["a", "b", "c"]

    def test_lambda_zero_picks_least_similar(self):
        results = [
            make_result("top", "", 0.9, [1.0, 0.0]),
            make_result("near_duplicate", "", 0.85, [0.99, 0.01]),
            make_result("different", "", 0.1, [0.0, 1.0]),
        ]

        selected = apply_mmr(results, lambda_=0.0)

        assert [r.chunk.id for r in selected] == ["top", "different", "near_duplicate"]

    def test_first_pick_is_max_score_earliest_on_ties(self):
        results = [
            make_result("a", "", 0.5, [1.0, 0.0]),
            make_result("b", "", 0.8, [0.0, 1.0]),
            make_result("c", "", 0.8, [1.0, 1.0]),
        ]

        assert apply_mmr(results, lambda_=0.5)[0].chunk.id == "b"

    def test_max_results(self):
        results = [make_result(str(i), "", 1.0 - i * 0.1, [float(i), 1.0]) for i in range(5)]
        assert len(apply_mmr(results, lambda_=0.7, max_results=2)) == 2

    def test_trivial_inputs(self):
        assert apply_mmr([]) == []
        single = [make_result("a", "", 0.5)]
        assert apply_mmr(single) == single

    def test_invalid_lambda(self):
        with pytest.raises(ValueError, match="lambda_"):
            apply_mmr([], lambda_=1.5)
        with pytest.raises(ValueError, match="lambda_"):
            MMRReranker(lambda_=-0.1)

    def test_mmr_reranker_respects_top_k(self):
        results = [make_result(str(i), "", 1.0 - i * 0.1, [1.0, float(i)]) for i in range(6)]
        reranker = MMRReranker(lambda_=0.7, max_results=10)

        assert reranker.requires_embeddings is True
        assert len(asyncio.run(reranker.rerank("q", results, 3))) == 3


class TestCreateReranker:
    """Test suite for strategy selection."""

    def test_auto_without_key_is_keyword(self):
        assert isinstance(create_reranker("auto", cohere_api_key=None), KeywordReranker)

    def test_auto_with_key_is_cohere(self):
        assert isinstance(create_reranker("auto", cohere_api_key="key"), CohereReranker)

    def test_explicit_strategies(self):
        assert isinstance(create_reranker("keyword", cohere_api_key="key"), KeywordReranker)
        assert isinstance(create_reranker(" MMR ", cohere_api_key=None), MMRReranker)

    def test_unknown_strategy(self):
        with pytest.raises(ValueError, match="Unsupported rerank strategy"):
            create_reranker("bm25")
