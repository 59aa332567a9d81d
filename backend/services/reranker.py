"""
Reranking strategies for retrieved candidates.

Every strategy exposes the same capability:

    await reranker.rerank(query, results, top_k) -> list[RetrievalResult]

- CohereReranker: external cross-encoder relevance scores, falling back
  to keyword scoring when the service fails.
- KeywordReranker: blends the raw similarity with literal query-term
  overlap.
- MMRReranker / apply_mmr: Maximal Marginal Relevance diversification
  over the stored chunk embeddings. Uses raw similarity only.

All sorts are stable, so equal scores keep store-returned order.
"""
import logging
import math
import re
from dataclasses import replace
from typing import List, Sequence

import httpx
import numpy as np

from errors import ErrorDetail
from models.chunk import RetrievalResult
from services.fallback import ProviderResult, resolve_with_fallback
from config import (
    COHERE_API_KEY,
    RERANK_MODEL,
    RERANK_API_URL,
    RERANK_STRATEGY,
    MMR_LAMBDA,
    MMR_MAX_RESULTS,
)

logger = logging.getLogger(__name__)


class KeywordReranker:
    """Local reranking by query keyword occurrences."""

    name = "keyword"
    requires_embeddings = False

    SEMANTIC_WEIGHT = 0.7
    KEYWORD_WEIGHT = 0.3

    @staticmethod
    def query_words(query: str) -> List[str]:
        return query.lower().split()

    def score(self, query_words: Sequence[str], result: RetrievalResult) -> float:
        """rerank_score = 0.7 * raw score + 0.3 * (keyword matches / query word count)."""
        if not query_words:
            return self.SEMANTIC_WEIGHT * result.score

        text = result.chunk.text.lower()
        keyword_matches = sum(len(re.findall(re.escape(word), text)) for word in query_words)
        return (
            self.SEMANTIC_WEIGHT * result.score
            + self.KEYWORD_WEIGHT * (keyword_matches / len(query_words))
        )

    def rerank_results(
        self,
        query: str,
        results: List[RetrievalResult],
        top_k: int
    ) -> List[RetrievalResult]:
        words = self.query_words(query)
        rescored = [replace(result, rerank_score=self.score(words, result)) for result in results]
        rescored.sort(key=lambda result: result.rerank_score, reverse=True)
        return rescored[:top_k]

    async def rerank(
        self,
        query: str,
        results: List[RetrievalResult],
        top_k: int
    ) -> List[RetrievalResult]:
        return self.rerank_results(query, results, top_k)


class CohereReranker:
    """Relevance scoring through the Cohere rerank API."""

    name = "cohere"
    requires_embeddings = False

    def __init__(
        self,
        api_key: str = COHERE_API_KEY,
        model: str = RERANK_MODEL,
        api_url: str = RERANK_API_URL,
        timeout: float = 30.0,
        fallback: KeywordReranker = None
    ):
        """
        Initialize the Cohere rerank client.

        Args:
            api_key: Cohere API key
            model: Rerank model name
            api_url: Rerank endpoint
            timeout: Request timeout in seconds
            fallback: Local reranker used when the API call fails
        """
        if not api_key:
            raise ValueError("COHERE_API_KEY environment variable is required")

        self.api_key = api_key
        self.model = model
        self.api_url = api_url
        self.timeout = timeout
        self.fallback = fallback or KeywordReranker()

        logger.info(f"Initialized CohereReranker with model: {model}")

    async def try_rerank(
        self,
        query: str,
        results: List[RetrievalResult],
        top_k: int
    ) -> ProviderResult[List[RetrievalResult]]:
        """Score candidates remotely, reporting failure as a result value."""
        payload = {
            "model": self.model,
            "query": query,
            "documents": [result.chunk.text for result in results],
            "top_n": min(top_k, len(results)),
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

        def failure(code: str, message: str, **details):
            return ProviderResult.failure(self.name, "rerank", ErrorDetail(
                code=code, message=message, details={"model": self.model, **details}
            ))

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.api_url, headers=headers, json=payload)
        except httpx.TimeoutException:
            return failure("TIMEOUT_ERROR", f"Request timeout after {self.timeout}s")
        except httpx.RequestError as e:
            return failure("NETWORK_ERROR", f"Network error: {str(e)}")

        if response.status_code == 429:
            return failure("RATE_LIMIT_ERROR", "Rate limit exceeded for Cohere API")
        if response.status_code == 401:
            return failure("AUTHENTICATION_ERROR", "Invalid Cohere API key")
        if response.status_code != 200:
            return failure(
                "API_ERROR",
                f"API request failed with status {response.status_code}",
                status_code=response.status_code
            )

        try:
            scored = [
                (int(item["index"]), float(item["relevance_score"]))
                for item in response.json()["results"]
            ]
        except (ValueError, KeyError, TypeError) as e:
            return failure("MALFORMED_RESPONSE", f"Unexpected rerank response: {e}")

        if any(index < 0 or index >= len(results) for index, _ in scored):
            return failure("MALFORMED_RESPONSE", "Rerank response references unknown candidate index")

        reranked = [replace(results[index], rerank_score=score) for index, score in scored]
        reranked.sort(key=lambda result: result.rerank_score, reverse=True)
        return ProviderResult.success(self.name, "rerank", reranked[:top_k])

    async def rerank(
        self,
        query: str,
        results: List[RetrievalResult],
        top_k: int
    ) -> List[RetrievalResult]:
        if not results:
            return []
        result = await self.try_rerank(query, results, top_k)
        return resolve_with_fallback(
            result,
            lambda: self.fallback.rerank_results(query, results, top_k)
        )


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity; 0.0 for mismatched lengths or zero vectors."""
    if len(a) != len(b) or len(a) == 0:
        return 0.0
    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)
    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(vec_a, vec_b) / (norm_a * norm_b))


def apply_mmr(
    results: List[RetrievalResult],
    lambda_: float = MMR_LAMBDA,
    max_results: int = MMR_MAX_RESULTS
) -> List[RetrievalResult]:
    """
    Greedy Maximal Marginal Relevance selection.

    Starts from the highest raw score, then repeatedly picks the candidate
    maximizing lambda * score - (1 - lambda) * max similarity to the
    already-selected chunks, until candidates run out or max_results are
    selected.

    lambda_ controls the trade-off:
        1.0 -> pure relevance (no diversity)
        0.0 -> pure diversity after the first pick
    """
    if not 0.0 <= lambda_ <= 1.0:
        raise ValueError("lambda_ must be between 0 and 1")

    if len(results) <= 1:
        return list(results)

    remaining = list(results)
    first_index = 0
    for i, result in enumerate(remaining):
        if result.score > remaining[first_index].score:
            first_index = i
    selected = [remaining.pop(first_index)]

    while remaining and len(selected) < max_results:
        best_score = -math.inf
        best_index = -1

        for i, candidate in enumerate(remaining):
            redundancy = max(
                cosine_similarity(candidate.chunk.embedding or [], chosen.chunk.embedding or [])
                for chosen in selected
            )
            mmr_score = lambda_ * candidate.score - (1 - lambda_) * redundancy

            if mmr_score > best_score:
                best_score = mmr_score
                best_index = i

        if best_index < 0:
            break
        selected.append(remaining.pop(best_index))

    return selected


class MMRReranker:
    """MMR diversification as a rerank strategy. Needs stored embeddings."""

    name = "mmr"
    requires_embeddings = True

    def __init__(self, lambda_: float = MMR_LAMBDA, max_results: int = MMR_MAX_RESULTS):
        if not 0.0 <= lambda_ <= 1.0:
            raise ValueError("lambda_ must be between 0 and 1")
        self.lambda_ = lambda_
        self.max_results = max_results

    async def rerank(
        self,
        query: str,
        results: List[RetrievalResult],
        top_k: int
    ) -> List[RetrievalResult]:
        return apply_mmr(results, self.lambda_, self.max_results)[:top_k]


def create_reranker(
    strategy: str = RERANK_STRATEGY,
    cohere_api_key: str = COHERE_API_KEY,
    mmr_lambda: float = MMR_LAMBDA
):
    """
    Create a reranker from configuration.

    "auto" picks Cohere when an API key is configured and keyword scoring
    otherwise.
    """
    kind = (strategy or "auto").lower().strip()

    if kind == "auto":
        kind = "cohere" if cohere_api_key else "keyword"

    if kind == "cohere":
        return CohereReranker(api_key=cohere_api_key)
    if kind == "keyword":
        return KeywordReranker()
    if kind == "mmr":
        return MMRReranker(lambda_=mmr_lambda)

    raise ValueError(
        f"Unsupported rerank strategy {strategy!r}. "
        f"Supported strategies: ['auto', 'cohere', 'keyword', 'mmr']."
    )
