"""Embedding adapter: Hugging Face Inference API with a local hashing fallback."""
import asyncio
import time
import logging
from typing import List, Optional

import httpx
import numpy as np

from errors import ErrorDetail, ProviderError
from services.fallback import ProviderResult, resolve_with_fallback
from config import (
    HUGGINGFACE_API_KEY,
    EMBEDDING_MODEL,
    EMBEDDING_API_URL,
    EMBEDDING_DIMENSION,
    EMBEDDING_MAX_RETRIES,
    EMBEDDING_TIMEOUT,
)

logger = logging.getLogger(__name__)


def rolling_hash(token: str) -> int:
    """
    32-bit rolling hash over UTF-16 code units, returned as abs(signed int32).

    Stable across processes, unlike Python's salted hash().
    """
    value = 0
    encoded = token.encode("utf-16-le")
    for i in range(0, len(encoded), 2):
        code_unit = encoded[i] | (encoded[i + 1] << 8)
        value = ((value << 5) - value + code_unit) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return abs(value)


class LocalHashEmbedder:
    """Deterministic word-hashing embedding. Always available, not semantic."""

    name = "local-hash"

    def __init__(self, dimension: int = EMBEDDING_DIMENSION):
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self.dimension = dimension

    def embed(self, text: str) -> List[float]:
        """Term counts hashed into a fixed-size vector, L2-normalized."""
        vector = np.zeros(self.dimension, dtype=np.float64)
        for token in text.lower().split():
            vector[rolling_hash(token) % self.dimension] += 1.0

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector.tolist()


class HuggingFaceEmbeddingProvider:
    """Client for the Hugging Face Inference API feature-extraction pipeline."""

    name = "huggingface"

    def __init__(
        self,
        api_key: str = HUGGINGFACE_API_KEY,
        model_name: str = EMBEDDING_MODEL,
        api_url: str = EMBEDDING_API_URL,
        max_retries: int = EMBEDDING_MAX_RETRIES,
        initial_delay: float = 5.0,
        timeout: float = EMBEDDING_TIMEOUT
    ):
        """
        Initialize the embedding provider client.

        Args:
            api_key: Hugging Face API key
            model_name: Model identifier (default: sentence-transformers/all-mpnet-base-v2)
            api_url: Inference endpoint for the model
            max_retries: Maximum number of attempts for 503s, timeouts and network errors
            initial_delay: Initial delay in seconds for exponential backoff
            timeout: Request timeout in seconds
        """
        if not api_key:
            raise ValueError("HUGGINGFACE_API_KEY environment variable is required")

        self.api_key = api_key
        self.model_name = model_name
        self.api_url = api_url
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.timeout = timeout

        logger.info(f"Initialized HuggingFaceEmbeddingProvider with model: {model_name}")

    async def try_embed(self, texts: List[str]) -> ProviderResult[List[List[float]]]:
        """Embed a batch in one request, reporting failure as a result value."""
        try:
            embeddings = await self._embed_with_retry(texts)
        except ProviderError as e:
            return ProviderResult.failure(self.name, "embed_batch", e.error)
        return ProviderResult.success(self.name, "embed_batch", embeddings)

    def _error(self, code: str, message: str, **details) -> ProviderError:
        return ProviderError(ErrorDetail(
            code=code,
            message=message,
            details={"model": self.model_name, **details}
        ))

    async def _embed_with_retry(self, texts: List[str]) -> List[List[float]]:
        """
        Call the HF API with exponential backoff.

        HF free tier models "sleep" and take 15-20s to load on first query,
        so 503s, timeouts and network errors are retried.

        Raises:
            ProviderError: If the request fails after all retries or the
                response cannot be used
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

        payload = {
            "inputs": texts,
            "options": {
                "wait_for_model": True  # Wait for model to load if sleeping
            }
        }

        delay = self.initial_delay
        last_error = None

        for attempt in range(self.max_retries):
            try:
                start_time = time.time()

                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(
                        self.api_url,
                        headers=headers,
                        json=payload
                    )

                elapsed = time.time() - start_time

                # Handle 503 Service Unavailable (model loading)
                if response.status_code == 503:
                    logger.warning(
                        f"Model loading (503) on attempt {attempt + 1}/{self.max_retries}. "
                        f"Retrying in {delay}s..."
                    )
                    last_error = "Model is loading (503)"
                    if attempt < self.max_retries - 1:
                        await asyncio.sleep(delay)
                        delay = min(delay * 2, 60.0)  # Exponential backoff, max 60s
                    continue

                if response.status_code == 429:
                    raise self._error("RATE_LIMIT_ERROR", "Rate limit exceeded for Hugging Face API")

                if response.status_code == 401:
                    raise self._error("AUTHENTICATION_ERROR", "Invalid Hugging Face API key")

                if response.status_code != 200:
                    raise self._error(
                        "API_ERROR",
                        f"API request failed with status {response.status_code}",
                        status_code=response.status_code,
                        body=response.text[:500]
                    )

                try:
                    embeddings = response.json()
                except ValueError as e:
                    raise self._error("MALFORMED_RESPONSE", f"Response is not JSON: {e}")

                if not self._is_matrix(embeddings, len(texts)):
                    raise self._error(
                        "MALFORMED_RESPONSE",
                        f"Expected {len(texts)} embedding vectors in response"
                    )

                if elapsed > 10.0:
                    logger.info(
                        f"Model loading delay detected: {elapsed:.1f}s for {len(texts)} texts "
                        f"(attempt {attempt + 1})"
                    )
                else:
                    logger.debug(f"Generated embeddings for {len(texts)} texts in {elapsed:.2f}s")

                return [[float(x) for x in vector] for vector in embeddings]

            except httpx.TimeoutException:
                last_error = f"Request timeout after {self.timeout}s"
            except httpx.RequestError as e:
                last_error = f"Network error: {str(e)}"

            logger.warning(f"{last_error} on attempt {attempt + 1}/{self.max_retries}")
            if attempt < self.max_retries - 1:
                await asyncio.sleep(delay)
                delay = min(delay * 2, 60.0)

        raise self._error(
            "PROVIDER_UNAVAILABLE",
            f"Failed to generate embeddings after {self.max_retries} attempts. Last error: {last_error}",
            attempts=self.max_retries
        )

    @staticmethod
    def _is_matrix(data, expected_rows: int) -> bool:
        if not isinstance(data, list) or len(data) != expected_rows:
            return False
        return all(
            isinstance(row, list) and row and all(isinstance(x, (int, float)) for x in row)
            for row in data
        )


class EmbeddingModel:
    """
    Maps text to fixed-length vectors.

    Uses the primary provider when one is configured and falls back to the
    local hashing embedding on any provider failure, so ingestion and
    querying never fail because of the embedding service.
    """

    def __init__(
        self,
        provider: Optional[HuggingFaceEmbeddingProvider] = None,
        dimension: int = EMBEDDING_DIMENSION
    ):
        self.provider = provider
        self.dimension = dimension
        self.local = LocalHashEmbedder(dimension)

        logger.info(
            f"Initialized EmbeddingModel (provider={provider.name if provider else 'none'}, "
            f"dimension={dimension})"
        )

    @classmethod
    def from_config(
        cls,
        max_retries: int = EMBEDDING_MAX_RETRIES,
        timeout: float = EMBEDDING_TIMEOUT
    ) -> "EmbeddingModel":
        """Use Hugging Face when an API key is configured, local hashing otherwise."""
        provider = None
        if HUGGINGFACE_API_KEY:
            provider = HuggingFaceEmbeddingProvider(
                api_key=HUGGINGFACE_API_KEY,
                max_retries=max_retries,
                timeout=timeout
            )
        return cls(provider=provider, dimension=EMBEDDING_DIMENSION)

    async def embed_text(self, text: str) -> List[float]:
        """Generate embedding for a single text string."""
        return (await self.embed_batch([text]))[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts in a single provider call.

        Blank texts map to the zero vector without a provider call.

        Args:
            texts: List of texts to embed

        Returns:
            One vector per input text, in input order
        """
        if not texts:
            return []

        vectors: List[Optional[List[float]]] = [None] * len(texts)
        pending = []
        for i, text in enumerate(texts):
            if text and text.strip():
                pending.append(i)
            else:
                vectors[i] = self.local.embed("")

        if pending:
            batch = [texts[i] for i in pending]
            for i, vector in zip(pending, await self._embed_non_blank(batch)):
                vectors[i] = vector

        return vectors

    async def _embed_non_blank(self, batch: List[str]) -> List[List[float]]:
        def local_embeddings():
            return [self.local.embed(text) for text in batch]

        if self.provider is None:
            return local_embeddings()

        result = self._check_dimension(await self.provider.try_embed(batch))
        return resolve_with_fallback(result, local_embeddings)

    def _check_dimension(self, result: ProviderResult) -> ProviderResult:
        """Treat vectors of the wrong size as a malformed provider response."""
        if not result.ok:
            return result
        bad = [len(vector) for vector in result.value if len(vector) != self.dimension]
        if bad:
            return ProviderResult.failure(result.provider, result.operation, ErrorDetail(
                code="MALFORMED_RESPONSE",
                message=f"Provider returned {bad[0]}-dimensional vectors, expected {self.dimension}",
                details={"expected_dimension": self.dimension, "received_dimension": bad[0]}
            ))
        return result

    async def warmup(self) -> bool:
        """
        Warm up the provider model with a dummy query to avoid cold start delays.

        Returns:
            True if the provider answered, False otherwise
        """
        if self.provider is None:
            return True

        logger.info("Warming up embedding model...")
        start_time = time.time()
        result = await self.provider.try_embed(["warmup query"])
        elapsed = time.time() - start_time

        if result.ok:
            logger.info(f"Model warmup completed in {elapsed:.1f}s")
        else:
            logger.error(f"Model warmup failed: {result.error.message}")
        return result.ok
