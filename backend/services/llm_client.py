"""LLM client for Groq API answer generation with citations."""
import time
from dataclasses import dataclass
from typing import List, Optional
from groq import AsyncGroq
from groq import RateLimitError, AuthenticationError, APIError, APITimeoutError
import logging

from errors import ErrorDetail, ProviderError
from models.answer import Citation, GenerationResult
from models.chunk import RetrievalResult
from config import GROQ_API_KEY, GENERATION_MODEL

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful AI assistant that answers questions based on provided context. "
    "Always cite your sources using the format [1], [2], etc. "
    "If you cannot find the answer in the provided context, say "
    "\"I cannot find the answer to this question in the provided documents.\" "
    "Be accurate, concise, and helpful."
)

NO_ANSWER = "No answer generated."

# USD per token, blended input/output
COST_PER_TOKEN = {
    "llama-3.1-8b-instant": 0.0000002,
    "llama-3.3-70b-versatile": 0.0000009,
}
DEFAULT_COST_PER_TOKEN = 0.0000002


@dataclass
class LLMResponse:
    """Response from LLM generation."""
    text: str
    tokens_input: int
    tokens_output: int
    tokens_used: int
    latency_ms: int
    model_used: str


def estimate_cost(tokens_used: int, model: str = GENERATION_MODEL) -> float:
    """Rough cost estimate for a completion."""
    return tokens_used * COST_PER_TOKEN.get(model, DEFAULT_COST_PER_TOKEN)


class LLMClient:
    """Client for interfacing with Groq API for text generation."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = GENERATION_MODEL,
        temperature: float = 0.1,
        max_tokens: int = 1000
    ):
        """
        Initialize LLM client with Groq API key.

        Args:
            api_key: Groq API key (defaults to GROQ_API_KEY from environment)
            model: Chat model used for answers
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
        """
        self.api_key = api_key or GROQ_API_KEY
        if not self.api_key:
            raise ValueError("GROQ_API_KEY must be provided or set in environment")

        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.client = AsyncGroq(api_key=self.api_key)
        logger.info(f"LLMClient initialized with model: {model}")

    async def generate(self, prompt: str, system_prompt: str = SYSTEM_PROMPT) -> LLMResponse:
        """
        Generate a completion using the Groq API.

        Args:
            prompt: Complete user prompt with context and question
            system_prompt: System instruction

        Returns:
            LLMResponse with text, token counts, and latency

        Raises:
            ProviderError: Structured error with code, message, and details
        """
        start_time = time.time()

        def failure(code: str, message: str, e: Exception, **details) -> ProviderError:
            latency_ms = int((time.time() - start_time) * 1000)
            error = ErrorDetail(
                code=code,
                message=message,
                details={
                    "provider": "groq",
                    "model": self.model,
                    "latency_ms": latency_ms,
                    "original_error": str(e),
                    **details
                }
            )
            logger.error(
                f"Generation failed ({code}): model={self.model}, latency={latency_ms}ms, error={e}",
                exc_info=True,
                extra={"error_code": error.code, "error_details": error.details}
            )
            return ProviderError(error)

        try:
            logger.debug(f"Generating response with model: {self.model}")

            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt}
                ],
                max_tokens=self.max_tokens,
                temperature=self.temperature
            )
        except RateLimitError as e:
            raise failure(
                "RATE_LIMIT_ERROR",
                "Rate limit exceeded. Please try again in a few moments.",
                e,
                retry_after=60
            )
        except AuthenticationError as e:
            raise failure("AUTHENTICATION_ERROR", "Authentication failed. Please check your API key.", e)
        except APITimeoutError as e:
            raise failure("TIMEOUT_ERROR", "Request timed out. Please try again.", e)
        except APIError as e:
            raise failure("API_ERROR", f"Groq API error: {str(e)}", e)
        except Exception as e:
            raise failure(
                "UNKNOWN_ERROR",
                f"Unexpected error during generation: {str(e)}",
                e,
                error_type=type(e).__name__
            )

        latency_ms = int((time.time() - start_time) * 1000)

        text = NO_ANSWER
        if response.choices and response.choices[0].message.content:
            text = response.choices[0].message.content

        usage = response.usage
        tokens_input = getattr(usage, "prompt_tokens", 0) or 0
        tokens_output = getattr(usage, "completion_tokens", 0) or 0
        tokens_used = getattr(usage, "total_tokens", 0) or (tokens_input + tokens_output)

        logger.info(
            f"Generated response: model={self.model}, "
            f"input_tokens={tokens_input}, output_tokens={tokens_output}, "
            f"latency={latency_ms}ms"
        )

        return LLMResponse(
            text=text,
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            tokens_used=tokens_used,
            latency_ms=latency_ms,
            model_used=self.model
        )

    async def generate_answer(self, query: str, results: List[RetrievalResult]) -> GenerationResult:
        """Answer a question from retrieved chunks, citing them as [1], [2], ..."""
        start_time = time.time()

        citations = self.build_citations(results)
        prompt = self.build_prompt(query, self.build_context(results))
        response = await self.generate(prompt)

        return GenerationResult(
            answer=response.text,
            citations=citations,
            tokens_used=response.tokens_used,
            processing_time_ms=int((time.time() - start_time) * 1000),
            model_used=response.model_used
        )

    @staticmethod
    def build_context(results: List[RetrievalResult]) -> str:
        """Numbered context blocks, one per result, in result order."""
        return "\n\n".join(
            f"[{index}] {result.chunk.text}"
            for index, result in enumerate(results, start=1)
        )

    @staticmethod
    def build_citations(results: List[RetrievalResult]) -> List[Citation]:
        """One citation per result; ids match the context block numbers."""
        return [
            Citation(
                id=index,
                source=result.chunk.metadata.source,
                title=result.chunk.metadata.title,
                section=result.chunk.metadata.section,
                text=result.chunk.text,
                score=result.final_score
            )
            for index, result in enumerate(results, start=1)
        ]

    @staticmethod
    def build_prompt(query: str, context: str) -> str:
        """
        Build prompt template with context and query.

        Args:
            query: User question
            context: Numbered context blocks

        Returns:
            Complete prompt string
        """
        return f"""Based on the following context, please answer the question: "{query}"

Context:
{context}

Instructions:
1. Answer the question based only on the provided context
2. Use citations in the format [1], [2], etc. to reference specific sources
3. If the answer cannot be found in the context, clearly state that
4. Be concise but comprehensive
5. Maintain accuracy and avoid hallucination

Question: {query}

Answer:"""
