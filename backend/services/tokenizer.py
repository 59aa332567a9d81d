"""Token counting strategies used by the chunking engine."""
import logging
import math

import tiktoken

from config import TOKENIZER_ENCODING

logger = logging.getLogger(__name__)


class ApproximateTokenCounter:
    """Counts tokens as ceil(characters / 4); overlap is taken in whole words."""

    exact = False

    def count(self, text: str) -> int:
        return math.ceil(len(text) / 4)

    def tail(self, text: str, overlap_tokens: int) -> str:
        """Return the suffix of text worth roughly overlap_tokens tokens."""
        if overlap_tokens <= 0:
            return ""
        words = text.split(" ")
        estimated_words = math.ceil(overlap_tokens * 4 / 5)
        if len(words) <= estimated_words:
            return text
        return " ".join(words[-estimated_words:])


class TiktokenCounter:
    """Exact sub-word token counts using a tiktoken BPE encoding."""

    exact = True

    def __init__(self, encoding_name: str = TOKENIZER_ENCODING):
        self.encoding = tiktoken.get_encoding(encoding_name)

    def count(self, text: str) -> int:
        return len(self.encoding.encode(text))

    def tail(self, text: str, overlap_tokens: int) -> str:
        """Return the decoded last overlap_tokens tokens of text."""
        if overlap_tokens <= 0:
            return ""
        tokens = self.encoding.encode(text)
        if len(tokens) <= overlap_tokens:
            return text
        return self.encoding.decode(tokens[-overlap_tokens:])


def create_token_counter(encoding_name: str = TOKENIZER_ENCODING):
    """
    Load the exact tokenizer, falling back to the character approximation.

    tiktoken downloads its BPE ranks on first use, so loading can fail
    offline.
    """
    try:
        counter = TiktokenCounter(encoding_name)
        logger.info(f"Using tiktoken encoding '{encoding_name}' for token counting")
        return counter
    except Exception as e:
        logger.warning(
            f"Could not load tiktoken encoding '{encoding_name}', "
            f"using ceil(len/4) approximation: {e}"
        )
        return ApproximateTokenCounter()
