"""Error taxonomy shared by the pipeline services and the API layer."""
from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass
class ErrorDetail:
    """Structured error information."""
    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


class RAGError(Exception):
    """Base exception carrying structured error information."""

    def __init__(self, error: ErrorDetail):
        self.error = error
        super().__init__(error.message)

    @classmethod
    def from_message(cls, code: str, message: str, **details: Any) -> "RAGError":
        return cls(ErrorDetail(code=code, message=message, details=details))


class ValidationError(RAGError):
    """A required field is missing or empty. Reported to the caller, never retried."""


class ProviderError(RAGError):
    """An external provider (embedding, rerank, generation) failed."""


class StoreError(RAGError):
    """The vector store is unreachable or rejected a request."""


class PipelineError(RAGError):
    """An internal consistency check failed; a bug rather than bad input."""
