"""Provider call results and the fallback decision applied to them."""
import logging
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from errors import ErrorDetail

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ProviderResult(Generic[T]):
    """Outcome of one provider call: a value, or a recoverable failure."""
    provider: str
    operation: str
    value: Optional[T] = None
    error: Optional[ErrorDetail] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, provider: str, operation: str, value: T) -> "ProviderResult[T]":
        return cls(provider=provider, operation=operation, value=value)

    @classmethod
    def failure(cls, provider: str, operation: str, error: ErrorDetail) -> "ProviderResult[T]":
        return cls(provider=provider, operation=operation, error=error)


def resolve_with_fallback(result: ProviderResult[T], fallback: Callable[[], T]) -> T:
    """
    Return the provider value, or log the failure and use the fallback.

    Provider error shapes stop here; callers only ever see a value.
    """
    if result.ok:
        return result.value

    logger.warning(
        f"{result.provider} failed during {result.operation}, using fallback: "
        f"[{result.error.code}] {result.error.message}",
        extra={
            "provider": result.provider,
            "operation": result.operation,
            "error_code": result.error.code,
            "error_details": result.error.details,
        }
    )
    return fallback()
