"""
Explicit best-effort results for side effects whose failure must not abort
the caller (entity placement, entity movement, system edge notifications).

Callers receive a ``BestEffort`` and acknowledge it, which logs the failure.
Calls whose failure must abort are simply made directly and allowed to raise.
"""
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class BestEffort(Generic[T]):
    """Outcome of a best-effort call: either a value or the captured exception."""

    value: Optional[T] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def acknowledge(self, logger: logging.Logger, message: str, **context: Any) -> Optional[T]:
        """Log a warning when the call failed and return the value (None on failure)."""
        if self.error is not None:
            details = " ".join(f"{key}={value}" for key, value in context.items() if value is not None)
            logger.warning(f"{message}: {self.error}" + (f" | {details}" if details else ""))
        return self.value


def best_effort(fn: Callable[..., T], *args: Any, **kwargs: Any) -> BestEffort[T]:
    """Run ``fn`` and capture any exception instead of raising it."""
    try:
        return BestEffort(value=fn(*args, **kwargs))
    except Exception as e:
        return BestEffort(error=e)


async def best_effort_async(fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> BestEffort[T]:
    """Await ``fn`` and capture any exception instead of raising it."""
    try:
        return BestEffort(value=await fn(*args, **kwargs))
    except Exception as e:
        return BestEffort(error=e)
