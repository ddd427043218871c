"""
Batch Execution

Runs async work over many items in sequential fixed-size batches, with
concurrency inside each batch and per-item failure isolation.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Dict, List, Any, Callable, Awaitable, Generic, Sequence, TypeVar

from exceptions import ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class BatchError:
    """One item that produced no result"""
    item_id: str
    kind: str  # "error", "timeout" or "cancelled"
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"item_id": self.item_id, "kind": self.kind, "message": self.message}


@dataclass
class BatchResult(Generic[R]):
    """
    Outcome of a batch run.

    Every input item ends up in exactly one of successes or errors.
    """
    successes: List[R] = field(default_factory=list)
    errors: List[BatchError] = field(default_factory=list)
    cancelled: bool = False

    @property
    def total(self) -> int:
        return len(self.successes) + len(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "successes": [s.to_dict() if hasattr(s, "to_dict") else s for s in self.successes],
            "errors": [e.to_dict() for e in self.errors],
            "cancelled": self.cancelled,
            "total": self.total,
        }


async def run_in_batches(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    item_id: Callable[[T], str],
    concurrency: int = 10,
    cancel_event: Optional[asyncio.Event] = None,
    item_timeout: Optional[float] = None
) -> BatchResult[R]:
    """
    Run `worker` over `items`.

    Batches run one after another; items within a batch run concurrently.
    The cancel event is checked before each batch, and items that never
    started are reported as "cancelled" errors. Nothing is retried.

    Raises:
        ValidationError: if concurrency is not positive
    """
    if concurrency < 1:
        raise ValidationError("concurrency must be at least 1", field="concurrency")

    result: BatchResult[R] = BatchResult()

    async def run_one(item: T) -> R:
        if item_timeout is not None:
            return await asyncio.wait_for(worker(item), timeout=item_timeout)
        return await worker(item)

    for start in range(0, len(items), concurrency):
        batch = items[start:start + concurrency]

        if cancel_event is not None and cancel_event.is_set():
            result.cancelled = True
            for item in items[start:]:
                result.errors.append(BatchError(item_id(item), "cancelled", "Batch cancelled before start"))
            logger.info(f"Batch run cancelled with {len(items) - start} items not started")
            break

        outcomes = await asyncio.gather(*(run_one(item) for item in batch), return_exceptions=True)

        for item, outcome in zip(batch, outcomes):
            if isinstance(outcome, asyncio.TimeoutError):
                logger.warning(f"Item {item_id(item)} timed out")
                result.errors.append(BatchError(item_id(item), "timeout", "Item timed out"))
            elif isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning(f"Item {item_id(item)} failed: {outcome}")
                result.errors.append(BatchError(item_id(item), "error", str(outcome)))
            else:
                result.successes.append(outcome)

    return result
