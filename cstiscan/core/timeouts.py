"""
Bounded browser operations.

Every interaction with the page goes through `with_timeout`, which races the
operation against a deadline and converts the result into an `Outcome`
instead of raising. On expiry the in-flight coroutine is cancelled and its
eventual completion, if any, is ignored.
"""
import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Generic, Optional, TypeVar

from cstiscan.core.exceptions import ScriptReferenceError

T = TypeVar("T")


class OutcomeStatus(str, Enum):
    OK = "ok"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass
class Outcome(Generic[T]):
    """Result of a bounded operation: a value, a timeout, or a failure."""
    status: OutcomeStatus
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.OK

    @property
    def timed_out(self) -> bool:
        return self.status == OutcomeStatus.TIMED_OUT

    @property
    def reference_error(self) -> bool:
        """True when the failure was an undefined-global lookup in page context."""
        return isinstance(self.error, ScriptReferenceError)

    def describe(self) -> str:
        if self.ok:
            return "ok"
        if self.timed_out:
            return "timed out"
        return f"failed: {self.error}"


async def with_timeout(operation: Awaitable[T], seconds: float) -> Outcome[T]:
    """
    Run `operation` with a hard deadline.

    Never raises for operation errors or timeouts; only task cancellation of
    the caller itself propagates.
    """
    try:
        value = await asyncio.wait_for(operation, timeout=seconds)
        return Outcome(OutcomeStatus.OK, value=value)
    except asyncio.TimeoutError as e:
        return Outcome(OutcomeStatus.TIMED_OUT, error=e)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        return Outcome(OutcomeStatus.FAILED, error=e)


__all__ = ["Outcome", "OutcomeStatus", "with_timeout"]
