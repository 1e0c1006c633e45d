import asyncio

import pytest

from cstiscan.core.exceptions import ScriptEvaluationError, ScriptReferenceError
from cstiscan.core.timeouts import OutcomeStatus, with_timeout


async def _value(v):
    return v


async def _sleep_forever():
    await asyncio.sleep(3600)


async def _raise(exc):
    raise exc


@pytest.mark.asyncio
async def test_with_timeout_returns_value():
    outcome = await with_timeout(_value(42), 1)
    assert outcome.ok
    assert outcome.value == 42
    assert outcome.describe() == "ok"


@pytest.mark.asyncio
async def test_with_timeout_classifies_expiry():
    outcome = await with_timeout(_sleep_forever(), 0.01)
    assert outcome.status == OutcomeStatus.TIMED_OUT
    assert outcome.timed_out
    assert not outcome.ok
    assert outcome.describe() == "timed out"


@pytest.mark.asyncio
async def test_with_timeout_classifies_failure():
    outcome = await with_timeout(_raise(ScriptEvaluationError("boom")), 1)
    assert outcome.status == OutcomeStatus.FAILED
    assert isinstance(outcome.error, ScriptEvaluationError)
    assert not outcome.reference_error
    assert outcome.describe().startswith("failed:")


@pytest.mark.asyncio
async def test_reference_error_is_flagged():
    outcome = await with_timeout(_raise(ScriptReferenceError("Vue is not defined")), 1)
    assert outcome.reference_error


@pytest.mark.asyncio
async def test_caller_cancellation_propagates():
    task = asyncio.ensure_future(with_timeout(_sleep_forever(), 60))
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
