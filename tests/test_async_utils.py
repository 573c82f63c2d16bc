"""
Tests for async_utils module.

Covers run_sync, run_sync_limited and init_semaphore.
"""

import asyncio

import pytest

import board_sync.core.async_utils as mod
from board_sync.core.async_utils import (
    init_semaphore,
    run_sync,
    run_sync_limited,
)


def _sync_add(a: int, b: int) -> int:
    return a + b


@pytest.fixture
def restore_semaphore():
    original = mod._semaphore
    yield
    mod._semaphore = original


async def test_run_sync_calls_function():
    assert await run_sync(_sync_add, 3, 4) == 7


async def test_run_sync_passes_kwargs():
    def _kw_func(*, name: str) -> str:
        return f"hello {name}"

    assert await run_sync(_kw_func, name="board") == "hello board"


async def test_run_sync_propagates_exceptions():
    def _boom():
        raise RuntimeError("worker failed")

    with pytest.raises(RuntimeError, match="worker failed"):
        await run_sync(_boom)


async def test_init_semaphore_sets_value(restore_semaphore):
    init_semaphore(5)
    assert isinstance(mod._semaphore, asyncio.Semaphore)
    assert mod._semaphore._value == 5


async def test_run_sync_limited_respects_semaphore(restore_semaphore):
    init_semaphore(2)
    assert await run_sync_limited(_sync_add, 10, 20) == 30
    # released after the call
    assert mod._semaphore._value == 2


async def test_run_sync_limited_without_semaphore(restore_semaphore):
    mod._semaphore = None
    assert await run_sync_limited(_sync_add, 1, 2) == 3


async def test_run_sync_limited_bounds_concurrency(restore_semaphore):
    import threading
    import time

    init_semaphore(1)
    lock = threading.Lock()
    active = 0
    peak = 0

    def _work():
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.01)
        with lock:
            active -= 1
        return True

    results = await asyncio.gather(*(run_sync_limited(_work) for _ in range(4)))
    assert results == [True] * 4
    assert peak == 1
